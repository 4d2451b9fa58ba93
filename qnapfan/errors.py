"""
Error types raised by the fan control daemon.

Anything derived from FanControlError that reaches the entry point ends
the process; recovery is left to the service manager.
"""


class FanControlError(Exception):
    """Base class for fatal fan control errors."""


class ConfigError(FanControlError):
    """Configuration file or override values are invalid."""


class SensorMissingError(FanControlError):
    """The mandatory fan control hwmon group is not present."""

    def __init__(self, group_name: str, root: str):
        super().__init__(f"hwmon group '{group_name}' not found under {root}")
        self.group_name = group_name
        self.root = root


class DaemonStillRunningError(FanControlError):
    """A control loop still holds the instance lock."""

    def __init__(self, lock_path: str):
        super().__init__(f"control daemon still holds {lock_path}; refusing to pin duty")
        self.lock_path = lock_path


class ActuatorWriteError(FanControlError):
    """Writing the duty value to the control endpoint failed."""

    def __init__(self, path: str, duty: int, cause: OSError):
        super().__init__(f"unable to write duty {duty} to {path}: {cause}")
        self.path = path
        self.duty = duty
        self.cause = cause
