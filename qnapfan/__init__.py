"""
QNAP fan control package.

Regulates the qnap8528 PWM fan from hwmon temperature readings using a
tiered duty table with smoothing, hysteresis and rate limiting.
"""

__version__ = "0.3.0"

# Core components
from .config import ConfigManager, ControlConfig, HwmonLayout
from .errors import (ActuatorWriteError, ConfigError, DaemonStillRunningError, FanControlError,
                     SensorMissingError)
from .events import event_bus
from .sensors import HwmonGroup, Reading, SensorReader, find_group, find_groups
from .analyzer import HysteresisGate, Smoother, TierMapper
from .pacing import DwellGuard, RateLimiter
from .controller import ControlLoop, ControlState
from .lock import InstanceLock

# Commands
from .commands import SafeDutyCommand, SafeMaxCommand, SetDutyCommand

__all__ = [
    "ConfigManager", "ControlConfig", "HwmonLayout",
    "FanControlError", "ConfigError", "SensorMissingError", "ActuatorWriteError",
    "DaemonStillRunningError",
    "event_bus",
    "HwmonGroup", "Reading", "SensorReader", "find_group", "find_groups",
    "Smoother", "TierMapper", "HysteresisGate",
    "DwellGuard", "RateLimiter",
    "ControlLoop", "ControlState",
    "InstanceLock",
    "SetDutyCommand", "SafeMaxCommand", "SafeDutyCommand",
    "__version__"
]
