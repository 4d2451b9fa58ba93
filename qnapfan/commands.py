#!/usr/bin/env python3
"""
Command pattern implementation for actuator actions.

SetDutyCommand is the only path by which the daemon writes the fan duty.
The operator commands (safe-max, safe duty) build on it.
"""

import logging
import os
import subprocess
import time
from abc import ABC, abstractmethod
from typing import Optional

from .config import ConfigManager
from .errors import ActuatorWriteError, DaemonStillRunningError, SensorMissingError
from .lock import InstanceLock
from .sensors import find_fan_group, read_int


class Command(ABC):
    """Base command interface for the Command pattern."""

    @abstractmethod
    def execute(self):
        """Execute the command."""


class SetDutyCommand(Command):
    """Write a duty value to a PWM control endpoint."""

    def __init__(self, duty_path: str, duty: int):
        """
        Initialize the command.

        Args:
            duty_path: sysfs PWM file, e.g. /sys/class/hwmon/hwmon3/pwm1
            duty: value in 0-255
        """
        self.duty_path = duty_path
        self.duty = duty

    def execute(self) -> int:
        """Write the duty; any OS failure is raised as ActuatorWriteError."""
        try:
            with open(self.duty_path, "w") as f:
                f.write(str(self.duty))
        except OSError as exc:
            raise ActuatorWriteError(self.duty_path, self.duty, exc) from exc
        logging.debug("duty -> %d (%s)", self.duty, self.duty_path)
        return self.duty


class StopServiceCommand(Command):
    """Stop the daemon's systemd unit so it cannot overwrite a pinned duty."""

    def __init__(self, service_name: str):
        self.service_name = service_name

    def execute(self) -> bool:
        """Return True if systemctl stopped the unit; failures are only logged."""
        try:
            subprocess.run(["systemctl", "stop", self.service_name],
                           capture_output=True, text=True, check=True, timeout=30)
        except (OSError, subprocess.SubprocessError) as exc:
            logging.warning("Could not stop %s: %s", self.service_name, exc)
            return False
        logging.info("Stopped %s", self.service_name)
        return True


class SafeMaxCommand(Command):
    """
    Emergency override: stop the daemon and pin the fan at max duty.

    The daemon's instance lock is taken before writing, so no control loop,
    whether systemd-managed or started by hand, can overwrite the pinned duty.
    """

    def __init__(self, config: ConfigManager, lock_attempts: int = 5,
                 retry_delay: float = 1.0, sleep=time.sleep):
        self.config = config
        self.lock_attempts = lock_attempts
        self.retry_delay = retry_delay
        self.sleep = sleep

    def _take_lock(self) -> InstanceLock:
        lock = InstanceLock(self.config.lock_path)
        for attempt in range(self.lock_attempts):
            if lock.acquire():
                return lock
            if attempt + 1 < self.lock_attempts:
                self.sleep(self.retry_delay)
        raise DaemonStillRunningError(self.config.lock_path)

    def execute(self) -> int:
        StopServiceCommand(self.config.service_name).execute()
        with self._take_lock():
            return self._pin_max()

    def _pin_max(self) -> int:
        layout = self.config.hwmon
        group = find_fan_group(layout)
        if group is None:
            raise SensorMissingError(layout.fan_group, layout.root)
        if not os.access(group.duty_path, os.W_OK):
            raise ActuatorWriteError(group.duty_path, self.config.control.max_duty,
                                     PermissionError("not writable"))

        duty = SetDutyCommand(group.duty_path, self.config.control.max_duty).execute()
        logging.warning("SAFE-MAX: %s set to %d, rpm now %s", group.duty_path, duty,
                        read_int(group.speed_path))
        logging.warning("Automatic control stays off until %s is started again",
                        self.config.service_name)
        return duty


class SafeDutyCommand(Command):
    """
    Pin the duty to a fixed safe value before the driver is removed.

    Best effort: a missing group, endpoint or rejected write is logged and
    tolerated, since the device may already be gone.
    """

    def __init__(self, config: ConfigManager, duty: Optional[int] = None):
        """
        Args:
            config: loaded configuration
            duty: requested duty; None uses safe_uninstall_duty, 0 skips
        """
        self.config = config
        self.duty = config.safe_uninstall_duty if duty is None else duty

    def execute(self) -> Optional[int]:
        """Return the duty written, or None if nothing was written."""
        if self.duty <= 0:
            logging.info("Safe duty disabled, leaving fan untouched")
            return None

        duty = self.config.control.clamp(self.duty)
        group = find_fan_group(self.config.hwmon)
        if group is None or not os.access(group.duty_path, os.W_OK):
            logging.info("Fan control endpoint unavailable, safe duty not applied")
            return None

        try:
            SetDutyCommand(group.duty_path, duty).execute()
        except ActuatorWriteError as exc:
            logging.warning("Safe duty not applied: %s", exc)
            return None
        logging.info("Safe duty %s=%d (rpm=%s)", group.duty_path, duty,
                     read_int(group.speed_path))
        return duty
