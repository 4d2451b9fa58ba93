#!/usr/bin/env python3
"""
Configuration manager for the fan daemon.

Loads tuning parameters and the hwmon layout from a YAML file, applies
environment overrides and validates the result once at process start.
There is no runtime reload: the control loop runs with one immutable
ControlConfig for its whole life.
"""

import os
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from .errors import ConfigError

# Environment names used by the deployed installer, mapped to config keys.
ENV_OVERRIDES: Dict[str, str] = {
    "MIN_PWM": "min_duty",
    "MAX_PWM": "max_duty",
    "INTERVAL": "interval",
    "HYST_C": "hysteresis_margin",
    "MIN_HOLD_SEC": "min_dwell_seconds",
    "MAX_STEP": "max_step",
    "EMA_NUM": "ema_numerator",
    "EMA_DEN": "ema_denominator",
    "SAFE_UNINSTALL_PWM": "safe_uninstall_duty",
}

# (lower bound in °C, duty); None means "use max_duty".
DEFAULT_TIERS: Tuple[Tuple[int, Optional[int]], ...] = (
    (40, 110),
    (50, 150),
    (60, 200),
    (70, None),
)


def _integer(value: Any, key: str) -> int:
    """Parse a whole number; 2.5 or "12.7" is an error, not a truncation."""
    if isinstance(value, bool):
        raise ConfigError(f"'{key}' must be an integer (got {value!r})")
    if isinstance(value, float):
        if not value.is_integer():
            raise ConfigError(f"'{key}' must be an integer (got {value!r})")
        return int(value)
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"'{key}' must be an integer (got {value!r})") from e


@dataclass(frozen=True)
class HwmonLayout:
    """Where the daemon finds its sensors and actuator.

    - root: directory holding the hwmonN entries
    - fan_group: name of the mandatory fan controller group
    - duty_endpoint / speed_endpoint: PWM and RPM files in the fan group
    - fan_temp_endpoints: temperature inputs read from the fan group
    - cpu_group / cpu_temp_endpoint: optional CPU package sensor
    - storage_group: name shared by every storage-device group
    """
    root: str = "/sys/class/hwmon"
    fan_group: str = "qnap8528"
    duty_endpoint: str = "pwm1"
    speed_endpoint: str = "fan1_input"
    fan_temp_endpoints: Tuple[str, ...] = ("temp1_input", "temp6_input")
    cpu_group: Optional[str] = "coretemp"
    cpu_temp_endpoint: str = "temp1_input"
    storage_group: Optional[str] = "nvme"


@dataclass(frozen=True)
class ControlConfig:
    """Tuning parameters of the control loop."""
    min_duty: int = 76
    max_duty: int = 255
    interval: float = 5
    hysteresis_margin: int = 2
    min_dwell_seconds: float = 10
    max_step: int = 12
    ema_numerator: int = 3
    ema_denominator: int = 4
    tiers: Tuple[Tuple[int, Optional[int]], ...] = DEFAULT_TIERS

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Raise ConfigError if the parameters cannot drive a fan safely."""
        if not 0 <= self.min_duty <= self.max_duty <= 255:
            raise ConfigError(
                f"duty bounds must satisfy 0 <= min_duty <= max_duty <= 255 "
                f"(got {self.min_duty}, {self.max_duty})")
        if self.interval <= 0:
            raise ConfigError(f"interval must be positive (got {self.interval})")
        if self.max_step <= 0:
            raise ConfigError(f"max_step must be positive (got {self.max_step})")
        if self.hysteresis_margin < 0 or self.min_dwell_seconds < 0:
            raise ConfigError("hysteresis_margin and min_dwell_seconds must not be negative")
        if not 0 <= self.ema_numerator < self.ema_denominator:
            raise ConfigError(
                f"EMA ratio must satisfy 0 <= numerator < denominator "
                f"(got {self.ema_numerator}/{self.ema_denominator})")

        # Tier duties outside [min_duty, max_duty] are clamped by TierMapper.
        previous = None
        for threshold, _ in self.tiers:
            if previous is not None and threshold <= previous:
                raise ConfigError("tier thresholds must be strictly increasing")
            previous = threshold

    def clamp(self, duty: int) -> int:
        """Clamp a duty value into [min_duty, max_duty]."""
        return max(self.min_duty, min(self.max_duty, duty))


class ConfigManager:
    """
    Loads configuration from a YAML file and environment overrides.

    The file is optional; every key has a default matching the values the
    appliance was measured with.
    """

    def __init__(self, config_path: str = None, environ: Mapping[str, str] = None):
        """Initialize with an optional YAML path and environment mapping."""
        self.config_path = config_path
        self.environ = os.environ if environ is None else environ
        self._config: Dict[str, Any] = {}
        self._control: Optional[ControlConfig] = None
        self._layout: Optional[HwmonLayout] = None
        self.reload()

    def reload(self) -> None:
        """Read the YAML file (if any), apply overrides and validate."""
        raw: Dict[str, Any] = {}
        if self.config_path:
            if not os.path.exists(self.config_path):
                raise ConfigError(f"Configuration file not found: {self.config_path}")
            try:
                with open(self.config_path, "r") as f:
                    raw = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                raise ConfigError(f"Error loading configuration: {e}") from e
            if not isinstance(raw, dict):
                raise ConfigError(f"Configuration root must be a mapping: {self.config_path}")

        for env_name, key in ENV_OVERRIDES.items():
            value = self.environ.get(env_name)
            if value not in (None, ""):
                raw[key] = value

        self._config = raw
        self._control = self._build_control(raw)
        self._layout = self._build_layout(raw.get("hwmon") or {})

    @staticmethod
    def _number(raw: Dict[str, Any], key: str, default, kind=int):
        value = raw.get(key, default)
        if kind is int:
            return _integer(value, key)
        try:
            return kind(value)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"'{key}' must be a number (got {value!r})") from e

    def _build_control(self, raw: Dict[str, Any]) -> ControlConfig:
        defaults = ControlConfig()
        return ControlConfig(
            min_duty=self._number(raw, "min_duty", defaults.min_duty),
            max_duty=self._number(raw, "max_duty", defaults.max_duty),
            interval=self._number(raw, "interval", defaults.interval, float),
            hysteresis_margin=self._number(raw, "hysteresis_margin", defaults.hysteresis_margin),
            min_dwell_seconds=self._number(raw, "min_dwell_seconds", defaults.min_dwell_seconds, float),
            max_step=self._number(raw, "max_step", defaults.max_step),
            ema_numerator=self._number(raw, "ema_numerator", defaults.ema_numerator),
            ema_denominator=self._number(raw, "ema_denominator", defaults.ema_denominator),
            tiers=self._build_tiers(raw.get("tiers")),
        )

    @staticmethod
    def _build_tiers(entries: Optional[List[Dict[str, Any]]]) -> Tuple[Tuple[int, Optional[int]], ...]:
        """Parse a list of {temp: C, duty: N|max} entries."""
        if not entries:
            return DEFAULT_TIERS
        tiers = []
        try:
            for entry in entries:
                duty = entry["duty"]
                tiers.append((_integer(entry["temp"], "tiers.temp"),
                              None if duty == "max" else _integer(duty, "tiers.duty")))
        except (KeyError, TypeError) as e:
            raise ConfigError(f"Invalid tier entry: {e}") from e
        return tuple(tiers)

    @staticmethod
    def _build_layout(raw: Dict[str, Any]) -> HwmonLayout:
        defaults = HwmonLayout()
        temps = raw.get("fan_temp_endpoints", defaults.fan_temp_endpoints)
        return HwmonLayout(
            root=raw.get("root", defaults.root),
            fan_group=raw.get("fan_group", defaults.fan_group),
            duty_endpoint=raw.get("duty_endpoint", defaults.duty_endpoint),
            speed_endpoint=raw.get("speed_endpoint", defaults.speed_endpoint),
            fan_temp_endpoints=tuple(temps),
            cpu_group=raw.get("cpu_group", defaults.cpu_group),
            cpu_temp_endpoint=raw.get("cpu_temp_endpoint", defaults.cpu_temp_endpoint),
            storage_group=raw.get("storage_group", defaults.storage_group),
        )

    @property
    def control(self) -> ControlConfig:
        """Validated control loop parameters."""
        return self._control

    @property
    def hwmon(self) -> HwmonLayout:
        """Sensor and actuator locations."""
        return self._layout

    @property
    def lock_path(self) -> str:
        """Advisory lock file guaranteeing a single running daemon."""
        return self._config.get("lock_path", "/run/qnap-fan-daemon.lock")

    @property
    def log_file(self) -> str:
        """Log file for daemon output."""
        return self._config.get("log_file", "/var/log/qnap-fan-daemon.log")

    @property
    def log_interval(self) -> int:
        """How often to write a status log line (seconds)."""
        return self._number(self._config, "log_interval", 60)

    @property
    def service_name(self) -> str:
        """systemd unit running the daemon."""
        return self._config.get("service_name", "qnap-fan-daemon.service")

    @property
    def safe_uninstall_duty(self) -> int:
        """Duty pinned before the driver is removed; 0 disables it."""
        return self._number(self._config, "safe_uninstall_duty", 200)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a raw configuration value by key."""
        return self._config.get(key, default)
