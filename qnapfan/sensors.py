#!/usr/bin/env python3
"""
Sensor reading module.

Locates hwmon groups by name and reduces their temperature inputs to one
worst-case value per control cycle.
"""

import glob
import logging
import os
import time
from dataclasses import dataclass, replace
from typing import List, Optional, Tuple

from .config import HwmonLayout

# Millidegree readings outside this range are sensor noise or absence.
VALID_MIN_MC = 5000
VALID_MAX_MC = 110000


@dataclass(frozen=True)
class HwmonGroup:
    """One hwmon directory whose `name` attribute matched a lookup."""
    name: str
    path: str
    duty_endpoint: str = "pwm1"
    speed_endpoint: str = "fan1_input"

    @property
    def duty_path(self) -> str:
        return os.path.join(self.path, self.duty_endpoint)

    @property
    def speed_path(self) -> str:
        return os.path.join(self.path, self.speed_endpoint)

    def endpoint(self, entry: str) -> str:
        return os.path.join(self.path, entry)

    def temp_paths(self) -> List[str]:
        """All temperature inputs the group currently exposes."""
        return sorted(glob.glob(os.path.join(self.path, "temp*_input")))


@dataclass(frozen=True)
class Reading:
    """A single raw temperature sample."""
    source_id: str
    raw_value_mc: int
    timestamp: float

    @property
    def valid(self) -> bool:
        return VALID_MIN_MC <= self.raw_value_mc <= VALID_MAX_MC


def _hwmon_dirs(root: str) -> List[str]:
    return sorted(p for p in glob.glob(os.path.join(root, "hwmon*")) if os.path.isdir(p))


def _group_name(hwmon_path: str) -> Optional[str]:
    try:
        with open(os.path.join(hwmon_path, "name")) as f:
            return f.read().strip()
    except OSError:
        return None


def find_groups(name: str, root: str = "/sys/class/hwmon") -> List[HwmonGroup]:
    """Return every hwmon group whose name matches exactly, in scan order."""
    return [HwmonGroup(name=name, path=path)
            for path in _hwmon_dirs(root) if _group_name(path) == name]


def find_group(name: str, root: str = "/sys/class/hwmon") -> Optional[HwmonGroup]:
    """Return the first hwmon group named `name`, or None if it is absent."""
    for path in _hwmon_dirs(root):
        if _group_name(path) == name:
            return HwmonGroup(name=name, path=path)
    return None


def find_fan_group(layout: HwmonLayout) -> Optional[HwmonGroup]:
    """Look up the fan controller group with the layout's endpoint names."""
    group = find_group(layout.fan_group, layout.root)
    if group is None:
        return None
    return replace(group, duty_endpoint=layout.duty_endpoint,
                   speed_endpoint=layout.speed_endpoint)


def read_int(path: str) -> Optional[int]:
    """Read a sysfs attribute as a non-negative integer, None on any failure."""
    try:
        with open(path) as f:
            value = int(f.read().strip())
    except (OSError, ValueError):
        return None
    return value if value >= 0 else None


class SensorReader:
    """
    Reads temperatures from the fan group, the CPU package group and all
    storage-device groups.

    The fan group is resolved once by the caller and passed in; optional
    groups are looked up again every cycle since drives can come and go.
    """

    def __init__(self, layout: HwmonLayout, fan_group: HwmonGroup, clock=time.time):
        """Initialize the reader with the hwmon layout and resolved fan group."""
        self.layout = layout
        self.fan_group = fan_group
        self.clock = clock

    def sources(self) -> List[Tuple[str, str]]:
        """(source_id, path) for every temperature input to sample this cycle."""
        sources = [(f"{self.fan_group.name}:{entry}", self.fan_group.endpoint(entry))
                   for entry in self.layout.fan_temp_endpoints]

        if self.layout.cpu_group:
            cpu = find_group(self.layout.cpu_group, self.layout.root)
            if cpu:
                sources.append((f"{cpu.name}:{self.layout.cpu_temp_endpoint}",
                                cpu.endpoint(self.layout.cpu_temp_endpoint)))

        if self.layout.storage_group:
            for group in find_groups(self.layout.storage_group, self.layout.root):
                hwmon_id = os.path.basename(group.path)
                for path in group.temp_paths():
                    sources.append((f"{group.name}/{hwmon_id}:{os.path.basename(path)}", path))
        return sources

    def collect(self) -> List[Reading]:
        """Sample every source; unreadable inputs are skipped."""
        now = self.clock()
        readings = []
        for source_id, path in self.sources():
            value = read_int(path)
            if value is None:
                logging.debug("No value from %s (%s)", source_id, path)
                continue
            readings.append(Reading(source_id, value, now))
        return readings

    def read(self) -> Optional[int]:
        """
        Worst-case temperature in millidegrees for this cycle.

        Returns:
            The maximum valid reading, or None when no sensor produced one.
        """
        valid = [r.raw_value_mc for r in self.collect() if r.valid]
        return max(valid) if valid else None
