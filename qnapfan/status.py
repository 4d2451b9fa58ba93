#!/usr/bin/env python3
"""
Human-readable status report for operators (--status).
"""

import os
import subprocess
import time
from typing import List, Optional

from .config import ConfigManager
from .sensors import find_fan_group, find_group, find_groups, read_int


def systemctl_state(verb: str, unit: str) -> str:
    """Output of `systemctl <verb> <unit>`, or '?' if systemctl is unavailable."""
    try:
        result = subprocess.run(["systemctl", verb, unit], capture_output=True,
                                text=True, timeout=10)
    except (OSError, subprocess.SubprocessError):
        return "?"
    return result.stdout.strip() or "?"


def _value(path: str, unit: str = "") -> str:
    value = read_int(path)
    if value is None:
        return "N/A"
    return f"{value}{unit}"


def build_report(config: ConfigManager, now: Optional[float] = None) -> List[str]:
    """Collect the status report lines."""
    layout = config.hwmon
    now = time.time() if now is None else now
    lines = [
        "===== qnap-autofan status =====",
        f"Time:   {time.strftime('%Y-%m-%d %H:%M:%S', time.localtime(now))}",
        f"Kernel: {os.uname().release}",
        "",
        "[Fan daemon]",
        f"  service: {config.service_name} "
        f"enabled={systemctl_state('is-enabled', config.service_name)} "
        f"active={systemctl_state('is-active', config.service_name)}",
        f"  lock   : {config.lock_path}",
        "",
        "[Sensors]",
    ]

    fan = find_fan_group(layout)
    if fan:
        lines.append(f"  {layout.fan_group} hwmon: {fan.path}")
        lines.append(f"    {layout.duty_endpoint:<11}: {_value(fan.duty_path)}")
        lines.append(f"    {layout.speed_endpoint:<11}: {_value(fan.speed_path, ' RPM')}")
        for entry in layout.fan_temp_endpoints:
            lines.append(f"    {entry:<11}: {_value(fan.endpoint(entry), ' mC')}")
    else:
        lines.append(f"  {layout.fan_group} hwmon: NOT FOUND")

    if layout.cpu_group:
        cpu = find_group(layout.cpu_group, layout.root)
        if cpu:
            lines.append(f"  {layout.cpu_group} hwmon: {cpu.path}")
            lines.append(f"    package {layout.cpu_temp_endpoint}: "
                         f"{_value(cpu.endpoint(layout.cpu_temp_endpoint), ' mC')}")
        else:
            lines.append(f"  {layout.cpu_group} hwmon: NOT FOUND")

    if layout.storage_group:
        for group in find_groups(layout.storage_group, layout.root):
            lines.append(f"  {layout.storage_group} hwmon: {group.path}")
            for path in group.temp_paths():
                lines.append(f"    {os.path.basename(path):<11}: {_value(path, ' mC')}")

    lines += ["", "[Summary]"]
    if fan and os.path.exists(fan.duty_path):
        lines.append("  hwmon interface: PRESENT")
    else:
        lines.append("  hwmon interface: MISSING")
    lines.append("================================")
    return lines
