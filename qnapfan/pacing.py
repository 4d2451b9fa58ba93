#!/usr/bin/env python3
"""
Limits on how often and how far the duty may move per control cycle.
"""


class DwellGuard:
    """Minimum time an applied duty must persist before the next change."""

    def __init__(self, min_dwell_seconds: float):
        self.min_dwell_seconds = min_dwell_seconds

    def permits(self, now: float, last_change_time: float) -> bool:
        return now - last_change_time >= self.min_dwell_seconds


class RateLimiter:
    """Bounds the per-cycle duty delta, then clamps to the duty range."""

    def __init__(self, max_step: int, min_duty: int, max_duty: int):
        self.max_step = max_step
        self.min_duty = min_duty
        self.max_duty = max_duty

    def step(self, last_duty: int, target_duty: int) -> int:
        """Move from last_duty towards target_duty by at most max_step."""
        delta = max(-self.max_step, min(self.max_step, target_duty - last_duty))
        return max(self.min_duty, min(self.max_duty, last_duty + delta))
