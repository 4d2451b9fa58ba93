#!/usr/bin/env python3
"""
Thermal analysis module.

Turns the aggregated temperature into a target duty: integer EMA
smoothing, tiered duty lookup and hysteresis around tier boundaries.
"""

from typing import List, Optional, Tuple

from .config import ControlConfig


class Smoother:
    """
    Integer exponential moving average in millidegrees.

    ema' = (ema * N + raw * (D - N)) // D, seeded with the first sample.
    Floor division keeps the output identical to the deployed shell daemon.
    """

    def __init__(self, numerator: int = 3, denominator: int = 4):
        self.numerator = numerator
        self.denominator = denominator

    def update(self, ema: Optional[int], raw: int) -> int:
        """Return the next EMA value given the previous one (None = unseeded)."""
        if ema is None:
            return raw
        return (ema * self.numerator + raw * (self.denominator - self.numerator)) // self.denominator


class TierMapper:
    """Maps whole degrees Celsius to a duty via fixed breakpoints."""

    def __init__(self, config: ControlConfig):
        self.min_duty = config.min_duty
        self.max_duty = config.max_duty
        # Resolve "max" placeholders once; tier duties follow MIN/MAX_PWM.
        self.tiers: List[Tuple[int, int]] = [
            (threshold, self.max_duty if duty is None else config.clamp(duty))
            for threshold, duty in config.tiers
        ]

    def target(self, temp_c: int) -> int:
        """Duty for a temperature; below the first breakpoint that's min_duty."""
        duty = self.min_duty
        for threshold, tier_duty in self.tiers:
            if temp_c < threshold:
                break
            duty = tier_duty
        return duty

    def boundaries(self) -> List[Tuple[int, int, int]]:
        """(boundary °C, duty below, duty above) for every breakpoint."""
        bounds = []
        below = self.min_duty
        for threshold, duty in self.tiers:
            bounds.append((threshold, below, duty))
            below = duty
        return bounds


class HysteresisGate:
    """
    Holds the current duty while the temperature sits within `margin`
    degrees of a boundary the requested move would cross.
    """

    def __init__(self, boundaries: List[Tuple[int, int, int]], margin: int):
        self.boundaries = boundaries
        self.margin = margin

    def apply(self, last_duty: int, target_duty: int, temp_c: int) -> int:
        """Return target_duty if the move is allowed, else last_duty."""
        if target_duty == last_duty:
            return target_duty

        for boundary, lo_duty, hi_duty in self.boundaries:
            rising = last_duty <= lo_duty and target_duty >= hi_duty
            if rising and temp_c < boundary + self.margin:
                return last_duty
            falling = last_duty >= hi_duty and target_duty <= lo_duty
            if falling and temp_c > boundary - self.margin:
                return last_duty
        return target_duty
