#!/usr/bin/env python3
"""
Fan control loop.

Owns the state carried between cycles and runs the pipeline
aggregate -> smooth -> tier -> hysteresis -> dwell -> rate limit -> write.
"""

import logging
import time
from dataclasses import dataclass, replace
from typing import Callable, Optional

from .analyzer import HysteresisGate, Smoother, TierMapper
from .commands import SetDutyCommand
from .config import ControlConfig
from .events import DUTY_CHANGED, FAILSAFE, EventBus, event_bus
from .pacing import DwellGuard, RateLimiter
from .sensors import HwmonGroup, SensorReader, read_int


@dataclass(frozen=True)
class ControlState:
    """Everything one cycle hands to the next."""
    last_duty: int
    last_change_time: float
    ema_value: Optional[int] = None
    failsafe: bool = False


class ControlLoop:
    """
    Drives the fan duty from temperature readings.

    States: STARTING (start()), RUNNING (tick() per interval), FAIL-SAFE
    (a tick with no valid reading pins max_duty), STOPPED (stop()).
    Stopping leaves the duty at whatever was last written.
    """

    def __init__(self, config: ControlConfig, fan_group: HwmonGroup, reader: SensorReader,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep,
                 bus: EventBus = None, log_interval: float = 60):
        """Initialize the loop with its configuration and collaborators."""
        self.config = config
        self.fan_group = fan_group
        self.reader = reader
        self.clock = clock
        self.sleep = sleep
        self.bus = bus or event_bus
        self.log_interval = log_interval

        self.smoother = Smoother(config.ema_numerator, config.ema_denominator)
        self.mapper = TierMapper(config)
        self.gate = HysteresisGate(self.mapper.boundaries(), config.hysteresis_margin)
        self.dwell = DwellGuard(config.min_dwell_seconds)
        self.limiter = RateLimiter(config.max_step, config.min_duty, config.max_duty)

        self.running = False
        self.last_log = None

    def start(self) -> ControlState:
        """Build the initial state from the duty the fan is running at now."""
        observed = read_int(self.fan_group.duty_path)
        if observed is None:
            logging.warning("Could not read %s, assuming min duty %d",
                            self.fan_group.duty_path, self.config.min_duty)
            observed = self.config.min_duty
        return ControlState(last_duty=observed, last_change_time=self.clock())

    def tick(self, state: ControlState) -> ControlState:
        """Run one control cycle and return the state for the next one."""
        now = self.clock()
        raw = self.reader.read()

        if raw is None:
            return self._failsafe(state, now)
        if state.failsafe:
            logging.warning("Valid temperature reading again (%d mC), leaving fail-safe", raw)

        ema = self.smoother.update(state.ema_value, raw)
        temp_c = ema // 1000
        target = self.mapper.target(temp_c)
        gated = self.gate.apply(state.last_duty, target, temp_c)
        held = replace(state, ema_value=ema, failsafe=False)

        if not self.dwell.permits(now, state.last_change_time):
            return held

        duty = self.limiter.step(state.last_duty, gated)
        if duty == state.last_duty:
            return held

        SetDutyCommand(self.fan_group.duty_path, duty).execute()
        logging.info("duty %d -> %d (temp %d°C, target %d)", state.last_duty, duty, temp_c, gated)
        self.bus.publish(DUTY_CHANGED, {
            "duty": duty, "previous": state.last_duty, "temp_c": temp_c, "target": gated,
        })
        return ControlState(last_duty=duty, last_change_time=now, ema_value=ema)

    def _failsafe(self, state: ControlState, now: float) -> ControlState:
        """No sensor answered: assume the worst and run the fan flat out."""
        duty = self.config.max_duty
        SetDutyCommand(self.fan_group.duty_path, duty).execute()
        if not state.failsafe:
            logging.critical("No valid temperature reading, fail-safe duty %d", duty)
        self.bus.publish(FAILSAFE, {"duty": duty, "previous": state.last_duty})
        return ControlState(last_duty=duty, last_change_time=now,
                            ema_value=state.ema_value, failsafe=True)

    def run(self, max_cycles: Optional[int] = None) -> ControlState:
        """Cycle until stop() is called (or max_cycles have run)."""
        state = self.start()
        logging.info("Started. fan=%s duty=%s rpm=%s", self.fan_group.path,
                     state.last_duty, read_int(self.fan_group.speed_path))
        self.running = True
        cycles = 0
        while self.running:
            state = self.tick(state)
            self.log_status(state)
            cycles += 1
            if max_cycles is not None and cycles >= max_cycles:
                break
            self.sleep(self.config.interval)
        self.running = False
        return state

    def stop(self, signum=None, frame=None) -> None:
        """Signal-handler compatible; the current cycle finishes first."""
        if signum is not None:
            logging.info("Received signal %d, stopping", signum)
        self.running = False

    def log_status(self, state: ControlState) -> None:
        """Log the loop state every log_interval seconds."""
        now = self.clock()
        if self.last_log is not None and now - self.last_log < self.log_interval:
            return
        self.last_log = now
        temp = "n/a" if state.ema_value is None else f"{state.ema_value / 1000:.1f}°C"
        logging.info("state=%s duty=%d ema=%s rpm=%s",
                     "failsafe" if state.failsafe else "running",
                     state.last_duty, temp, read_int(self.fan_group.speed_path))
