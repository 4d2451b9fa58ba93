#!/usr/bin/env python3
"""QNAP fan daemon.

Drives the qnap8528 PWM fan from the hottest of the board, CPU package and
NVMe temperatures.

Features:
- Configuration loaded from YAML, overridable from the environment.
- Integer EMA smoothing, tiered duty lookup with hysteresis.
- Per-cycle step limit and minimum hold time between changes.
- Fail-safe to max duty when no sensor answers.
- Single instance via an advisory lock; systemd restarts it on exit.
- Operator modes: --status, --safe-max, --safe-duty.
"""

import argparse
import logging
import os
import signal
import sys
from pathlib import Path
from typing import List, Optional

from .commands import SafeDutyCommand, SafeMaxCommand
from .config import ConfigManager
from .controller import ControlLoop
from .errors import FanControlError, SensorMissingError
from .events import DUTY_CHANGED, FAILSAFE, event_bus
from .lock import InstanceLock
from .sensors import SensorReader, find_fan_group
from .status import build_report


def setup_logging(log_file_path: Optional[str], log_level_str: str = "INFO") -> None:
    """Configure logging to stdout (journald) and, if writable, a log file."""
    log_level = getattr(logging, log_level_str.upper(), logging.INFO)

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file_path:
        log_dir = os.path.dirname(log_file_path) or "."
        if os.access(log_dir, os.W_OK):
            handlers.append(logging.FileHandler(log_file_path))

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s [%(levelname)s] %(module)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=handlers,
        force=True,
    )
    logging.debug("Logging initialized at level %s", log_level_str.upper())


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="qnap-autofan",
        description="Temperature driven PWM fan daemon for qnap8528 based NAS units.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--status",
        action="store_true",
        help="Print sensor and service status and exit."
    )
    mode.add_argument(
        "--safe-max",
        action="store_true",
        help="Stop the daemon service and pin the fan at max duty."
    )
    mode.add_argument(
        "--safe-duty",
        nargs="?",
        type=int,
        const=-1,
        metavar="DUTY",
        help="Best-effort pin of a safe duty before driver removal "
             "(default: safe_uninstall_duty from config; 0 skips)."
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to YAML configuration file. If not provided, searches in standard locations."
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level."
    )
    return parser.parse_args(argv)


def find_config_file(specified_path: str = None) -> Optional[str]:
    """
    Find the configuration file.

    An explicitly given path is returned as is, so a typo fails loudly.
    Otherwise searches next to the package, the project root, /etc and the
    user's config directory. None means "run on defaults".
    """
    if specified_path:
        return specified_path

    package_dir = Path(__file__).resolve().parent
    search_paths = [
        package_dir / "config.yaml",
        package_dir.parent / "config.yaml",
        Path("/etc/qnap-autofan/config.yaml"),
        Path.home() / ".config/qnap-autofan/config.yaml",
    ]
    for path in search_paths:
        if path.exists():
            return str(path)
    return None


def _log_event(name: str):
    def listener(payload) -> None:
        logging.debug("event %s: %s", name, payload)
    return listener


def run_daemon(config: ConfigManager, max_cycles: Optional[int] = None) -> int:
    """STARTING -> RUNNING. Returns the process exit code."""
    lock = InstanceLock(config.lock_path)
    if not lock.acquire():
        logging.info("Another instance is already running, exiting")
        return 0

    with lock:
        layout = config.hwmon
        fan_group = find_fan_group(layout)
        if fan_group is None:
            raise SensorMissingError(layout.fan_group, layout.root)

        control = config.control
        logging.info(
            "Params: min=%d max=%d interval=%ss hyst=%d°C hold=%ss step=%d ema=%d/%d",
            control.min_duty, control.max_duty, control.interval, control.hysteresis_margin,
            control.min_dwell_seconds, control.max_step,
            control.ema_numerator, control.ema_denominator)

        listeners = [(DUTY_CHANGED, _log_event(DUTY_CHANGED)), (FAILSAFE, _log_event(FAILSAFE))]
        for name, listener in listeners:
            event_bus.subscribe(name, listener)

        reader = SensorReader(layout, fan_group)
        loop = ControlLoop(control, fan_group, reader, log_interval=config.log_interval)
        previous = {sig: signal.signal(sig, loop.stop) for sig in (signal.SIGTERM, signal.SIGINT)}
        try:
            loop.run(max_cycles=max_cycles)
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)
            for name, listener in listeners:
                event_bus.unsubscribe(name, listener)
    logging.info("Stopped")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main application entry point."""
    args = parse_args(argv)

    try:
        config = ConfigManager(find_config_file(args.config))
    except FanControlError as e:
        print(f"[ERR] {e}", file=sys.stderr)
        return 1

    if args.status:
        print("\n".join(build_report(config)))
        return 0

    setup_logging(config.log_file, args.log_level)
    if config.config_path:
        logging.info("Using configuration from: %s", config.config_path)

    try:
        if args.safe_max:
            SafeMaxCommand(config).execute()
            return 0
        if args.safe_duty is not None:
            duty = None if args.safe_duty < 0 else args.safe_duty
            SafeDutyCommand(config, duty).execute()
            return 0
        return run_daemon(config)
    except FanControlError as e:
        logging.critical("Fatal: %s", e, exc_info=True)
        return 1
    except Exception:
        logging.critical("Unhandled error, exiting", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
