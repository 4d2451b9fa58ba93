#!/usr/bin/env python3
"""
Single-instance guard for the daemon.

An advisory flock on a lock file, taken once at startup and held until the
process exits. Failing to get it means another daemon already drives the
fan, which is a normal reason to exit quietly.
"""

import fcntl
import logging
import os


class InstanceLock:
    """Non-blocking exclusive flock on `path`."""

    def __init__(self, path: str):
        self.path = path
        self._fd = None

    def acquire(self) -> bool:
        """Try to take the lock; return False if another process holds it."""
        fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            logging.info("Lock %s is held by another instance", self.path)
            return False
        except OSError:
            os.close(fd)
            raise
        self._fd = fd
        return True

    @property
    def held(self) -> bool:
        return self._fd is not None

    def release(self) -> None:
        if self._fd is not None:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
            os.close(self._fd)
            self._fd = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
