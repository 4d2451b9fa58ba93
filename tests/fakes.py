"""Fake hwmon trees and clocks shared by the tests."""

import os
import tempfile

import yaml


class FakeHwmon:
    """A /sys/class/hwmon look-alike inside a temporary directory."""

    def __init__(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = self._tmp.name
        self._next = 0

    def add_group(self, name, **attrs):
        """Create hwmonN with a name file and the given attribute values."""
        path = os.path.join(self.root, f"hwmon{self._next}")
        self._next += 1
        os.makedirs(path)
        self.write(path, "name", name + "\n")
        for entry, value in attrs.items():
            self.write(path, entry, value)
        return path

    @staticmethod
    def write(path, entry, value):
        with open(os.path.join(path, entry), "w") as f:
            f.write(f"{value}\n" if not isinstance(value, str) else value)

    @staticmethod
    def read(path, entry):
        with open(os.path.join(path, entry)) as f:
            return f.read().strip()

    def write_config(self, **values):
        """Dump a YAML config pointing at this tree and return its path."""
        values.setdefault("hwmon", {"root": self.root})
        values.setdefault("lock_path", os.path.join(self.root, "daemon.lock"))
        values.setdefault("log_file", os.path.join(self.root, "daemon.log"))
        path = os.path.join(self.root, "config.yaml")
        with open(path, "w") as f:
            yaml.safe_dump(values, f)
        return path

    def cleanup(self):
        self._tmp.cleanup()


class FakeClock:
    """Monotonic clock advanced only by sleep()."""

    def __init__(self, start=0.0):
        self.t = start

    def now(self):
        return self.t

    def sleep(self, seconds):
        self.t += seconds
