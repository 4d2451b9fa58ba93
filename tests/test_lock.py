"""Tests for the single-instance lock."""

import os
import tempfile
import unittest

from qnapfan.lock import InstanceLock


class TestInstanceLock(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = os.path.join(self._tmp.name, "daemon.lock")

    def tearDown(self):
        self._tmp.cleanup()

    def test_second_holder_refused(self):
        """While one lock is held, another acquire fails without raising."""
        first = InstanceLock(self.path)
        second = InstanceLock(self.path)
        self.assertTrue(first.acquire())
        self.assertFalse(second.acquire())
        self.assertFalse(second.held)
        first.release()
        self.assertTrue(second.acquire())
        second.release()

    def test_context_manager_releases(self):
        with InstanceLock(self.path) as lock:
            self.assertTrue(lock.acquire())
            self.assertTrue(lock.held)
        self.assertFalse(lock.held)
        other = InstanceLock(self.path)
        self.assertTrue(other.acquire())
        other.release()

    def test_release_without_acquire(self):
        InstanceLock(self.path).release()

    def test_unwritable_location_raises(self):
        with self.assertRaises(OSError):
            InstanceLock(os.path.join(self.path, "missing-dir", "x.lock")).acquire()


if __name__ == "__main__":
    unittest.main()
