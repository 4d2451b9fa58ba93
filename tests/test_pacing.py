"""Tests for DwellGuard and RateLimiter."""

import unittest

from qnapfan.pacing import DwellGuard, RateLimiter


class TestDwellGuard(unittest.TestCase):

    def test_window(self):
        guard = DwellGuard(10)
        self.assertFalse(guard.permits(109.9, 100))
        self.assertTrue(guard.permits(110, 100))
        self.assertTrue(guard.permits(200, 100))

    def test_zero_dwell(self):
        self.assertTrue(DwellGuard(0).permits(5, 5))


class TestRateLimiter(unittest.TestCase):

    def setUp(self):
        self.limiter = RateLimiter(max_step=12, min_duty=76, max_duty=255)

    def test_step_up_and_down(self):
        self.assertEqual(self.limiter.step(76, 110), 88)
        self.assertEqual(self.limiter.step(200, 150), 188)

    def test_small_delta_reaches_target(self):
        self.assertEqual(self.limiter.step(100, 110), 110)

    def test_clamped_to_bounds(self):
        """Starting outside the range snaps back into it."""
        self.assertEqual(self.limiter.step(0, 0), 76)
        self.assertEqual(self.limiter.step(250, 300), 255)
        self.assertEqual(self.limiter.step(80, 0), 76)

    def test_no_change(self):
        self.assertEqual(self.limiter.step(150, 150), 150)


if __name__ == "__main__":
    unittest.main()
