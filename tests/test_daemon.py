"""Tests for the daemon entry point."""

import io
import logging
import unittest
from contextlib import redirect_stdout
from unittest.mock import patch

from qnapfan import daemon
from qnapfan.config import ConfigManager
from qnapfan.errors import SensorMissingError
from qnapfan.lock import InstanceLock
from tests.fakes import FakeHwmon


class DaemonTestCase(unittest.TestCase):

    def setUp(self):
        self.hwmon = FakeHwmon()

    def tearDown(self):
        root = logging.getLogger()
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        self.hwmon.cleanup()


class TestRunDaemon(DaemonTestCase):

    def test_second_instance_exits_cleanly(self):
        """With the lock taken elsewhere the daemon exits 0 and leaves the fan alone."""
        path = self.hwmon.add_group("qnap8528", pwm1=90)
        config = ConfigManager(self.hwmon.write_config(), environ={})
        holder = InstanceLock(config.lock_path)
        self.assertTrue(holder.acquire())
        try:
            with patch("qnapfan.daemon.ControlLoop") as mock_loop:
                self.assertEqual(daemon.run_daemon(config), 0)
                mock_loop.assert_not_called()
        finally:
            holder.release()
        self.assertEqual(self.hwmon.read(path, "pwm1"), "90")

    def test_missing_fan_group_is_fatal(self):
        config = ConfigManager(self.hwmon.write_config(), environ={})
        with self.assertRaises(SensorMissingError):
            daemon.run_daemon(config)

    def test_single_cycle_without_sensors_failsafes(self):
        path = self.hwmon.add_group("qnap8528", pwm1=90)
        config = ConfigManager(self.hwmon.write_config(), environ={})
        self.assertEqual(daemon.run_daemon(config, max_cycles=1), 0)
        self.assertEqual(self.hwmon.read(path, "pwm1"), "255")
        # lock released on exit
        other = InstanceLock(config.lock_path)
        self.assertTrue(other.acquire())
        other.release()


class TestMain(DaemonTestCase):

    def test_missing_fan_group_exit_code(self):
        path = self.hwmon.write_config()
        self.assertEqual(daemon.main(["--config", path]), 1)

    def test_bad_config_exit_code(self):
        path = self.hwmon.write_config(min_duty=300)
        self.assertEqual(daemon.main(["--config", path]), 1)

    def test_safe_duty(self):
        fan = self.hwmon.add_group("qnap8528", pwm1=90)
        path = self.hwmon.write_config()
        self.assertEqual(daemon.main(["--config", path, "--safe-duty", "180"]), 0)
        self.assertEqual(self.hwmon.read(fan, "pwm1"), "180")

    def test_safe_duty_without_value_uses_config(self):
        fan = self.hwmon.add_group("qnap8528", pwm1=90)
        path = self.hwmon.write_config(safe_uninstall_duty=150)
        self.assertEqual(daemon.main(["--config", path, "--safe-duty"]), 0)
        self.assertEqual(self.hwmon.read(fan, "pwm1"), "150")

    @patch("qnapfan.commands.subprocess.run")
    def test_safe_max_missing_group(self, mock_run):
        path = self.hwmon.write_config()
        self.assertEqual(daemon.main(["--config", path, "--safe-max"]), 1)

    @patch("qnapfan.commands.time.sleep")
    @patch("qnapfan.commands.subprocess.run")
    def test_safe_max_refused_while_loop_runs(self, mock_run, mock_sleep):
        fan = self.hwmon.add_group("qnap8528", pwm1=90)
        path = self.hwmon.write_config()
        holder = InstanceLock(ConfigManager(path, environ={}).lock_path)
        self.assertTrue(holder.acquire())
        try:
            self.assertEqual(daemon.main(["--config", path, "--safe-max"]), 1)
        finally:
            holder.release()
        self.assertEqual(self.hwmon.read(fan, "pwm1"), "90")

    @patch("qnapfan.daemon.setup_logging")
    def test_unexpected_error_logged_and_exit_code(self, mock_logging):
        """An OSError from the lock file is logged as critical, not a bare traceback."""
        self.hwmon.add_group("qnap8528", pwm1=90)
        path = self.hwmon.write_config()
        with patch("qnapfan.daemon.InstanceLock.acquire",
                   side_effect=PermissionError("/run/qnap-fan-daemon.lock")):
            with self.assertLogs(level="CRITICAL") as logs:
                self.assertEqual(daemon.main(["--config", path]), 1)
        self.assertIn("Unhandled error", logs.output[0])

    @patch("qnapfan.status.systemctl_state", return_value="active")
    def test_status_report(self, mock_state):
        self.hwmon.add_group("qnap8528", pwm1=110, fan1_input=1500, temp1_input=41000)
        self.hwmon.add_group("nvme", temp1_input=39000)
        path = self.hwmon.write_config()
        out = io.StringIO()
        with redirect_stdout(out):
            self.assertEqual(daemon.main(["--config", path, "--status"]), 0)
        report = out.getvalue()
        self.assertIn("pwm1       : 110", report)
        self.assertIn("1500 RPM", report)
        self.assertIn("temp6_input: N/A", report)
        self.assertIn("coretemp hwmon: NOT FOUND", report)
        self.assertIn("39000 mC", report)
        self.assertIn("hwmon interface: PRESENT", report)

    def test_modes_are_exclusive(self):
        with self.assertRaises(SystemExit):
            with redirect_stdout(io.StringIO()), patch("sys.stderr", io.StringIO()):
                daemon.parse_args(["--status", "--safe-max"])


class TestFindConfigFile(unittest.TestCase):

    def test_explicit_path_returned(self):
        self.assertEqual(daemon.find_config_file("/tmp/x.yaml"), "/tmp/x.yaml")

    @patch("qnapfan.daemon.Path.exists", return_value=False)
    def test_nothing_found(self, mock_exists):
        self.assertIsNone(daemon.find_config_file())


if __name__ == "__main__":
    unittest.main()
