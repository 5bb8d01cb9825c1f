import signal
import unittest
from unittest.mock import MagicMock, patch

import psutil

from portr.errors import NotFound, PermissionDenied, PlatformError, RuntimeUnavailable
from portr.models import StableKey, TCP
from portr.terminate import (
    Confirmation, KillTarget, check_confirmation, confirmation_for, execute, terminate_pid,
)


def target(port=3000, pid=30, name="node", critical=False, container=None, start=500.0):
    return KillTarget(
        key=StableKey(TCP, port, pid), port=port, protocol=TCP, pid=pid, process_name=name,
        start_time=start, container_name=container, container_image="postgres:16" if container else None,
        is_critical=critical,
    )


class TestConfirmationPolicy(unittest.TestCase):
    def test_plain_target(self):
        self.assertIs(confirmation_for(target()), Confirmation.SIMPLE)
        self.assertIs(confirmation_for(target(), confirm=False), Confirmation.NONE)

    def test_critical_and_container_need_literal(self):
        for t in (target(port=5432, critical=True), target(container="db")):
            self.assertIs(confirmation_for(t), Confirmation.LITERAL)
            self.assertIs(confirmation_for(t, confirm=False), Confirmation.LITERAL)

    def test_force_skips_everything(self):
        self.assertIs(confirmation_for(target(critical=True), force=True), Confirmation.NONE)

    def test_literal_answer(self):
        self.assertTrue(check_confirmation(Confirmation.LITERAL, "yes"))
        self.assertTrue(check_confirmation(Confirmation.LITERAL, " yes\n"))
        self.assertFalse(check_confirmation(Confirmation.LITERAL, "y"))
        self.assertFalse(check_confirmation(Confirmation.LITERAL, "YES"))
        self.assertFalse(check_confirmation(Confirmation.LITERAL, None))

    def test_simple_answer(self):
        self.assertTrue(check_confirmation(Confirmation.SIMPLE, "Y"))
        self.assertTrue(check_confirmation(Confirmation.SIMPLE, "yes"))
        self.assertFalse(check_confirmation(Confirmation.SIMPLE, ""))
        self.assertFalse(check_confirmation(Confirmation.SIMPLE, "n"))
        self.assertTrue(check_confirmation(Confirmation.NONE, ""))


class TestTerminatePid(unittest.TestCase):
    @patch("portr.terminate.psutil.Process")
    def test_recycled_pid_is_not_signalled(self, mock_process):
        proc = mock_process.return_value
        proc.create_time.return_value = 2000.0
        with self.assertRaises(NotFound):
            terminate_pid(30, expected_start=500.0)
        proc.terminate.assert_not_called()
        proc.kill.assert_not_called()

    @patch("portr.terminate.psutil.Process")
    def test_sigterm(self, mock_process):
        proc = mock_process.return_value
        proc.create_time.return_value = 500.2
        terminate_pid(30, expected_start=500.0)
        proc.terminate.assert_called_once()
        proc.wait.assert_called_once_with(timeout=2.0)

    @patch("portr.terminate.psutil.Process")
    def test_force_kills(self, mock_process):
        terminate_pid(30, force=True, wait=0)
        mock_process.return_value.kill.assert_called_once()
        mock_process.return_value.wait.assert_not_called()

    @patch("portr.terminate.psutil.Process")
    def test_other_signal(self, mock_process):
        terminate_pid(30, sig=signal.SIGINT, wait=0)
        mock_process.return_value.send_signal.assert_called_once_with(signal.SIGINT)

    @patch("portr.terminate.psutil.Process")
    def test_still_running_after_wait_is_fine(self, mock_process):
        mock_process.return_value.wait.side_effect = psutil.TimeoutExpired(2.0)
        terminate_pid(30)

    @patch("portr.terminate.psutil.Process", side_effect=psutil.NoSuchProcess(30))
    def test_gone(self, mock_process):
        with self.assertRaises(NotFound):
            terminate_pid(30)

    @patch("portr.terminate.psutil.Process")
    def test_access_denied(self, mock_process):
        mock_process.return_value.terminate.side_effect = psutil.AccessDenied(30)
        with self.assertRaises(PermissionDenied):
            terminate_pid(30)

    @patch("portr.terminate.psutil.Process")
    def test_platform_error(self, mock_process):
        mock_process.return_value.terminate.side_effect = OSError("weird")
        with self.assertRaises(PlatformError):
            terminate_pid(30)


class TestExecute(unittest.TestCase):
    def test_process_success(self):
        terminator = MagicMock()
        result = execute(target(), process_terminator=terminator)
        terminator.assert_called_once_with(30, signal.SIGTERM, False, 500.0)
        self.assertTrue(result.ok)
        self.assertEqual(result.message, "Terminated node (pid 30) on port 3000")

    def test_force_message(self):
        result = execute(target(), signal.SIGKILL, force=True, process_terminator=MagicMock())
        self.assertTrue(result.message.startswith("Killed"))

    def test_failure_is_returned(self):
        terminator = MagicMock(side_effect=PermissionDenied("not allowed to signal process 30"))
        result = execute(target(), process_terminator=terminator)
        self.assertFalse(result.ok)
        self.assertIsInstance(result.error, PermissionDenied)
        self.assertIn("sudo", result.message)

    def test_unknown_owner(self):
        result = execute(target(pid=None), process_terminator=MagicMock())
        self.assertFalse(result.ok)
        self.assertIsInstance(result.error, PermissionDenied)

    def test_container_is_stopped_not_signalled(self):
        runtime = MagicMock()
        terminator = MagicMock()
        result = execute(target(port=5432, pid=70, name="docker-proxy", container="db"),
                         process_terminator=terminator, container_runtime=runtime)
        runtime.stop_container.assert_called_once_with("db")
        terminator.assert_not_called()
        self.assertEqual(result.message, "Stopped container db on port 5432")

    def test_container_without_runtime(self):
        terminator = MagicMock()
        result = execute(target(container="db"), process_terminator=terminator)
        self.assertFalse(result.ok)
        self.assertIsInstance(result.error, RuntimeUnavailable)
        terminator.assert_not_called()

    def test_container_stop_failure(self):
        runtime = MagicMock()
        runtime.stop_container.side_effect = NotFound("container 'db' not found")
        result = execute(target(container="db"), container_runtime=runtime)
        self.assertFalse(result.ok)
        self.assertIn("not found", result.message)


class TestKillTarget(unittest.TestCase):
    def test_describe(self):
        self.assertEqual(target().describe(), "node (pid 30) on TCP 3000")
        self.assertEqual(target(container="db").describe(), "container 'db' on port 3000")


if __name__ == '__main__':
    unittest.main()
