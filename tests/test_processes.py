import unittest
from unittest.mock import MagicMock, patch

import psutil

from portr.errors import NotFound, PermissionDenied, ReadFailed
from portr.processes import ProcessReader

MB = 1024 * 1024


def fake_process(pid, name="nginx", create_time=1000.0, user_time=1.0, system_time=0.5, rss=10 * MB):
    proc = MagicMock()
    proc.pid = pid
    proc.name.return_value = name
    proc.create_time.return_value = create_time
    proc.ppid.return_value = 1
    proc.memory_info.return_value = MagicMock(rss=rss)
    proc.cpu_times.return_value = MagicMock(user=user_time, system=system_time)
    proc.exe.return_value = "/usr/sbin/" + name
    proc.username.return_value = "root"
    return proc


class TestProcessReader(unittest.TestCase):
    @patch("portr.processes.psutil.Process")
    def test_first_read_has_no_cpu(self, mock_process):
        mock_process.return_value = fake_process(10)
        reader = ProcessReader(clock=MagicMock(return_value=100.0))
        info = reader.read([10])[10]
        self.assertEqual(info.name, "nginx")
        self.assertEqual(info.memory_bytes, 10 * MB)
        self.assertEqual(info.start_time, 1000.0)
        self.assertEqual(info.ppid, 1)
        self.assertEqual(info.exe, "/usr/sbin/nginx")
        self.assertEqual(info.user, "root")
        self.assertIsNone(info.cpu_percent)
        self.assertEqual(reader.failures, {})

    @patch("portr.processes.psutil.Process")
    def test_second_read_computes_cpu(self, mock_process):
        mock_process.side_effect = [
            fake_process(10, user_time=1.0, system_time=0.5),
            fake_process(10, user_time=2.0, system_time=0.5),
        ]
        reader = ProcessReader(clock=MagicMock(side_effect=[100.0, 102.0]))
        reader.read([10])
        info = reader.read([10])[10]
        # one cpu second over two wall seconds
        self.assertEqual(info.cpu_percent, 50.0)

    @patch("portr.processes.psutil.Process")
    def test_recycled_pid_starts_over(self, mock_process):
        mock_process.side_effect = [
            fake_process(10, create_time=1000.0),
            fake_process(10, create_time=2000.0, user_time=9.0),
        ]
        reader = ProcessReader(clock=MagicMock(side_effect=[100.0, 102.0]))
        reader.read([10])
        self.assertIsNone(reader.read([10])[10].cpu_percent)

    @patch("portr.processes.psutil.Process")
    def test_failures_are_per_pid(self, mock_process):
        def lookup(pid):
            if pid == 10:
                raise psutil.NoSuchProcess(pid)
            if pid == 20:
                raise psutil.AccessDenied(pid)
            if pid == 30:
                raise OSError("io")
            return fake_process(pid, name="sshd")

        mock_process.side_effect = lookup
        reader = ProcessReader(clock=MagicMock(return_value=1.0))
        result = reader.read([10, 20, 30, 40])
        self.assertEqual(list(result), [40])
        self.assertIsInstance(reader.failures[10], NotFound)
        self.assertIsInstance(reader.failures[20], PermissionDenied)
        self.assertIsInstance(reader.failures[30], ReadFailed)

    @patch("portr.processes.psutil.Process")
    def test_optional_fields_degrade(self, mock_process):
        proc = fake_process(10)
        proc.memory_info.side_effect = psutil.AccessDenied(10)
        proc.exe.side_effect = psutil.AccessDenied(10)
        proc.cpu_times.side_effect = psutil.AccessDenied(10)
        mock_process.return_value = proc
        info = ProcessReader(clock=MagicMock(return_value=1.0)).read([10])[10]
        self.assertIsNone(info.memory_bytes)
        self.assertIsNone(info.exe)
        self.assertIsNone(info.cpu_percent)
        self.assertEqual(info.name, "nginx")

    @patch("portr.processes.psutil.Process")
    def test_samples_of_unread_processes_are_dropped(self, mock_process):
        mock_process.side_effect = lambda pid: fake_process(pid)
        reader = ProcessReader(clock=MagicMock(return_value=1.0))
        for pid in range(100, 200):
            reader.read([pid])
        self.assertEqual(list(reader._samples), [(199, 1000.0)])

    @patch("portr.processes.psutil.Process")
    def test_partial_read_keeps_other_samples(self, mock_process):
        mock_process.side_effect = lambda pid: fake_process(pid)
        reader = ProcessReader(clock=MagicMock(return_value=1.0))
        reader.read([10, 11])
        reader.read([11], partial=True)
        self.assertEqual(sorted(reader._samples), [(10, 1000.0), (11, 1000.0)])

    @patch("portr.processes.psutil.Process")
    def test_exited_process_sample_is_dropped(self, mock_process):
        def lookup(pid):
            if pid == 10 and mock_process.call_count > 2:
                raise psutil.NoSuchProcess(pid)
            return fake_process(pid)

        mock_process.side_effect = lookup
        reader = ProcessReader(clock=MagicMock(return_value=1.0))
        reader.read([10, 11])
        reader.read([10, 11], partial=True)
        self.assertEqual(list(reader._samples), [(11, 1000.0)])


class TestProcessTree(unittest.TestCase):
    @patch("portr.processes.psutil.Process")
    def test_parent_chain(self, mock_process):
        table = {1: ("systemd", 0), 500: ("bash", 1), 900: ("node", 500)}

        def lookup(pid):
            name, ppid = table[pid]
            proc = MagicMock()
            proc.name.return_value = name
            proc.ppid.return_value = ppid
            return proc

        mock_process.side_effect = lookup
        chain = ProcessReader().parent_chain(900)
        self.assertEqual(chain, [(1, "systemd"), (500, "bash"), (900, "node")])

    @patch("portr.processes.psutil.Process")
    def test_parent_chain_stops_on_error(self, mock_process):
        mock_process.side_effect = psutil.NoSuchProcess(900)
        self.assertEqual(ProcessReader().parent_chain(900), [])

    @patch("portr.processes.psutil.Process")
    def test_children(self, mock_process):
        kid = MagicMock()
        kid.pid = 901
        kid.name.return_value = "worker"
        gone = MagicMock()
        gone.pid = 902
        gone.name.side_effect = psutil.NoSuchProcess(902)
        mock_process.return_value.children.return_value = [kid, gone]
        self.assertEqual(ProcessReader().children(900), [(901, "worker")])


if __name__ == '__main__':
    unittest.main()
