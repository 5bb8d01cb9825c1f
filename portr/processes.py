"""
Process metadata reader.

Reads name, memory, start time and CPU usage for a set of pids through psutil.
Failures are per pid: a pid that could not be read is simply missing from the
result and `failures` records why.
"""
import time

import psutil

from .errors import NotFound, PermissionDenied, ReadFailed
from .models import ProcessInfo
from .utils import debug_log


def _optional(getter):
    try:
        return getter()
    except (psutil.AccessDenied, psutil.ZombieProcess, OSError):
        return None


class ProcessReader:
    """
    psutil backed process reader.

    CPU usage needs two samples. The previous cpu_times() total of every
    process is remembered under (pid, create_time), so the first read of a
    process reports cpu_percent=None and a recycled pid starts over.
    """

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._samples = {}
        self.failures = {}

    def read(self, pids, partial=False):
        """
        Read `pids`. A full read drops the CPU samples of every process not in
        this read; `partial=True` only refreshes the pids given.
        """
        result = {}
        self.failures = {}
        now = self._clock()
        seen = set()
        for pid in pids:
            try:
                info, key = self._read_one(pid, now)
            except psutil.NoSuchProcess as e:
                self.failures[pid] = NotFound(f"process {pid} has exited", str(e))
                continue
            except psutil.AccessDenied as e:
                self.failures[pid] = PermissionDenied(f"cannot read process {pid}", str(e))
                continue
            except (psutil.Error, OSError) as e:
                self.failures[pid] = ReadFailed(f"cannot read process {pid}", str(e))
                continue
            result[pid] = info
            seen.add(key)
        self._forget(pids if partial else None, seen)
        return result

    def _read_one(self, pid, now):
        proc = psutil.Process(pid)
        with proc.oneshot():
            name = proc.name()
            create_time = proc.create_time()
            ppid = _optional(proc.ppid)
            mem = _optional(proc.memory_info)
            times = _optional(proc.cpu_times)
            exe = _optional(proc.exe) or None
            user = _optional(proc.username)

        key = (pid, create_time)
        cpu = None
        if times is not None:
            total = times.user + times.system
            prev = self._samples.get(key)
            if prev is not None:
                prev_total, prev_ts = prev
                elapsed = now - prev_ts
                if elapsed > 0:
                    cpu = round(max(0.0, (total - prev_total) / elapsed * 100), 1)
            self._samples[key] = (total, now)

        info = ProcessInfo(
            pid=pid,
            name=name,
            memory_bytes=mem.rss if mem is not None else None,
            cpu_percent=cpu,
            start_time=create_time,
            ppid=ppid,
            exe=exe,
            user=user,
        )
        return info, key

    def _forget(self, pids, seen):
        asked = set(pids) if pids is not None else None
        for key in list(self._samples):
            if key not in seen and (asked is None or key[0] in asked):
                del self._samples[key]

    def prime(self, pids):
        """Record a first CPU sample so the next read reports a real value."""
        self.read(pids)

    def parent_chain(self, pid, max_depth=16):
        """
        Return [(pid, name), ...] from the topmost ancestor down to `pid`.
        """
        chain = []
        seen = set()
        current = pid
        while current and current not in seen and len(chain) < max_depth:
            seen.add(current)
            try:
                proc = psutil.Process(current)
                name = proc.name()
                ppid = proc.ppid()
            except (psutil.Error, OSError) as e:
                debug_log(f"PROCESS: parent chain stopped at {current}: {e}")
                break
            chain.append((current, name))
            if ppid == current:
                break
            current = ppid
        return list(reversed(chain))

    def children(self, pid):
        try:
            kids = psutil.Process(pid).children()
        except (psutil.Error, OSError) as e:
            debug_log(f"PROCESS: cannot list children of {pid}: {e}")
            return []
        out = []
        for child in kids:
            try:
                out.append((child.pid, child.name()))
            except (psutil.Error, OSError):
                continue
        return out
