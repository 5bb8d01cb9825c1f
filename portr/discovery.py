"""
Discovery engine.

Joins the socket table with process metadata, service classification and
(optionally) container ownership into one immutable Snapshot.
"""
import time

from .containers import is_critical_container
from .errors import PortrError, ReadFailed
from .models import DiscoveryFilter, PROTOCOL_ORDER, Snapshot, SnapshotEntry, TCP, UDP
from .services import classify
from .utils import debug_log


def _rank(record, process):
    return (record.is_listening, process is not None, record.pid is not None)


class DiscoveryEngine:
    """
    Builds Snapshots from a socket reader and a process reader.

    sample_interval > 0 primes the CPU counters and waits that long before the
    real read, so a one-shot report shows CPU usage instead of "-".
    """

    def __init__(self, socket_reader, process_reader, container_resolver=None,
                 classifier=classify, clock=time.time, sample_interval=0.0, sleep=time.sleep):
        self.socket_reader = socket_reader
        self.process_reader = process_reader
        self.container_resolver = container_resolver
        self.classifier = classifier
        self.clock = clock
        self.sample_interval = sample_interval
        self._sleep = sleep

    def discover(self, filt=None):
        filt = filt or DiscoveryFilter()
        listening_only = not filt.include_established
        try:
            records = self.socket_reader.read(tcp=filt.wants_tcp, udp=filt.wants_udp,
                                              listening_only=listening_only)
        except PortrError as e:
            debug_log(f"DISCOVERY: socket table read failed ({e.kind}): {e}")
            raise

        wanted = set()
        if filt.wants_tcp:
            wanted.add(TCP)
        if filt.wants_udp:
            wanted.add(UDP)
        records = [
            r for r in records
            if r.protocol in wanted
            and filt.accepts_port(r.local_port)
            and (r.is_listening or not listening_only)
        ]

        pids = sorted({r.pid for r in records if r.pid is not None})
        if self.sample_interval > 0 and pids:
            self.process_reader.prime(pids)
            self._sleep(self.sample_interval)
        processes = self._read_processes(pids)
        captured_at = self.clock()

        # one row per (protocol, port)
        chosen = {}
        for record in records:
            process = processes.get(record.pid) if record.pid is not None else None
            key = (record.protocol, record.local_port)
            current = chosen.get(key)
            if current is None or _rank(record, process) > _rank(*current):
                chosen[key] = (record, process)

        containers = {}
        if self.container_resolver is not None and chosen:
            ports = sorted({port for _, port in chosen})
            try:
                containers = self.container_resolver.resolve_many(ports)
            except PortrError as e:
                debug_log(f"DISCOVERY: container lookup failed: {e}")
                containers = {}

        entries = []
        for (proto, port), (record, process) in chosen.items():
            container = containers.get(port)
            entries.append(SnapshotEntry(
                socket=record,
                process=process,
                service=self.classifier(port, process.name if process else None),
                container=container,
                observed_at=captured_at,
                critical_container=is_critical_container(container),
            ))
        entries.sort(key=lambda e: (e.port, PROTOCOL_ORDER.get(e.protocol, 9)))
        return Snapshot(entries=tuple(entries), captured_at=captured_at)

    def _read_processes(self, pids):
        if not pids:
            return {}
        processes = self.process_reader.read(pids)
        failures = dict(self.process_reader.failures)
        retry = [pid for pid, err in failures.items() if isinstance(err, ReadFailed)]
        if retry:
            debug_log(f"DISCOVERY: retrying process read for {retry}")
            processes.update(self.process_reader.read(retry, partial=True))
            for pid in retry:
                failures.pop(pid, None)
            failures.update(self.process_reader.failures)
        for pid, err in failures.items():
            debug_log(f"DISCOVERY: pid {pid} unavailable ({err.kind}): {err}")
        return processes

    def find_port(self, port, filt=None):
        """Entries for a single port (TCP and/or UDP)."""
        filt = filt or DiscoveryFilter()
        filt = DiscoveryFilter(tcp=filt.tcp, udp=filt.udp, port_range=(port, port),
                               include_established=filt.include_established)
        return self.discover(filt).for_port(port)
