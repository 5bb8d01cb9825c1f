from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

TCP = "TCP"
UDP = "UDP"
PROTOCOL_ORDER = {TCP: 0, UDP: 1}

LISTEN_STATES = ("LISTEN", "LISTENING")


@dataclass(frozen=True)
class SocketRecord:
    protocol: str
    local_ip: str
    local_port: int
    remote_ip: Optional[str] = None
    remote_port: Optional[int] = None
    state: Optional[str] = None
    pid: Optional[int] = None

    @property
    def is_listening(self):
        # UDP has no state; an unconnected UDP socket is the listener
        if self.protocol == UDP:
            return self.remote_ip is None
        return self.state in LISTEN_STATES


@dataclass(frozen=True)
class ProcessInfo:
    pid: int
    name: str
    memory_bytes: Optional[int] = None
    cpu_percent: Optional[float] = None
    start_time: Optional[float] = None
    ppid: Optional[int] = None
    exe: Optional[str] = None
    user: Optional[str] = None


@dataclass(frozen=True)
class PortMapping:
    host_port: Optional[int]
    container_port: int
    protocol: str = "tcp"


@dataclass(frozen=True)
class ContainerInfo:
    id: str
    name: str
    image: str
    status: str
    ports: Tuple[PortMapping, ...] = ()


class RiskLevel(Enum):
    LOW = "Low Risk"
    MEDIUM = "Medium Risk"
    HIGH = "High Risk"
    CRITICAL = "CRITICAL"

    @property
    def label(self):
        return self.value


@dataclass(frozen=True)
class ServiceClass:
    label: Optional[str] = None
    description: str = ""
    risk: Optional[RiskLevel] = None
    is_critical: bool = False


UNKNOWN_SERVICE = ServiceClass()


@dataclass(frozen=True)
class StableKey:
    protocol: str
    port: int
    pid: Optional[int] = None

    def matches(self, other):
        if self == other:
            return True
        # without a pid only protocol and port identify the row
        if self.pid is None or other.pid is None:
            return self.protocol == other.protocol and self.port == other.port
        return False


@dataclass(frozen=True)
class SnapshotEntry:
    socket: SocketRecord
    process: Optional[ProcessInfo] = None
    service: ServiceClass = UNKNOWN_SERVICE
    container: Optional[ContainerInfo] = None
    observed_at: float = 0.0
    critical_container: bool = False

    @property
    def port(self):
        return self.socket.local_port

    @property
    def protocol(self):
        return self.socket.protocol

    @property
    def pid(self):
        return self.socket.pid

    @property
    def process_name(self):
        return self.process.name if self.process else None

    @property
    def local_address(self):
        ip = self.socket.local_ip
        if ":" in ip:
            return f"[{ip}]:{self.port}"
        return f"{ip}:{self.port}"

    @property
    def remote_address(self):
        if self.socket.remote_ip is None:
            return None
        ip = self.socket.remote_ip
        if ":" in ip:
            return f"[{ip}]:{self.socket.remote_port}"
        return f"{ip}:{self.socket.remote_port}"

    @property
    def state(self):
        return self.socket.state

    @property
    def memory_mb(self):
        if self.process is None or self.process.memory_bytes is None:
            return None
        return round(self.process.memory_bytes / 1024 / 1024, 2)

    @property
    def cpu_percent(self):
        if self.process is None:
            return None
        return self.process.cpu_percent

    @property
    def uptime_secs(self):
        if self.process is None or self.process.start_time is None:
            return None
        return max(0, int(self.observed_at - self.process.start_time))

    @property
    def is_critical(self):
        return self.service.is_critical or self.critical_container

    @property
    def key(self):
        return StableKey(self.protocol, self.port, self.pid)


@dataclass(frozen=True)
class Snapshot:
    entries: Tuple[SnapshotEntry, ...] = ()
    captured_at: float = 0.0

    def __len__(self):
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def for_port(self, port):
        return [e for e in self.entries if e.port == port]


@dataclass(frozen=True)
class DiscoveryFilter:
    """Selection for one discovery pass.

    Setting only one of `tcp`/`udp` selects that protocol alone; setting
    neither selects both.
    """
    tcp: Optional[bool] = None
    udp: Optional[bool] = None
    port_range: Optional[Tuple[int, int]] = None
    include_established: bool = False

    @property
    def wants_tcp(self):
        return bool(self.tcp) or not self.udp

    @property
    def wants_udp(self):
        return bool(self.udp) or not self.tcp

    def accepts_port(self, port):
        if self.port_range is None:
            return True
        low, high = self.port_range
        return low <= port <= high

