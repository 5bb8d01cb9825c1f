"""
View state for the dashboard: filters, sort order and the selected row.

The visible rows are always derived from (Snapshot, ViewState) by
visible_entries(); nothing here caches rows. The selection is a StableKey,
never a row index.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..models import PROTOCOL_ORDER, StableKey, TCP, UDP

DOCKER_PROCESS_HINTS = ("docker", "containerd", "com.docker", "vpnkit")


class ProtocolFilter(Enum):
    ALL = "ALL"
    TCP = "TCP"
    UDP = "UDP"

    def next(self):
        order = list(ProtocolFilter)
        return order[(order.index(self) + 1) % len(order)]


class SortKey(Enum):
    PORT = "PORT"
    PROCESS = "PROC"
    MEMORY = "MEM"
    CPU = "CPU"
    PID = "PID"

    def next(self):
        order = list(SortKey)
        return order[(order.index(self) + 1) % len(order)]


@dataclass
class ViewState:
    protocol: ProtocolFilter = ProtocolFilter.ALL
    sort: SortKey = SortKey.PORT
    query: str = ""
    critical_only: bool = False
    docker_only: bool = False
    selection: Optional[StableKey] = None
    show_details: bool = True
    show_help: bool = False

    def filters_active(self):
        return (self.protocol is not ProtocolFilter.ALL or bool(self.query)
                or self.critical_only or self.docker_only)

    def clear_filters(self):
        self.protocol = ProtocolFilter.ALL
        self.query = ""
        self.critical_only = False
        self.docker_only = False


def _is_docker(entry):
    if entry.container is not None:
        return True
    name = (entry.process_name or "").lower()
    return any(h in name for h in DOCKER_PROCESS_HINTS)


def _matches_query(entry, query):
    q = query.lower()
    fields = [
        str(entry.port),
        entry.process_name or "",
        str(entry.pid) if entry.pid is not None else "",
        entry.local_address,
        entry.protocol,
        entry.service.label or "",
        entry.container.name if entry.container else "",
    ]
    return any(q in f.lower() for f in fields)


def matches(entry, view):
    if view.protocol is ProtocolFilter.TCP and entry.protocol != TCP:
        return False
    if view.protocol is ProtocolFilter.UDP and entry.protocol != UDP:
        return False
    if view.critical_only and not entry.is_critical:
        return False
    if view.docker_only and not _is_docker(entry):
        return False
    if view.query and not _matches_query(entry, view.query):
        return False
    return True


def _port_key(e):
    return (e.port, PROTOCOL_ORDER.get(e.protocol, 9))


def _sort_key(sort):
    if sort is SortKey.PROCESS:
        return lambda e: (e.process_name is None, (e.process_name or "").lower(), _port_key(e))
    if sort is SortKey.MEMORY:
        return lambda e: (e.memory_mb is None, -(e.memory_mb or 0), _port_key(e))
    if sort is SortKey.CPU:
        return lambda e: (e.cpu_percent is None, -(e.cpu_percent or 0), _port_key(e))
    if sort is SortKey.PID:
        return lambda e: (e.pid is None, e.pid or 0, _port_key(e))
    return _port_key


def visible_entries(snapshot, view):
    """Filter then sort; a pure function of its arguments."""
    rows = [e for e in snapshot.entries if matches(e, view)]
    rows.sort(key=_sort_key(view.sort))
    return rows


def index_of(rows, key):
    if key is None:
        return None
    for i, e in enumerate(rows):
        if e.key == key:
            return i
    for i, e in enumerate(rows):
        if e.key.matches(key):
            return i
    return None


def resolve_selection(rows, key):
    """Keep `key` if it is still visible, else fall back to the first row (or None)."""
    idx = index_of(rows, key)
    if idx is not None:
        return rows[idx].key
    if rows:
        return rows[0].key
    return None
