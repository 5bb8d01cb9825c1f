"""
Socket table readers.

Each platform exposes the kernel socket table differently; every reader here
normalizes it into SocketRecord values. default_socket_reader() picks one at
startup so nothing downstream branches on the platform.
"""
import re
import socket
import subprocess
import sys
from shutil import which

import psutil

from .errors import PermissionDenied, ReadFailed
from .models import SocketRecord, TCP, UDP
from .utils import debug_log

SS_STATES = {
    "LISTEN": "LISTEN",
    "ESTAB": "ESTABLISHED",
    "SYN-SENT": "SYN_SENT",
    "SYN-RECV": "SYN_RECV",
    "FIN-WAIT-1": "FIN_WAIT1",
    "FIN-WAIT-2": "FIN_WAIT2",
    "TIME-WAIT": "TIME_WAIT",
    "CLOSE-WAIT": "CLOSE_WAIT",
    "LAST-ACK": "LAST_ACK",
    "CLOSING": "CLOSING",
}

DENIED_MARKERS = ("permission denied", "operation not permitted", "access is denied")

_PID_RE = re.compile(r"pid=(\d+)")


def parse_address(addr):
    """
    Split an endpoint into (ip, port).

    Handles 0.0.0.0:80, [::]:80, :::22, *:53 and 127.0.0.53%lo:53. A wildcard
    or unparsable port yields None for the port.
    """
    if not addr or ":" not in addr:
        return None, None
    ip, _, port_str = addr.rpartition(":")
    ip = ip.strip("[]")
    if "%" in ip:
        ip = ip.split("%", 1)[0]
    if ip == "":
        ip = "::"
    try:
        port = int(port_str)
    except ValueError:
        return ip, None
    return ip, port


def _is_wildcard_peer(ip, port):
    return port is None or (ip in ("*", "0.0.0.0", "::") and port == 0)


def _run(cmd):
    try:
        result = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            timeout=10
        )
    except FileNotFoundError as e:
        raise ReadFailed(f"'{cmd[0]}' is not available", str(e))
    except PermissionError as e:
        raise PermissionDenied("cannot read the socket table", str(e))
    except (OSError, subprocess.SubprocessError) as e:
        raise ReadFailed(f"'{cmd[0]}' failed", str(e))
    return result


def _check_denied(stderr):
    low = (stderr or "").lower()
    return any(m in low for m in DENIED_MARKERS)


class SocketReader:
    """Reads the current TCP/UDP socket table."""
    name = "base"

    def read(self, tcp=True, udp=True, listening_only=True):
        raise NotImplementedError


class SsSocketReader(SocketReader):
    """Linux reader built on iproute2 `ss`."""
    name = "ss"

    def __init__(self, binary="ss"):
        self.binary = binary

    def command(self, listening_only):
        # always ask for both families: ss drops the Netid column otherwise
        return [self.binary, "-Htu" + ("l" if listening_only else "a") + "np"]

    def read(self, tcp=True, udp=True, listening_only=True):
        if not tcp and not udp:
            return []
        result = _run(self.command(listening_only))
        if result.returncode != 0:
            if _check_denied(result.stderr):
                raise PermissionDenied("cannot read the socket table", result.stderr.strip())
            raise ReadFailed("ss exited with status %d" % result.returncode, result.stderr.strip())
        wanted = set()
        if tcp:
            wanted.add(TCP)
        if udp:
            wanted.add(UDP)
        return [r for r in self.parse(result.stdout) if r.protocol in wanted]

    def parse(self, output):
        records = []
        for line in output.splitlines():
            parts = line.split()
            if len(parts) < 6:
                continue
            netid = parts[0].lower()
            if netid.startswith("tcp"):
                proto = TCP
            elif netid.startswith("udp"):
                proto = UDP
            else:
                continue
            local_ip, local_port = parse_address(parts[4])
            if local_port is None:
                continue
            peer_ip, peer_port = parse_address(parts[5])
            if _is_wildcard_peer(peer_ip, peer_port):
                peer_ip, peer_port = None, None
            raw_state = parts[1].upper()
            if proto == UDP:
                state = None
            else:
                state = SS_STATES.get(raw_state, raw_state)
            pid = None
            m = _PID_RE.search(line)
            if m:
                pid = int(m.group(1))
            records.append(SocketRecord(
                protocol=proto,
                local_ip=local_ip,
                local_port=local_port,
                remote_ip=peer_ip,
                remote_port=peer_port,
                state=state,
                pid=pid,
            ))
        return records


class PsutilSocketReader(SocketReader):
    """Portable reader over psutil.net_connections (Windows, Linux without ss)."""
    name = "psutil"

    def read(self, tcp=True, udp=True, listening_only=True):
        if not tcp and not udp:
            return []
        kind = "inet" if tcp and udp else ("tcp" if tcp else "udp")
        try:
            conns = psutil.net_connections(kind=kind)
        except psutil.AccessDenied as e:
            raise PermissionDenied("cannot read the socket table", str(e))
        except (psutil.Error, OSError) as e:
            raise ReadFailed("psutil.net_connections failed", str(e))
        records = []
        for c in conns:
            record = self.normalize(c)
            if record is None:
                continue
            if listening_only and not record.is_listening:
                continue
            records.append(record)
        return records

    @staticmethod
    def normalize(conn):
        if not conn.laddr:
            return None
        if conn.type == socket.SOCK_STREAM:
            proto = TCP
        elif conn.type == socket.SOCK_DGRAM:
            proto = UDP
        else:
            return None
        remote_ip = remote_port = None
        if conn.raddr:
            remote_ip, remote_port = conn.raddr[0], conn.raddr[1]
        state = conn.status if proto == TCP else None
        if state == psutil.CONN_NONE:
            state = None
        return SocketRecord(
            protocol=proto,
            local_ip=conn.laddr[0],
            local_port=conn.laddr[1],
            remote_ip=remote_ip,
            remote_port=remote_port,
            state=state,
            pid=conn.pid or None,
        )


class LsofSocketReader(SocketReader):
    """macOS reader built on `lsof`."""
    name = "lsof"

    def __init__(self, binary="lsof"):
        self.binary = binary

    def command(self, tcp, udp, listening_only):
        cmd = [self.binary, "-nP"]
        if tcp:
            cmd.append("-iTCP")
            if listening_only:
                cmd.append("-sTCP:LISTEN")
        if udp:
            cmd.append("-iUDP")
        return cmd

    def read(self, tcp=True, udp=True, listening_only=True):
        if not tcp and not udp:
            return []
        result = _run(self.command(tcp, udp, listening_only))
        # lsof exits 1 when nothing matched
        if result.returncode not in (0, 1):
            if _check_denied(result.stderr):
                raise PermissionDenied("cannot read the socket table", result.stderr.strip())
            raise ReadFailed("lsof exited with status %d" % result.returncode, result.stderr.strip())
        if result.returncode == 1 and _check_denied(result.stderr):
            raise PermissionDenied("cannot read the socket table", result.stderr.strip())
        records = self.parse(result.stdout)
        if listening_only:
            records = [r for r in records if r.is_listening]
        return records

    def parse(self, output):
        records = []
        seen = set()
        for line in output.splitlines()[1:]:
            parts = line.split(None, 8)
            if len(parts) < 9:
                continue
            try:
                pid = int(parts[1])
            except ValueError:
                continue
            node = parts[7].upper()
            if node not in (TCP, UDP):
                continue
            name = parts[8]
            state = None
            m = re.search(r"\(([A-Z_]+)\)\s*$", name)
            if m:
                state = m.group(1)
                name = name[:m.start()].strip()
            local, _, remote = name.partition("->")
            local_ip, local_port = parse_address(local)
            if local_port is None:
                continue
            remote_ip = remote_port = None
            if remote:
                remote_ip, remote_port = parse_address(remote)
            if local_ip == "*":
                local_ip = "0.0.0.0"
            record = SocketRecord(
                protocol=node,
                local_ip=local_ip,
                local_port=local_port,
                remote_ip=remote_ip,
                remote_port=remote_port,
                state=state if node == TCP else None,
                pid=pid,
            )
            # lsof prints one line per file descriptor
            if record in seen:
                continue
            seen.add(record)
            records.append(record)
        return records


def default_socket_reader(platform=None):
    """Pick the reader for this platform once, at startup."""
    platform = platform or sys.platform
    if platform.startswith("linux"):
        if which("ss"):
            reader = SsSocketReader()
        else:
            reader = PsutilSocketReader()
    elif platform == "darwin":
        reader = LsofSocketReader() if which("lsof") else PsutilSocketReader()
    else:
        reader = PsutilSocketReader()
    debug_log(f"SOCKETS: using {reader.name} reader on {platform}")
    return reader
