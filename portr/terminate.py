"""
Termination policy shared by the CLI and the dashboard.

A KillTarget is captured from a SnapshotEntry at the moment the user asks for
the kill. execute() then either stops the owning container by name or signals
the process, after checking that the pid still belongs to the same process.
"""
import signal
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import psutil

from .errors import NotFound, PermissionDenied, PlatformError, PortrError, RuntimeUnavailable
from .models import StableKey
from .utils import debug_log

LITERAL_CONFIRMATION = "yes"

# create_time is reported with limited precision on some platforms
START_TIME_TOLERANCE = 0.5


class Confirmation(Enum):
    NONE = "none"
    SIMPLE = "simple"
    LITERAL = "literal"


@dataclass(frozen=True)
class KillTarget:
    key: StableKey
    port: int
    protocol: str
    pid: Optional[int] = None
    process_name: Optional[str] = None
    start_time: Optional[float] = None
    container_name: Optional[str] = None
    container_image: Optional[str] = None
    service_label: Optional[str] = None
    is_critical: bool = False

    @classmethod
    def from_entry(cls, entry):
        container = entry.container
        return cls(
            key=entry.key,
            port=entry.port,
            protocol=entry.protocol,
            pid=entry.pid,
            process_name=entry.process_name,
            start_time=entry.process.start_time if entry.process else None,
            container_name=container.name if container else None,
            container_image=container.image if container else None,
            service_label=entry.service.label,
            is_critical=entry.is_critical,
        )

    @property
    def is_container(self):
        return self.container_name is not None

    def describe(self):
        if self.is_container:
            return f"container '{self.container_name}' on port {self.port}"
        name = self.process_name or "unknown"
        pid = self.pid if self.pid is not None else "?"
        return f"{name} (pid {pid}) on {self.protocol} {self.port}"


@dataclass(frozen=True)
class TerminationResult:
    ok: bool
    message: str
    error: Optional[PortrError] = None


def confirmation_for(target, force=False, confirm=True):
    """
    Which confirmation a kill needs.

    force skips confirmation entirely. Critical and container targets need the
    literal text even when confirm is off in the configuration.
    """
    if force:
        return Confirmation.NONE
    if target.is_container or target.is_critical:
        return Confirmation.LITERAL
    if not confirm:
        return Confirmation.NONE
    return Confirmation.SIMPLE


def check_confirmation(kind, answer):
    """True when `answer` satisfies the confirmation kind."""
    if kind is Confirmation.NONE:
        return True
    answer = (answer or "").strip()
    if kind is Confirmation.LITERAL:
        return answer == LITERAL_CONFIRMATION
    return answer.lower() in ("y", "yes")


def terminate_pid(pid, sig=signal.SIGTERM, force=False, expected_start=None, wait=2.0):
    """
    Signal a process. Raises NotFound, PermissionDenied or PlatformError.

    When expected_start is given the live process must have the same create
    time, otherwise the pid has been recycled and nothing is sent.
    """
    try:
        proc = psutil.Process(pid)
        if expected_start is not None:
            if abs(proc.create_time() - expected_start) > START_TIME_TOLERANCE:
                raise NotFound(f"process {pid} is gone", "the pid now belongs to another process")
        if force:
            proc.kill()
        elif sig == signal.SIGTERM:
            proc.terminate()
        else:
            proc.send_signal(sig)
        if wait:
            try:
                proc.wait(timeout=wait)
            except psutil.TimeoutExpired:
                debug_log(f"KILL: pid {pid} still running {wait}s after signal")
    except psutil.NoSuchProcess as e:
        raise NotFound(f"process {pid} not found", str(e))
    except psutil.AccessDenied as e:
        raise PermissionDenied(f"not allowed to signal process {pid}", str(e))
    except (psutil.Error, OSError, ValueError) as e:
        raise PlatformError(f"could not signal process {pid}", str(e))


def execute(target, sig=signal.SIGTERM, force=False, process_terminator=terminate_pid,
            container_runtime=None):
    """Run the termination. Failures come back in the result, never raised."""
    try:
        if target.is_container:
            if container_runtime is None:
                raise RuntimeUnavailable("no container runtime available",
                                         f"cannot stop '{target.container_name}'")
            container_runtime.stop_container(target.container_name)
            message = f"Stopped container {target.container_name} on port {target.port}"
        else:
            if target.pid is None:
                raise PermissionDenied(f"owner of port {target.port} is not visible")
            process_terminator(target.pid, sig, force, target.start_time)
            verb = "Killed" if force else "Terminated"
            message = f"{verb} {target.process_name or 'process'} (pid {target.pid}) on port {target.port}"
    except PortrError as e:
        text = str(e)
        hint = getattr(e, "hint", None)
        if hint:
            text = f"{text}. {hint}"
        debug_log(f"KILL: {target.describe()} failed ({e.kind}): {e}")
        return TerminationResult(False, text, e)
    debug_log(f"KILL: {message}")
    return TerminationResult(True, message)
