"""
Dashboard controller.

A sequential state machine. The event loop feeds it Tick, Key, SnapshotReady,
SnapshotFailed, Cancel and Quit events one at a time; handle() mutates the
controller and returns the effects the loop has to carry out (start a
discovery pass, exit). No I/O happens here except the termination call and
the export write, both synchronous.
"""
import signal
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..export import write_export
from ..models import Snapshot
from ..terminate import (
    Confirmation, KillTarget, LITERAL_CONFIRMATION, check_confirmation,
    confirmation_for, execute,
)
from ..utils import debug_log
from .view import ProtocolFilter, ViewState, index_of, resolve_selection, visible_entries

STATUS_TTL = 3.0
PAGE_SIZE = 10
MAX_CONFIRM_INPUT = 16


class Mode(Enum):
    NORMAL = "NORMAL"
    SEARCHING = "SEARCH"
    MENU = "MENU"
    EXPORT = "EXPORT"
    CONFIRM_KILL = "CONFIRM"
    CONFIRM_CRITICAL_KILL = "CONFIRM!"
    EXITED = "EXITED"


# no refresh while the user is deciding about a specific target
TICK_SUPPRESSED = (Mode.CONFIRM_KILL, Mode.CONFIRM_CRITICAL_KILL, Mode.EXPORT)


class ExportFormat(Enum):
    JSON = ("json", "JSON")
    CSV = ("csv", "CSV")
    MARKDOWN = ("md", "Markdown")

    @property
    def key(self):
        return self.value[0]

    @property
    def title(self):
        return self.value[1]

    def next(self):
        order = list(ExportFormat)
        return order[(order.index(self) + 1) % len(order)]

    def previous(self):
        order = list(ExportFormat)
        return order[(order.index(self) - 1) % len(order)]


MENU_ITEMS = (
    ("1", "Dashboard", "Full view with details pane"),
    ("2", "Ports Only", "Simple port list view"),
    ("3", "TCP Filter", "Show only TCP sockets"),
    ("4", "UDP Filter", "Show only UDP sockets"),
    ("5", "Docker", "Show container ports only"),
    ("6", "Critical", "Show critical services only"),
    ("7", "Export", "Export ports to JSON/CSV/Markdown"),
    ("8", "Help", "Show keyboard shortcuts"),
    ("0", "Quit", "Exit portr"),
)


# Events
@dataclass(frozen=True)
class Tick:
    pass


@dataclass(frozen=True)
class Key:
    name: str


@dataclass(frozen=True)
class SnapshotReady:
    seq: int
    snapshot: Snapshot


@dataclass(frozen=True)
class SnapshotFailed:
    seq: int
    error: Any


@dataclass(frozen=True)
class Cancel:
    pass


@dataclass(frozen=True)
class Quit:
    pass


# Effects
@dataclass(frozen=True)
class Refresh:
    seq: int


@dataclass(frozen=True)
class Exit:
    pass


def _printable(key):
    return len(key) == 1 and key.isprintable()


class Controller:
    """
    Owns the current Snapshot and the ViewState.

    terminator(target) -> TerminationResult performs the kill; exporter(rows,
    fmt) -> path writes an export file. Both default to the real
    implementations; the default terminator stops containers through
    `container_runtime`.
    """

    def __init__(self, terminator=None, exporter=write_export, confirm=True,
                 kill_signal=signal.SIGTERM, view=None, clock=time.time,
                 container_runtime=None):
        self.mode = Mode.NORMAL
        self.snapshot = Snapshot()
        self.view = view or ViewState()
        self.confirm = confirm
        self.kill_signal = kill_signal
        self.container_runtime = container_runtime
        self.terminator = terminator or self._execute
        self.exporter = exporter
        self.clock = clock

        self.seq = 0
        self.in_flight = None
        self.min_seq = 0
        self.applied_seq = 0
        self.pending = None

        self.target = None
        self.confirm_input = ""
        self.menu_index = 0
        self.export_format = ExportFormat.JSON
        self.saved_query = ""
        self.status = None
        self.status_at = 0.0
        self.last_error = None

    def _execute(self, target):
        return execute(target, self.kill_signal, container_runtime=self.container_runtime)

    # -- derived state -------------------------------------------------

    def visible(self):
        return visible_entries(self.snapshot, self.view)

    def selected_index(self, rows=None):
        rows = self.visible() if rows is None else rows
        return index_of(rows, self.view.selection)

    def selected_entry(self):
        rows = self.visible()
        idx = index_of(rows, self.view.selection)
        return rows[idx] if idx is not None else None

    def status_text(self):
        if self.status and self.clock() - self.status_at <= STATUS_TTL:
            return self.status
        return None

    def set_status(self, msg):
        self.status = msg
        self.status_at = self.clock()
        debug_log(f"NOTIFY: {msg}")

    def _reselect(self):
        self.view.selection = resolve_selection(self.visible(), self.view.selection)

    def _set_mode(self, mode):
        if mode is not self.mode:
            debug_log(f"DASHBOARD: {self.mode.name} -> {mode.name}")
        self.mode = mode

    # -- event dispatch --------------------------------------------------

    def handle(self, event):
        if self.mode is Mode.EXITED:
            return []
        if isinstance(event, Quit):
            return self._quit()
        if isinstance(event, Cancel):
            self._cancel()
            return []
        if isinstance(event, Tick):
            if self.mode in TICK_SUPPRESSED:
                return []
            return self._request_refresh()
        if isinstance(event, SnapshotReady):
            self._on_snapshot(event)
            return []
        if isinstance(event, SnapshotFailed):
            self._on_failure(event)
            return []
        if isinstance(event, Key):
            return self._on_key(event.name)
        return []

    def _quit(self):
        self._set_mode(Mode.EXITED)
        return [Exit()]

    def _request_refresh(self, force=False):
        if self.in_flight is not None and not force:
            return []
        self.seq += 1
        self.in_flight = self.seq
        return [Refresh(self.seq)]

    def _back_to_normal(self):
        self.target = None
        self.confirm_input = ""
        self._set_mode(Mode.NORMAL)
        if self.pending is not None:
            seq, snapshot = self.pending
            self.pending = None
            if seq >= self.min_seq:
                self._apply(seq, snapshot)

    def _cancel(self):
        if self.mode is Mode.SEARCHING:
            self.view.query = self.saved_query
            self._reselect()
        self._back_to_normal()

    def _on_snapshot(self, event):
        if event.seq == self.in_flight:
            self.in_flight = None
        if event.seq < self.min_seq or event.seq <= self.applied_seq:
            debug_log(f"DASHBOARD: dropped stale snapshot #{event.seq}")
            return
        if self.mode in TICK_SUPPRESSED:
            self.pending = (event.seq, event.snapshot)
            return
        self._apply(event.seq, event.snapshot)

    def _apply(self, seq, snapshot):
        self.snapshot = snapshot
        self.applied_seq = seq
        self.last_error = None
        self._reselect()

    def _on_failure(self, event):
        if event.seq == self.in_flight:
            self.in_flight = None
        if event.seq < self.min_seq:
            return
        err = event.error
        self.last_error = err
        msg = f"Refresh failed: {err}"
        hint = getattr(err, "hint", None)
        if hint:
            msg = f"{msg}. {hint}"
        self.set_status(msg)

    # -- keys ------------------------------------------------------------

    def _on_key(self, key):
        handler = {
            Mode.NORMAL: self._key_normal,
            Mode.SEARCHING: self._key_search,
            Mode.MENU: self._key_menu,
            Mode.EXPORT: self._key_export,
            Mode.CONFIRM_KILL: self._key_confirm,
            Mode.CONFIRM_CRITICAL_KILL: self._key_confirm_critical,
        }[self.mode]
        return handler(key) or []

    def _move(self, delta=0, to=None, wrap=False):
        rows = self.visible()
        if not rows:
            self.view.selection = None
            return
        idx = index_of(rows, self.view.selection)
        if idx is None:
            idx = 0
        if to is not None:
            idx = to if to >= 0 else len(rows) + to
        elif wrap:
            idx = (idx + delta) % len(rows)
        else:
            idx = max(0, min(len(rows) - 1, idx + delta))
        self.view.selection = rows[idx].key

    def _key_normal(self, key):
        if key == "q":
            return self._quit()
        if self.view.show_help:
            # any other key closes the help overlay
            self.view.show_help = False
            return None
        if key == "esc":
            if self.view.filters_active():
                self.view.clear_filters()
                self._reselect()
                self.set_status(f"Filters cleared ({len(self.visible())} ports)")
                return None
            return self._quit()
        if key in ("j", "down"):
            self._move(1, wrap=True)
        elif key in ("k", "up"):
            self._move(-1, wrap=True)
        elif key in ("g", "home"):
            self._move(to=0)
        elif key in ("G", "end"):
            self._move(to=-1)
        elif key == "pgdn":
            self._move(PAGE_SIZE)
        elif key == "pgup":
            self._move(-PAGE_SIZE)
        elif key == "/":
            self.saved_query = self.view.query
            self._set_mode(Mode.SEARCHING)
        elif key == "f":
            self.view.protocol = self.view.protocol.next()
            self._reselect()
            self.set_status(f"Filter: {self.view.protocol.value} ({len(self.visible())} ports)")
        elif key == "tab":
            self.view.sort = self.view.sort.next()
            self.set_status(f"Sort: {self.view.sort.name}")
        elif key == "c":
            self.view.critical_only = not self.view.critical_only
            self.view.docker_only = False
            self._reselect()
            state = "ON" if self.view.critical_only else "OFF"
            self.set_status(f"Critical filter {state} ({len(self.visible())} ports)")
        elif key == "d":
            self.view.docker_only = not self.view.docker_only
            self.view.critical_only = False
            self._reselect()
            state = "ON" if self.view.docker_only else "OFF"
            self.set_status(f"Docker filter {state} ({len(self.visible())} ports)")
        elif key == "e":
            self._set_mode(Mode.EXPORT)
        elif key == "m":
            self.menu_index = 0
            self._set_mode(Mode.MENU)
        elif key == "?":
            self.view.show_help = True
        elif key == "enter":
            self.view.show_details = not self.view.show_details
        elif key in ("K", "x"):
            return self._start_kill()
        elif key in ("r", "f5"):
            return self._request_refresh()
        return None

    def _key_search(self, key):
        if key == "enter":
            self._set_mode(Mode.NORMAL)
            n = len(self.visible())
            if self.view.query:
                self.set_status(f"Found {n} for '{self.view.query}'")
            else:
                self.set_status(f"Search cleared ({n} ports)")
            return None
        if key == "esc":
            self._cancel()
            return None
        if key == "backspace":
            self.view.query = self.view.query[:-1]
        elif _printable(key):
            self.view.query += key
        else:
            return None
        self._reselect()
        return None

    def _key_menu(self, key):
        if key == "q":
            return self._quit()
        if key in ("m", "esc"):
            self._set_mode(Mode.NORMAL)
            return None
        if key in ("j", "down"):
            self.menu_index = min(len(MENU_ITEMS) - 1, self.menu_index + 1)
        elif key in ("k", "up"):
            self.menu_index = max(0, self.menu_index - 1)
        elif key == "enter":
            return self._menu_select(self.menu_index)
        else:
            for i, (digit, _, _) in enumerate(MENU_ITEMS):
                if key == digit:
                    return self._menu_select(i)
        return None

    def _menu_select(self, index):
        self.menu_index = index
        label = MENU_ITEMS[index][1]
        self._set_mode(Mode.NORMAL)
        view = self.view
        if label in ("Dashboard", "Ports Only"):
            view.clear_filters()
            view.show_details = label == "Dashboard"
            self.set_status(f"View: {label}")
        elif label == "TCP Filter":
            view.clear_filters()
            view.protocol = ProtocolFilter.TCP
            self.set_status("Filter: TCP Only")
        elif label == "UDP Filter":
            view.clear_filters()
            view.protocol = ProtocolFilter.UDP
            self.set_status("Filter: UDP Only")
        elif label == "Docker":
            view.clear_filters()
            view.docker_only = True
            self.set_status("Filter: Docker Only")
        elif label == "Critical":
            view.clear_filters()
            view.critical_only = True
            self.set_status("Filter: Critical Services")
        elif label == "Export":
            self._set_mode(Mode.EXPORT)
        elif label == "Help":
            view.show_help = True
        elif label == "Quit":
            return self._quit()
        self._reselect()
        return None

    def _key_export(self, key):
        if key == "esc":
            self._back_to_normal()
        elif key in ("tab", "right"):
            self.export_format = self.export_format.next()
        elif key == "left":
            self.export_format = self.export_format.previous()
        elif key == "j":
            self.export_format = ExportFormat.JSON
        elif key == "s":
            self.export_format = ExportFormat.CSV
        elif key == "m":
            self.export_format = ExportFormat.MARKDOWN
        elif key == "enter":
            self._do_export()
        return None

    def _do_export(self):
        rows = self.visible()
        if not rows:
            self.set_status("No ports to export")
        else:
            try:
                path = self.exporter(rows, self.export_format.key)
                self.set_status(f"✓ Exported {len(rows)} ports to {path}")
            except OSError as e:
                self.set_status(f"✗ Export failed: {e}")
        self._back_to_normal()

    # -- kill ------------------------------------------------------------

    def _start_kill(self):
        entry = self.selected_entry()
        if entry is None:
            self.set_status("Nothing selected")
            return None
        self.target = KillTarget.from_entry(entry)
        self.confirm_input = ""
        kind = confirmation_for(self.target, force=False, confirm=self.confirm)
        debug_log(f"DASHBOARD: kill requested for {self.target.describe()} ({kind.value})")
        if kind is Confirmation.NONE:
            return self._execute_kill()
        if kind is Confirmation.LITERAL:
            self._set_mode(Mode.CONFIRM_CRITICAL_KILL)
        else:
            self._set_mode(Mode.CONFIRM_KILL)
        return None

    def _key_confirm(self, key):
        if key in ("y", "Y"):
            return self._execute_kill()
        if key in ("n", "N", "esc"):
            self._back_to_normal()
            self.set_status("Cancelled")
        return None

    def _key_confirm_critical(self, key):
        if key == "esc":
            self._back_to_normal()
            self.set_status("Cancelled")
            return None
        if key == "enter":
            if check_confirmation(Confirmation.LITERAL, self.confirm_input):
                return self._execute_kill()
            self.set_status(f"Type '{LITERAL_CONFIRMATION}' to confirm")
            self.confirm_input = ""
            return None
        if key == "backspace":
            self.confirm_input = self.confirm_input[:-1]
        elif _printable(key) and len(self.confirm_input) < MAX_CONFIRM_INPUT:
            self.confirm_input += key
        return None

    def _execute_kill(self):
        target = self.target
        result = self.terminator(target)
        self.set_status(("✓ " if result.ok else "✗ ") + result.message)
        # anything computed before the kill must not be shown after it
        self.pending = None
        self.target = None
        self.confirm_input = ""
        self._set_mode(Mode.NORMAL)
        effects = self._request_refresh(force=True)
        self.min_seq = self.seq
        return effects
