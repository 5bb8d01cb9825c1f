"""
Dashboard event loop.

One thread owns the controller. Keys, timer ticks and discovery results all
go through a single queue.Queue and are handled in arrival order. Discovery
runs on a one-thread executor and reports back through the same queue.
"""
import curses
import queue
import signal
import time
from concurrent.futures import ThreadPoolExecutor

from ..config import resolve_signal
from ..containers import default_resolver
from ..discovery import DiscoveryEngine
from ..errors import PortrError, ReadFailed
from ..processes import ProcessReader
from ..sockets import default_socket_reader
from ..utils import debug_log
from .controller import Controller, Exit, Key, Mode, Refresh, SnapshotFailed, SnapshotReady, Tick
from .ui import apply_theme, draw, key_name

INPUT_TIMEOUT_MS = 100


class DashboardLoop:
    def __init__(self, engine, controller, interval=2.0, filt=None, clock=time.monotonic):
        self.engine = engine
        self.controller = controller
        self.interval = interval
        self.filt = filt
        self.clock = clock
        self.events = queue.Queue()
        self.executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="portr-discovery")
        self.running = True

    def _discover(self, seq):
        try:
            snapshot = self.engine.discover(self.filt)
        except PortrError as e:
            self.events.put(SnapshotFailed(seq, e))
            return
        except Exception as e:
            # the loop must always hear back from the worker
            debug_log(f"DASHBOARD: discovery pass #{seq} crashed: {e!r}")
            self.events.put(SnapshotFailed(seq, ReadFailed("discovery failed", str(e))))
            return
        self.events.put(SnapshotReady(seq, snapshot))

    def perform(self, effects):
        for effect in effects:
            if isinstance(effect, Refresh):
                self.executor.submit(self._discover, effect.seq)
            elif isinstance(effect, Exit):
                self.running = False

    def dispatch(self, event):
        self.perform(self.controller.handle(event))

    def drain(self):
        while self.running:
            try:
                event = self.events.get_nowait()
            except queue.Empty:
                return
            self.dispatch(event)

    def run(self, stdscr):
        try:
            curses.curs_set(0)
        except curses.error:
            pass
        stdscr.keypad(True)
        stdscr.timeout(INPUT_TIMEOUT_MS)
        apply_theme(stdscr)

        offset = 0
        self.dispatch(Tick())
        next_tick = self.clock() + self.interval
        try:
            while self.running and self.controller.mode is not Mode.EXITED:
                offset = draw(stdscr, self.controller, offset)
                ch = stdscr.getch()
                if ch == curses.KEY_RESIZE:
                    stdscr.clear()
                elif ch != -1:
                    name = key_name(ch)
                    if name:
                        self.events.put(Key(name))
                now = self.clock()
                if now >= next_tick:
                    self.events.put(Tick())
                    next_tick = now + self.interval
                self.drain()
        finally:
            self.executor.shutdown(wait=False, cancel_futures=True)


def _raise_exit(signum, frame):
    raise SystemExit(0)


def build_controller(cfg, resolver):
    return Controller(confirm=cfg.confirm, kill_signal=resolve_signal(cfg.signal),
                      container_runtime=resolver)


def run_dashboard(cfg, filt=None):
    """Open the curses dashboard. Terminal state is restored on every exit path."""
    resolver = default_resolver()
    engine = DiscoveryEngine(default_socket_reader(), ProcessReader(), container_resolver=resolver)
    controller = build_controller(cfg, resolver)
    loop = DashboardLoop(engine, controller, interval=cfg.refresh_interval, filt=filt)
    previous = signal.signal(signal.SIGTERM, _raise_exit)
    debug_log("DASHBOARD: started")
    try:
        curses.wrapper(loop.run)
    except KeyboardInterrupt:
        pass
    finally:
        signal.signal(signal.SIGTERM, previous)
        debug_log("DASHBOARD: closed")
