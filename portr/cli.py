"""
Command line entry point.

    portr                     list listening ports
    portr 3000 8080           inspect ports
    portr 3000-3010           inspect a range
    portr react               inspect an alias from the config file
    portr 3000 --kill         terminate whatever owns the port
    portr dashboard           live curses dashboard
    portr watch [PORT]        repaint the report until Ctrl+C
    portr config init|path|show
"""
import argparse
import os
import sys
import time

from rich.markup import escape

from . import __version__
from .config import (
    config_path, default_config_content, init_config, load_config, resolve_alias, resolve_signal,
)
from .containers import default_resolver
from .discovery import DiscoveryEngine
from .display import (
    make_console, print_available, print_banner, print_port_details, print_port_table,
    print_process_tree,
)
from .errors import InvalidPort, InvalidPortRange, PortrError
from .export import render
from .models import DiscoveryFilter
from .processes import ProcessReader
from .sockets import default_socket_reader
from .terminate import (
    Confirmation, KillTarget, LITERAL_CONFIRMATION, check_confirmation, confirmation_for, execute,
)
from .utils import debug_log

SUBCOMMANDS = ("dashboard", "tui", "watch", "config")
CPU_SAMPLE_INTERVAL = 0.2


def parse_port(value):
    try:
        port = int(value)
    except (TypeError, ValueError):
        raise InvalidPort(value)
    if not 1 <= port <= 65535:
        raise InvalidPort(value)
    return port


def parse_target(value, cfg):
    """Return (low, high) for a port, a START-END range or a config alias."""
    alias = resolve_alias(value, cfg)
    if alias is not None:
        return alias, alias
    if "-" in value.strip("-"):
        start, _, end = value.partition("-")
        try:
            low, high = parse_port(start), parse_port(end)
        except InvalidPort:
            raise InvalidPortRange(value)
        if low > high:
            raise InvalidPortRange(value)
        return low, high
    port = parse_port(value)
    return port, port


def build_engine(sample_interval=0.0):
    resolver = default_resolver()
    return DiscoveryEngine(default_socket_reader(), ProcessReader(),
                           container_resolver=resolver, sample_interval=sample_interval)


def _add_filter_args(parser):
    parser.add_argument("--tcp", action="store_true", help="Only TCP sockets")
    parser.add_argument("--udp", action="store_true", help="Only UDP sockets")
    parser.add_argument("--established", action="store_true",
                        help="Include connected sockets, not only listeners")


def build_parser():
    parser = argparse.ArgumentParser(
        prog="portr", description="Inspect open ports and the processes behind them.")
    parser.add_argument("ports", nargs="*", metavar="PORT",
                        help="Port, START-END range or alias from the config file")
    _add_filter_args(parser)
    parser.add_argument("-k", "--kill", action="store_true", help="Terminate the owner of each port")
    parser.add_argument("-f", "--force", action="store_true", help="Use SIGKILL and skip confirmation")
    parser.add_argument("-n", "--dry-run", action="store_true", help="Show what would be killed")
    parser.add_argument("-t", "--tree", action="store_true", help="Show the process tree")
    fmt = parser.add_mutually_exclusive_group()
    fmt.add_argument("--json", dest="fmt", action="store_const", const="json", help="JSON output")
    fmt.add_argument("--csv", dest="fmt", action="store_const", const="csv", help="CSV output")
    fmt.add_argument("--md", dest="fmt", action="store_const", const="md", help="Markdown output")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show executable path and user")
    parser.add_argument("--version", action="version", version=f"portr {__version__}")
    return parser


def build_dashboard_parser(prog):
    parser = argparse.ArgumentParser(prog=f"portr {prog}", description="Live port dashboard.")
    _add_filter_args(parser)
    return parser


def build_watch_parser():
    parser = argparse.ArgumentParser(prog="portr watch", description="Repaint the report until Ctrl+C.")
    parser.add_argument("port", nargs="?", help="Port, range or alias to watch")
    parser.add_argument("-i", "--interval", type=float, default=None, help="Seconds between repaints")
    _add_filter_args(parser)
    return parser


def build_config_parser():
    parser = argparse.ArgumentParser(prog="portr config", description="Manage the config file.")
    parser.add_argument("action", choices=("init", "path", "show"))
    return parser


def _filter_from(args, port_range=None):
    return DiscoveryFilter(tcp=args.tcp, udp=args.udp, port_range=port_range,
                           include_established=args.established)


def _fail(err):
    msg = f"error: {err}"
    hint = getattr(err, "hint", None)
    if hint:
        msg = f"{msg}\n{hint}"
    print(msg, file=sys.stderr)
    return 1


def _prompt(console, target, kind):
    if kind is Confirmation.LITERAL:
        reason = "container" if target.is_container else "critical service"
        console.print(f"[bold red]⚠ {escape(target.describe())} is a {reason}.[/bold red]")
        question = f"Type '{LITERAL_CONFIRMATION}' to stop it: "
    else:
        question = escape(f"Kill {target.describe()}? [y/N] ")
    try:
        answer = console.input(question)
    except EOFError:
        return False
    return check_confirmation(kind, answer)


def kill_entries(console, entries, args, cfg, runtime):
    """Terminate the owners of `entries`. Returns the number of failures."""
    sig = resolve_signal("SIGKILL" if args.force else cfg.signal)
    failures = 0
    for entry in entries:
        target = KillTarget.from_entry(entry)
        if args.dry_run:
            console.print(f"[yellow]Would stop[/yellow] {escape(target.describe())}")
            continue
        kind = confirmation_for(target, force=args.force, confirm=cfg.confirm)
        if kind is not Confirmation.NONE and not _prompt(console, target, kind):
            console.print("[dim]Aborted.[/dim]")
            continue
        result = execute(target, sig, force=args.force, container_runtime=runtime)
        if result.ok:
            console.print(f"[green]✓[/green] {escape(result.message)}")
        else:
            failures += 1
            console.print(f"[red]✗[/red] {escape(result.message)}")
        debug_log(f"CLI: kill {target.describe()} -> {'ok' if result.ok else 'failed'}")
    return failures


def _inspect(console, engine, args, cfg, fmt):
    ranges = [parse_target(p, cfg) for p in args.ports]
    found = []
    for low, high in ranges:
        entries = engine.discover(_filter_from(args, (low, high))).entries
        if not entries and fmt == "pretty" and low == high:
            print_available(console, low, cfg.theme)
        found.extend(entries)

    ranged = any(low != high for low, high in ranges)
    if fmt != "pretty":
        sys.stdout.write(render(found, fmt))
    elif ranged:
        if found:
            print_port_table(console, found, cfg.theme)
        else:
            console.print("[dim]No ports in use in that range.[/dim]")
    else:
        for entry in found:
            print_port_details(console, entry, verbose=args.verbose, theme=cfg.theme)
            if args.tree and entry.pid is not None:
                reader = engine.process_reader
                print_process_tree(console, entry.pid, reader.parent_chain(entry.pid),
                                   reader.children(entry.pid))

    if args.kill or args.dry_run:
        if not found:
            console.print("[dim]Nothing to kill.[/dim]")
        elif kill_entries(console, found, args, cfg, engine.container_resolver):
            return 1
    return 0


def run_report(argv, cfg):
    args = build_parser().parse_args(argv)
    fmt = args.fmt or cfg.format
    # machine-readable output owns stdout
    console = make_console(cfg.color, file=sys.stderr if fmt != "pretty" else None)
    if (args.kill or args.dry_run) and not args.ports:
        return _fail(PortrError("--kill needs at least one port"))
    try:
        engine = build_engine(CPU_SAMPLE_INTERVAL)
        if args.ports:
            return _inspect(console, engine, args, cfg, fmt)
        snapshot = engine.discover(_filter_from(args))
    except PortrError as e:
        return _fail(e)

    if fmt != "pretty":
        sys.stdout.write(render(snapshot, fmt))
    else:
        print_banner(console, cfg.theme)
        print_port_table(console, snapshot.entries, cfg.theme)
    return 0


def run_watch(argv, cfg, sleep=None):
    args = build_watch_parser().parse_args(argv)
    sleep = sleep or time.sleep
    interval = args.interval if args.interval and args.interval > 0 else cfg.refresh_interval
    console = make_console(cfg.color)
    try:
        port_range = parse_target(args.port, cfg) if args.port else None
        engine = build_engine()
        filt = _filter_from(args, port_range)
        while True:
            snapshot = engine.discover(filt)
            console.clear()
            console.print(f"[dim]Every {interval:g}s · {time.strftime('%H:%M:%S')} · Ctrl+C to stop[/dim]")
            print_port_table(console, snapshot.entries, cfg.theme)
            sleep(interval)
    except PortrError as e:
        return _fail(e)
    except KeyboardInterrupt:
        return 0


def run_config(argv, cfg):
    args = build_config_parser().parse_args(argv)
    path = config_path()
    if args.action == "path":
        print(path)
        return 0
    if args.action == "init":
        try:
            written = init_config(path)
        except PortrError as e:
            return _fail(e)
        print(f"Created {written}")
        return 0
    if os.path.isfile(path):
        with open(path, "r", encoding="utf-8") as f:
            sys.stdout.write(f.read())
    else:
        print(f"# no config file at {path}; defaults:")
        sys.stdout.write(default_config_content())
    return 0


def run_dashboard_command(prog, argv, cfg):
    args = build_dashboard_parser(prog).parse_args(argv)
    # imported here so the one-shot report never loads curses
    from .dashboard import run_dashboard
    try:
        run_dashboard(cfg, _filter_from(args))
    except PortrError as e:
        return _fail(e)
    return 0


def main(argv=None):
    argv = sys.argv[1:] if argv is None else list(argv)
    cfg = load_config()
    if argv and argv[0] in SUBCOMMANDS:
        command, rest = argv[0], argv[1:]
        if command in ("dashboard", "tui"):
            return run_dashboard_command(command, rest, cfg)
        if command == "watch":
            return run_watch(rest, cfg)
        return run_config(rest, cfg)
    return run_report(argv, cfg)


def cli_entry():
    """terminal command 'portr' entry point"""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        sys.exit(130)
