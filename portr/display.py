"""One-shot report rendering with rich."""
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from .config import DEFAULT_THEME
from .services import lookup
from .utils import format_cpu, format_mb, format_uptime, truncate

BANNER = r"""
 ____   ___  ____ _____ ____
|  _ \ / _ \|  _ \_   _|  _ \
| |_) | | | | |_) || | | |_) |
|  __/| |_| |  _ < | | |  _ <
|_|    \___/|_| \_\|_| |_| \_\
  port inspector & process killer
"""

STATE_ICONS = {
    "LISTEN": "●",
    "LISTENING": "●",
    "ESTABLISHED": "◉",
    "TIME_WAIT": "◌",
    "CLOSE_WAIT": "◎",
}


def make_console(color="auto", file=None):
    if color == "never":
        return Console(file=file, no_color=True, color_system=None, highlight=False)
    if color == "always":
        return Console(file=file, force_terminal=True, highlight=False)
    return Console(file=file, highlight=False)


def state_icon(state):
    if state is None:
        return "○"
    return STATE_ICONS.get(state.upper(), "○")


def _theme(theme):
    return theme or DEFAULT_THEME


def print_banner(console, theme=None):
    console.print(Text(BANNER, style=_theme(theme)["banner_color"]))


def print_port_table(console, entries, theme=None):
    entries = list(entries)
    if not entries:
        console.print("[dim]No listening ports found.[/dim]")
        return
    table = Table(box=box.ROUNDED, header_style="bold cyan")
    table.add_column("PORT", justify="right")
    table.add_column("PROTO")
    table.add_column("PID", justify="right")
    table.add_column("PROCESS")
    table.add_column("SERVICE")
    table.add_column("MEMORY", justify="right")
    table.add_column("CPU", justify="right")
    table.add_column("UPTIME", justify="right")
    warn = _theme(theme)["warning_color"]
    for e in entries:
        name = escape(truncate(e.process_name or "-", 25))
        if e.container is not None:
            name = f"{name} [blue](docker: {escape(e.container.name)})[/blue]"
        label = e.service.label or ""
        if e.is_critical:
            label = f"[{warn}]{label or 'critical'} ⚠[/{warn}]"
        table.add_row(
            str(e.port),
            e.protocol,
            str(e.pid) if e.pid is not None else "-",
            name,
            label,
            format_mb(e.memory_mb),
            format_cpu(e.cpu_percent),
            format_uptime(e.uptime_secs),
        )
    console.print(table)
    console.print(f"\n[bold blue]●[/bold blue] [yellow]{len(entries)}[/yellow] port(s) in use")
    console.print(
        "\n[dim]Tip:[/dim] [cyan]portr dashboard[/cyan] [dim]→ live view | "
        "[/dim][cyan]portr --help[/cyan] [dim]→ all options[/dim]"
    )


def print_port_details(console, entry, verbose=False, theme=None):
    theme = _theme(theme)
    grid = Table.grid(padding=(0, 2))
    grid.add_column(justify="right", style="dim")
    grid.add_column()
    grid.add_row("PID", f"[yellow]{entry.pid if entry.pid is not None else '-'}[/yellow]")
    grid.add_row("Process", f"[green]{escape(entry.process_name or 'unavailable')}[/green]")
    if entry.process is not None and entry.process.ppid:
        grid.add_row("Parent", f"[dim]PID {entry.process.ppid}[/dim]")
    grid.add_row("Protocol", entry.protocol)
    grid.add_row("State", f"{state_icon(entry.state)} {entry.state or '-'}")
    grid.add_row("Local", escape(entry.local_address))
    if entry.remote_address:
        grid.add_row("Remote", escape(entry.remote_address))
    grid.add_row("", "")
    grid.add_row("Memory", f"[magenta]{format_mb(entry.memory_mb)}[/magenta]")
    grid.add_row("CPU", f"[magenta]{format_cpu(entry.cpu_percent)}[/magenta]")
    grid.add_row("Uptime", format_uptime(entry.uptime_secs))
    if verbose and entry.process is not None:
        if entry.process.exe:
            grid.add_row("Path", f"[dim]{escape(entry.process.exe)}[/dim]")
        if entry.process.user:
            grid.add_row("User", f"[dim]{escape(entry.process.user)}[/dim]")
    console.print(Panel(grid, title=f"[bold]Port {entry.port}[/bold]", title_align="left",
                        border_style="cyan", box=box.ROUNDED, expand=False))

    svc = entry.service
    if svc.label:
        risk = svc.risk.label if svc.risk else ""
        style = theme["warning_color"] if svc.is_critical else "dim"
        console.print(f"  [blue]ℹ[/blue] {svc.label}: [dim]{svc.description}[/dim] [{style}]{risk}[/{style}]")
        if svc.is_critical:
            console.print(f"  [{theme['error_color']}]⚠ Stopping this service may disrupt other "
                          f"applications[/{theme['error_color']}]")
    if entry.container is not None:
        c = entry.container
        console.print(f"\n  [blue]🐳 Docker container[/blue] [bold cyan]{escape(c.name)}[/bold cyan] [dim]({escape(c.id)})[/dim]")
        console.print(f"     Image: {escape(c.image)}")
        console.print(f"     Status: [green]{escape(c.status)}[/green]")
        published = [f"{m.host_port}:{m.container_port}/{m.protocol}" for m in c.ports if m.host_port]
        if published:
            console.print(f"     Ports: [yellow]{', '.join(published)}[/yellow]")
        if entry.critical_container:
            console.print(f"  [{theme['error_color']}]⚠ CRITICAL DATABASE container: stopping may cause "
                          f"DATA LOSS[/{theme['error_color']}]")
    console.print(f"\n  [dim]→[/dim] Kill: [yellow]portr {entry.port} --kill[/yellow]")


def print_available(console, port, theme=None):
    ok = _theme(theme)["success_color"]
    console.print(f"[bold {ok}]✓[/bold {ok}] Port [cyan]{port}[/cyan] is [{ok}]available[/{ok}]")
    svc = lookup(port)
    if svc is not None:
        console.print(f"  [bold blue]ℹ[/bold blue] This port is typically used by: "
                      f"[cyan]{svc.name}[/cyan] [dim]({svc.description})[/dim]")


def print_process_tree(console, pid, chain, children):
    """chain is [(pid, name)] from the root down to the target; children likewise."""
    if not chain:
        chain = [(pid, "?")]
    root = None
    node = None
    for cpid, name in chain:
        if cpid == pid:
            label = f"[bold green]{escape(name)}[/bold green] [yellow](PID {cpid})[/yellow] ← [bold magenta]Target[/bold magenta]"
        else:
            label = f"{escape(name)} [dim](PID {cpid})[/dim]"
        if root is None:
            root = node = Tree(label)
        else:
            node = node.add(label)
    for cpid, name in children:
        node.add(f"[blue]►[/blue] [cyan]{escape(name)}[/cyan] [dim](PID {cpid})[/dim]")
    console.print(Panel(root, title="[bold cyan]Process Tree[/bold cyan]", title_align="left",
                        box=box.ROUNDED, expand=False))
