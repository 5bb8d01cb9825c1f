"""
Curses rendering for the dashboard.

Everything here reads the controller and draws; nothing mutates it.
"""
import curses

from ..utils import format_cpu, format_mb, format_uptime, truncate
from .controller import MENU_ITEMS, ExportFormat, Mode
from .view import index_of

# Curses color pair IDs (1-based because 0 is reserved)
CP_HEADER = 1   # Headers, branding, important labels
CP_ACCENT = 2   # Selection, key shortcuts
CP_TEXT = 3     # Normal body text
CP_WARN = 4     # Warnings, critical items
CP_BORDER = 5   # Borders, separators
CP_OK = 6       # Success messages, container markers

THEME = {
    "colors": {
        CP_HEADER: (curses.COLOR_CYAN, -1),
        CP_ACCENT: (curses.COLOR_YELLOW, -1),
        CP_TEXT: (curses.COLOR_WHITE, -1),
        CP_WARN: (curses.COLOR_RED, -1),
        CP_BORDER: (curses.COLOR_BLUE, -1),
        CP_OK: (curses.COLOR_GREEN, -1),
    },
    "colors_256": {
        CP_HEADER: (45, -1),
        CP_ACCENT: (220, -1),
        CP_TEXT: (252, -1),
        CP_WARN: (203, -1),
        CP_BORDER: (63, -1),
        CP_OK: (114, -1),
    },
    "attrs": {CP_HEADER: curses.A_BOLD, CP_ACCENT: curses.A_BOLD, CP_BORDER: curses.A_DIM},
}

KEY_NAMES = {
    curses.KEY_UP: "up",
    curses.KEY_DOWN: "down",
    curses.KEY_LEFT: "left",
    curses.KEY_RIGHT: "right",
    curses.KEY_PPAGE: "pgup",
    curses.KEY_NPAGE: "pgdn",
    curses.KEY_HOME: "home",
    curses.KEY_END: "end",
    curses.KEY_ENTER: "enter",
    curses.KEY_BACKSPACE: "backspace",
    curses.KEY_F5: "f5",
    10: "enter",
    13: "enter",
    27: "esc",
    9: "tab",
    8: "backspace",
    127: "backspace",
}

HELP_LINES = (
    ("j / ↓", "Move down"),
    ("k / ↑", "Move up"),
    ("g / G", "First / last"),
    ("PgUp / PgDn", "Page up / down"),
    ("/", "Search"),
    ("f", "Cycle filter ALL/TCP/UDP"),
    ("Tab", "Cycle sort"),
    ("c", "Critical services only"),
    ("d", "Docker only"),
    ("Enter", "Toggle details"),
    ("K / x", "Kill selected"),
    ("e", "Export"),
    ("m", "Menu"),
    ("r / F5", "Refresh now"),
    ("Esc", "Clear filters / quit"),
    ("q", "Quit"),
)

COLUMNS = (("PORT", 7), ("PROTO", 6), ("PID", 8), ("PROCESS", 22), ("MEMORY", 9),
           ("CPU", 7), ("UPTIME", 9))


def key_name(ch):
    """Translate a getch() code into the key names the controller understands."""
    if ch in KEY_NAMES:
        return KEY_NAMES[ch]
    if 32 <= ch < 256 and ch != 127:
        try:
            return chr(ch)
        except ValueError:
            return None
    return None


def apply_theme(stdscr=None):
    if not curses.has_colors():
        return
    try:
        curses.use_default_colors()
    except curses.error:
        pass
    use_256 = curses.COLORS >= 256
    color_map = THEME["colors_256"] if use_256 else THEME["colors"]
    for pair_id, (fg, bg) in color_map.items():
        try:
            curses.init_pair(pair_id, fg, bg)
        except curses.error:
            pass
    if stdscr:
        try:
            stdscr.bkgdset(' ', curses.color_pair(CP_TEXT))
        except curses.error:
            pass


def get_theme_attr(pair_id):
    return curses.color_pair(pair_id) | THEME["attrs"].get(pair_id, curses.A_NORMAL)


def _put(win, y, x, text, attr=0):
    h, w = win.getmaxyx()
    if y < 0 or y >= h or x >= w - 1:
        return
    try:
        win.addstr(y, x, text[:max(0, w - x - 1)], attr)
    except curses.error:
        pass


def _boxed(stdscr, height, width, title=None):
    h, w = stdscr.getmaxyx()
    height = min(height, h - 2)
    width = min(width, w - 2)
    win = curses.newwin(max(3, height), max(10, width), max(0, (h - height) // 2), max(0, (w - width) // 2))
    try:
        win.bkgd(' ', curses.color_pair(CP_TEXT))
        win.attron(get_theme_attr(CP_BORDER))
        win.box()
        win.attroff(get_theme_attr(CP_BORDER))
    except curses.error:
        pass
    if title:
        _put(win, 0, 2, f" {title} ", get_theme_attr(CP_HEADER))
    return win


def format_row(entry, width):
    name = entry.process_name or "-"
    if entry.container is not None:
        name = f"🐳 {entry.container.name}"
    cells = [
        str(entry.port),
        entry.protocol,
        str(entry.pid) if entry.pid is not None else "-",
        truncate(name, COLUMNS[3][1] - 1),
        format_mb(entry.memory_mb),
        format_cpu(entry.cpu_percent),
        format_uptime(entry.uptime_secs),
    ]
    text = "".join(c.ljust(wd) for c, (_, wd) in zip(cells, COLUMNS))
    label = entry.service.label or ""
    if entry.is_critical:
        label = f"⚠ {label}" if label else "⚠"
    text += label
    return text[:width].ljust(width)


def draw_header(stdscr, ctrl):
    h, w = stdscr.getmaxyx()
    view = ctrl.view
    title = " portr "
    info = (f" filter:{view.protocol.value}  sort:{view.sort.value}"
            f"{'  crit' if view.critical_only else ''}{'  docker' if view.docker_only else ''}"
            f"  ports:{len(ctrl.visible())}/{len(ctrl.snapshot)} ")
    _put(stdscr, 0, 0, " " * (w - 1), curses.color_pair(CP_HEADER) | curses.A_REVERSE)
    _put(stdscr, 0, 1, title, get_theme_attr(CP_HEADER) | curses.A_REVERSE)
    _put(stdscr, 0, 1 + len(title), info, curses.color_pair(CP_HEADER) | curses.A_REVERSE)
    if view.query or ctrl.mode is Mode.SEARCHING:
        cursor = "█" if ctrl.mode is Mode.SEARCHING else ""
        _put(stdscr, 1, 1, f"/ {view.query}{cursor}", get_theme_attr(CP_ACCENT))


def draw_table(win, ctrl, rows, offset):
    win.erase()
    h, w = win.getmaxyx()
    try:
        win.attron(curses.color_pair(CP_BORDER))
        win.box()
        win.attroff(curses.color_pair(CP_BORDER))
    except curses.error:
        pass
    header = "".join(name.ljust(wd) for name, wd in COLUMNS) + "SERVICE"
    _put(win, 1, 1, header[:w - 2], get_theme_attr(CP_HEADER))
    try:
        win.hline(2, 1, curses.ACS_HLINE, w - 2, curses.color_pair(CP_BORDER))
    except curses.error:
        pass
    selected = index_of(rows, ctrl.view.selection)
    if not rows:
        msg = "No ports match the current filters" if ctrl.view.filters_active() else "No listening ports"
        _put(win, 4, 3, msg, curses.color_pair(CP_TEXT) | curses.A_DIM)
    for i in range(h - 4):
        idx = offset + i
        if idx >= len(rows):
            break
        entry = rows[idx]
        if idx == selected:
            attr = curses.color_pair(CP_ACCENT) | curses.A_REVERSE
        elif entry.is_critical:
            attr = curses.color_pair(CP_WARN)
        elif entry.container is not None:
            attr = curses.color_pair(CP_OK)
        else:
            attr = curses.color_pair(CP_TEXT)
        _put(win, i + 3, 1, format_row(entry, w - 2), attr)
    win.noutrefresh()


def draw_detail(win, entry):
    win.erase()
    try:
        win.attron(curses.color_pair(CP_BORDER))
        win.box()
        win.attroff(curses.color_pair(CP_BORDER))
    except curses.error:
        pass
    _put(win, 0, 2, " Details ", get_theme_attr(CP_HEADER))
    if entry is None:
        _put(win, 2, 2, "Nothing selected", curses.A_DIM)
        win.noutrefresh()
        return
    lines = [
        ("Port", f"{entry.port}/{entry.protocol}"),
        ("Local", entry.local_address),
        ("State", entry.state or "-"),
        ("PID", str(entry.pid) if entry.pid is not None else "-"),
        ("Process", entry.process_name or "unavailable"),
        ("Memory", format_mb(entry.memory_mb)),
        ("CPU", format_cpu(entry.cpu_percent)),
        ("Uptime", format_uptime(entry.uptime_secs)),
    ]
    if entry.process is not None:
        if entry.process.user:
            lines.append(("User", entry.process.user))
        if entry.process.exe:
            lines.append(("Path", entry.process.exe))
    if entry.service.label:
        lines.append(("Service", entry.service.label))
        lines.append(("", entry.service.description))
        if entry.service.risk:
            lines.append(("Risk", entry.service.risk.label))
    if entry.container is not None:
        c = entry.container
        lines.append(("Container", c.name))
        lines.append(("Image", c.image))
        lines.append(("Status", c.status))
    y = 2
    for label, value in lines:
        attr = curses.color_pair(CP_TEXT)
        if label == "Risk" and entry.is_critical:
            attr = get_theme_attr(CP_WARN)
        _put(win, y, 2, f"{label:>9} ", curses.A_DIM)
        _put(win, y, 12, value, attr)
        y += 1
    if entry.is_critical:
        _put(win, y + 1, 2, "⚠ critical: kill needs typed confirmation", get_theme_attr(CP_WARN))
    win.noutrefresh()


def draw_footer(stdscr, ctrl):
    h, w = stdscr.getmaxyx()
    status = ctrl.status_text()
    if status:
        attr = get_theme_attr(CP_WARN) if status.startswith(("✗", "Refresh failed")) else get_theme_attr(CP_OK)
        _put(stdscr, h - 1, 1, status, attr)
        return
    hints = "q quit  / search  f filter  Tab sort  K kill  e export  m menu  ? help"
    _put(stdscr, h - 1, 1, hints, curses.color_pair(CP_TEXT) | curses.A_DIM)


def draw_help(stdscr):
    win = _boxed(stdscr, len(HELP_LINES) + 4, 48, "Keyboard shortcuts")
    for i, (key, desc) in enumerate(HELP_LINES):
        _put(win, i + 2, 3, key.ljust(14), get_theme_attr(CP_ACCENT))
        _put(win, i + 2, 18, desc)
    win.noutrefresh()


def draw_menu(stdscr, ctrl):
    win = _boxed(stdscr, len(MENU_ITEMS) + 4, 56, "Menu")
    for i, (digit, label, desc) in enumerate(MENU_ITEMS):
        attr = curses.color_pair(CP_ACCENT) | curses.A_REVERSE if i == ctrl.menu_index else curses.color_pair(CP_TEXT)
        _put(win, i + 2, 2, f" [{digit}] {label:<12} {desc} ".ljust(52), attr)
    win.noutrefresh()


def draw_export(stdscr, ctrl):
    win = _boxed(stdscr, 8, 52, "Export")
    _put(win, 2, 3, f"{len(ctrl.visible())} visible ports")
    x = 3
    for fmt in ExportFormat:
        attr = curses.color_pair(CP_ACCENT) | curses.A_REVERSE if fmt is ctrl.export_format else curses.color_pair(CP_TEXT)
        label = f" {fmt.title} "
        _put(win, 4, x, label, attr)
        x += len(label) + 2
    _put(win, 6, 3, "Tab cycle  Enter export  Esc cancel", curses.A_DIM)
    win.noutrefresh()


def draw_confirm(stdscr, ctrl):
    target = ctrl.target
    if target is None:
        return
    critical = ctrl.mode is Mode.CONFIRM_CRITICAL_KILL
    win = _boxed(stdscr, 8, 64, "Confirm kill")
    if target.is_container:
        question = f"Stop container '{target.container_name}'?"
    else:
        question = f"Kill {target.describe()}?"
    _put(win, 2, 3, question, get_theme_attr(CP_HEADER))
    if critical:
        _put(win, 3, 3, "⚠ CRITICAL target. Stopping it may cause data loss.", get_theme_attr(CP_WARN))
        _put(win, 5, 3, f"Type 'yes' and Enter: {ctrl.confirm_input}█", get_theme_attr(CP_ACCENT))
    else:
        _put(win, 5, 3, "[y] Yes    [n] No", get_theme_attr(CP_ACCENT))
    win.noutrefresh()


def draw(stdscr, ctrl, offset=0):
    """Draw one frame; returns the table offset so the selection stays in view."""
    stdscr.erase()
    h, w = stdscr.getmaxyx()
    rows = ctrl.visible()
    draw_header(stdscr, ctrl)

    top = 2
    body_h = max(5, h - top - 1)
    show_details = ctrl.view.show_details and w >= 90
    detail_w = min(48, w // 3) if show_details else 0
    table_w = w - detail_w

    visible_rows = max(1, body_h - 4)
    selected = index_of(rows, ctrl.view.selection)
    if selected is not None:
        if selected < offset:
            offset = selected
        elif selected >= offset + visible_rows:
            offset = selected - visible_rows + 1
    offset = max(0, min(offset, max(0, len(rows) - visible_rows)))

    stdscr.noutrefresh()
    try:
        table_win = stdscr.derwin(body_h, table_w, top, 0)
        draw_table(table_win, ctrl, rows, offset)
        if show_details:
            detail_win = stdscr.derwin(body_h, detail_w, top, table_w)
            draw_detail(detail_win, rows[selected] if selected is not None else None)
    except curses.error:
        pass
    draw_footer(stdscr, ctrl)
    stdscr.noutrefresh()

    try:
        if ctrl.mode is Mode.MENU:
            draw_menu(stdscr, ctrl)
        elif ctrl.mode is Mode.EXPORT:
            draw_export(stdscr, ctrl)
        elif ctrl.mode in (Mode.CONFIRM_KILL, Mode.CONFIRM_CRITICAL_KILL):
            draw_confirm(stdscr, ctrl)
        elif ctrl.view.show_help:
            draw_help(stdscr)
    except curses.error:
        pass
    curses.doupdate()
    return offset
