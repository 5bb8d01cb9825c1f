import os
import time

CONFIG_DIR = os.path.expanduser("~/.config/portr")
DEBUG_LOG_PATH = os.path.join(CONFIG_DIR, "debug.log")


def debug_log(msg):
    """Write a timestamped message to the debug log."""
    try:
        os.makedirs(os.path.dirname(DEBUG_LOG_PATH), exist_ok=True)
        with open(DEBUG_LOG_PATH, "a") as f:
            f.write(f"[{time.strftime('%Y-%m-%d %H:%M:%S')}] {msg}\n")
    except OSError:
        pass


def format_mb(mb):
    if mb is None:
        return "-"
    if mb >= 1024:
        return f"{mb / 1024:.1f}G"
    if mb >= 100:
        return f"{mb:.0f}M"
    return f"{mb:.1f}M"


def format_cpu(cpu):
    if cpu is None:
        return "-"
    return f"{cpu:.1f}%"


def format_uptime(seconds):
    """Human readable uptime: 45s, 2m 5s, 2h 3m, 2d 2h."""
    if seconds is None:
        return "-"
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m {seconds % 60}s"
    if seconds < 86400:
        return f"{seconds // 3600}h {(seconds % 3600) // 60}m"
    return f"{seconds // 86400}d {(seconds % 86400) // 3600}h"


def truncate(text, width):
    if width <= 0:
        return ""
    if len(text) <= width:
        return text
    if width <= 1:
        return text[:width]
    return text[:width - 1] + "…"
