"""
Configuration file support.

Settings live in ~/.config/portr/config.yaml ($XDG_CONFIG_HOME is honored,
%APPDATA%\\portr\\config.yaml on Windows). The file is read once at startup.
"""
import os
import signal
import sys
from dataclasses import dataclass, field
from typing import Dict

import yaml

from .errors import ConfigError
from .utils import debug_log

COLOR_MODES = ("auto", "always", "never")
OUTPUT_FORMATS = ("pretty", "json", "csv", "md")

DEFAULT_THEME = {
    "banner_color": "cyan",
    "success_color": "green",
    "warning_color": "yellow",
    "error_color": "red",
}


@dataclass
class Config:
    signal: str = "SIGTERM"
    confirm: bool = True
    color: str = "auto"
    format: str = "pretty"
    refresh_interval: float = 2.0
    aliases: Dict[str, int] = field(default_factory=dict)
    theme: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_THEME))


def config_path(environ=None, platform=None):
    environ = os.environ if environ is None else environ
    platform = platform or sys.platform
    if platform.startswith("win") and environ.get("APPDATA"):
        return os.path.join(environ["APPDATA"], "portr", "config.yaml")
    base = environ.get("XDG_CONFIG_HOME") or os.path.join(os.path.expanduser("~"), ".config")
    return os.path.join(base, "portr", "config.yaml")


def _as_bool(value, default):
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1", "on")
    return default


def parse_config(text):
    """Build a Config from YAML text. Unknown keys and bad values are ignored."""
    cfg = Config()
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        debug_log(f"CONFIG: malformed config, using defaults: {e}")
        return cfg
    if not isinstance(data, dict):
        debug_log("CONFIG: top level is not a mapping, using defaults")
        return cfg

    defaults = data.get("defaults") or {}
    if isinstance(defaults, dict):
        if isinstance(defaults.get("signal"), str):
            cfg.signal = defaults["signal"].upper()
        if "confirm" in defaults:
            cfg.confirm = _as_bool(defaults["confirm"], cfg.confirm)
        if defaults.get("color") in COLOR_MODES:
            cfg.color = defaults["color"]
        if defaults.get("format") in OUTPUT_FORMATS:
            cfg.format = defaults["format"]
        interval = defaults.get("refresh_interval")
        if isinstance(interval, (int, float)) and not isinstance(interval, bool) and interval > 0:
            cfg.refresh_interval = float(interval)

    aliases = data.get("aliases") or {}
    if isinstance(aliases, dict):
        for name, port in aliases.items():
            try:
                port = int(port)
            except (TypeError, ValueError):
                continue
            if 1 <= port <= 65535:
                cfg.aliases[str(name)] = port

    theme = data.get("theme") or {}
    if isinstance(theme, dict):
        for key in DEFAULT_THEME:
            if isinstance(theme.get(key), str):
                cfg.theme[key] = theme[key]
    return cfg


def load_config(path=None):
    path = path or config_path()
    if not os.path.isfile(path):
        return Config()
    try:
        with open(path, "r", encoding="utf-8") as f:
            return parse_config(f.read())
    except OSError as e:
        debug_log(f"CONFIG: Error loading {path}: {e}")
        return Config()


def resolve_alias(name, cfg):
    return cfg.aliases.get(name)


def resolve_signal(name):
    """Map 'SIGTERM', 'TERM' or '15' to a signal.Signals member."""
    value = str(name).strip().upper()
    if value.isdigit():
        try:
            return signal.Signals(int(value))
        except ValueError:
            raise ConfigError(f"unknown signal: {name}")
    if not value.startswith("SIG"):
        value = "SIG" + value
    try:
        return signal.Signals[value]
    except KeyError:
        raise ConfigError(f"unknown signal: {name}")


def default_config_content():
    return """\
# portr configuration file
# Location: ~/.config/portr/config.yaml (Linux/macOS)
#           %APPDATA%\\portr\\config.yaml (Windows)

defaults:
  # Kill signal: SIGTERM (graceful) or SIGKILL (force)
  signal: SIGTERM
  # Prompt before killing processes
  confirm: true
  # Color mode: auto, always, never
  color: auto
  # Default output format: pretty, json, csv, md
  format: pretty
  # Dashboard refresh interval in seconds
  refresh_interval: 2.0

# Port aliases for quick access
# Usage: portr react -> portr 3000
aliases:
  react: 3000
  next: 3000
  vite: 5173
  vue: 8080
  angular: 4200
  backend: 8080
  api: 8000
  flask: 5000
  django: 8000
  rails: 3000
  postgres: 5432
  mysql: 3306
  redis: 6379
  mongo: 27017
  ollama: 11434
  docker: 2375

theme:
  banner_color: cyan
  success_color: green
  warning_color: yellow
  error_color: red
"""


def init_config(path=None):
    """Write the default config file. Refuses to overwrite an existing one."""
    path = path or config_path()
    if os.path.exists(path):
        raise ConfigError("config file already exists", path)
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(default_config_content())
    except OSError as e:
        raise ConfigError("could not write config file", str(e))
    debug_log(f"CONFIG: wrote default config to {path}")
    return path
