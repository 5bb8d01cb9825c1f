import os
import signal
import tempfile
import unittest

from portr.config import (
    Config, DEFAULT_THEME, config_path, default_config_content, init_config, load_config,
    parse_config, resolve_alias, resolve_signal,
)
from portr.errors import ConfigError

SAMPLE = """
defaults:
  signal: sigkill
  confirm: false
  color: never
  format: json
  refresh_interval: 5
aliases:
  react: 3000
  api: "8000"
  bogus: 70000
  words: abc
theme:
  banner_color: magenta
  unknown_key: blue
"""


class TestParse(unittest.TestCase):
    def test_full_document(self):
        cfg = parse_config(SAMPLE)
        self.assertEqual(cfg.signal, "SIGKILL")
        self.assertFalse(cfg.confirm)
        self.assertEqual(cfg.color, "never")
        self.assertEqual(cfg.format, "json")
        self.assertEqual(cfg.refresh_interval, 5.0)
        self.assertEqual(cfg.aliases, {"react": 3000, "api": 8000})
        self.assertEqual(cfg.theme["banner_color"], "magenta")
        self.assertEqual(cfg.theme["error_color"], DEFAULT_THEME["error_color"])
        self.assertNotIn("unknown_key", cfg.theme)

    def test_malformed_yaml_gives_defaults(self):
        self.assertEqual(parse_config("defaults: [unclosed"), Config())

    def test_non_mapping_gives_defaults(self):
        self.assertEqual(parse_config("- a\n- b\n"), Config())
        self.assertEqual(parse_config(""), Config())

    def test_bad_values_are_ignored(self):
        cfg = parse_config("defaults:\n  color: purple\n  refresh_interval: -1\n  format: xml\n")
        self.assertEqual(cfg.color, "auto")
        self.assertEqual(cfg.refresh_interval, 2.0)
        self.assertEqual(cfg.format, "pretty")

    def test_default_content_round_trips(self):
        cfg = parse_config(default_config_content())
        self.assertEqual(cfg.aliases["react"], 3000)
        self.assertEqual(cfg.aliases["postgres"], 5432)
        self.assertTrue(cfg.confirm)
        self.assertEqual(cfg.signal, "SIGTERM")

    def test_resolve_alias(self):
        cfg = parse_config(SAMPLE)
        self.assertEqual(resolve_alias("react", cfg), 3000)
        self.assertIsNone(resolve_alias("nope", cfg))


class TestSignal(unittest.TestCase):
    def test_names(self):
        self.assertIs(resolve_signal("SIGTERM"), signal.SIGTERM)
        self.assertIs(resolve_signal("kill"), signal.SIGKILL)
        self.assertIs(resolve_signal("15"), signal.SIGTERM)

    def test_unknown(self):
        with self.assertRaises(ConfigError):
            resolve_signal("SIGNOPE")
        with self.assertRaises(ConfigError):
            resolve_signal("999")


class TestPaths(unittest.TestCase):
    def test_xdg(self):
        self.assertEqual(config_path({"XDG_CONFIG_HOME": "/tmp/xdg"}, "linux"),
                         os.path.join("/tmp/xdg", "portr", "config.yaml"))

    def test_home_default(self):
        path = config_path({}, "linux")
        self.assertTrue(path.endswith(os.path.join(".config", "portr", "config.yaml")))

    def test_windows(self):
        self.assertEqual(config_path({"APPDATA": "C:/Users/me/AppData"}, "win32"),
                         os.path.join("C:/Users/me/AppData", "portr", "config.yaml"))


class TestFiles(unittest.TestCase):
    def test_missing_file_gives_defaults(self):
        self.assertEqual(load_config("/nonexistent/portr/config.yaml"), Config())

    def test_init_then_load(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "portr", "config.yaml")
            self.assertEqual(init_config(path), path)
            self.assertEqual(load_config(path).aliases["vite"], 5173)
            with self.assertRaises(ConfigError):
                init_config(path)


if __name__ == '__main__':
    unittest.main()
