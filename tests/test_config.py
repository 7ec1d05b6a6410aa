from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from reddit_discovery.config import config_sha256, load_config
from reddit_discovery.config_schema import AppConfig
from reddit_discovery.errors import ConfigError


_VALID_YAML = """\
reddit:
  base_url: https://www.reddit.com/
  listing_limit: 25
  timeout_seconds: 10

rate_limit:
  window_seconds: 60
  max_calls_per_window: 30
  min_interval_seconds: 2
  max_calls_per_run: 5
  backoff_base_seconds: 30
  backoff_max_seconds: 120

store:
  enabled: true
  filename: state.sqlite
  content_max_chars: 500

server:
  host: 127.0.0.1
  port: 3001

discovery:
  keywords:
    - cursor
    - Cursor
    - "  "
  communities:
    - ClaudeAI
  window: 24h
"""


class TestConfig(unittest.TestCase):
    def _write(self, td: str, text: str) -> Path:
        path = Path(td) / "config.yaml"
        path.write_text(text, encoding="utf-8")
        return path

    def test_load_config_ok(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            cfg = load_config(self._write(td, _VALID_YAML))

            self.assertEqual(cfg.reddit.base_url, "https://www.reddit.com")
            self.assertEqual(cfg.reddit.listing_limit, 25)
            self.assertEqual(cfg.rate_limit.max_calls_per_run, 5)
            self.assertEqual(cfg.store.content_max_chars, 500)
            self.assertEqual(cfg.discovery.keywords, ["cursor"])
            self.assertEqual(cfg.discovery.communities, ["ClaudeAI"])
            self.assertEqual(cfg.discovery.window, "24h")

    def test_empty_file_uses_defaults_without_community_list(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            cfg = load_config(self._write(td, ""))

            self.assertEqual(cfg.discovery.communities, [])
            self.assertEqual(cfg.discovery.keywords, [])
            self.assertEqual(cfg.rate_limit.max_calls_per_window, 30)
            self.assertEqual(cfg.server.port, 3001)

    def test_rejects_backoff_ceiling_below_base(self) -> None:
        bad_yaml = _VALID_YAML.replace("backoff_max_seconds: 120", "backoff_max_seconds: 10")
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(ConfigError) as ctx:
                load_config(self._write(td, bad_yaml))
            self.assertIn("rate_limit", str(ctx.exception))

    def test_rejects_unknown_keys_and_bad_window(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(ConfigError):
                load_config(self._write(td, "reddit:\n  nope: 1\n"))
            with self.assertRaises(ConfigError):
                load_config(self._write(td, "discovery:\n  window: week\n"))

    def test_missing_file_and_non_mapping(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(ConfigError):
                load_config(Path(td) / "missing.yaml")
            with self.assertRaises(ConfigError):
                load_config(self._write(td, "- a\n- b\n"))

    def test_config_hash_is_stable(self) -> None:
        a = AppConfig()
        b = AppConfig.model_validate({})
        self.assertEqual(config_sha256(a), config_sha256(b))

        c = AppConfig.model_validate({"reddit": {"listing_limit": 10}})
        self.assertNotEqual(config_sha256(a), config_sha256(c))

    def test_config_hash_ignores_server_bind_settings(self) -> None:
        a = AppConfig()
        moved = AppConfig.model_validate({"server": {"host": "0.0.0.0", "port": 8080}})
        self.assertEqual(config_sha256(a), config_sha256(moved))


if __name__ == "__main__":
    unittest.main()
