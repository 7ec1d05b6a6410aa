from __future__ import annotations

import json
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path
from typing import Any


def _run_cli(repo_root: Path, *args: str) -> subprocess.CompletedProcess[str]:
    env = dict(os.environ)
    existing_pp = env.get("PYTHONPATH", "")
    env["PYTHONPATH"] = f"{repo_root}{os.pathsep}{existing_pp}" if existing_pp else str(repo_root)

    return subprocess.run(
        [sys.executable, "-m", "reddit_discovery", *args],
        cwd=repo_root,
        env=env,
        capture_output=True,
        text=True,
    )


def _read_events(log_path: Path) -> list[dict[str, Any]]:
    records: list[dict[str, Any]] = []
    for ln in log_path.read_text(encoding="utf-8").splitlines():
        if not ln.strip():
            continue
        try:
            obj = json.loads(ln)
        except ValueError:
            continue
        if isinstance(obj, dict):
            records.append(obj)
    return records


class TestRunCommandWritesLog(unittest.TestCase):
    def setUp(self) -> None:
        self.repo_root = Path(__file__).resolve().parents[1]

    def test_run_creates_run_log_on_config_error(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            out_dir = Path(td) / "out"
            missing_cfg = Path(td) / "missing_config.yaml"

            proc = _run_cli(
                self.repo_root, "run", "--config", str(missing_cfg), "--out", str(out_dir)
            )

            self.assertEqual(proc.returncode, 2, msg=proc.stderr)
            self.assertIn("Config file not found", proc.stderr)

            log_path = out_dir / "run.log"
            self.assertTrue(log_path.exists())

            events = [r.get("event") for r in _read_events(log_path)]
            self.assertIn("run_command_started", events)
            self.assertIn("run_command_failed", events)

    def test_offline_run_logs_each_stage_with_run_id(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            cfg_path = Path(td) / "config.yaml"
            cfg_path.write_text(
                "discovery:\n  keywords: [claude]\n  communities: [ClaudeAI, cursor]\n",
                encoding="utf-8",
            )
            out_dir = Path(td) / "out"

            proc = _run_cli(
                self.repo_root, "run", "--config", str(cfg_path), "--out", str(out_dir), "--offline"
            )
            self.assertEqual(proc.returncode, 0, msg=proc.stderr)

            records = _read_events(out_dir / "run.log")
            events = [r.get("event") for r in records]

            for expected in (
                "run_command_started",
                "config_loaded",
                "discovery_started",
                "fetch_completed",
                "community_processed",
                "discovery_completed",
                "run_command_completed",
            ):
                self.assertIn(expected, events)

            self.assertEqual(events.count("fetch_completed"), 2)

            completed = next(r for r in records if r.get("event") == "discovery_completed")
            self.assertTrue(completed.get("run_id"))
            self.assertEqual(completed["data"]["posts_found"], 2)


if __name__ == "__main__":
    unittest.main()
