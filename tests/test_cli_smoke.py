from __future__ import annotations

import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path


class TestCLISmoke(unittest.TestCase):
    def test_offline_run_cli(self) -> None:
        repo_root = Path(__file__).resolve().parents[1]

        with tempfile.TemporaryDirectory() as td:
            cfg_path = Path(td) / "config.yaml"
            cfg_path.write_text("{}", encoding="utf-8")
            out_dir = Path(td) / "out"

            env = dict(os.environ)
            existing_pp = env.get("PYTHONPATH", "")
            env["PYTHONPATH"] = (
                f"{repo_root}{os.pathsep}{existing_pp}" if existing_pp else str(repo_root)
            )

            proc = subprocess.run(
                [
                    sys.executable,
                    "-m",
                    "reddit_discovery",
                    "run",
                    "--config",
                    str(cfg_path),
                    "--out",
                    str(out_dir),
                    "--offline",
                    "--keyword",
                    "ai",
                    "--community",
                    "cursor",
                ],
                cwd=repo_root,
                env=env,
                capture_output=True,
                text=True,
            )

            self.assertEqual(proc.returncode, 0, msg=proc.stderr)
            self.assertIn("status=completed", proc.stdout)
            self.assertIn("run_id=", proc.stdout)
            self.assertIn("posts_found=2", proc.stdout)
            self.assertIn("inserted=2", proc.stdout)
            self.assertIn("by_community.cursor=2", proc.stdout)
            self.assertTrue((out_dir / "state.sqlite").exists())

    def test_run_without_communities_exits_nonzero(self) -> None:
        repo_root = Path(__file__).resolve().parents[1]

        with tempfile.TemporaryDirectory() as td:
            cfg_path = Path(td) / "config.yaml"
            cfg_path.write_text("store:\n  enabled: false\n", encoding="utf-8")

            env = dict(os.environ)
            existing_pp = env.get("PYTHONPATH", "")
            env["PYTHONPATH"] = (
                f"{repo_root}{os.pathsep}{existing_pp}" if existing_pp else str(repo_root)
            )

            proc = subprocess.run(
                [
                    sys.executable,
                    "-m",
                    "reddit_discovery",
                    "run",
                    "--config",
                    str(cfg_path),
                    "--out",
                    str(Path(td) / "out"),
                    "--offline",
                    "--keyword",
                    "ai",
                ],
                cwd=repo_root,
                env=env,
                capture_output=True,
                text=True,
            )

            self.assertEqual(proc.returncode, 4, msg=proc.stderr)
            self.assertIn("status=failed", proc.stdout)
            self.assertIn("error=", proc.stdout)
            self.assertFalse((Path(td) / "out" / "state.sqlite").exists())


if __name__ == "__main__":
    unittest.main()
