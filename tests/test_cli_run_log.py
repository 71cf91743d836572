from __future__ import annotations

import json
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path


class TestCrawlCommandWritesLog(unittest.TestCase):
    def test_crawl_logs_config_error(self) -> None:
        repo_root = Path(__file__).resolve().parents[1]

        with tempfile.TemporaryDirectory() as td:
            data_dir = Path(td) / "data"

            env = dict(os.environ)
            env.pop("WEIBO_FAVS_HOME", None)
            existing_pp = env.get("PYTHONPATH", "")
            env["PYTHONPATH"] = (
                f"{repo_root}{os.pathsep}{existing_pp}" if existing_pp else str(repo_root)
            )

            proc = subprocess.run(
                [sys.executable, "-m", "weibo_favs", "crawl", "--data-dir", str(data_dir)],
                cwd=repo_root,
                env=env,
                capture_output=True,
                text=True,
            )

            self.assertEqual(proc.returncode, 2, msg=proc.stderr)
            self.assertIn("No end page", proc.stderr)

            log_path = data_dir / "run.log"
            self.assertTrue(log_path.exists())

            events = [
                json.loads(ln)["event"]
                for ln in log_path.read_text(encoding="utf-8").splitlines()
                if ln.strip()
            ]
            self.assertEqual(events, ["crawl_command_started", "crawl_command_failed"])


if __name__ == "__main__":
    unittest.main()
