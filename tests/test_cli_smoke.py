from __future__ import annotations

import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path

from tests.payloads import page_json, picture_post, text_post, video_post


class TestCLISmoke(unittest.TestCase):
    def setUp(self) -> None:
        self.repo_root = Path(__file__).resolve().parents[1]
        self._td = tempfile.TemporaryDirectory()
        self.tmp = Path(self._td.name)
        self.data_dir = self.tmp / "data"

        env = dict(os.environ)
        env.pop("WEIBO_FAVS_HOME", None)
        existing_pp = env.get("PYTHONPATH", "")
        env["PYTHONPATH"] = (
            f"{self.repo_root}{os.pathsep}{existing_pp}" if existing_pp else str(self.repo_root)
        )
        self.env = env

    def tearDown(self) -> None:
        self._td.cleanup()

    def _run(self, *args: str) -> subprocess.CompletedProcess[str]:
        command, rest = args[0], list(args[1:])
        # Subcommand groups take the shared options after their action.
        if command in ("tombstone", "settings"):
            argv = [command, rest[0], "--data-dir", str(self.data_dir), *rest[1:]]
        else:
            argv = [command, "--data-dir", str(self.data_dir), *rest]
        return subprocess.run(
            [sys.executable, "-m", "weibo_favs", *argv],
            cwd=self.repo_root,
            env=self.env,
            capture_output=True,
            text=True,
            encoding="utf-8",
        )

    def test_archive_crawl_index_search(self) -> None:
        saved = self.tmp / "saved.html"
        body = page_json([text_post(), picture_post(), video_post()]).replace("&", "&amp;")
        saved.write_text(f"<html><body><pre>{body}</pre></body></html>", encoding="utf-8")

        proc = self._run("archive", "--page", "1", str(saved))
        self.assertEqual(proc.returncode, 0, msg=proc.stderr)
        self.assertTrue((self.data_dir / "pages" / "page_0001.json").exists())

        proc = self._run("crawl")
        self.assertEqual(proc.returncode, 2, msg=proc.stderr)

        proc = self._run("settings", "set", "max_page=1")
        self.assertEqual(proc.returncode, 0, msg=proc.stderr)
        proc = self._run("settings", "show")
        self.assertIn("max_page = 1", proc.stdout)

        proc = self._run("crawl")
        self.assertEqual(proc.returncode, 0, msg=proc.stderr)
        self.assertIn("stored=3", proc.stdout)

        proc = self._run("index")
        self.assertEqual(proc.returncode, 0, msg=proc.stderr)
        self.assertIn("indexed=3", proc.stdout)

        proc = self._run("search", "天气不错")
        self.assertEqual(proc.returncode, 0, msg=proc.stderr)
        self.assertIn("https://weibo.com/2131170823/LauKWbzWq", proc.stdout)
        self.assertIn("@梁博penny: 今天天气不错", proc.stdout)

        proc = self._run("search", "--media-type", "2")
        self.assertIn("https://video.weibo.com/show?fid=1034:4723662272790630", proc.stdout)

        proc = self._run("tombstone", "add", "4723662300000001", "nonsense")
        self.assertEqual(proc.returncode, 4)
        self.assertIn("added=1", proc.stdout)

        self._run("index")
        proc = self._run("search", "天气不错")
        self.assertEqual(proc.stdout.strip(), "")

        self.assertTrue((self.data_dir / "run.log").exists())

    def test_bad_setting_is_config_error(self) -> None:
        proc = self._run("settings", "set", "colour=blue")
        self.assertEqual(proc.returncode, 2)
        self.assertIn("settings not supported", proc.stderr)


if __name__ == "__main__":
    unittest.main()
