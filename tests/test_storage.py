from __future__ import annotations

import sqlite3
import tempfile
import unittest
from pathlib import Path

from tests._posts import make_post
from weibo_favs.errors import StorageError
from weibo_favs.post import Pictures
from weibo_favs.storage import PostStore
from weibo_favs.storage_schema import SCHEMA_VERSION


class TestPostStore(unittest.TestCase):
    def test_schema_is_migrated_once(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            db_path = Path(td) / "nested" / "db.sqlite"

            with PostStore.open(db_path):
                pass
            with PostStore.open(db_path) as store:
                rows = store.conn.execute("SELECT version FROM schema_migrations").fetchall()
                self.assertEqual([int(r["version"]) for r in rows], list(range(1, SCHEMA_VERSION + 1)))

    def test_upsert_and_lookup(self) -> None:
        with PostStore.open(":memory:") as store:
            post = make_post(10, media=Pictures(urls=("https://img/a.jpg",)))
            self.assertEqual(store.add_posts([post, make_post(11)]), 2)

            self.assertEqual(store.post_count(), 2)
            self.assertEqual(store.get_by_id(10), post)
            self.assertIsNone(store.get_by_id(99))

            changed = make_post(10, text="edited")
            store.add_post(changed)
            self.assertEqual(store.post_count(), 2)
            fetched = store.get_by_id(10)
            assert fetched is not None
            self.assertEqual(fetched.text_raw, "edited")

    def test_get_by_url_canonicalizes(self) -> None:
        with PostStore.open(":memory:") as store:
            post = make_post(10)
            store.add_post(post)

            self.assertEqual(store.get_by_url(post.url()), post)
            self.assertEqual(store.get_by_url(f"http://www.weibo.com/2131170823/{post.mblogid}/?from=x"), post)
            self.assertIsNone(store.get_by_url("https://weibo.com/1/Nope"))
            with self.assertRaises(ValueError):
                store.get_by_url("  ")

    def test_posts_after_and_batches(self) -> None:
        with PostStore.open(":memory:") as store:
            store.add_posts([make_post(i) for i in (5, 1, 3, 4, 2)])

            self.assertEqual([p.id for p in store.posts_after(2, 2)], [3, 4])
            self.assertEqual(store.posts_after(0, 0), [])
            batches = list(store.iter_posts(batch_size=2))
            self.assertEqual([[p.id for p in b] for b in batches], [[1, 2], [3, 4], [5]])

            with self.assertRaises(ValueError):
                list(store.iter_posts(batch_size=0))

    def test_delete_all_posts(self) -> None:
        with PostStore.open(":memory:") as store:
            store.add_posts([make_post(1), make_post(2)])
            store.delete_all_posts()
            self.assertEqual(store.post_count(), 0)

    def test_unparsable_content_raises(self) -> None:
        with PostStore.open(":memory:") as store:
            store.conn.execute(
                "INSERT INTO post(id, url, content, stored_at) VALUES (1, 'u', '{\"id\": 1}', 't')"
            )
            with self.assertRaises(StorageError):
                store.get_by_id(1)

    def test_tombstones(self) -> None:
        with PostStore.open(":memory:") as store:
            store.add_tombstone(make_post(1))
            store.add_tombstone(make_post(1))
            store.add_tombstone(make_post(2))
            self.assertEqual(store.tombstone_ids(), {1, 2})

            store.clear_tombstones()
            self.assertEqual(store.tombstone_ids(), set())

    def test_settings(self) -> None:
        with PostStore.open(":memory:") as store:
            self.assertIsNone(store.get_max_page())
            store.set_max_page(42)
            store.set_max_page(43)
            self.assertEqual(store.get_max_page(), 43)
            self.assertEqual(store.get_setting("max_page"), "43")

            with self.assertRaises(ValueError):
                store.set_max_page(0)

            store.set_setting("max_page", "many")
            with self.assertRaises(StorageError):
                store.get_max_page()

    def test_open_rejects_non_database_file(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "db.sqlite"
            path.write_bytes(b"definitely not sqlite" * 100)
            with self.assertRaises(StorageError):
                PostStore.open(path)

    def test_store_is_plain_sqlite(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "db.sqlite"
            with PostStore.open(path) as store:
                store.add_post(make_post(7))

            conn = sqlite3.connect(path)
            try:
                (url,) = conn.execute("SELECT url FROM post WHERE id = 7").fetchone()
            finally:
                conn.close()
            self.assertEqual(url, "https://weibo.com/2131170823/Mb0000007")


if __name__ == "__main__":
    unittest.main()
