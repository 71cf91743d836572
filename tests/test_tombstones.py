from __future__ import annotations

import unittest

from tests._posts import make_post
from weibo_favs.storage import PostStore
from weibo_favs.tombstones import add_tombstones


class TestAddTombstones(unittest.TestCase):
    def test_accepts_ids_and_urls(self) -> None:
        with PostStore.open(":memory:") as store:
            a, b = make_post(1), make_post(2)
            store.add_posts([a, b])

            result = add_tombstones(store, ["1", f"http://m.weibo.com/2131170823/{b.mblogid}?from=x"])

            self.assertTrue(result.ok)
            self.assertEqual(result.added, [1, 2])
            self.assertEqual(store.tombstone_ids(), {1, 2})

    def test_reports_unknown_and_malformed_items(self) -> None:
        with PostStore.open(":memory:") as store:
            store.add_post(make_post(1))

            result = add_tombstones(
                store,
                ["99", "https://weibo.com/1/Nope", "hello", "https://weibo.com/u/2131170823", "1"],
            )

            self.assertFalse(result.ok)
            self.assertEqual(result.not_found, ["99", "https://weibo.com/1/Nope"])
            self.assertEqual(result.malformed, ["hello", "https://weibo.com/u/2131170823"])
            self.assertEqual(store.tombstone_ids(), {1})


if __name__ == "__main__":
    unittest.main()
