from __future__ import annotations

import unittest

from tests._posts import make_post
from weibo_favs.indexing import rebuild_index
from weibo_favs.post import User
from weibo_favs.search_index import SearchIndex, SearchParams
from weibo_favs.storage import PostStore


class TestRebuildIndex(unittest.TestCase):
    def test_skips_tombstones_and_invalid_posts(self) -> None:
        with PostStore.open(":memory:") as store, SearchIndex.open(":memory:") as index:
            hidden = make_post(2, text="不想再看到这条")
            store.add_posts(
                [
                    make_post(1, text="第一条收藏内容"),
                    hidden,
                    make_post(3, text="原微博已删除", retweeted=make_post(30, user_id=0)),
                    make_post(4, text="第四条收藏内容"),
                ]
            )
            store.add_tombstone(hidden)

            result = rebuild_index(store, index, batch_size=2)

            self.assertEqual(result.scanned, 4)
            self.assertEqual(result.indexed, 2)
            self.assertEqual(result.tombstoned, 1)
            self.assertEqual(result.invalid, 1)
            self.assertEqual(index.document_count(), 2)
            self.assertEqual(index.search(SearchParams(query="不想再看到")), [])

    def test_rebuild_drops_previous_documents(self) -> None:
        with PostStore.open(":memory:") as store, SearchIndex.open(":memory:") as index:
            store.add_posts([make_post(1, text="会被删除的收藏")])
            rebuild_index(store, index)
            self.assertEqual(index.document_count(), 1)

            store.delete_all_posts()
            store.add_posts([make_post(2, text="新的收藏内容")])
            rebuild_index(store, index)

            self.assertEqual(index.document_count(), 1)
            self.assertEqual(index.search(SearchParams(query="会被删除")), [])

    def test_post_without_author_is_not_indexed(self) -> None:
        with PostStore.open(":memory:") as store, SearchIndex.open(":memory:") as index:
            store.add_post(make_post(1).model_copy(update={"user": User()}))
            result = rebuild_index(store, index)
            self.assertEqual(result.invalid, 1)
            self.assertEqual(result.indexed, 0)


if __name__ == "__main__":
    unittest.main()
