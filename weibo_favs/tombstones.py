from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from .dedupe import canonicalize_url, is_post_url
from .post import Post
from .run_log import RunLogger
from .storage import PostStore


@dataclass
class TombstoneResult:
    added: list[int] = field(default_factory=list)
    not_found: list[str] = field(default_factory=list)
    malformed: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.not_found and not self.malformed


def _lookup(store: PostStore, item: str) -> tuple[Post | None, bool]:
    """Returns (post, recognized) for a post id or a post URL."""
    value = (item or "").strip()
    if value.isdigit():
        return store.get_by_id(int(value)), True
    if is_post_url(value):
        return store.get_by_url(canonicalize_url(value)), True
    return None, False


def add_tombstones(
    store: PostStore,
    items: Iterable[str],
    *,
    logger: RunLogger | None = None,
) -> TombstoneResult:
    """
    Mark stored posts, given by id or URL, so they are never indexed.

    Unknown and malformed items are reported and skipped.
    """
    result = TombstoneResult()
    for item in items:
        post, recognized = _lookup(store, item)
        if not recognized:
            result.malformed.append(item)
            if logger is not None:
                logger.warning("tombstone_item_malformed", item=item)
            continue
        if post is None:
            result.not_found.append(item)
            if logger is not None:
                logger.warning("tombstone_post_not_found", item=item)
            continue

        store.add_tombstone(post)
        result.added.append(post.id)
        if logger is not None:
            logger.info("tombstone_added", post_id=post.id, url=post.url())
    return result
