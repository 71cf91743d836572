from __future__ import annotations

from dataclasses import dataclass

from .run_log import RunLogger
from .search_index import SearchIndex
from .storage import PostStore


@dataclass(frozen=True)
class IndexResult:
    scanned: int
    indexed: int
    tombstoned: int
    invalid: int


def rebuild_index(
    store: PostStore,
    index: SearchIndex,
    *,
    batch_size: int = 10000,
    logger: RunLogger | None = None,
) -> IndexResult:
    """
    Rebuild the search index from the row store.

    The index is cleared first. Tombstoned ids and posts without an author are
    left out.
    """
    index.clear()
    tombstones = store.tombstone_ids()
    if logger is not None:
        logger.info("index_started", batch_size=batch_size, tombstones=len(tombstones))

    scanned = indexed = tombstoned = invalid = 0
    for batch in store.iter_posts(batch_size=batch_size):
        scanned += len(batch)

        keep = []
        for post in batch:
            if post.id in tombstones:
                tombstoned += 1
                continue
            if not post.is_valid():
                invalid += 1
                continue
            keep.append(post)

        if keep:
            indexed += index.index_posts(keep)
            if logger is not None:
                logger.info("index_batch_written", posts=len(keep), last_id=batch[-1].id)

    result = IndexResult(scanned=scanned, indexed=indexed, tombstoned=tombstoned, invalid=invalid)
    if logger is not None:
        logger.info(
            "index_completed",
            scanned=result.scanned,
            indexed=result.indexed,
            tombstoned=result.tombstoned,
            invalid=result.invalid,
        )
    return result
