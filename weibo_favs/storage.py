from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Iterator

from pydantic import ValidationError

from .dedupe import canonicalize_url
from .errors import StorageError
from .post import Post
from .storage_schema import initialize_sqlite

MAX_PAGE_SETTING = "max_page"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _as_path(value: str | Path) -> str:
    return str(value)


def _post_from_content(raw: Any, *, post_id: Any) -> Post:
    content = str(raw or "").strip()
    if not content:
        raise StorageError(f"Stored post has empty content: id={post_id}")
    try:
        return Post.from_json(content)
    except ValidationError as e:
        raise StorageError(f"Stored post content could not be parsed: id={post_id}: {e}") from e


class PostStore:
    """
    SQLite row store for canonical posts, tombstones, and settings.

    Posts are keyed by id and can also be looked up by their canonical URL.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._conn.row_factory = sqlite3.Row

    @classmethod
    def open(cls, path: str | Path) -> "PostStore":
        db_path = _as_path(path)
        if db_path != ":memory:":
            p = Path(db_path)
            p.parent.mkdir(parents=True, exist_ok=True)

        try:
            conn = sqlite3.connect(db_path)
        except sqlite3.DatabaseError as e:
            raise StorageError(f"Failed to open sqlite database: {db_path}: {e}") from e

        try:
            initialize_sqlite(conn)
        except Exception as e:
            conn.close()
            raise StorageError(f"Failed to initialize sqlite schema: {e}") from e

        return cls(conn)

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "PostStore":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    # posts

    def add_post(self, post: Post, *, stored_at: str | None = None) -> None:
        self.add_posts([post], stored_at=stored_at)

    def add_posts(self, posts: Iterable[Post], *, stored_at: str | None = None) -> int:
        """Upsert posts in a single transaction; returns the number written."""
        ts = (stored_at or _utc_now_iso()).strip()
        rows = [(p.id, p.url(), p.to_json(), ts) for p in posts]
        if not rows:
            return 0

        try:
            with self._conn:
                self._conn.executemany(
                    """
                    INSERT INTO post(id, url, content, stored_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                      url = excluded.url,
                      content = excluded.content,
                      stored_at = excluded.stored_at
                    """.strip(),
                    rows,
                )
        except sqlite3.DatabaseError as e:
            raise StorageError(f"Failed to upsert posts: {e}") from e
        return len(rows)

    def posts_after(self, since_id: int, limit: int) -> list[Post]:
        """Posts with id > since_id, ordered by id."""
        if limit <= 0:
            return []

        try:
            rows = self._conn.execute(
                "SELECT id, content FROM post WHERE id > ? ORDER BY id LIMIT ?",
                (int(since_id), int(limit)),
            ).fetchall()
        except sqlite3.DatabaseError as e:
            raise StorageError(f"Failed to scan posts: {e}") from e

        return [_post_from_content(r["content"], post_id=r["id"]) for r in rows]

    def iter_posts(self, *, batch_size: int = 10000) -> Iterator[list[Post]]:
        """Scan all posts by id in batches."""
        if batch_size <= 0:
            raise ValueError("batch_size must be >= 1")

        since_id = 0
        while True:
            batch = self.posts_after(since_id, batch_size)
            if batch:
                yield batch
            if len(batch) < batch_size:
                return
            since_id = batch[-1].id

    def get_by_id(self, post_id: int) -> Post | None:
        row = self._conn.execute(
            "SELECT id, content FROM post WHERE id = ?",
            (int(post_id),),
        ).fetchone()
        if row is None:
            return None
        return _post_from_content(row["content"], post_id=row["id"])

    def get_by_url(self, url: str) -> Post | None:
        u = canonicalize_url(url)
        if not u:
            raise ValueError("url must be non-empty")

        row = self._conn.execute(
            "SELECT id, content FROM post WHERE url = ? ORDER BY id LIMIT 1",
            (u,),
        ).fetchone()
        if row is None:
            return None
        return _post_from_content(row["content"], post_id=row["id"])

    def post_count(self) -> int:
        row = self._conn.execute("SELECT COUNT(1) AS n FROM post").fetchone()
        return int(row["n"]) if row is not None else 0

    def delete_all_posts(self) -> None:
        try:
            with self._conn:
                self._conn.execute("DELETE FROM post")
        except sqlite3.DatabaseError as e:
            raise StorageError(f"Failed to delete posts: {e}") from e

    # tombstones

    def add_tombstone(self, post: Post, *, created_at: str | None = None) -> None:
        ts = (created_at or _utc_now_iso()).strip()
        try:
            with self._conn:
                self._conn.execute(
                    """
                    INSERT INTO post_tombstone(id, url, created_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET url = excluded.url
                    """.strip(),
                    (post.id, post.url(), ts),
                )
        except sqlite3.DatabaseError as e:
            raise StorageError(f"Failed to add tombstone: {e}") from e

    def tombstone_ids(self) -> set[int]:
        rows = self._conn.execute("SELECT id FROM post_tombstone").fetchall()
        return {int(r["id"]) for r in rows}

    def clear_tombstones(self) -> None:
        try:
            with self._conn:
                self._conn.execute("DELETE FROM post_tombstone")
        except sqlite3.DatabaseError as e:
            raise StorageError(f"Failed to clear tombstones: {e}") from e

    # settings

    def get_setting(self, name: str) -> str | None:
        key = (name or "").strip()
        if not key:
            raise ValueError("name must be non-empty")

        row = self._conn.execute(
            "SELECT value FROM settings WHERE name = ?",
            (key,),
        ).fetchone()
        if row is None:
            return None
        return str(row["value"])

    def set_setting(self, name: str, value: str) -> None:
        key = (name or "").strip()
        if not key:
            raise ValueError("name must be non-empty")

        try:
            with self._conn:
                self._conn.execute(
                    """
                    INSERT INTO settings(name, value) VALUES (?, ?)
                    ON CONFLICT(name) DO UPDATE SET value = excluded.value
                    """.strip(),
                    (key, str(value)),
                )
        except sqlite3.DatabaseError as e:
            raise StorageError(f"Failed to write setting {key}: {e}") from e

    def get_max_page(self) -> int | None:
        raw = self.get_setting(MAX_PAGE_SETTING)
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError as e:
            raise StorageError(f"Stored max_page is not an integer: {raw!r}") from e

    def set_max_page(self, max_page: int) -> None:
        if int(max_page) < 1:
            raise ValueError("max_page must be >= 1")
        self.set_setting(MAX_PAGE_SETTING, str(int(max_page)))
