from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Sequence

from .errors import SearchIndexError
from .post import MediaType, Post

# The trigram tokenizer matches substrings, which is what CJK text needs since
# it has no word separators. It cannot match terms shorter than three
# characters; those fall back to LIKE.
_MIN_FTS_TERM_CHARS = 3

_SCHEMA = """
CREATE TABLE IF NOT EXISTS doc (
  id INTEGER PRIMARY KEY,
  url TEXT NOT NULL,
  user TEXT NOT NULL,
  text TEXT NOT NULL,
  media_type INTEGER NOT NULL,
  retweeted_user TEXT,
  retweeted_text TEXT
);

CREATE INDEX IF NOT EXISTS idx_doc_media_type
  ON doc(media_type);

CREATE INDEX IF NOT EXISTS idx_doc_user
  ON doc(user);

CREATE VIRTUAL TABLE IF NOT EXISTS doc_fts USING fts5(
  text,
  retweeted_text,
  content='doc',
  content_rowid='id',
  tokenize='trigram'
);

CREATE TRIGGER IF NOT EXISTS doc_fts_ai AFTER INSERT ON doc BEGIN
  INSERT INTO doc_fts(rowid, text, retweeted_text)
  VALUES (new.id, new.text, IFNULL(new.retweeted_text, ''));
END;

CREATE TRIGGER IF NOT EXISTS doc_fts_ad AFTER DELETE ON doc BEGIN
  INSERT INTO doc_fts(doc_fts, rowid, text, retweeted_text)
  VALUES ('delete', old.id, old.text, IFNULL(old.retweeted_text, ''));
END;

CREATE TRIGGER IF NOT EXISTS doc_fts_au AFTER UPDATE ON doc BEGIN
  INSERT INTO doc_fts(doc_fts, rowid, text, retweeted_text)
  VALUES ('delete', old.id, old.text, IFNULL(old.retweeted_text, ''));
  INSERT INTO doc_fts(rowid, text, retweeted_text)
  VALUES (new.id, new.text, IFNULL(new.retweeted_text, ''));
END;
""".strip()


@dataclass(frozen=True)
class IndexDocument:
    id: int
    url: str
    user: str
    text: str
    media_type: int
    retweeted_user: str | None = None
    retweeted_text: str | None = None


@dataclass(frozen=True)
class SearchParams:
    query: str | None = None
    media_type: int | None = None
    user: str | None = None


@dataclass(frozen=True)
class SearchHit:
    url: str
    user: str
    text: str
    media_type: int
    retweeted_user: str | None = None
    retweeted_text: str | None = None


def index_document(post: Post) -> IndexDocument:
    """The indexable fields of a canonical post."""
    retweeted = post.retweeted_post
    return IndexDocument(
        id=post.id,
        url=post.url(),
        user=post.user.screen_name,
        text=post.text_raw,
        media_type=int(post.media_type()),
        retweeted_user=retweeted.user.screen_name if retweeted is not None else None,
        retweeted_text=retweeted.text_raw if retweeted is not None else None,
    )


def _fts_phrase(term: str) -> str:
    return '"' + term.replace('"', '""') + '"'


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _build_query(params: SearchParams, limit: int) -> tuple[str, list[Any]]:
    terms = (params.query or "").split()
    fts_terms = [t for t in terms if len(t) >= _MIN_FTS_TERM_CHARS]
    like_terms = [t for t in terms if len(t) < _MIN_FTS_TERM_CHARS]

    where: list[str] = []
    args: list[Any] = []

    if fts_terms:
        where.append("doc_fts MATCH ?")
        args.append(" AND ".join(_fts_phrase(t) for t in fts_terms))

    for term in like_terms:
        pattern = _like_pattern(term)
        where.append(
            "(d.text LIKE ? ESCAPE '\\' OR IFNULL(d.retweeted_text, '') LIKE ? ESCAPE '\\')"
        )
        args.extend([pattern, pattern])

    if params.media_type is not None:
        where.append("d.media_type = ?")
        args.append(int(params.media_type))

    user = (params.user or "").strip()
    if user:
        where.append("d.user = ?")
        args.append(user)

    cols = "d.url, d.user, d.text, d.media_type, d.retweeted_user, d.retweeted_text"
    if fts_terms:
        sql = f"SELECT {cols} FROM doc_fts JOIN doc d ON d.id = doc_fts.rowid"
        order = "ORDER BY bm25(doc_fts), d.id DESC"
    else:
        sql = f"SELECT {cols} FROM doc d"
        order = "ORDER BY d.id DESC"

    if where:
        sql += " WHERE " + " AND ".join(where)
    sql += f" {order} LIMIT ?"
    args.append(int(limit))
    return sql, args


class SearchIndex:
    """Full-text index over canonical posts, stored in its own SQLite file."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._conn.row_factory = sqlite3.Row

    @classmethod
    def open(cls, path: str | Path) -> "SearchIndex":
        db_path = str(path)
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            conn = sqlite3.connect(db_path)
        except sqlite3.DatabaseError as e:
            raise SearchIndexError(f"Failed to open index database: {db_path}: {e}") from e

        try:
            with conn:
                conn.executescript(_SCHEMA)
        except sqlite3.DatabaseError as e:
            conn.close()
            # Usually an SQLite build without FTS5 or the trigram tokenizer.
            raise SearchIndexError(f"Failed to initialize index schema: {e}") from e

        return cls(conn)

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "SearchIndex":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def index_posts(self, posts: Iterable[Post]) -> int:
        return self.index_documents(index_document(p) for p in posts)

    def index_documents(self, docs: Iterable[IndexDocument]) -> int:
        rows = [
            (d.id, d.url, d.user, d.text, int(d.media_type), d.retweeted_user, d.retweeted_text)
            for d in docs
        ]
        if not rows:
            return 0

        try:
            with self._conn:
                self._conn.executemany(
                    """
                    INSERT INTO doc(id, url, user, text, media_type, retweeted_user, retweeted_text)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                      url = excluded.url,
                      user = excluded.user,
                      text = excluded.text,
                      media_type = excluded.media_type,
                      retweeted_user = excluded.retweeted_user,
                      retweeted_text = excluded.retweeted_text
                    """.strip(),
                    rows,
                )
        except sqlite3.DatabaseError as e:
            raise SearchIndexError(f"Failed to index documents: {e}") from e
        return len(rows)

    def search(self, params: SearchParams, *, limit: int = 10) -> list[SearchHit]:
        if limit <= 0:
            return []
        if params.media_type is not None and params.media_type not in {int(m) for m in MediaType}:
            raise ValueError(f"Unknown media type code: {params.media_type}")

        sql, args = _build_query(params, limit)
        try:
            rows = self._conn.execute(sql, args).fetchall()
        except sqlite3.DatabaseError as e:
            raise SearchIndexError(f"Search failed: {e}") from e

        return [_hit_from_row(r) for r in rows]

    def document_count(self) -> int:
        row = self._conn.execute("SELECT COUNT(1) AS n FROM doc").fetchone()
        return int(row["n"]) if row is not None else 0

    def clear(self) -> None:
        try:
            with self._conn:
                self._conn.execute("DELETE FROM doc")
                self._conn.execute("INSERT INTO doc_fts(doc_fts) VALUES ('rebuild')")
        except sqlite3.DatabaseError as e:
            raise SearchIndexError(f"Failed to clear index: {e}") from e


def _hit_from_row(row: sqlite3.Row) -> SearchHit:
    return SearchHit(
        url=str(row["url"]),
        user=str(row["user"]),
        text=str(row["text"]),
        media_type=int(row["media_type"]),
        retweeted_user=str(row["retweeted_user"]) if row["retweeted_user"] is not None else None,
        retweeted_text=str(row["retweeted_text"]) if row["retweeted_text"] is not None else None,
    )


def format_hit(hit: SearchHit) -> str:
    """Two-line rendering used by the search command."""
    text = hit.text.replace("\n", " ")
    out = f"{hit.url}\n@{hit.user}: {text}"
    if hit.retweeted_user is not None:
        out += f"  @{hit.retweeted_user}: "
    if hit.retweeted_text is not None:
        out += hit.retweeted_text.replace("\n", " ")
    return out


def format_hits(hits: Sequence[SearchHit]) -> str:
    return "\n\n".join(format_hit(h) for h in hits)
