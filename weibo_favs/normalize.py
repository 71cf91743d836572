from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from .links import resolve_short_links
from .media import classify_media
from .post import Post, User
from .raw import (
    PageInfo,
    RawPost,
    RawRetweetedPost,
    RawUser,
    RecordFailure,
    UrlStruct,
    parse_page_records,
)


@dataclass(frozen=True)
class NormalizedPage:
    posts: tuple[Post, ...]
    failures: tuple[RecordFailure, ...]


def _user(raw: RawUser | None) -> User:
    if raw is None:
        return User()
    return User(id=raw.id, screen_name=raw.screen_name)


def _normalize_retweeted(
    raw: RawRetweetedPost,
    url_structs: Sequence[UrlStruct],
    page_info: PageInfo | None,
) -> Post:
    # The nested record has no url_struct/page_info of its own; it resolves
    # against the outer record's tables.
    text, video = resolve_short_links(raw.text_raw, url_structs, page_info)

    retweeted: Post | None = None
    if raw.retweeted_status is not None:
        retweeted = _normalize_retweeted(raw.retweeted_status, url_structs, page_info)

    return Post(
        id=raw.id,
        mblogid=raw.mblogid,
        user=_user(raw.user),
        text_raw=text,
        is_long_text=raw.is_long_text,
        media_asset=classify_media(raw.pic_ids, raw.pic_infos, video),
        created_at=raw.created_at,
        retweeted_post=retweeted,
    )


def normalize_raw_post(raw: RawPost) -> Post:
    """Build the canonical post (and its retweeted post, if any) from a raw record."""
    text, video = resolve_short_links(raw.text_raw, raw.url_struct, raw.page_info)

    retweeted: Post | None = None
    if raw.retweeted_status is not None:
        retweeted = _normalize_retweeted(raw.retweeted_status, raw.url_struct, raw.page_info)

    return Post(
        id=raw.id,
        mblogid=raw.mblogid,
        user=_user(raw.user),
        text_raw=text,
        is_long_text=raw.is_long_text,
        media_asset=classify_media(raw.pic_ids, raw.pic_infos, video),
        created_at=raw.created_at,
        retweeted_post=retweeted,
    )


def normalize_page(text: str) -> NormalizedPage:
    """Parse and normalize a favorites page; record failures are returned, not raised."""
    parsed = parse_page_records(text)
    posts = tuple(normalize_raw_post(raw) for raw in parsed.posts)
    return NormalizedPage(posts=posts, failures=parsed.failures)
