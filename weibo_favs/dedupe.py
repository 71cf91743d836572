from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable
from urllib.parse import urlsplit, urlunsplit

from .post import Post


def canonicalize_url(url: str) -> str:
    """
    Canonical form of a post URL as stored in the row store.

    Post.url() already produces this form; user-supplied URLs may carry www.,
    m., http, a query string, or a trailing slash.
    """
    value = (url or "").strip()
    if not value:
        return ""

    try:
        parts = urlsplit(value)
    except ValueError:
        return value.rstrip("/")

    if not parts.scheme or not parts.netloc:
        return value.rstrip("/")

    scheme = parts.scheme.lower()
    netloc = parts.netloc.lower()
    for prefix in ("www.", "m."):
        if netloc.startswith(prefix):
            netloc = netloc[len(prefix) :]
            break

    if netloc == "weibo.com":
        scheme = "https"

    path = (parts.path or "").rstrip("/")
    if not path:
        path = "/"

    return urlunsplit((scheme, netloc, path, "", ""))


def is_post_url(value: str) -> bool:
    url = canonicalize_url(value)
    if not url.startswith("https://weibo.com/") or url.count("/") != 4:
        return False
    # https://weibo.com/u/<id> is a profile, not a post.
    first_segment = url.split("/")[3]
    return first_segment != "u"


@dataclass
class SeenPostIds:
    """Post ids already handled by one crawl; the pipeline itself never dedupes."""

    ids: set[int] = field(default_factory=set)

    def has(self, post_id: int) -> bool:
        return post_id in self.ids

    def add(self, post_id: int) -> None:
        self.ids.add(post_id)

    def has_post(self, post: Post) -> bool:
        return self.has(post.id)

    def add_post(self, post: Post) -> None:
        self.add(post.id)

    def update(self, posts: Iterable[Post]) -> None:
        for post in posts:
            self.add_post(post)
