from __future__ import annotations

from .errors import PayloadError
from .normalize import NormalizedPage, normalize_page, normalize_raw_post
from .post import MediaType, NoMedia, Pictures, Post, User, Video
from .raw import RawPost, RawRetweetedPost, parse_page, parse_page_records, parse_raw_post

__all__ = [
    "MediaType",
    "NoMedia",
    "NormalizedPage",
    "PayloadError",
    "Pictures",
    "Post",
    "RawPost",
    "RawRetweetedPost",
    "User",
    "Video",
    "normalize_page",
    "normalize_raw_post",
    "parse_page",
    "parse_page_records",
    "parse_raw_post",
]
