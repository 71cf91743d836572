from __future__ import annotations

import html
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import PayloadError

# The favorites API returns timestamps like "Sun Jan 09 11:50:55 +0800 2022".
WEIBO_DATETIME_FORMAT = "%a %b %d %H:%M:%S %z %Y"

# Notes on the payload shape:
# - A retweet nests the original post under retweeted_status, but the nested
#   record never carries url_struct or page_info. Video metadata for a
#   retweeted video post only exists in the outer record.
# - Pictures live outside the text (pic_ids + pic_infos). Videos are short
#   links inside text_raw whose url_struct entry carries a page_id pointing at
#   page_info.
# - pic_infos is capped by the provider: a post with 18 pic_ids may only list
#   the first 9 in pic_infos.


def parse_weibo_datetime(value: str) -> datetime:
    """Parse a provider timestamp; raises ValueError on any format mismatch."""
    return datetime.strptime(value, WEIBO_DATETIME_FORMAT)


def _str_or_empty(value: Any) -> Any:
    return "" if value is None else value


class _RawModel(BaseModel):
    model_config = ConfigDict(
        extra="ignore",
        frozen=True,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )


class RawUser(_RawModel):
    id: int = 0
    screen_name: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def _null_id(cls, v: Any) -> Any:
        return 0 if v is None else v

    @field_validator("screen_name", mode="before")
    @classmethod
    def _null_name(cls, v: Any) -> Any:
        return _str_or_empty(v)


class PicInfoEntry(_RawModel):
    url: str


class PicInfo(_RawModel):
    original: PicInfoEntry | None = None


class UrlStruct(_RawModel):
    short_url: str = ""
    long_url: str = ""
    page_id: str | None = None

    @field_validator("short_url", "long_url", mode="before")
    @classmethod
    def _null_urls(cls, v: Any) -> Any:
        return _str_or_empty(v)


class PageInfo(_RawModel):
    page_id: str | None = None
    object_type: str = ""
    page_pic: str = ""
    media_info: Any = None

    @field_validator("object_type", "page_pic", mode="before")
    @classmethod
    def _null_strings(cls, v: Any) -> Any:
        return _str_or_empty(v)

    def video_duration_secs(self) -> int | None:
        if self.object_type != "video":
            return None
        if not isinstance(self.media_info, Mapping):
            return None
        duration = self.media_info.get("duration")
        if isinstance(duration, bool) or not isinstance(duration, int):
            return None
        if duration < 0:
            return None
        return duration


class _RawPostFields(_RawModel):
    id: int
    mblogid: str
    text_raw: str
    is_long_text: bool = Field(False, alias="isLongText")

    pic_ids: list[str] = Field(default_factory=list)
    pic_infos: dict[str, PicInfo] = Field(default_factory=dict)

    created_at: datetime

    @field_validator("pic_ids", "pic_infos", mode="before")
    @classmethod
    def _null_collections(cls, v: Any, info: Any) -> Any:
        if v is None:
            return [] if info.field_name == "pic_ids" else {}
        return v

    @field_validator("is_long_text", mode="before")
    @classmethod
    def _null_flag(cls, v: Any) -> Any:
        return False if v is None else v

    @field_validator("created_at", mode="before")
    @classmethod
    def _parse_created_at(cls, v: Any) -> Any:
        if isinstance(v, datetime):
            return v
        if not isinstance(v, str):
            raise ValueError("must be a timestamp string")
        try:
            return parse_weibo_datetime(v)
        except ValueError:
            raise ValueError(
                f"{v!r} does not match format {WEIBO_DATETIME_FORMAT!r}"
            ) from None


class RawRetweetedPost(_RawPostFields):
    """The nested retweeted_status record: no url_struct, no page_info, optional user."""

    user: RawUser | None = None
    retweeted_status: RawRetweetedPost | None = None


class RawPost(_RawPostFields):
    """One entry of a favorites page."""

    user: RawUser = Field(default_factory=RawUser)
    url_struct: list[UrlStruct] = Field(default_factory=list)
    page_info: PageInfo | None = None
    retweeted_status: RawRetweetedPost | None = None

    @field_validator("user", mode="before")
    @classmethod
    def _null_user(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("url_struct", mode="before")
    @classmethod
    def _null_url_struct(cls, v: Any) -> Any:
        return [] if v is None else v


@dataclass(frozen=True)
class RecordFailure:
    index: int
    post_id: int | None
    message: str


@dataclass(frozen=True)
class PageParseResult:
    posts: tuple[RawPost, ...]
    failures: tuple[RecordFailure, ...]


def extract_json_text(text: str) -> str:
    body = (text or "").strip()
    if not body.startswith("<"):
        return body

    # A page saved from a browser wraps the JSON document in <pre>; the head
    # may carry style or script blocks of its own.
    lowered = body.lower()
    tag = lowered.find("<pre")
    open_end = lowered.find(">", tag) if tag >= 0 else -1
    end = lowered.find("</pre>", open_end) if open_end >= 0 else -1
    if end < 0:
        raise PayloadError("Page body is HTML without an embedded JSON document")
    return html.unescape(body[open_end + 1 : end]).strip()


def decode_page_items(text: str) -> list[Any]:
    """
    Decode a favorites page body into its list of raw records.

    Accepts the API envelope ({"ok": 1, "data": [...]}), a bare JSON list,
    or the envelope wrapped in a browser <pre> document.
    """
    body = extract_json_text(text)
    if not body:
        raise PayloadError("Page body is empty")

    try:
        doc = json.loads(body)
    except json.JSONDecodeError as e:
        raise PayloadError(f"Page body is not valid JSON: {e}") from e

    if isinstance(doc, list):
        return doc

    if not isinstance(doc, dict):
        raise PayloadError("Page body must be a JSON object or list")

    data = doc.get("data")
    if not isinstance(data, list):
        msg = doc.get("msg") or doc.get("message")
        detail = f" (ok={doc.get('ok')!r}, msg={msg!r})" if msg else ""
        raise PayloadError(f"Page body has no 'data' list{detail}")
    return data


def _peek_post_id(item: Any) -> int | None:
    if not isinstance(item, Mapping):
        return None
    value = item.get("id")
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _format_validation_error(err: ValidationError, *, index: int | None) -> str:
    where = f"record {index}" if index is not None else "record"
    lines: list[str] = [f"Invalid {where}:"]
    for item in err.errors():
        loc = ".".join(str(part) for part in item.get("loc", [])) or "<root>"
        msg = item.get("msg", "invalid value")
        lines.append(f"- {loc}: {msg}")
    return "\n".join(lines)


def parse_raw_post(item: Any, *, index: int | None = None) -> RawPost:
    """Validate one raw record; raises PayloadError on missing required fields."""
    post_id = _peek_post_id(item)
    if not isinstance(item, Mapping):
        where = f"record {index}" if index is not None else "record"
        raise PayloadError(f"Invalid {where}: not a JSON object", index=index)

    try:
        return RawPost.model_validate(item)
    except ValidationError as e:
        raise PayloadError(
            _format_validation_error(e, index=index),
            index=index,
            post_id=post_id,
        ) from e


def parse_page(text: str) -> list[RawPost]:
    """Parse every record of a page, failing on the first invalid one."""
    items = decode_page_items(text)
    return [parse_raw_post(item, index=i) for i, item in enumerate(items)]


def parse_page_records(text: str) -> PageParseResult:
    """
    Parse a page record by record.

    Envelope problems still raise PayloadError; record failures are collected
    and returned so the caller decides whether to skip or abort.
    """
    items = decode_page_items(text)

    posts: list[RawPost] = []
    failures: list[RecordFailure] = []
    for i, item in enumerate(items):
        try:
            posts.append(parse_raw_post(item, index=i))
        except PayloadError as e:
            failures.append(RecordFailure(index=i, post_id=e.post_id, message=str(e)))

    return PageParseResult(posts=tuple(posts), failures=tuple(failures))

