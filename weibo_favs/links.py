from __future__ import annotations

import re
from typing import Sequence

from .post import Video
from .raw import PageInfo, UrlStruct

# Short links in text_raw look like http://t.cn/A6JMdBYy.
SHORT_LINK_RE = re.compile(r"http://t\.cn/[0-9A-Za-z]{8}")


def _video_for(entry: UrlStruct, page_info: PageInfo | None) -> Video | None:
    if entry.page_id is None or page_info is None:
        return None
    if page_info.page_id is None or page_info.page_id != entry.page_id:
        return None

    duration = page_info.video_duration_secs()
    if duration is None:
        return None

    return Video(
        url=entry.long_url,
        duration_secs=duration,
        cover_picture_url=page_info.page_pic,
    )


def _links_in(entry: UrlStruct, mapping: dict[str, UrlStruct]) -> list[str]:
    return [m for m in SHORT_LINK_RE.findall(entry.long_url) if m in mapping]


def _has_cycle(mapping: dict[str, UrlStruct]) -> bool:
    """True when some long URL expands, directly or not, back into its own short link."""
    done: set[str] = set()
    active: set[str] = set()

    def visit(short: str) -> bool:
        if short in active:
            return True
        if short in done:
            return False
        active.add(short)
        found = any(visit(nxt) for nxt in _links_in(mapping[short], mapping))
        active.discard(short)
        done.add(short)
        return found

    return any(visit(short) for short in mapping)


def resolve_short_links(
    text: str,
    url_structs: Sequence[UrlStruct],
    page_info: PageInfo | None,
) -> tuple[str, Video | None]:
    """
    Replace short links in text with their long URLs, left to right.

    Resolution stops at the first short link that has no url_struct entry:
    that link and every link after it stay unresolved, even when a later one
    could be mapped. Long URLs that themselves contain mapped short links are
    expanded in turn. Returns the rewritten text and the video described by
    page_info when one of the resolved links points at it.
    """
    mapping: dict[str, UrlStruct] = {}
    for entry in url_structs:
        if entry.short_url:
            mapping[entry.short_url] = entry

    out = text or ""
    video: Video | None = None

    # Without cycles every expansion bottoms out. With one, the text can grow
    # forever, so passes are capped and a repeated text ends the loop.
    max_passes: int | None = None
    if _has_cycle(mapping):
        max_passes = len(SHORT_LINK_RE.findall(out)) + len(mapping) + 1
    seen = {out}
    passes = 0

    while max_passes is None or passes < max_passes:
        passes += 1
        match = SHORT_LINK_RE.search(out)
        if match is None:
            break

        entry = mapping.get(match.group(0))
        if entry is None:
            break

        if video is None:
            video = _video_for(entry, page_info)

        replaced = out[: match.start()] + entry.long_url + out[match.end() :]
        if replaced in seen:
            break
        seen.add(replaced)
        out = replaced

    return out, video
