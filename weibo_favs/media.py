from __future__ import annotations

from typing import Mapping, Sequence

from .post import NO_MEDIA, MediaAsset, Pictures, Video
from .raw import PicInfo


def collect_pictures(
    pic_ids: Sequence[str],
    pic_infos: Mapping[str, PicInfo],
) -> Pictures | None:
    """
    Original-resolution picture URLs in pic_ids order.

    Ids without a pic_infos entry are skipped (the provider only lists the
    first nine pictures of larger sets). Each entry is used at most once.
    """
    urls: list[str] = []
    used: set[str] = set()

    for pic_id in pic_ids:
        if pic_id in used:
            continue
        info = pic_infos.get(pic_id)
        if info is None or info.original is None:
            continue
        used.add(pic_id)
        urls.append(info.original.url)

    if not urls:
        return None
    return Pictures(urls=tuple(urls))


def classify_media(
    pic_ids: Sequence[str],
    pic_infos: Mapping[str, PicInfo],
    video: Video | None,
) -> MediaAsset:
    if video is not None:
        return video

    pictures = collect_pictures(pic_ids, pic_infos)
    if pictures is not None:
        return pictures

    return NO_MEDIA
