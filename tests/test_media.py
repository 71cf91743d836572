from __future__ import annotations

import unittest

from tests.payloads import PICTURE_URLS, picture_ids, picture_infos
from weibo_favs.media import classify_media, collect_pictures
from weibo_favs.post import NO_MEDIA, MediaType, Pictures, Video
from weibo_favs.raw import PicInfo


def _infos(raw: dict) -> dict[str, PicInfo]:
    return {k: PicInfo.model_validate(v) for k, v in raw.items()}


class TestCollectPictures(unittest.TestCase):
    def test_skips_ids_without_info(self) -> None:
        infos = _infos(
            {
                "a": {"original": {"url": "https://img/a.jpg"}},
                "c": {"original": {"url": "https://img/c.jpg"}},
            }
        )
        pictures = collect_pictures(["a", "b", "c"], infos)
        self.assertEqual(pictures, Pictures(urls=("https://img/a.jpg", "https://img/c.jpg")))

    def test_provider_caps_infos_at_nine(self) -> None:
        ids = picture_ids(18)
        pictures = collect_pictures(ids, _infos(picture_infos(ids, PICTURE_URLS)))
        assert pictures is not None
        self.assertEqual(list(pictures.urls), PICTURE_URLS)

    def test_duplicate_ids_are_used_once(self) -> None:
        infos = _infos({"a": {"original": {"url": "https://img/a.jpg"}}})
        pictures = collect_pictures(["a", "a"], infos)
        assert pictures is not None
        self.assertEqual(pictures.urls, ("https://img/a.jpg",))

    def test_info_without_original_is_skipped(self) -> None:
        infos = _infos({"a": {"thumbnail": {"url": "https://img/a_t.jpg"}}})
        self.assertIsNone(collect_pictures(["a"], infos))

    def test_no_pictures(self) -> None:
        self.assertIsNone(collect_pictures([], {}))
        self.assertIsNone(collect_pictures(["a"], {}))


class TestClassifyMedia(unittest.TestCase):
    def test_video_takes_precedence_over_pictures(self) -> None:
        video = Video(url="https://video.weibo.com/x", duration_secs=12)
        infos = _infos({"a": {"original": {"url": "https://img/a.jpg"}}})
        media = classify_media(["a"], infos, video)
        self.assertEqual(media, video)
        self.assertEqual(media.media_type(), MediaType.VIDEO)

    def test_pictures_without_video(self) -> None:
        infos = _infos({"a": {"original": {"url": "https://img/a.jpg"}}})
        media = classify_media(["a"], infos, None)
        self.assertEqual(media.media_type(), MediaType.PICTURE)

    def test_text_only(self) -> None:
        media = classify_media(["a"], {}, None)
        self.assertIs(media, NO_MEDIA)
        self.assertEqual(media.media_type(), MediaType.TEXT)


if __name__ == "__main__":
    unittest.main()
