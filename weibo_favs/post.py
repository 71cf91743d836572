from __future__ import annotations

from datetime import datetime
from enum import IntEnum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

WEIBO_BASE_URL = "https://weibo.com"


def post_url(user_id: int, mblogid: str) -> str:
    return f"{WEIBO_BASE_URL}/{user_id}/{mblogid}"


def profile_url(user_id: int) -> str:
    return f"{WEIBO_BASE_URL}/u/{user_id}"


class MediaType(IntEnum):
    """Media-type codes stored in the search index."""

    TEXT = 0
    PICTURE = 1
    VIDEO = 2


class User(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int = 0
    screen_name: str = ""

    def profile_url(self) -> str:
        return profile_url(self.id)


class NoMedia(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["none"] = "none"

    def media_type(self) -> MediaType:
        return MediaType.TEXT


class Pictures(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["pictures"] = "pictures"
    urls: tuple[str, ...]

    def media_type(self) -> MediaType:
        return MediaType.PICTURE


class Video(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["video"] = "video"
    url: str
    duration_secs: int = Field(ge=0)
    cover_picture_url: str = ""

    def media_type(self) -> MediaType:
        return MediaType.VIDEO


MediaAsset = Annotated[Union[NoMedia, Pictures, Video], Field(discriminator="kind")]

NO_MEDIA = NoMedia()


class Post(BaseModel):
    """
    A canonical favorited post.

    text_raw holds the text with short links already resolved. A retweet embeds
    the retweeted post, which carries its own independent media_asset.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    mblogid: str
    user: User = Field(default_factory=User)
    text_raw: str
    is_long_text: bool = False
    media_asset: MediaAsset = NO_MEDIA
    created_at: datetime
    retweeted_post: Post | None = None

    def url(self) -> str:
        return post_url(self.user.id, self.mblogid)

    def is_retweet(self) -> bool:
        return self.retweeted_post is not None

    def media_type(self) -> MediaType:
        if self.retweeted_post is not None:
            return self.retweeted_post.media_type()
        return self.media_asset.media_type()

    def is_valid(self) -> bool:
        # Hidden or deleted posts come back without an author.
        if self.user.id == 0:
            return False
        if self.retweeted_post is not None and not self.retweeted_post.is_valid():
            return False
        return True

    def to_json(self) -> str:
        return self.model_dump_json(indent=None, by_alias=False, exclude_none=False)

    @classmethod
    def from_json(cls, raw: str | bytes) -> "Post":
        return cls.model_validate_json(raw)
