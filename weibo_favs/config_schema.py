from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

PositiveInt = Annotated[int, Field(ge=1)]
NonNegativeFloat = Annotated[float, Field(ge=0.0)]


def _non_empty_name(value: str) -> str:
    name = (value or "").strip()
    if not name:
        raise ValueError("must be non-empty")
    if "/" in name or "\\" in name:
        raise ValueError("must be a file name, not a path")
    return name


class StorageConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    data_dir: str = "~/.weibo_favs"
    database_file: str = "db.sqlite"
    index_file: str = "index.sqlite"
    pages_dir: str = "pages"
    log_file: str = "run.log"

    @field_validator("data_dir")
    @classmethod
    def _data_dir_must_be_set(cls, v: str) -> str:
        value = (v or "").strip()
        if not value:
            raise ValueError("must be non-empty")
        return value

    @field_validator("database_file", "index_file", "pages_dir", "log_file")
    @classmethod
    def _names_must_be_plain(cls, v: str) -> str:
        return _non_empty_name(v)


class CrawlConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    start_page: PositiveInt = 1
    end_page: PositiveInt | None = None  # falls back to the stored max_page setting
    fetch_attempts: PositiveInt = 3
    retry_base_delay_seconds: NonNegativeFloat = 1.0
    retry_max_delay_seconds: NonNegativeFloat = 10.0
    on_record_error: Literal["skip", "abort"] = "skip"

    @model_validator(mode="after")
    def _check_ranges(self) -> "CrawlConfig":
        if self.end_page is not None and self.end_page < self.start_page:
            raise ValueError("end_page must be >= start_page")
        if self.retry_max_delay_seconds < self.retry_base_delay_seconds:
            raise ValueError("retry_max_delay_seconds must be >= retry_base_delay_seconds")
        return self


class IndexConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    batch_size: PositiveInt = 10000


class SearchConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    default_limit: PositiveInt = 10


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    storage: StorageConfig = Field(default_factory=StorageConfig)
    crawl: CrawlConfig = Field(default_factory=CrawlConfig)
    index: IndexConfig = Field(default_factory=IndexConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
