from __future__ import annotations

import json
from pathlib import Path
from typing import Protocol

from .errors import FetchError, PayloadError
from .raw import PageParseResult, extract_json_text, parse_page_records
from .retry import OnRetryFn, RetryConfig, SleepFn, call_with_retries


class PageFetcher(Protocol):
    def fetch_page(self, page_index: int) -> str:
        """Return the raw JSON body of one favorites page (1-based)."""
        ...


def page_file_name(page_index: int) -> str:
    return f"page_{int(page_index):04d}.json"


class DirectoryPageFetcher:
    """Serves favorites pages previously archived as page_NNNN.json files."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def fetch_page(self, page_index: int) -> str:
        if int(page_index) < 1:
            raise ValueError("page_index must be >= 1")

        path = self._root / page_file_name(page_index)
        if not path.exists():
            raise FetchError(f"Page file not found: {path}")
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise FetchError(f"Failed to read page file: {path}: {e}") from e

    def available_pages(self) -> list[int]:
        out: list[int] = []
        for p in self._root.glob("page_*.json"):
            suffix = p.stem[len("page_") :]
            if suffix.isdigit():
                out.append(int(suffix))
        return sorted(out)


def archive_page(root: str | Path, page_index: int, text: str) -> Path:
    """
    Write a fetched page in the layout DirectoryPageFetcher reads.

    Bodies that decode as JSON are stored pretty-printed, others verbatim.
    """
    directory = Path(root)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / page_file_name(page_index)

    body = text
    try:
        body = json.dumps(json.loads(extract_json_text(text)), ensure_ascii=False, indent=2)
    except (PayloadError, ValueError):
        pass

    path.write_text(body, encoding="utf-8")
    return path


def is_retryable_fetch_exception(exc: BaseException) -> bool:
    # An unparsable envelope is usually an error page served in place of JSON.
    return isinstance(exc, (FetchError, PayloadError, OSError, TimeoutError))


def fetch_page_records(
    fetcher: PageFetcher,
    page_index: int,
    *,
    cfg: RetryConfig | None = None,
    on_retry: OnRetryFn | None = None,
    sleep_fn: SleepFn | None = None,
) -> PageParseResult:
    """
    Fetch one page and parse its records, retrying fetch and envelope failures.

    Per-record parse failures are not retried; they are part of the result.
    """
    policy = cfg or RetryConfig()

    def _once() -> PageParseResult:
        return parse_page_records(fetcher.fetch_page(page_index))

    return call_with_retries(
        _once,
        cfg=policy,
        is_retryable=is_retryable_fetch_exception,
        operation="fetch_page",
        on_retry=on_retry,
        sleep_fn=sleep_fn,
        page=int(page_index),
    )
