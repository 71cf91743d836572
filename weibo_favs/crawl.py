from __future__ import annotations

from dataclasses import dataclass

from .config_schema import CrawlConfig
from .dedupe import SeenPostIds
from .errors import ConfigError, PayloadError
from .fetch import PageFetcher, fetch_page_records
from .normalize import normalize_raw_post
from .post import Post
from .retry import RetryConfig, RetryEvent, SleepFn
from .run_log import RunLogger
from .storage import PostStore


@dataclass(frozen=True)
class CrawlResult:
    start_page: int
    end_page: int
    pages: int
    stored: int
    invalid: int
    duplicates: int
    failed_records: int


def retry_config_from(crawl: CrawlConfig) -> RetryConfig:
    return RetryConfig(
        max_attempts=int(crawl.fetch_attempts),
        base_delay_seconds=float(crawl.retry_base_delay_seconds),
        max_delay_seconds=float(crawl.retry_max_delay_seconds),
    )


def resolve_page_range(
    crawl: CrawlConfig,
    store: PostStore,
    *,
    start_page: int | None = None,
    end_page: int | None = None,
) -> tuple[int, int]:
    """
    Pick the page range: explicit arguments, then config, then the stored
    max_page setting for the end page.
    """
    start = int(start_page if start_page is not None else crawl.start_page)
    end = end_page if end_page is not None else crawl.end_page
    if end is None:
        end = store.get_max_page()
    if end is None:
        raise ConfigError("No end page: pass --end-page or run `settings set max_page=<n>`")

    if start < 1:
        raise ConfigError("start page must be >= 1")
    if int(end) < start:
        raise ConfigError(f"end page {end} is before start page {start}")
    return start, int(end)


def crawl_pages(
    fetcher: PageFetcher,
    store: PostStore,
    *,
    start_page: int,
    end_page: int,
    retry: RetryConfig | None = None,
    on_record_error: str = "skip",
    logger: RunLogger | None = None,
    sleep_fn: SleepFn | None = None,
) -> CrawlResult:
    """
    Fetch, normalize, and store favorites pages start_page..end_page (inclusive).

    Posts without an author (deleted or hidden) are dropped, as are ids already
    stored earlier in this crawl. Each page is written in one transaction.
    """
    if on_record_error not in ("skip", "abort"):
        raise ValueError("on_record_error must be 'skip' or 'abort'")

    seen = SeenPostIds()
    stored = invalid = duplicates = failed = pages = 0

    def _on_retry(ev: RetryEvent) -> None:
        if logger is not None:
            logger.warning(
                "fetch_page_retry",
                page=ev.page,
                attempt=ev.failure_attempt,
                max_attempts=ev.max_attempts,
                delay_seconds=round(ev.delay_seconds, 3),
                error_type=ev.error_type,
                error_message=ev.error_message,
            )

    if logger is not None:
        logger.info("crawl_started", start_page=start_page, end_page=end_page)

    for page in range(int(start_page), int(end_page) + 1):
        parsed = fetch_page_records(
            fetcher,
            page,
            cfg=retry,
            on_retry=_on_retry,
            sleep_fn=sleep_fn,
        )
        pages += 1

        for failure in parsed.failures:
            failed += 1
            if logger is not None:
                logger.warning(
                    "record_parse_failed",
                    page=page,
                    post_id=failure.post_id,
                    index=failure.index,
                    message=failure.message,
                )
            if on_record_error == "abort":
                raise PayloadError(
                    f"page {page}: {failure.message}",
                    index=failure.index,
                    post_id=failure.post_id,
                )

        batch: list[Post] = []
        for raw in parsed.posts:
            post = normalize_raw_post(raw)
            if not post.is_valid():
                invalid += 1
                if logger is not None:
                    logger.info("invalid_post_skipped", page=page, post_id=post.id, url=post.url())
                continue
            if seen.has_post(post):
                duplicates += 1
                continue
            seen.add_post(post)
            batch.append(post)

        stored += store.add_posts(batch)

        if logger is not None:
            logger.info(
                "page_stored",
                page=page,
                records=len(parsed.posts) + len(parsed.failures),
                valid=len(batch),
            )

    result = CrawlResult(
        start_page=int(start_page),
        end_page=int(end_page),
        pages=pages,
        stored=stored,
        invalid=invalid,
        duplicates=duplicates,
        failed_records=failed,
    )
    if logger is not None:
        logger.info(
            "crawl_completed",
            pages=result.pages,
            stored=result.stored,
            invalid=result.invalid,
            duplicates=result.duplicates,
            failed_records=result.failed_records,
        )
    return result
