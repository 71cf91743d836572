from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Sequence

from .config import (
    DataPaths,
    config_sha256,
    load_config_or_default,
    resolve_data_paths,
    with_data_dir,
)
from .config_schema import AppConfig
from .crawl import crawl_pages, resolve_page_range, retry_config_from
from .errors import ConfigError, FetchError, PayloadError, SearchIndexError, StorageError
from .fetch import DirectoryPageFetcher, archive_page
from .indexing import rebuild_index
from .post import MediaType
from .run_log import RunLogger
from .search_index import SearchIndex, SearchParams, format_hit
from .storage import MAX_PAGE_SETTING, PostStore
from .tombstones import add_tombstones

_ECHO_LEVELS = {0: "WARN", 1: "INFO"}


def _common_options() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        default=None,
        help="Path to YAML config file (defaults apply when omitted).",
    )
    common.add_argument(
        "--data-dir",
        default=None,
        help="Data directory holding the database, index, and archived pages.",
    )
    common.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Echo log records to stderr (-v info, -vv debug).",
    )
    return common


def _build_parser() -> argparse.ArgumentParser:
    common = _common_options()
    parser = argparse.ArgumentParser(prog="weibo_favs", description="Search your Weibo favorites.")

    subparsers = parser.add_subparsers(dest="command", required=True)

    crawl = subparsers.add_parser(
        "crawl",
        parents=[common],
        help="Normalize archived favorites pages and store the posts.",
    )
    crawl.add_argument("--start-page", type=int, default=None)
    crawl.add_argument(
        "--end-page",
        type=int,
        default=None,
        help="Last page to read (defaults to the max_page setting).",
    )
    crawl.add_argument(
        "--pages-dir",
        default=None,
        help="Directory of page_NNNN.json files (defaults to <data-dir>/pages).",
    )
    crawl.set_defaults(_handler=_cmd_crawl)

    archive = subparsers.add_parser(
        "archive",
        parents=[common],
        help="Copy a saved favorites page into the pages directory.",
    )
    archive.add_argument("--page", type=int, required=True, help="Page number (1-based).")
    archive.add_argument("source", help="Saved page body (JSON, or the browser's HTML view).")
    archive.set_defaults(_handler=_cmd_archive)

    index = subparsers.add_parser(
        "index",
        parents=[common],
        help="Rebuild the search index from stored posts.",
    )
    index.set_defaults(_handler=_cmd_index)

    search = subparsers.add_parser(
        "search",
        parents=[common],
        help="Search indexed posts.",
    )
    search.add_argument("query", nargs="?", default=None)
    search.add_argument(
        "--media-type",
        type=int,
        choices=[int(m) for m in MediaType],
        default=None,
        help="0 text, 1 picture, 2 video.",
    )
    search.add_argument("-u", "--user", default=None, help="Exact author screen name.")
    search.add_argument("-l", "--limit", type=int, default=None)
    search.set_defaults(_handler=_cmd_search)

    tombstone = subparsers.add_parser(
        "tombstone",
        help="Exclude stored posts from the index.",
    )
    tomb_sub = tombstone.add_subparsers(dest="tombstone_command", required=True)
    tomb_add = tomb_sub.add_parser("add", parents=[common], help="Add post ids or URLs.")
    tomb_add.add_argument("items", nargs="+")
    tomb_add.set_defaults(_handler=_cmd_tombstone_add)
    tomb_clear = tomb_sub.add_parser("clear", parents=[common], help="Remove all tombstones.")
    tomb_clear.set_defaults(_handler=_cmd_tombstone_clear)

    settings = subparsers.add_parser("settings", help="Show or change stored settings.")
    settings_sub = settings.add_subparsers(dest="settings_command", required=True)
    settings_set = settings_sub.add_parser("set", parents=[common], help="Set name=value pairs.")
    settings_set.add_argument("items", nargs="+")
    settings_set.set_defaults(_handler=_cmd_settings_set)
    settings_show = settings_sub.add_parser("show", parents=[common], help="Print settings.")
    settings_show.set_defaults(_handler=_cmd_settings_show)

    return parser


def _eprint(message: str) -> None:
    print(message, file=sys.stderr)


def _load(args: argparse.Namespace) -> tuple[AppConfig, DataPaths]:
    cfg = load_config_or_default(getattr(args, "config", None))

    data_dir = getattr(args, "data_dir", None)
    if data_dir:
        cfg = with_data_dir(cfg, data_dir)
        paths = resolve_data_paths(cfg, environ={})
    else:
        paths = resolve_data_paths(cfg)

    paths.ensure_data_dir()
    return cfg, paths


def _open_logger(args: argparse.Namespace, paths: DataPaths) -> RunLogger:
    verbose = int(getattr(args, "verbose", 0) or 0)
    return RunLogger.open(
        paths.log,
        overwrite=False,
        echo=sys.stderr,
        echo_level=_ECHO_LEVELS.get(verbose, "DEBUG"),
    )


def _cmd_crawl(args: argparse.Namespace) -> int:
    cfg, paths = _load(args)
    pages_dir = Path(args.pages_dir) if args.pages_dir else paths.pages_dir

    with _open_logger(args, paths) as log:
        log.info(
            "crawl_command_started",
            config_path=str(args.config),
            config_sha256=config_sha256(cfg),
            data_dir=str(paths.data_dir),
            pages_dir=str(pages_dir),
        )
        try:
            with PostStore.open(paths.database) as store:
                start, end = resolve_page_range(
                    cfg.crawl,
                    store,
                    start_page=args.start_page,
                    end_page=args.end_page,
                )
                result = crawl_pages(
                    DirectoryPageFetcher(pages_dir),
                    store,
                    start_page=start,
                    end_page=end,
                    retry=retry_config_from(cfg.crawl),
                    on_record_error=cfg.crawl.on_record_error,
                    logger=log,
                )
        except Exception as e:
            log.exception("crawl_command_failed", exc=e)
            raise

    print(f"pages={result.pages}")
    print(f"stored={result.stored}")
    print(f"invalid={result.invalid}")
    print(f"duplicates={result.duplicates}")
    print(f"failed_records={result.failed_records}")
    return 0


def _cmd_archive(args: argparse.Namespace) -> int:
    _, paths = _load(args)
    source = Path(args.source)
    if args.page < 1:
        raise ConfigError("--page must be >= 1")
    try:
        text = source.read_text(encoding="utf-8")
    except OSError as e:
        raise FetchError(f"Failed to read saved page {source}: {e}") from e

    path = archive_page(paths.pages_dir, args.page, text)
    print(f"archived={path}")
    return 0


def _cmd_index(args: argparse.Namespace) -> int:
    cfg, paths = _load(args)

    with _open_logger(args, paths) as log:
        try:
            with PostStore.open(paths.database) as store, SearchIndex.open(paths.index) as index:
                result = rebuild_index(
                    store,
                    index,
                    batch_size=int(cfg.index.batch_size),
                    logger=log,
                )
        except Exception as e:
            log.exception("index_command_failed", exc=e)
            raise

    print(f"scanned={result.scanned}")
    print(f"indexed={result.indexed}")
    print(f"tombstoned={result.tombstoned}")
    print(f"invalid={result.invalid}")
    return 0


def _cmd_search(args: argparse.Namespace) -> int:
    cfg, paths = _load(args)
    limit = int(args.limit) if args.limit is not None else int(cfg.search.default_limit)
    params = SearchParams(query=args.query, media_type=args.media_type, user=args.user)

    with SearchIndex.open(paths.index) as index:
        hits = index.search(params, limit=limit)

    for hit in hits:
        print(format_hit(hit))
        print()
    return 0


def _cmd_tombstone_add(args: argparse.Namespace) -> int:
    _, paths = _load(args)
    with _open_logger(args, paths) as log, PostStore.open(paths.database) as store:
        result = add_tombstones(store, args.items, logger=log)

    for item in result.not_found:
        _eprint(f"post not found: {item}")
    for item in result.malformed:
        _eprint(f"invalid post id or url: {item}")
    print(f"added={len(result.added)}")
    return 0 if result.ok else 4


def _cmd_tombstone_clear(args: argparse.Namespace) -> int:
    _, paths = _load(args)
    with PostStore.open(paths.database) as store:
        store.clear_tombstones()
    return 0


def _parse_setting(item: str) -> tuple[str, str]:
    name, sep, value = (item or "").partition("=")
    if not sep or not name.strip() or "=" in value:
        raise ConfigError(f"settings should be given as <name>=<value>: {item!r}")
    return name.strip(), value.strip()


def _cmd_settings_set(args: argparse.Namespace) -> int:
    _, paths = _load(args)
    parsed = [_parse_setting(item) for item in args.items]

    with PostStore.open(paths.database) as store:
        for name, value in parsed:
            if name != MAX_PAGE_SETTING:
                raise ConfigError(f"settings not supported: {name}")
            try:
                max_page = int(value)
            except ValueError:
                raise ConfigError(f"max_page should be an integer, instead of {value!r}") from None
            if max_page < 1:
                raise ConfigError("max_page must be >= 1")
            store.set_max_page(max_page)
    return 0


def _cmd_settings_show(args: argparse.Namespace) -> int:
    _, paths = _load(args)
    with PostStore.open(paths.database) as store:
        max_page = store.get_max_page()
    print(f"max_page = {max_page if max_page is not None else '<unset>'}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        handler = getattr(args, "_handler")
        return int(handler(args))
    except ConfigError as e:
        _eprint(str(e))
        return 2
    except (FetchError, PayloadError, StorageError, SearchIndexError) as e:
        _eprint(str(e))
        return 3
    except KeyboardInterrupt:
        _eprint("Interrupted")
        return 130
    except Exception as e:
        _eprint(f"Unexpected error: {e}")
        return 1
