from __future__ import annotations

import json
import traceback
import uuid
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, TextIO

_LEVELS = {"DEBUG": 10, "INFO": 20, "WARN": 30, "ERROR": 40}


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _truncate(text: str, *, limit: int) -> str:
    s = str(text or "")
    if limit <= 0:
        return ""
    if len(s) <= limit:
        return s
    return s[: max(0, limit - 1)] + "…"


def _level_name(level: str) -> str:
    lvl = (level or "").strip().upper() or "INFO"
    if lvl == "WARNING":
        lvl = "WARN"
    return lvl if lvl in _LEVELS else "INFO"


class RunLogger:
    """
    JSONL logger for crawl and index runs.

    Each line is one JSON object with ts, level, event, session_id and, when
    given, page, post_id and a data payload. Records at or above echo_level
    are also written, one compact line each, to the echo stream.
    """

    def __init__(
        self,
        path: str | Path | None,
        *,
        overwrite: bool = False,
        session_id: str | None = None,
        echo: TextIO | None = None,
        echo_level: str = "INFO",
    ) -> None:
        self._path = Path(path) if path is not None else None
        self._overwrite = bool(overwrite)
        self._session_id = (session_id or "").strip() or uuid.uuid4().hex
        self._fp: TextIO | None = None
        self._echo = echo
        self._echo_threshold = _LEVELS[_level_name(echo_level)]
        self._lock = Lock()
        self._opened = False

    @classmethod
    def open(
        cls,
        path: str | Path | None,
        *,
        overwrite: bool = False,
        session_id: str | None = None,
        echo: TextIO | None = None,
        echo_level: str = "INFO",
    ) -> "RunLogger":
        logger = cls(
            path,
            overwrite=overwrite,
            session_id=session_id,
            echo=echo,
            echo_level=echo_level,
        )
        logger._ensure_open()
        return logger

    def close(self) -> None:
        with self._lock:
            if self._fp is not None:
                try:
                    self._fp.flush()
                finally:
                    self._fp.close()
                self._fp = None

    def __enter__(self) -> "RunLogger":
        self._ensure_open()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    @property
    def session_id(self) -> str:
        return self._session_id

    def debug(self, event: str, **data: Any) -> None:
        self.log("DEBUG", event, **data)

    def info(self, event: str, **data: Any) -> None:
        self.log("INFO", event, **data)

    def warning(self, event: str, **data: Any) -> None:
        self.log("WARN", event, **data)

    def error(self, event: str, **data: Any) -> None:
        self.log("ERROR", event, **data)

    def exception(self, event: str, *, exc: BaseException, **data: Any) -> None:
        err = {
            "type": type(exc).__name__,
            "message": _truncate(str(exc), limit=2000),
            "traceback": _truncate(
                "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
                limit=12000,
            ),
        }
        self.log("ERROR", event, error=err, **data)

    def log(
        self,
        level: str,
        event: str,
        *,
        page: int | None = None,
        post_id: int | None = None,
        **data: Any,
    ) -> None:
        lvl = _level_name(level)
        ev = (event or "").strip() or "event"

        record: dict[str, Any] = {
            "ts": _utc_now_iso(),
            "level": lvl,
            "event": ev,
            "session_id": self._session_id,
        }
        if page is not None:
            record["page"] = int(page)
        if post_id is not None:
            record["post_id"] = int(post_id)
        if data:
            record["data"] = data

        self._write(record)
        if self._echo is not None and _LEVELS[lvl] >= self._echo_threshold:
            self._write_echo(record)

    def _ensure_open(self) -> None:
        if self._path is None or self._fp is not None:
            return

        with self._lock:
            if self._fp is not None:
                return

            self._path.parent.mkdir(parents=True, exist_ok=True)
            mode = "w" if self._overwrite and not self._opened else "a"

            self._fp = self._path.open(mode, encoding="utf-8", newline="\n")
            self._opened = True

    def _write(self, record: dict[str, Any]) -> None:
        if self._path is None:
            return
        self._ensure_open()

        payload = json.dumps(
            record,
            ensure_ascii=False,
            sort_keys=True,
            separators=(",", ":"),
            default=str,
        )

        with self._lock:
            if self._fp is None:
                return
            self._fp.write(payload + "\n")
            self._fp.flush()

    def _write_echo(self, record: dict[str, Any]) -> None:
        parts = [record["level"], record["event"]]
        if "page" in record:
            parts.append(f"page={record['page']}")
        if "post_id" in record:
            parts.append(f"post_id={record['post_id']}")
        for key, value in sorted((record.get("data") or {}).items()):
            if key == "error" and isinstance(value, dict):
                value = f"{value.get('type')}: {value.get('message')}"
            parts.append(f"{key}={value}")

        echo = self._echo
        if echo is None:
            return
        with self._lock:
            echo.write(" ".join(str(p) for p in parts) + "\n")
            echo.flush()
