from __future__ import annotations

import hashlib
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

import yaml
from pydantic import ValidationError

from .config_schema import AppConfig
from .errors import ConfigError

DATA_DIR_ENV = "WEIBO_FAVS_HOME"


@dataclass(frozen=True)
class DataPaths:
    data_dir: Path
    database: Path
    index: Path
    pages_dir: Path
    log: Path

    def ensure_data_dir(self) -> None:
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigError(f"Cannot create data directory {self.data_dir}: {e}") from e


def load_config(path: str | Path) -> AppConfig:
    """
    Load a YAML config file and validate it into a typed AppConfig.

    Raises ConfigError with a readable validation message on failure.
    """
    p = Path(path)

    if not p.exists():
        raise ConfigError(f"Config file not found: {p}")

    try:
        raw_text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read config file: {p}") from e

    try:
        data = yaml.safe_load(raw_text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML in {p}: {e}") from e

    if data is None:
        data = {}

    if not isinstance(data, dict):
        raise ConfigError(f"Top-level YAML in {p} must be a mapping/object")

    try:
        return AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(_format_pydantic_errors(e, p)) from e


def load_config_or_default(path: str | Path | None) -> AppConfig:
    if path is None:
        return AppConfig()
    return load_config(path)


def with_data_dir(config: AppConfig, data_dir: str | Path) -> AppConfig:
    value = str(data_dir).strip()
    if not value:
        raise ConfigError("data dir must be non-empty")
    storage = config.storage.model_copy(update={"data_dir": value})
    return config.model_copy(update={"storage": storage})


def resolve_data_paths(
    config: AppConfig, *, environ: Mapping[str, str] | None = None
) -> DataPaths:
    """
    Resolve the data directory and the files inside it.

    WEIBO_FAVS_HOME, when set, takes precedence over storage.data_dir.
    """
    env = os.environ if environ is None else environ

    raw_dir = (env.get(DATA_DIR_ENV) or "").strip() or config.storage.data_dir
    data_dir = Path(raw_dir).expanduser()

    return DataPaths(
        data_dir=data_dir,
        database=data_dir / config.storage.database_file,
        index=data_dir / config.storage.index_file,
        pages_dir=data_dir / config.storage.pages_dir,
        log=data_dir / config.storage.log_file,
    )


def config_sha256(config: AppConfig) -> str:
    """
    Compute a stable SHA-256 hash of the config values for run logs.
    """
    payload = json.dumps(
        config.model_dump(mode="json"),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")
    return hashlib.sha256(payload).hexdigest()


def _format_pydantic_errors(err: ValidationError, path: Path) -> str:
    lines: list[str] = [f"Invalid configuration in {path}:"]
    for item in err.errors():
        loc = ".".join(str(part) for part in item.get("loc", [])) or "<root>"
        msg = item.get("msg", "invalid value")
        lines.append(f"- {loc}: {msg}")
    return "\n".join(lines)
