"""
recordkit settings.

Settings are resolved from four layers, later layers winning:

  1. ``config/default.toml`` shipped with the project
  2. ``config/local.toml`` beside it, when present
  3. ``.env`` at the project root (never overrides variables already set)
  4. ``RECORDKIT_*`` environment variables (see ``ENV_OVERRIDES``)

``load_config()`` returns a frozen ``AppConfig``. The CLI hands its
``DatabaseConfig`` section to ``ConnectionManager``, its ``LoggingConfig``
to ``configure_logging()`` and its ``PaginationConfig`` to repositories.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Callable, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _check_level(value: str) -> str:
    if value.upper() not in LOG_LEVELS:
        raise ValueError(f"Log level must be one of {list(LOG_LEVELS)}, got '{value}'.")
    return value.upper()


class DatabaseConfig(BaseModel):
    """Where the SQLite file lives and how the handle is tuned."""

    model_config = ConfigDict(frozen=True)

    db_path: str = "data/db/recordkit.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000

    @field_validator("db_path")
    @classmethod
    def validate_db_path(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("db_path must not be empty; use ':memory:' for a scratch database.")
        return v

    @field_validator("busy_timeout_ms")
    @classmethod
    def validate_busy_timeout(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"busy_timeout_ms must be non-negative, got {v}.")
        return v

    @property
    def is_memory(self) -> bool:
        return self.db_path == ":memory:"


class LoggingConfig(BaseModel):
    """Log output plus the separate verbosity of the ``recordkit.db`` loggers.

    ``sql_level = "DEBUG"`` traces every statement with its bound values
    without turning the rest of the application up to DEBUG. Left unset,
    the database loggers follow ``level``.
    """

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    sql_level: Optional[str] = None
    log_file: Optional[str] = None
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        return _check_level(v)

    @field_validator("sql_level")
    @classmethod
    def validate_sql_level(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else _check_level(v)


class PaginationConfig(BaseModel):
    """Page sizes repositories fall back to when the caller omits them."""

    model_config = ConfigDict(frozen=True)

    default_per_page: int = 15
    max_per_page: int = 100

    @field_validator("default_per_page", "max_per_page")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"Page sizes must be positive, got {v}.")
        return v

    @model_validator(mode="after")
    def validate_default_within_max(self) -> "PaginationConfig":
        if self.default_per_page > self.max_per_page:
            raise ValueError(
                f"default_per_page ({self.default_per_page}) exceeds "
                f"max_per_page ({self.max_per_page})."
            )
        return self


class AppConfig(BaseModel):
    """All recordkit settings, as returned by ``load_config()``."""

    model_config = ConfigDict(frozen=True)

    database: DatabaseConfig = DatabaseConfig()
    logging: LoggingConfig = LoggingConfig()
    pagination: PaginationConfig = PaginationConfig()
    debug: bool = False


# ── Loader ────────────────────────────────────────────────────────────────────

_PACKAGE_PARENT = Path(__file__).resolve().parent.parent


def _truthy(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


# env var -> (section or None for top level, key, converter)
ENV_OVERRIDES: dict[str, tuple[Optional[str], str, Callable[[str], Any]]] = {
    "RECORDKIT_DB_PATH": ("database", "db_path", str),
    "RECORDKIT_BUSY_TIMEOUT_MS": ("database", "busy_timeout_ms", int),
    "RECORDKIT_LOG_LEVEL": ("logging", "level", str),
    "RECORDKIT_SQL_LOG_LEVEL": ("logging", "sql_level", str),
    "RECORDKIT_LOG_JSON": ("logging", "json_format", _truthy),
    "RECORDKIT_DEBUG": (None, "debug", _truthy),
}


def _find_project_root() -> Path:
    """Nearest ancestor of this module holding ``pyproject.toml``."""
    for candidate in Path(__file__).resolve().parents:
        if (candidate / "pyproject.toml").exists():
            return candidate
    return _PACKAGE_PARENT


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Resolve settings from TOML, ``.env`` and ``RECORDKIT_*`` variables.

    Args:
        config_path: TOML file to start from. Defaults to
            ``<project_root>/config/default.toml``. A ``local.toml`` next to
            it is merged on top.

    Raises:
        FileNotFoundError: If the TOML file does not exist.
        pydantic.ValidationError: If a resolved value is invalid.
        ValueError: If a numeric ``RECORDKIT_*`` variable is not a number.
    """
    root = _find_project_root()
    load_dotenv(dotenv_path=root / ".env", override=False)

    path = Path(config_path) if config_path is not None else root / "config" / "default.toml"
    if not path.exists():
        raise FileNotFoundError(
            f"Config file not found: {path}\n"
            "Create config/default.toml or pass --config explicitly."
        )

    raw = _read_toml(path)
    local_path = path.parent / "local.toml"
    if local_path.exists():
        raw = _deep_merge(raw, _read_toml(local_path))

    return _build_app_config(_apply_env_overrides(raw))


def _read_toml(path: Path) -> dict[str, Any]:
    with open(path, "rb") as f:
        return tomllib.load(f)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge ``override`` into a copy of ``base``, descending into tables."""
    merged = dict(base)
    for key, val in override.items():
        if isinstance(merged.get(key), dict) and isinstance(val, dict):
            merged[key] = _deep_merge(merged[key], val)
        else:
            merged[key] = val
    return merged


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Copy every set ``ENV_OVERRIDES`` variable into ``raw``."""
    for env_name, (section, key, convert) in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if not value:
            continue
        target = raw if section is None else raw.setdefault(section, {})
        target[key] = convert(value)
    return raw


def _build_app_config(raw: dict[str, Any]) -> AppConfig:
    # [project].debug is accepted as an alias for a top-level debug key
    debug = raw.get("debug", raw.get("project", {}).get("debug", False))
    return AppConfig(
        database=DatabaseConfig(**raw.get("database", {})),
        logging=LoggingConfig(**raw.get("logging", {})),
        pagination=PaginationConfig(**raw.get("pagination", {})),
        debug=debug,
    )
