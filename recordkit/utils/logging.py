"""
Logging setup for recordkit.

``configure_logging(config)`` is called once by the CLI before it opens a
database. Library modules only ever do ``logging.getLogger(__name__)``.

Two knobs matter for a data-access library:

  - ``level`` is the root level for everything.
  - ``sql_level`` is applied to the ``recordkit.db`` logger tree alone.
    ``Statement.execute`` logs each statement at DEBUG and attaches the SQL
    and its bound values as ``sql`` / ``params`` record attributes, so
    ``sql_level = "DEBUG"`` gives a full query trace while the rest of the
    output stays at ``level``.

With ``json_format = true`` every record becomes one JSON object per line
and the ``sql`` / ``params`` attributes appear as their own keys::

    {"ts": "2026-02-24T15:00:00Z", "level": "DEBUG", "logger": "recordkit.db.connection",
     "msg": "SQL: SELECT * FROM users WHERE id = ?", "sql": "...", "params": [7]}
"""

from __future__ import annotations

import json
import logging
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from recordkit.config import LoggingConfig

DB_LOGGER = "recordkit.db"

TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s | %(message)s"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# Attributes every LogRecord carries; anything else came in through extra=.
_STANDARD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


def record_extras(record: logging.LogRecord) -> dict[str, Any]:
    """The ``extra=`` attributes attached to ``record``."""
    return {
        key: val
        for key, val in vars(record).items()
        if key not in _STANDARD_ATTRS and not key.startswith("_")
    }


class _JsonFormatter(logging.Formatter):
    """One JSON object per record: ``ts``, ``level``, ``logger``, ``msg`` plus extras."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: dict[str, Any] = {
            "ts": created.strftime(TIMESTAMP_FORMAT),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            **record_extras(record),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _level(name: str) -> int:
    return logging.getLevelName(name.upper())


def build_formatter(config: "LoggingConfig") -> logging.Formatter:
    if config.json_format:
        return _JsonFormatter()
    text = logging.Formatter(TEXT_FORMAT, datefmt=TIMESTAMP_FORMAT)
    text.converter = time.gmtime
    return text


def build_handlers(config: "LoggingConfig") -> list[logging.Handler]:
    """Stdout handler, plus a UTF-8 file handler when ``log_file`` is set.

    Handlers carry no level of their own; filtering happens on the loggers so
    ``sql_level`` can be more verbose than ``level``.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    formatter = build_formatter(config)
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def configure_logging(config: "LoggingConfig") -> None:
    """Install handlers on the root logger and set the root and SQL levels.

    Safe to call more than once; earlier handlers are replaced.
    """
    logging.basicConfig(level=_level(config.level), handlers=build_handlers(config), force=True)

    db_logger = logging.getLogger(DB_LOGGER)
    if config.sql_level is None:
        db_logger.setLevel(logging.NOTSET)
    else:
        db_logger.setLevel(_level(config.sql_level))
