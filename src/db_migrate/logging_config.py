"""Logging setup for migration runs.

Two JSON-lines files under ``LOG_DIR``:

- ``error.log``    -- ERROR and above
- ``combined.log`` -- everything at or above ``LOG_LEVEL``

plus a rich console handler outside production.  Structured fields passed
through ``extra=`` (``table``, ``cursor``, counters) are copied into the
JSON record.

Usage:
    from db_migrate.logging_config import configure_logging

    configure_logging(settings)
"""

import json
import logging
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

from db_migrate.config.models import MigrationSettings

ERROR_LOG = "error.log"
COMBINED_LOG = "combined.log"

# Attributes every LogRecord carries; anything else came from ``extra=``.
_RESERVED = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime", "taskName"}


def _jsonable(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return str(value)


class JSONFileFormatter(logging.Formatter):
    """One JSON object per record, including ``extra`` fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED and not key.startswith("_"):
                entry[key] = _jsonable(value)

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry)


def configure_logging(
    settings: MigrationSettings,
    console: Console | None = None,
) -> logging.Logger:
    """Install file and console handlers on the root logger.

    Replaces handlers from a previous call, so it is safe to call once per
    CLI invocation.

    Args:
        settings: Supplies ``log_dir``, ``log_level`` and the environment.
        console: Console for the rich handler (stderr by default).

    Returns:
        The configured root logger.
    """
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    formatter = JSONFileFormatter()

    error_handler = logging.FileHandler(log_dir / ERROR_LOG, encoding="utf-8")
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(formatter)
    root.addHandler(error_handler)

    combined_handler = logging.FileHandler(log_dir / COMBINED_LOG, encoding="utf-8")
    combined_handler.setLevel(level)
    combined_handler.setFormatter(formatter)
    root.addHandler(combined_handler)

    if not settings.is_production:
        rich_handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            markup=False,
            rich_tracebacks=True,
        )
        rich_handler.setLevel(level)
        root.addHandler(rich_handler)

    # Driver-level chatter from the HTTP and DB stacks.
    for noisy in ("httpx", "httpcore", "hpack", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return root
