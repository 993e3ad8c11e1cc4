"""Root logger configuration driven by ``config.logging``.

Modules never configure logging themselves; they only call
``logging.getLogger(__name__)``. The server and CLI entry points call
:func:`configure_logging` once at startup.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime

from quest_board.config import config

_SIMPLE_FORMAT = "%(levelname)s: %(message)s"
_DETAILED_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"


class JsonFormatter(logging.Formatter):
    """Render each record as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, sort_keys=True)


def build_formatter(fmt: str) -> logging.Formatter:
    """Return the formatter for a ``logging.format`` setting value."""
    if fmt == "json":
        return JsonFormatter()
    if fmt == "simple":
        return logging.Formatter(_SIMPLE_FORMAT)
    return logging.Formatter(_DETAILED_FORMAT)


def configure_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Install a single stream handler on the root logger.

    Args:
        level: Log level name; defaults to ``config.logging.level``.
        fmt: ``simple``, ``detailed`` or ``json``; defaults to
            ``config.logging.format``.
    """
    resolved_level = (level or config.logging.level).upper()
    resolved_format = fmt or config.logging.format

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(build_formatter(resolved_format))
    root.addHandler(handler)
    root.setLevel(getattr(logging, resolved_level, logging.INFO))
