# backend/app/logging_config.py
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

from .config import settings
from .middleware.request_id import get_request_id

# Structured extras copied onto the JSON line when a caller passes them via extra={...}
_EXTRA_KEYS = ("user_id", "inspection_id", "parent_inspection_id", "task_id", "event")

# quiet by default; SQL echo is enabled through the engine, not the log level
_NOISY = {"sqlalchemy.engine": "WARNING", "sqlalchemy.pool": "WARNING"}


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line: ts, level, logger, message, then request_id and
    whichever lineage ids the caller attached.
    """

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = get_request_id()
        if request_id:
            line["request_id"] = request_id

        line.update({k: getattr(record, k) for k in _EXTRA_KEYS if hasattr(record, k)})

        if record.exc_info:
            line["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(line, ensure_ascii=False, default=str)


def configure_logging(level: str | None = None, *, stream: TextIO | None = None) -> None:
    """Route everything through a single JSON handler (stdout by default). Safe to call more than once."""
    lvl = (level or settings.log_level or "INFO").upper()

    root = logging.getLogger()
    root.setLevel(lvl)
    # uvicorn --reload and the CLI both call this; never stack handlers
    root.handlers[:] = []

    out = logging.StreamHandler(stream or sys.stdout)
    out.setFormatter(JsonFormatter())
    root.addHandler(out)

    logging.getLogger("uvicorn.access").setLevel(lvl)
    for name, noisy_level in _NOISY.items():
        logging.getLogger(name).setLevel(noisy_level)
