"""
Logging setup and failure sink.

Log records carry structured context through `extra={...}`; the JSON
formatter flattens those fields into the emitted object.
"""

import json
import logging
import sys
import threading
from collections import Counter
from datetime import datetime, timezone
from typing import Any

from wa_inbox.settings import get_settings

# Attributes every LogRecord has; anything else came in through `extra`.
_RESERVED_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

FAILURE_LOGGER_NAME = "wa_inbox.failures"

_configured = False


class JsonFormatter(logging.Formatter):
    """Render log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                data[key] = value
        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)


def setup_logging(level: str | None = None, fmt: str | None = None) -> None:
    """
    Configure the root logger once per process.

    Args:
        level: Log level name (defaults to LOG_LEVEL setting)
        fmt: "json" or "text" (defaults to LOG_FORMAT setting)
    """
    global _configured
    if _configured:
        return

    settings = get_settings()
    level = (level or settings.LOG_LEVEL).upper()
    fmt = fmt or settings.LOG_FORMAT

    handler = logging.StreamHandler(sys.stdout)
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
        )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    _configured = True


class FailureSink:
    """
    Records failures that were swallowed at an item boundary.

    The webhook always acknowledges deliveries, so every per-item failure is
    written to a dedicated logger and counted per stage to keep data loss
    visible.
    """

    def __init__(self) -> None:
        self.logger = logging.getLogger(FAILURE_LOGGER_NAME)
        self._counts: Counter[str] = Counter()
        self._lock = threading.Lock()

    def record(self, stage: str, error: BaseException, **context: Any) -> None:
        """Log a swallowed failure and bump its stage counter."""
        with self._lock:
            self._counts[stage] += 1
        self.logger.error(
            f"{stage} failed: {error}",
            extra={
                "stage": stage,
                "error_type": type(error).__name__,
                **context,
            },
            exc_info=error,
        )

    def count(self, stage: str | None = None) -> int:
        """Number of failures recorded (for one stage, or all)."""
        with self._lock:
            if stage is None:
                return sum(self._counts.values())
            return self._counts[stage]

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counts)
