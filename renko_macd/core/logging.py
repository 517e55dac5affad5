"""Structured JSON logging for the bot process, one compact object per stdout line."""

import json
import logging
import sys
from typing import Any

from renko_macd.core.time_utils import utc_now

_RESERVED = set(logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys())
_CONFIGURED_FLAG = "_renko_macd_configured"
_SECRET_KEYS = frozenset({"connection_string", "shared_access_key", "authorization"})
_REDACTED = "***"


class JsonFormatter(logging.Formatter):
    """Serialize log records as compact JSON lines tagged with the emitting thread."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": utc_now().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }

        extras = {
            key: _REDACTED if key.lower() in _SECRET_KEYS else value
            for key, value in record.__dict__.items()
            if key not in _RESERVED and not key.startswith("_")
        }
        if extras:
            payload["context"] = extras

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=True, separators=(",", ":"), default=str)


def configure_logging(level: str = "INFO") -> None:
    """Configure process-wide JSON logging once; later calls only adjust the level."""

    root = logging.getLogger()
    if getattr(root, _CONFIGURED_FLAG, False):
        root.setLevel(level.upper())
        return

    root.handlers.clear()
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonFormatter())

    root.addHandler(handler)
    root.setLevel(level.upper())
    setattr(root, _CONFIGURED_FLAG, True)
