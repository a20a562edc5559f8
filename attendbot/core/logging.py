import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

# passed by handlers and the conversation engine through ``extra=``
CONTEXT_FIELDS = ("corr_id", "update_id", "user_id", "state")

# third-party loggers that are too chatty at INFO
_QUIET_LOGGERS = ("aiogram.event", "aiohttp.access")


class JsonFormatter(logging.Formatter):
    """One JSON object per line: ts, level, logger, msg, context, exc."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        payload.update({k: getattr(record, k) for k in CONTEXT_FIELDS if getattr(record, k, None) is not None})
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(level: str | None = None) -> None:
    root = logging.getLogger()
    root.setLevel((level or os.getenv("LOG_LEVEL", "INFO")).upper())
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.handlers[:] = [handler]
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
