import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

# optional context fields copied from `extra=`
_CONTEXT_FIELDS = (
    "corr_id",
    "tg_id",
    "update_id",
    "payment_id",
    "withdrawal_id",
    "admin_id",
    "referrer_id",
    "key",
    "op",
    "count",
    "sent",
    "failed",
    "err",
)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for k in _CONTEXT_FIELDS:
            if hasattr(record, k):
                payload[k] = getattr(record, k)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def setup_logging() -> None:
    """Structured JSON logs to stdout."""
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    root = logging.getLogger()
    root.setLevel(level)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.handlers.clear()
    root.addHandler(handler)
    # one line per handled update is too chatty at INFO
    logging.getLogger("aiogram.event").setLevel(max(root.level, logging.WARNING))
