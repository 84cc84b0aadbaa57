import json
import logging
from datetime import datetime, timezone
from typing import Optional

EXTRA_FIELDS = (
    "request_id",
    "path",
    "status",
    "latency_ms",
    "key",
    "expiration",
    "evicted",
    "keys",
)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "level": record.levelname,
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        # extras
        for k in EXTRA_FIELDS:
            if hasattr(record, k):
                payload[k] = getattr(record, k)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def get_logger(name: str = "ttl-cache", level: Optional[str] = None) -> logging.Logger:
    """Return a logger that writes JSON lines to stderr.

    The handler is installed once per logger name; later calls only adjust the level.
    """
    logger = logging.getLogger(name)
    if level:
        logger.setLevel(level.upper())
    if not any(isinstance(h.formatter, JsonFormatter) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        logger.handlers = [handler]
    return logger
