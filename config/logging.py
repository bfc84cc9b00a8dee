import json
import logging
import random
from datetime import datetime, timezone

# Attributes every LogRecord carries; anything else arrived through `extra`
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}

# Payment credentials that must never reach a log sink
REDACTED_KEYS = frozenset({"hmac", "signature", "payment_token", "payment_key", "auth_token", "api_key", "password"})


def _jsonable(value):
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


class JsonFormatter(logging.Formatter):
    """One JSON object per record.

    Base fields are time (ISO-8601 UTC), level, name and message. Attributes
    passed through `extra` (event, order_id, provider_order_id...) are merged
    in, with credential-like keys masked. Dict messages are merged by key.
    """

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "name": record.name,
        }
        if isinstance(record.msg, dict):
            payload.update({key: _jsonable(value) for key, value in record.msg.items()})
        else:
            payload["message"] = record.getMessage()

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS:
                continue
            payload.setdefault(key, "***" if key in REDACTED_KEYS else _jsonable(value))

        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        for key in REDACTED_KEYS & payload.keys():
            payload[key] = "***"
        return json.dumps(payload, ensure_ascii=False)


class SamplingFilter(logging.Filter):
    """Keep a fraction of chatty records.

    Only records at one of `levels` are sampled; `allow_events` names event
    strings (the log message) that always pass, such as settlement and
    signature rejections.
    """

    def __init__(self, rate: float = 1.0, levels: list[str] | None = None, allow_events: list[str] | None = None):
        super().__init__()
        self.rate = min(max(float(rate), 0.0), 1.0)
        self.levels = set(levels or ["INFO"])
        self.allow_events = set(allow_events or [])

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if record.levelname not in self.levels:
            return True
        if getattr(record, "event", record.msg) in self.allow_events:
            return True
        return self.rate >= 1.0 or random.random() < self.rate
