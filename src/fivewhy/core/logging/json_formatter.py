from __future__ import annotations

import json
import logging
import traceback
from datetime import datetime, timezone

from .context import get_log_context
from .redact import redact_fields, redact_string

# Keys owned by the formatter; structured fields with these names are nested under "fields".
_RESERVED = frozenset({"ts_iso_utc", "level", "logger", "msg", "exc_type", "exc_msg", "stack"})


class JSONFormatter(logging.Formatter):
    """One JSON object per line: record basics, log context ids, then ``extra_fields``."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "ts_iso_utc": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": redact_string(record.getMessage()),
        }
        payload.update(get_log_context())

        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict):
            fields = redact_fields(extra_fields)
            clashing = {key: fields.pop(key) for key in list(fields) if key in _RESERVED}
            payload.update(fields)
            if clashing:
                payload["fields"] = clashing

        if record.exc_info:
            exc_type, exc_value, exc_tb = record.exc_info
            payload["exc_type"] = exc_type.__name__ if exc_type else "Exception"
            payload["exc_msg"] = redact_string(str(exc_value)) if exc_value else ""
            payload["stack"] = redact_string("".join(traceback.format_exception(exc_type, exc_value, exc_tb)))

        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=str)
