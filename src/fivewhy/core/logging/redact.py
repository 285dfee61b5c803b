from __future__ import annotations

import re
from typing import Any

_SECRET_FIELD_RE = re.compile(r"(?i)^(api[_-]?key|(\w+_)?token|(\w+_)?secret|password|authorization)$")
_SECRET_VALUE_RE = re.compile(r"(?i)(api[_-]?key|token|secret|password)(\s*[=:]\s*)([^\s,;]+)")
_BEARER_RE = re.compile(r"(?i)(bearer\s+)([^\s]+)")
_REDIS_PASSWORD_RE = re.compile(r"(rediss?://[^:/@\s]*:)([^@\s]+)(@)")


def redact_string(s: str) -> str:
    redacted = _SECRET_VALUE_RE.sub(lambda m: f"{m.group(1)}{m.group(2)}***", s)
    redacted = _BEARER_RE.sub(lambda m: f"{m.group(1)}***", redacted)
    redacted = _REDIS_PASSWORD_RE.sub(lambda m: f"{m.group(1)}***{m.group(3)}", redacted)
    return redacted


def redact_fields(fields: dict[str, Any]) -> dict[str, Any]:
    """Mask secret-named fields outright and scrub secrets out of string values."""
    output: dict[str, Any] = {}
    for key, value in fields.items():
        if _SECRET_FIELD_RE.search(str(key)) and value is not None:
            output[key] = "***"
        elif isinstance(value, str):
            output[key] = redact_string(value)
        else:
            output[key] = value
    return output
