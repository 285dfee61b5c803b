from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass
class DiscardedError:
    operation: str
    error_type: str
    error: str
    ts_iso: str
    fields: dict[str, Any] = field(default_factory=dict)


class ErrorSink:
    """Single hook for errors that best-effort side effects deliberately discard.

    Every swallowed failure is logged at WARNING and kept in a bounded buffer so
    callers and tests can audit what was dropped without it becoming fatal.
    """

    def __init__(self, logger_name: str = "fivewhy.best_effort", max_events: int = 200) -> None:
        self.logger = logging.getLogger(logger_name)
        self._events: deque[DiscardedError] = deque(maxlen=max(1, max_events))
        self._lock = threading.Lock()

    def report(self, operation: str, exc: BaseException, **fields: Any) -> DiscardedError:
        event = DiscardedError(
            operation=operation,
            error_type=type(exc).__name__,
            error=str(exc),
            ts_iso=datetime.now(timezone.utc).isoformat(),
            fields=dict(fields),
        )
        with self._lock:
            self._events.append(event)
        self.logger.warning(
            "best_effort_failed",
            extra={
                "extra_fields": {
                    "operation": operation,
                    "error_type": event.error_type,
                    "error": event.error,
                    **fields,
                }
            },
        )
        return event

    @property
    def events(self) -> list[DiscardedError]:
        with self._lock:
            return list(self._events)

    def operations(self) -> list[str]:
        return [event.operation for event in self.events]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
