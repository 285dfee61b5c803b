from __future__ import annotations

import threading
import time

from .errors import Cancelled


class CancellationToken:
    """Caller-owned cancellation signal threaded through every blocking call.

    A token can be cancelled explicitly or carry a deadline. The engine never
    adds a deadline of its own; whatever the caller supplies is the only bound.
    """

    def __init__(self, timeout_s: float | None = None) -> None:
        self._event = threading.Event()
        self._deadline = time.monotonic() + max(0.0, timeout_s) if timeout_s is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self._expired()

    def _expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining_s(self) -> float | None:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def raise_if_cancelled(self, operation: str) -> None:
        if self._event.is_set():
            raise Cancelled(operation)
        if self._expired():
            raise Cancelled(operation, reason="deadline_exceeded")


def check(token: CancellationToken | None, operation: str) -> None:
    if token is not None:
        token.raise_if_cancelled(operation)
