from __future__ import annotations

import threading
import time
from typing import Protocol

import redis

from fivewhy.core.errors import StoreFailure

SESSION_TTL_S = 24 * 60 * 60
LAST_RESPONSE_TTL_S = 30 * 60
SESSION_KEY_PREFIX = "session:"
LAST_RESPONSE_KEY = "llm:last_response"


def session_key(session_id: str) -> str:
    return f"{SESSION_KEY_PREFIX}{session_id}"


class KeyValueStore(Protocol):
    def set(self, key: str, value: str, ttl_s: int) -> None: ...

    def get(self, key: str) -> str | None: ...


class InMemoryKeyValueStore:
    """Process-local key/value store with per-key expiry; atomic per key only."""

    def __init__(self) -> None:
        self._data: dict[str, tuple[float, str]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        now = time.monotonic()
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= now:
                self._data.pop(key, None)
                return None
            return value

    def set(self, key: str, value: str, ttl_s: int) -> None:
        expires_at = time.monotonic() + max(1, int(ttl_s))
        with self._lock:
            self._data[key] = (expires_at, value)

    def ttl(self, key: str) -> float | None:
        with self._lock:
            entry = self._data.get(key)
        if entry is None:
            return None
        return max(0.0, entry[0] - time.monotonic())


class RedisKeyValueStore:
    def __init__(self, client: redis.Redis) -> None:
        self.client = client

    @classmethod
    def from_url(cls, url: str = "redis://localhost:6379/0", ping: bool = True) -> RedisKeyValueStore:
        client = redis.Redis.from_url(url, decode_responses=True, socket_connect_timeout=5)
        if ping:
            try:
                client.ping()
            except redis.RedisError as exc:
                raise StoreFailure("redis", str(exc)) from exc
        return cls(client)

    def get(self, key: str) -> str | None:
        try:
            value = self.client.get(key)
        except redis.RedisError as exc:
            raise StoreFailure("redis", str(exc)) from exc
        return None if value is None else str(value)

    def set(self, key: str, value: str, ttl_s: int) -> None:
        try:
            self.client.set(key, value, ex=max(1, int(ttl_s)))
        except redis.RedisError as exc:
            raise StoreFailure("redis", str(exc)) from exc

    def close(self) -> None:
        self.client.close()
