from __future__ import annotations

import time
from typing import Protocol
from uuid import uuid4

from fivewhy.core.cancellation import CancellationToken
from fivewhy.core.errors import Cancelled
from fivewhy.core.memory.kv import LAST_RESPONSE_KEY, LAST_RESPONSE_TTL_S, KeyValueStore
from fivewhy.core.observability.sink import ErrorSink
from fivewhy.core.vector.base import VectorDocument, VectorStore

from .embeddings import Embedder
from .engine import GenerationEngine
from .schemas import GenerationRequest, GenerationResponse, ReasoningMode


class Generator(Protocol):
    def generate(self, request: GenerationRequest, token: CancellationToken | None = None) -> GenerationResponse: ...


def time_based_id() -> str:
    return time.strftime("%Y%m%d%H%M%S", time.gmtime()) + f".{time.time_ns() % 1_000_000_000:09d}.{uuid4().hex[:6]}"


class GenerationManager:
    """Engine front door that remembers what the models said.

    After each successful call the text is cached as the last response for 30
    minutes and, when ``remember_responses`` is on, embedded into long-term
    memory. Both writes are best-effort: failures go to the error sink and the
    caller still gets its response.
    """

    def __init__(
        self,
        engine: GenerationEngine,
        kv: KeyValueStore | None = None,
        vector_store: VectorStore | None = None,
        embedder: Embedder | None = None,
        sink: ErrorSink | None = None,
        remember_responses: bool = False,
    ) -> None:
        self.engine = engine
        self.kv = kv
        self.vector_store = vector_store
        self.embedder = embedder
        self.sink = sink or ErrorSink()
        self.remember_responses = remember_responses

    def generate(self, request: GenerationRequest, token: CancellationToken | None = None) -> GenerationResponse:
        response = self.engine.generate(request, token=token)
        self._remember(request, response, token)
        return response

    def last_response(self) -> str | None:
        if self.kv is None:
            return None
        return self.kv.get(LAST_RESPONSE_KEY)

    def _remember(self, request: GenerationRequest, response: GenerationResponse, token: CancellationToken | None) -> None:
        if self.kv is not None:
            try:
                self.kv.set(LAST_RESPONSE_KEY, response.text, LAST_RESPONSE_TTL_S)
            except Exception as exc:
                self.sink.report("llm.cache_last_response", exc)

        if not self.remember_responses or self.vector_store is None or self.embedder is None or not response.text:
            return
        mode = request.mode or ReasoningMode.DEFAULT
        try:
            self.vector_store.store(
                VectorDocument(
                    id=time_based_id(),
                    content=response.text,
                    vector=self.embedder.embed(response.text),
                    metadata={"mode": mode.value, "backend": response.backend, "model": response.model},
                ),
                token=token,
            )
        except Cancelled:
            raise
        except Exception as exc:
            self.sink.report("llm.store_response", exc, mode=mode.value)
