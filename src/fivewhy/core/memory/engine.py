from __future__ import annotations

import json
import logging

from pydantic import ValidationError

from fivewhy.core.cancellation import CancellationToken, check
from fivewhy.core.errors import (
    Cancelled,
    EmptyQuery,
    InvalidRequest,
    MissingSessionId,
    SessionNotFound,
    StoreFailure,
)
from fivewhy.core.models.embeddings import Embedder
from fivewhy.core.models.manager import Generator, time_based_id
from fivewhy.core.models.prompts import PromptBuilder
from fivewhy.core.models.schemas import GenerationRequest, ReasoningMode
from fivewhy.core.observability.sink import ErrorSink
from fivewhy.core.vector.base import DEFAULT_SEARCH_LIMIT, VectorDocument, VectorStore

from .kv import SESSION_TTL_S, KeyValueStore, session_key
from .schemas import ROLES, MemoryMessage, RetrievedMemory, SessionMemory, utc_now

SEMANTIC_SECTION_HEADER = "\n--- Semantic Memory ---\n"


class MemoryEngine:
    """Short-term session transcripts plus long-term vector recall.

    Session appends are a plain read-modify-write with no compare-and-swap, so
    two writers on the same session id can lose each other's messages.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        vector_store: VectorStore,
        embedder: Embedder,
        generator: Generator | None = None,
        prompts: PromptBuilder | None = None,
        sink: ErrorSink | None = None,
    ) -> None:
        self.kv = kv
        self.vector_store = vector_store
        self.embedder = embedder
        self.generator = generator
        self.prompts = prompts or PromptBuilder()
        self.sink = sink or ErrorSink()
        self.logger = logging.getLogger("fivewhy.memory")

    def append_session(self, session_id: str, role: str, content: str, token: CancellationToken | None = None) -> None:
        if not session_id:
            raise MissingSessionId("missing session id")
        if role not in ROLES:
            raise InvalidRequest(f"unsupported role: {role}")
        check(token, "memory.append_session")

        key = session_key(session_id)
        session = SessionMemory(session_id=session_id)
        try:
            stored = self.kv.get(key)
        except Exception as exc:
            self.sink.report("memory.append_session.read", exc, session_id=session_id)
            stored = None
        if stored:
            try:
                session = SessionMemory.model_validate_json(stored)
            except ValidationError as exc:
                # A corrupt transcript is replaced rather than blocking new turns.
                self.sink.report("memory.append_session.decode", exc, session_id=session_id)

        now = utc_now()
        session.session_id = session_id
        session.messages.append(MemoryMessage(role=role, content=content, timestamp=now))
        session.updated_at = now

        try:
            self.kv.set(key, session.model_dump_json(), SESSION_TTL_S)
        except Exception as exc:
            self.sink.report("memory.append_session.write", exc, session_id=session_id)

    def get_session(self, session_id: str, token: CancellationToken | None = None) -> SessionMemory:
        check(token, "memory.get_session")
        stored = self.kv.get(session_key(session_id)) if session_id else None
        if not stored:
            raise SessionNotFound(session_id)
        try:
            session = SessionMemory.model_validate_json(stored)
        except ValidationError as exc:
            raise StoreFailure("session", f"undecodable transcript for {session_id}") from exc
        if not session.messages:
            raise SessionNotFound(session_id)
        return session

    def recall(self, query: str, limit: int = DEFAULT_SEARCH_LIMIT, token: CancellationToken | None = None) -> RetrievedMemory:
        if not query:
            raise EmptyQuery("empty query")
        if limit <= 0:
            limit = DEFAULT_SEARCH_LIMIT
        check(token, "memory.recall")

        vector = self.embedder.embed(query)
        documents = self.vector_store.search(vector, limit, token=token)
        context = "".join(f"{doc.content}\n" for doc in documents)
        return RetrievedMemory(documents=documents, context=context)

    def hybrid_context(self, session_id: str, query: str, limit: int = DEFAULT_SEARCH_LIMIT, token: CancellationToken | None = None) -> str:
        """Blend the session transcript with semantic recall; never raises except on cancellation."""
        parts: list[str] = []

        try:
            session = self.get_session(session_id, token=token)
        except Cancelled:
            raise
        except SessionNotFound:
            session = None
        except Exception as exc:
            self.sink.report("memory.hybrid_context.session", exc, session_id=session_id)
            session = None
        if session is not None:
            parts.extend(f"{message.role}: {message.content}\n" for message in session.messages)

        try:
            recalled = self.recall(query, limit, token=token)
        except Cancelled:
            raise
        except Exception as exc:
            self.sink.report("memory.hybrid_context.recall", exc, session_id=session_id)
        else:
            parts.append(SEMANTIC_SECTION_HEADER)
            parts.append(recalled.context)

        return "".join(parts)

    def compress_session(self, session_id: str, token: CancellationToken | None = None) -> str:
        if self.generator is None:
            raise InvalidRequest("memory engine has no generator for compression")
        session = self.get_session(session_id, token=token)

        conversation = json.dumps([message.model_dump(mode="json") for message in session.messages], ensure_ascii=False)
        response = self.generator.generate(
            GenerationRequest(mode=ReasoningMode.ANALYSIS, prompt=self.prompts.memory_summary(conversation)),
            token=token,
        )

        self.vector_store.store(
            VectorDocument(
                id=f"{session_id}_summary",
                content=response.text,
                vector=self.embedder.embed(response.text),
                metadata={"type": "session_summary", "session_id": session_id},
            ),
            token=token,
        )
        self.logger.info(
            "session_compressed",
            extra={"extra_fields": {"session_id": session_id, "messages": len(session.messages), "summary_len": len(response.text)}},
        )
        return response.text

    def store_long_term(self, content: str, metadata: dict[str, str] | None = None, token: CancellationToken | None = None) -> str:
        doc_id = time_based_id()
        self.vector_store.store(
            VectorDocument(id=doc_id, content=content, vector=self.embedder.embed(content), metadata=dict(metadata or {})),
            token=token,
        )
        return doc_id
