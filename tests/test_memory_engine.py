from __future__ import annotations

import pytest

from fivewhy.core.cancellation import CancellationToken
from fivewhy.core.errors import (
    Cancelled,
    EmptyQuery,
    InvalidRequest,
    MissingSessionId,
    SessionNotFound,
    StoreFailure,
)
from fivewhy.core.memory.engine import SEMANTIC_SECTION_HEADER, MemoryEngine
from fivewhy.core.memory.kv import SESSION_TTL_S, InMemoryKeyValueStore, session_key
from fivewhy.core.models.embeddings import LengthEmbedder
from fivewhy.core.models.schemas import GenerationResponse, ReasoningMode
from fivewhy.core.observability.sink import ErrorSink
from fivewhy.core.vector.local import LocalVectorStore


class BrokenKeyValueStore:
    def get(self, key):
        raise StoreFailure("kv", "connection refused")

    def set(self, key, value, ttl_s):
        raise StoreFailure("kv", "connection refused")


class SummaryGenerator:
    def __init__(self, text: str = "user asked about deploys") -> None:
        self.text = text
        self.requests = []

    def generate(self, request, token=None):
        self.requests.append(request)
        return GenerationResponse(text=self.text, tokens=5, latency_s=0.0, backend="stub", model="m", confidence=0.5)


def _engine(kv=None, generator=None, sink=None) -> MemoryEngine:
    store = LocalVectorStore()
    store.init()
    return MemoryEngine(kv or InMemoryKeyValueStore(), store, LengthEmbedder(dimension=4), generator=generator, sink=sink)


def test_append_and_get_session_keeps_order_and_ttl() -> None:
    kv = InMemoryKeyValueStore()
    memory = _engine(kv=kv)

    memory.append_session("s1", "user", "why do deploys fail?")
    memory.append_session("s1", "assistant", "flaky network config")

    session = memory.get_session("s1")
    assert session.session_id == "s1"
    assert [(m.role, m.content) for m in session.messages] == [
        ("user", "why do deploys fail?"),
        ("assistant", "flaky network config"),
    ]
    assert session.updated_at == session.messages[-1].timestamp
    assert SESSION_TTL_S - 5 < kv.ttl(session_key("s1")) <= SESSION_TTL_S


def test_append_requires_session_id_and_known_role() -> None:
    memory = _engine()

    with pytest.raises(MissingSessionId):
        memory.append_session("", "user", "hello")
    with pytest.raises(InvalidRequest):
        memory.append_session("s1", "system", "hello")


def test_get_session_missing_or_empty_is_not_found() -> None:
    kv = InMemoryKeyValueStore()
    kv.set(session_key("empty"), '{"session_id": "empty", "messages": []}', 60)
    memory = _engine(kv=kv)

    with pytest.raises(SessionNotFound):
        memory.get_session("nope")
    with pytest.raises(SessionNotFound):
        memory.get_session("empty")


def test_corrupt_transcript_surfaces_as_store_failure() -> None:
    kv = InMemoryKeyValueStore()
    kv.set(session_key("bad"), "{not json", 60)
    memory = _engine(kv=kv)

    with pytest.raises(StoreFailure):
        memory.get_session("bad")


def test_append_failures_are_reported_not_raised() -> None:
    sink = ErrorSink()
    memory = _engine(kv=BrokenKeyValueStore(), sink=sink)

    memory.append_session("s1", "user", "hello")

    assert sink.operations() == ["memory.append_session.read", "memory.append_session.write"]


def test_recall_rejects_empty_query() -> None:
    with pytest.raises(EmptyQuery):
        _engine().recall("")


@pytest.mark.parametrize("limit", [0, -3])
def test_recall_non_positive_limit_defaults_to_five(limit: int) -> None:
    memory = _engine()
    for index in range(7):
        memory.store_long_term("m" * (index + 1), {"type": "note"})

    recalled = memory.recall("mmm", limit=limit)

    assert len(recalled.documents) == 5
    assert recalled.documents[0].content == "mmm"
    assert recalled.context == "".join(f"{doc.content}\n" for doc in recalled.documents)


def test_hybrid_context_without_session_is_only_semantic_section() -> None:
    sink = ErrorSink()
    memory = _engine(sink=sink)
    memory.store_long_term("network config drift")

    context = memory.hybrid_context("unknown-session", "network config drift")

    assert context == f"{SEMANTIC_SECTION_HEADER}network config drift\n"
    assert "user:" not in context
    assert sink.events == []


def test_hybrid_context_puts_transcript_before_semantic_section() -> None:
    memory = _engine()
    memory.append_session("s1", "user", "hello")
    memory.append_session("s1", "assistant", "hi there")
    memory.store_long_term("remembered fact")

    context = memory.hybrid_context("s1", "remembered fact", limit=1)

    assert context == f"user: hello\nassistant: hi there\n{SEMANTIC_SECTION_HEADER}remembered fact\n"


def test_hybrid_context_reports_store_errors_and_still_returns() -> None:
    sink = ErrorSink()
    memory = _engine(kv=BrokenKeyValueStore(), sink=sink)

    context = memory.hybrid_context("s1", "")

    assert context == ""
    assert sink.operations() == ["memory.hybrid_context.session", "memory.hybrid_context.recall"]


def test_hybrid_context_propagates_cancellation() -> None:
    token = CancellationToken()
    token.cancel()

    with pytest.raises(Cancelled):
        _engine().hybrid_context("s1", "query", token=token)


def test_compress_session_stores_summary_document() -> None:
    generator = SummaryGenerator()
    memory = _engine(generator=generator)
    memory.append_session("s1", "user", "why do deploys fail?")

    summary = memory.compress_session("s1")

    assert summary == "user asked about deploys"
    assert generator.requests[0].mode is ReasoningMode.ANALYSIS
    assert "why do deploys fail?" in generator.requests[0].prompt
    stored = memory.vector_store.get("s1_summary")
    assert stored.content == summary
    assert stored.metadata == {"type": "session_summary", "session_id": "s1"}


def test_compress_session_needs_a_generator_and_a_session() -> None:
    with pytest.raises(InvalidRequest):
        _engine().compress_session("s1")
    with pytest.raises(SessionNotFound):
        _engine(generator=SummaryGenerator()).compress_session("s1")


class UnreachableVectorStore(LocalVectorStore):
    def search(self, vector, limit=5, token=None):
        raise ConnectionError("index unreachable")


class CrashingKeyValueStore:
    def get(self, key):
        raise TimeoutError("kv timed out")

    def set(self, key, value, ttl_s):
        raise TimeoutError("kv timed out")


def test_hybrid_context_swallows_foreign_search_errors() -> None:
    sink = ErrorSink()
    memory = MemoryEngine(InMemoryKeyValueStore(), UnreachableVectorStore(), LengthEmbedder(dimension=8), sink=sink)
    memory.append_session("s1", "user", "hello")

    context = memory.hybrid_context("s1", "query")

    assert context == "user: hello\n"
    assert [(event.operation, event.error_type) for event in sink.events] == [
        ("memory.hybrid_context.recall", "ConnectionError")
    ]


def test_foreign_key_value_errors_are_reported() -> None:
    sink = ErrorSink()
    memory = _engine(kv=CrashingKeyValueStore(), sink=sink)

    memory.append_session("s1", "user", "hello")
    context = memory.hybrid_context("s1", "")

    assert context == ""
    assert [event.error_type for event in sink.events] == ["TimeoutError", "TimeoutError", "TimeoutError", "EmptyQuery"]
