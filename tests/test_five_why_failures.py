from __future__ import annotations

import pytest

from fivewhy.core.cancellation import CancellationToken
from fivewhy.core.errors import BackendFailure, Cancelled, InvalidRequest, MalformedModelOutput, StoreFailure
from fivewhy.core.models.backends import GenerationBackend
from fivewhy.core.models.embeddings import LengthEmbedder
from fivewhy.core.models.engine import GenerationEngine
from fivewhy.core.models.schemas import BackendResponse
from fivewhy.core.observability.sink import ErrorSink
from fivewhy.core.orchestration.orchestrator import FiveWhyOrchestrator
from fivewhy.core.vector.base import VectorStore
from fivewhy.core.vector.local import LocalVectorStore

GOOD_JSON = '{"root_cause": "no config review", "category": "process"}'


class ScriptedBackend(GenerationBackend):
    """Replies with ``text`` and fails on the call numbered ``fail_on``."""

    def __init__(self, text: str = GOOD_JSON, fail_on: int | None = None, on_call=None) -> None:
        self.text = text
        self.fail_on = fail_on
        self.on_call = on_call
        self.count = 0

    @property
    def name(self) -> str:
        return "primary"

    def generate(self, request, token=None):
        self.count += 1
        if self.on_call is not None:
            self.on_call(self.count)
        if self.count == self.fail_on:
            raise ConnectionError("backend went away")
        return BackendResponse(text=self.text)


class FailingVectorStore(VectorStore):
    def init(self, token=None):
        return None

    def store(self, doc, token=None):
        raise StoreFailure("vector", "disk full")

    def search(self, vector, limit=5, token=None):
        return []

    def delete(self, doc_id, token=None):
        return None


def _orchestrator(backend: GenerationBackend, store: VectorStore | None = None, sink: ErrorSink | None = None):
    engine = GenerationEngine()
    engine.register_backend(backend)
    if store is None:
        store = LocalVectorStore()
        store.init()
    return FiveWhyOrchestrator(engine, store, LengthEmbedder(dimension=8), sink=sink)


def test_empty_question_is_rejected_without_generation() -> None:
    backend = ScriptedBackend()

    with pytest.raises(InvalidRequest):
        _orchestrator(backend).run_five_why("s1", "")
    assert backend.count == 0


@pytest.mark.parametrize("fail_on", [1, 8, 15, 16, 17, 18])
def test_backend_failure_anywhere_aborts_the_run(fail_on: int) -> None:
    store = LocalVectorStore()
    backend = ScriptedBackend(fail_on=fail_on)

    with pytest.raises(BackendFailure):
        _orchestrator(backend, store=store).run_five_why("s1", "Deploys fail intermittently")

    assert backend.count == fail_on
    assert store.count() == 0


def test_unparseable_root_cause_aborts_the_run() -> None:
    with pytest.raises(MalformedModelOutput):
        _orchestrator(ScriptedBackend(text="I cannot answer in JSON")).run_five_why("s1", "Why?")


def test_cancellation_mid_run_aborts() -> None:
    token = CancellationToken()

    def cancel_on_fourth(count: int) -> None:
        if count == 4:
            token.cancel()

    backend = ScriptedBackend(on_call=cancel_on_fourth)

    with pytest.raises(Cancelled):
        _orchestrator(backend).run_five_why("s1", "Why?", token=token)
    assert backend.count == 4


def test_persistence_failures_go_to_the_sink_not_the_caller() -> None:
    sink = ErrorSink()

    session = _orchestrator(ScriptedBackend(), store=FailingVectorStore(), sink=sink).run_five_why("s1", "Why?")

    assert session.root_cause.root_cause == "no config review"
    assert sink.operations() == ["orchestrator.persist"] * 3
    assert [event.fields["doc_id"] for event in sink.events] == ["s1", "s1_rca", "s1_solution"]


def test_empty_root_cause_is_reported_but_run_succeeds() -> None:
    sink = ErrorSink()
    store = LocalVectorStore()

    session = _orchestrator(ScriptedBackend(text='{"root_cause": ""}'), store=store, sink=sink).run_five_why("s1", "Why?")

    assert session.root_cause.root_cause == ""
    assert [event.fields["doc_id"] for event in sink.events] == ["s1_rca"]
    assert store.get("s1") is not None
    assert store.get("s1_solution") is not None


class UnreachableVectorStore(FailingVectorStore):
    def store(self, doc, token=None):
        raise ConnectionError("index unreachable")


class CrashingEmbedder:
    dimension = 8

    def embed(self, text):
        raise RuntimeError("embedding model crashed")


def test_foreign_store_errors_during_persistence_are_reported() -> None:
    sink = ErrorSink()

    session = _orchestrator(ScriptedBackend(), store=UnreachableVectorStore(), sink=sink).run_five_why("s1", "Why?")

    assert session.root_cause.root_cause == "no config review"
    assert [event.error_type for event in sink.events] == ["ConnectionError"] * 3


def test_embedder_crash_during_persistence_is_reported() -> None:
    sink = ErrorSink()
    engine = GenerationEngine()
    engine.register_backend(ScriptedBackend())
    store = LocalVectorStore()
    orchestrator = FiveWhyOrchestrator(engine, store, CrashingEmbedder(), sink=sink)

    session = orchestrator.run_five_why("s1", "Why?")

    assert [step.level for step in session.steps] == [1, 2, 3, 4, 5]
    assert [event.error_type for event in sink.events] == ["RuntimeError"] * 3
    assert store.count() == 0


def test_cancellation_on_last_generation_aborts_before_persistence() -> None:
    token = CancellationToken()
    sink = ErrorSink()
    store = LocalVectorStore()

    def cancel_on_last(count: int) -> None:
        if count == 18:
            token.cancel()

    backend = ScriptedBackend(on_call=cancel_on_last)

    with pytest.raises(Cancelled):
        _orchestrator(backend, store=store, sink=sink).run_five_why("s1", "Why?", token=token)

    assert backend.count == 18
    assert sink.events == []
    assert store.count() == 0
