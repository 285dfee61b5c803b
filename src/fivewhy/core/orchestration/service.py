from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from uuid import uuid4

from pydantic import BaseModel

from fivewhy.core.cancellation import CancellationToken
from fivewhy.core.errors import Cancelled, ConfigError, FeatureDisabled, InvalidRequest
from fivewhy.core.logging import log_context
from fivewhy.core.memory.engine import MemoryEngine
from fivewhy.core.memory.schemas import RetrievedMemory
from fivewhy.core.models.manager import Generator
from fivewhy.core.models.prompts import PromptBuilder
from fivewhy.core.models.schemas import GenerationRequest, GenerationResponse, ReasoningMode
from fivewhy.core.observability.sink import ErrorSink
from fivewhy.core.runs.schemas import ChatRecord
from fivewhy.core.runs.store import Repository
from fivewhy.core.scheduler.scheduler import MaintenanceScheduler
from fivewhy.core.vector.base import DEFAULT_SEARCH_LIMIT, VectorDocument

from .orchestrator import FiveWhyOrchestrator
from .schemas import CausalStep, FiveWhySession, ReframedQuestion, RootCauseResult

HYBRID_CONTEXT_LIMIT = 5


@dataclass
class FeatureFlags:
    five_why: bool = True
    root_cause: bool = True
    reframer: bool = True


class ChatReply(BaseModel):
    session_id: str
    response: GenerationResponse


class ReasoningService:
    """Caller-facing facade: memory-augmented chat plus the 5-Why entry points.

    Memory appends, vector writes and repository saves around a call are
    best-effort; their failures are reported to the sink and never change
    what the caller gets back.
    """

    def __init__(
        self,
        generator: Generator,
        orchestrator: FiveWhyOrchestrator,
        memory: MemoryEngine | None = None,
        repository: Repository | None = None,
        scheduler: MaintenanceScheduler | None = None,
        features: FeatureFlags | None = None,
        prompts: PromptBuilder | None = None,
        sink: ErrorSink | None = None,
    ) -> None:
        self.generator = generator
        self.orchestrator = orchestrator
        self.memory = memory
        self.repository = repository
        self.sink = sink or ErrorSink()
        self.scheduler = scheduler or MaintenanceScheduler(sink=self.sink)
        self.features = features or FeatureFlags()
        self.prompts = prompts or PromptBuilder()
        self.logger = logging.getLogger("fivewhy.service")

    def chat(self, session_id: str, user_id: str, message: str, token: CancellationToken | None = None) -> ChatReply:
        if not message:
            raise InvalidRequest("empty message")
        session_id = session_id or uuid4().hex

        with log_context(session_id=session_id, user_id=user_id):
            self._remember_turn(session_id, "user", message, token)
            context = ""
            if self.memory is not None:
                context = self.memory.hybrid_context(session_id, message, HYBRID_CONTEXT_LIMIT, token=token)

            response = self.generator.generate(
                GenerationRequest(mode=ReasoningMode.REASONING, prompt=self.prompts.chat(context, message)),
                token=token,
            )

            self._remember_turn(session_id, "assistant", response.text, token)
            if self.repository is not None:
                try:
                    self.repository.save_message(session_id, user_id, message, response.text)
                except Exception as exc:
                    self.sink.report("service.save_message", exc, session_id=session_id)
            return ChatReply(session_id=session_id, response=response)

    def five_why(self, session_id: str, user_id: str, question: str, token: CancellationToken | None = None) -> FiveWhySession:
        if not self.features.five_why:
            raise FeatureDisabled("five_why")
        session_id = session_id or uuid4().hex

        with log_context(session_id=session_id, user_id=user_id):
            if question:
                self._remember_turn(session_id, "user", question, token)

            session = self.orchestrator.run_five_why(session_id, question, token=token)

            root_text = session.root_cause.root_cause
            try:
                self.orchestrator.vector_store.store(
                    VectorDocument(
                        id=f"{session_id}_root",
                        content=root_text,
                        vector=self.orchestrator.embedder.embed(root_text),
                        metadata={"type": "root_cause", "user_id": user_id, "session_id": session_id},
                    ),
                    token=token,
                )
            except Cancelled:
                raise
            except Exception as exc:
                self.sink.report("service.store_root_cause", exc, session_id=session_id)

            if root_text:
                self._remember_turn(session_id, "assistant", root_text, token)
            if self.repository is not None:
                try:
                    self.repository.save_five_why_session(user_id, session)
                except Exception as exc:
                    self.sink.report("service.save_five_why_session", exc, session_id=session_id)
            return session

    def root_cause(self, steps: Sequence[CausalStep], token: CancellationToken | None = None) -> RootCauseResult:
        if not self.features.root_cause:
            raise FeatureDisabled("root_cause")
        return self.orchestrator.extract_root_cause(steps, token=token)

    def reframe(self, question: str, root_cause: RootCauseResult, token: CancellationToken | None = None) -> ReframedQuestion:
        if not self.features.reframer:
            raise FeatureDisabled("reframer")
        return self.orchestrator.reframe_question(question, root_cause, token=token)

    def compress_session(self, session_id: str, token: CancellationToken | None = None) -> str:
        return self._require_memory().compress_session(session_id, token=token)

    def recall(self, query: str, limit: int = DEFAULT_SEARCH_LIMIT, token: CancellationToken | None = None) -> RetrievedMemory:
        return self._require_memory().recall(query, limit, token=token)

    def history(self, session_id: str, limit: int = 50) -> list[ChatRecord]:
        if self.repository is None:
            raise ConfigError("repository not configured")
        return self.repository.get_session_history(session_id, limit)

    def background_compression(self, session_id: str) -> str:
        memory = self._require_memory()
        job_id = f"compress:{session_id}:{uuid4().hex[:8]}"
        return self.scheduler.submit(job_id, memory.compress_session, {"session_id": session_id})

    def _require_memory(self) -> MemoryEngine:
        if self.memory is None:
            raise ConfigError("memory engine not configured")
        return self.memory

    def _remember_turn(self, session_id: str, role: str, content: str, token: CancellationToken | None) -> None:
        if self.memory is None:
            return
        try:
            self.memory.append_session(session_id, role, content, token=token)
        except Cancelled:
            raise
        except Exception as exc:
            self.sink.report("service.append_session", exc, session_id=session_id, role=role)
