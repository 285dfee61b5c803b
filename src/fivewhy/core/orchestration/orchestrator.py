from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from uuid import uuid4

from fivewhy.core.cancellation import CancellationToken
from fivewhy.core.errors import Cancelled, InvalidRequest
from fivewhy.core.logging import log_context
from fivewhy.core.models.embeddings import Embedder
from fivewhy.core.models.manager import Generator
from fivewhy.core.models.prompts import PromptBuilder
from fivewhy.core.models.schemas import GenerationRequest, GenerationResponse, ReasoningMode
from fivewhy.core.observability.sink import ErrorSink
from fivewhy.core.vector.base import VectorDocument, VectorStore

from .schemas import WHY_DEPTH, CausalStep, FiveWhySession, ReframedQuestion, RootCauseResult, SolutionResult


class FiveWhyOrchestrator:
    """Drives one 5-Why run: five why/evaluate/next-why rounds, then root
    cause, solution and reframing, then best-effort persistence.

    Every generation call happens in sequence on the caller's thread. A failure
    anywhere on the mandatory path aborts the run and no session is returned.
    """

    def __init__(
        self,
        generator: Generator,
        vector_store: VectorStore,
        embedder: Embedder,
        prompts: PromptBuilder | None = None,
        sink: ErrorSink | None = None,
    ) -> None:
        self.generator = generator
        self.vector_store = vector_store
        self.embedder = embedder
        self.prompts = prompts or PromptBuilder()
        self.sink = sink or ErrorSink()
        self.logger = logging.getLogger("fivewhy.orchestrator")

    def run_five_why(self, session_id: str, question: str, token: CancellationToken | None = None) -> FiveWhySession:
        if not question:
            raise InvalidRequest("empty question")
        session_id = session_id or uuid4().hex
        run_id = uuid4().hex
        created_at = datetime.now(timezone.utc)

        with log_context(session_id=session_id, run_id=run_id):
            self.logger.info("five_why_started", extra={"extra_fields": {"question_len": len(question)}})
            steps = self._why_loop(question, token)

            root_cause = self.extract_root_cause(steps, token=token)
            solution, solution_text = self._synthesize_solution(root_cause, steps, token)
            reframed = self.reframe_question(question, root_cause, token=token)

            session = FiveWhySession(
                session_id=session_id,
                steps=tuple(steps),
                root_cause=root_cause,
                solution=solution,
                reframed=reframed,
                created_at=created_at,
            )
            self._persist(session_id, question, root_cause, solution_text, token)
            self.logger.info(
                "five_why_completed",
                extra={"extra_fields": {"category": root_cause.category.value if root_cause.category else None}},
            )
            return session

    def extract_root_cause(self, steps: Sequence[CausalStep], token: CancellationToken | None = None) -> RootCauseResult:
        response = self._generate(ReasoningMode.DIAGNOSIS, self.prompts.root_cause(steps), token)
        return self.prompts.parse_root_cause(response.text)

    def reframe_question(self, question: str, root_cause: RootCauseResult, token: CancellationToken | None = None) -> ReframedQuestion:
        response = self._generate(ReasoningMode.REASONING, self.prompts.reframe(question, root_cause), token)
        return self.prompts.parse_reframe(response.text)

    def _why_loop(self, question: str, token: CancellationToken | None) -> list[CausalStep]:
        steps: list[CausalStep] = []
        current = question
        for level in range(1, WHY_DEPTH + 1):
            answer = self._generate(ReasoningMode.REASONING, self.prompts.five_why(level, current), token).text
            analysis = self._generate(ReasoningMode.ANALYSIS, self.prompts.evaluation(current, answer), token).text
            steps.append(CausalStep(level=level, question=current, answer=answer, analysis=analysis))
            # Whatever comes back becomes the next question, phrased as a question or not.
            current = self._generate(ReasoningMode.REASONING, self.prompts.next_why(answer), token).text
            self.logger.debug("why_step_completed", extra={"extra_fields": {"level": level}})
        return steps

    def _synthesize_solution(
        self, root_cause: RootCauseResult, steps: Sequence[CausalStep], token: CancellationToken | None
    ) -> tuple[SolutionResult, str]:
        response = self._generate(ReasoningMode.PLANNING, self.prompts.solution(root_cause, steps), token)
        return self.prompts.parse_solution(response.text), response.text

    def _generate(self, mode: ReasoningMode, prompt: str, token: CancellationToken | None) -> GenerationResponse:
        return self.generator.generate(GenerationRequest(mode=mode, prompt=prompt), token=token)

    def _persist(
        self,
        session_id: str,
        question: str,
        root_cause: RootCauseResult,
        solution_text: str,
        token: CancellationToken | None,
    ) -> None:
        documents = (
            (session_id, question, "question"),
            (f"{session_id}_rca", root_cause.root_cause, "root_cause"),
            (f"{session_id}_solution", solution_text, "solution"),
        )
        for doc_id, content, kind in documents:
            try:
                self.vector_store.store(
                    VectorDocument(
                        id=doc_id,
                        content=content,
                        vector=self.embedder.embed(content),
                        metadata={"type": kind, "session_id": session_id},
                    ),
                    token=token,
                )
            except Cancelled:
                raise
            except Exception as exc:
                self.sink.report("orchestrator.persist", exc, doc_id=doc_id, kind=kind)
