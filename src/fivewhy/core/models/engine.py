from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

from fivewhy.core.cancellation import CancellationToken, check
from fivewhy.core.errors import BackendFailure, BackendNotRegistered, FiveWhyError, InvalidRequest

from .backends import GenerationBackend
from .policy import DEFAULT_BACKEND_NAME, GenerationPolicy
from .schemas import DEFAULT_MAX_TOKENS, BackendRequest, GenerationRequest, GenerationResponse, ReasoningMode


def default_model_map() -> dict[ReasoningMode, str]:
    return {
        ReasoningMode.REASONING: "reasoning-model",
        ReasoningMode.ANALYSIS: "analysis-model",
        ReasoningMode.DIAGNOSIS: "diagnosis-model",
        ReasoningMode.PLANNING: "planning-model",
        ReasoningMode.DEFAULT: "default-model",
    }


@dataclass
class EngineConfig:
    backend_name: str = DEFAULT_BACKEND_NAME
    models: dict[ReasoningMode, str] = field(default_factory=default_model_map)

    def model_for(self, mode: ReasoningMode) -> str:
        return self.models.get(mode) or self.models.get(ReasoningMode.DEFAULT, "")


class GenerationEngine:
    """Routes a generation request to a registered back end and scores the result.

    The back-end registry and the mode to model table belong to this instance;
    several engines can coexist in one process. No retries happen here: a back
    end failure surfaces to the caller on the first attempt.
    """

    def __init__(self, config: EngineConfig | None = None, policy: GenerationPolicy | None = None) -> None:
        self.config = config or EngineConfig()
        self.policy = policy or GenerationPolicy(backend_name=self.config.backend_name)
        self._backends: dict[str, GenerationBackend] = {}
        self.logger = logging.getLogger("fivewhy.llm")

    def register_backend(self, backend: GenerationBackend) -> None:
        previous = self._backends.get(backend.name)
        if previous is not None and previous is not backend:
            # Last registration under a name wins.
            self.logger.info(
                "llm_backend_replaced",
                extra={"extra_fields": {"backend": backend.name, "previous": type(previous).__name__, "current": type(backend).__name__}},
            )
        self._backends[backend.name] = backend

    def backend_names(self) -> list[str]:
        return sorted(self._backends.keys())

    def generate(self, request: GenerationRequest, token: CancellationToken | None = None) -> GenerationResponse:
        if not request.prompt:
            raise InvalidRequest("empty prompt")

        mode = request.mode or ReasoningMode.DEFAULT
        max_tokens = DEFAULT_MAX_TOKENS if request.max_tokens == 0 else request.max_tokens

        backend_name = self.policy.select_backend(mode)
        backend = self._backends.get(backend_name)
        if backend is None:
            raise BackendNotRegistered(backend_name)

        model = self.config.model_for(mode)
        backend_request = BackendRequest(
            prompt=request.prompt,
            temperature=request.temperature,
            max_tokens=max_tokens,
            model=model,
        )

        check(token, f"llm.generate:{mode.value}")
        start = time.perf_counter()
        try:
            result = backend.generate(backend_request, token=token)
        except FiveWhyError:
            self._log_call(mode, backend_name, model, start, ok=False)
            raise
        except Exception as exc:
            self._log_call(mode, backend_name, model, start, ok=False)
            raise BackendFailure(backend_name, str(exc)) from exc
        latency_s = time.perf_counter() - start
        self._log_call(mode, backend_name, model, start, ok=True, tokens=result.tokens)

        return GenerationResponse(
            text=result.text,
            tokens=result.tokens,
            latency_s=latency_s,
            backend=backend.name,
            model=result.model or model,
            confidence=self.policy.estimate_confidence(mode, result.text),
        )

    def _log_call(self, mode: ReasoningMode, backend: str, model: str, start: float, ok: bool, tokens: int = 0) -> None:
        self.logger.info(
            "llm_call",
            extra={
                "extra_fields": {
                    "backend": backend,
                    "model": model,
                    "mode": mode.value,
                    "duration_ms": int((time.perf_counter() - start) * 1000),
                    "ok": ok,
                    "tokens": tokens,
                }
            },
        )
