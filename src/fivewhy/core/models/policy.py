from __future__ import annotations

from fivewhy.core.errors import PolicyError

from .schemas import ReasoningMode

DEFAULT_BACKEND_NAME = "primary"

# (exclusive lower bound on output length, confidence); first match wins.
_CONFIDENCE_STEPS: tuple[tuple[int, float], ...] = (
    (1500, 0.95),
    (800, 0.85),
    (300, 0.70),
)
_CONFIDENCE_FLOOR = 0.50


class GenerationPolicy:
    """Pure routing and scoring decisions; no I/O and no state beyond config."""

    def __init__(self, backend_name: str = DEFAULT_BACKEND_NAME) -> None:
        self.backend_name = backend_name
        self._routes: dict[ReasoningMode, str] = {mode: backend_name for mode in ReasoningMode}

    def select_backend(self, mode: ReasoningMode) -> str:
        name = self._routes.get(mode)
        if name is None:
            raise PolicyError(f"no backend route for mode: {mode}")
        return name

    def estimate_confidence(self, mode: ReasoningMode, text: str) -> float:
        # Placeholder law: only the raw length matters, never the mode or meaning.
        length = len(text)
        for threshold, score in _CONFIDENCE_STEPS:
            if length > threshold:
                return score
        return _CONFIDENCE_FLOOR
