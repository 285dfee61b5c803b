from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from fivewhy.core.memory.schemas import utc_now

WHY_DEPTH = 5


class RootCauseCategory(str, Enum):
    ORGANIZATIONAL = "organizational"
    PROCESS = "process"
    TECHNICAL = "technical"
    HUMAN = "human"
    STRUCTURAL = "structural"
    SYSTEMIC = "systemic"


class CausalStep(BaseModel):
    level: int = Field(ge=1, le=WHY_DEPTH)
    question: str
    answer: str
    analysis: str


class RootCauseResult(BaseModel):
    """Structured root cause as returned by the diagnosis step.

    ``category`` is matched case-insensitively against ``RootCauseCategory``; an
    empty value means unset and any other label (for example "technical debt")
    fails validation, which aborts the whole run with ``MalformedModelOutput``.
    """

    root_cause: str = ""
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    evidence: list[str] = Field(default_factory=list)
    category: RootCauseCategory | None = None
    impact_scope: str = ""

    @field_validator("category", mode="before")
    @classmethod
    def _normalize_category(cls, value: object) -> object:
        if isinstance(value, str):
            value = value.strip().casefold()
            return value or None
        return value


class SolutionResult(BaseModel):
    immediate_actions: list[str] = Field(default_factory=list)
    strategic_actions: list[str] = Field(default_factory=list)
    preventive_actions: list[str] = Field(default_factory=list)
    automation_opportunities: list[str] = Field(default_factory=list)
    owner: str = ""
    complexity: str = ""
    time_horizon: str = ""


class ReframedQuestion(BaseModel):
    original: str = ""
    reframed: str = ""
    intent: str = ""
    goal: str = ""


class FiveWhySession(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: str
    steps: tuple[CausalStep, ...]
    root_cause: RootCauseResult
    solution: SolutionResult
    reframed: ReframedQuestion
    created_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def _check_chain(self) -> FiveWhySession:
        levels = [step.level for step in self.steps]
        if levels != list(range(1, WHY_DEPTH + 1)):
            raise ValueError(f"causal chain must have levels 1..{WHY_DEPTH}, got {levels}")
        return self
