from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_MAX_TOKENS = 1024


class ReasoningMode(str, Enum):
    REASONING = "reasoning"
    ANALYSIS = "analysis"
    DIAGNOSIS = "diagnosis"
    PLANNING = "planning"
    DEFAULT = "default"


class GenerationRequest(BaseModel):
    mode: ReasoningMode | None = None
    prompt: str = ""
    temperature: float = 0.0
    max_tokens: int = 0
    metadata: dict[str, str] = Field(default_factory=dict)


class GenerationResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    tokens: int
    latency_s: float
    backend: str
    model: str
    confidence: float = Field(ge=0.0, le=1.0)


class BackendRequest(BaseModel):
    prompt: str
    temperature: float
    max_tokens: int
    model: str


class BackendResponse(BaseModel):
    text: str
    tokens: int = 0
    model: str = ""
    metadata: dict[str, str] = Field(default_factory=dict)
