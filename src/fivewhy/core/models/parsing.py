"""Structured-payload extraction from free-text model output.

Back ends often wrap the requested JSON object in prose or code fences. The
extraction rule is deliberately simple: trim, take everything from the first
``{`` to the last ``}`` inclusive, and decode it. It is greedy and does not
understand nesting or braces inside string values, so a stray ``{`` before
the real object yields a slice that fails to decode and is rejected.
"""

from __future__ import annotations

import json
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from fivewhy.core.errors import MalformedModelOutput
from fivewhy.core.orchestration.schemas import ReframedQuestion, RootCauseResult, SolutionResult

T = TypeVar("T", bound=BaseModel)


def extract_json(raw: str) -> str:
    cleaned = raw.strip()
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end == -1 or end <= start:
        raise MalformedModelOutput("no json found in llm output", raw=raw)

    snippet = cleaned[start : end + 1]
    try:
        decoded = json.loads(snippet)
    except json.JSONDecodeError as exc:
        raise MalformedModelOutput(f"invalid json structure: {exc.msg}", raw=raw) from exc
    if not isinstance(decoded, dict):
        raise MalformedModelOutput("invalid json structure: expected an object", raw=raw)
    return snippet


def extract_object(raw: str) -> dict[str, Any]:
    return json.loads(extract_json(raw))


def parse_into(raw: str, model: type[T]) -> T:
    payload = extract_object(raw)
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise MalformedModelOutput(f"{model.__name__} does not match llm output: {exc.error_count()} error(s)", raw=raw) from exc


def parse_root_cause(raw: str) -> RootCauseResult:
    return parse_into(raw, RootCauseResult)


def parse_solution(raw: str) -> SolutionResult:
    return parse_into(raw, SolutionResult)


def parse_reframe(raw: str) -> ReframedQuestion:
    return parse_into(raw, ReframedQuestion)
