from __future__ import annotations

import pytest

from fivewhy.core.models.policy import GenerationPolicy
from fivewhy.core.models.schemas import ReasoningMode


@pytest.mark.parametrize(
    ("length", "expected"),
    [
        (0, 0.50),
        (50, 0.50),
        (300, 0.50),
        (301, 0.70),
        (800, 0.70),
        (801, 0.85),
        (1500, 0.85),
        (1501, 0.95),
    ],
)
def test_confidence_depends_only_on_length(length: int, expected: float) -> None:
    policy = GenerationPolicy()

    for mode in ReasoningMode:
        assert policy.estimate_confidence(mode, "x" * length) == expected


def test_every_mode_routes_to_the_configured_backend() -> None:
    policy = GenerationPolicy(backend_name="ollama")

    assert {policy.select_backend(mode) for mode in ReasoningMode} == {"ollama"}
