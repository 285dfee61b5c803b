from __future__ import annotations

from fivewhy.core.models.prompts import PromptBuilder, render_analyses, render_chain
from fivewhy.core.orchestration.schemas import CausalStep, RootCauseResult

STEPS = [
    CausalStep(level=1, question="Why do deploys fail?", answer="Timeouts", analysis="symptom"),
    CausalStep(level=2, question="Why timeouts?", answer="DNS flaps", analysis="closer to cause"),
]


def test_chain_rendering() -> None:
    assert render_chain(STEPS) == (
        "WHY 1:\nQ: Why do deploys fail?\nA: Timeouts\nANALYSIS: symptom\n\n"
        "WHY 2:\nQ: Why timeouts?\nA: DNS flaps\nANALYSIS: closer to cause\n\n"
    )
    assert render_analyses(STEPS) == "- symptom\n- closer to cause\n"


def test_root_cause_prompt_lists_categories_and_schema() -> None:
    prompt = PromptBuilder().root_cause(STEPS)

    assert "WHY 2:\nQ: Why timeouts?" in prompt
    for category in ("Organizational", "Process", "Technical", "Human", "Structural", "Systemic"):
        assert f"- {category}" in prompt
    assert '"impact_scope": ""' in prompt
    assert prompt.endswith("Return ONLY valid JSON.")


def test_question_prompts_carry_their_inputs() -> None:
    prompts = PromptBuilder()
    root = RootCauseResult(root_cause="config drift")

    assert "WHY question number 3" in prompts.five_why(3, "Why timeouts?")
    assert '"Why timeouts?"' in prompts.evaluation("Why timeouts?", "DNS flaps")
    assert '"DNS flaps"' in prompts.next_why("DNS flaps")
    assert '"config drift"' in prompts.solution(root, STEPS)
    assert '"config drift"' in prompts.reframe("Why?", root)
    assert prompts.chat("ctx", "hi") == "Context:\nctx\nUser:\nhi"


def test_prompt_schemas_parse_as_defaults() -> None:
    prompts = PromptBuilder()
    root = prompts.parse_root_cause(prompts.root_cause(STEPS))

    assert root.root_cause == ""
    assert root.category is None
    assert prompts.parse_solution(prompts.solution(root, STEPS)).owner == ""
    assert prompts.parse_reframe(prompts.reframe("Why?", root)).reframed == ""
