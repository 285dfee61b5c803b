from __future__ import annotations

import json
from collections.abc import Sequence

from fivewhy.core.orchestration.schemas import (
    CausalStep,
    ReframedQuestion,
    RootCauseCategory,
    RootCauseResult,
    SolutionResult,
)

from . import parsing

_ROOT_CAUSE_SCHEMA = {
    "root_cause": "",
    "confidence": 0.0,
    "evidence": [""],
    "category": "",
    "impact_scope": "",
}

_SOLUTION_SCHEMA = {
    "immediate_actions": [""],
    "strategic_actions": [""],
    "preventive_actions": [""],
    "automation_opportunities": [""],
    "owner": "",
    "complexity": "",
    "time_horizon": "",
}

_REFRAME_SCHEMA = {"original": "", "reframed": "", "intent": "", "goal": ""}


def _rules(*lines: str) -> str:
    return "\n".join(f"- {line}" for line in lines)


def _schema(schema: dict) -> str:
    return json.dumps(schema, indent=2, ensure_ascii=False)


def render_chain(steps: Sequence[CausalStep]) -> str:
    return "".join(
        f"WHY {step.level}:\nQ: {step.question}\nA: {step.answer}\nANALYSIS: {step.analysis}\n\n" for step in steps
    )


def render_analyses(steps: Sequence[CausalStep]) -> str:
    return "".join(f"- {step.analysis}\n" for step in steps)


class PromptBuilder:
    """Renders every pipeline prompt and parses the structured replies."""

    def five_why(self, level: int, question: str) -> str:
        return (
            "You are an expert diagnostic AI system using the 5-Why methodology.\n\n"
            f"Context:\nUser problem statement: \"{question}\"\n\n"
            f"Objective:\nAsk WHY question number {level} to identify deeper causal factors.\n\n"
            "Rules:\n"
            + _rules(
                "Ask only ONE question",
                "The question must be causal (not descriptive)",
                "The question must move deeper into systemic cause",
                "No solutions",
                "No explanations",
                "No suggestions",
            )
            + "\n\nOutput format:\nWHY QUESTION:"
        )

    def evaluation(self, question: str, answer: str) -> str:
        return (
            "You are an analytical evaluation AI.\n\n"
            f"Original Question:\n\"{question}\"\n\n"
            f"User Answer:\n\"{answer}\"\n\n"
            "Objective:\nEvaluate the answer for:\n"
            + _rules("causal relevance", "clarity", "specificity", "logical depth", "systemic nature")
            + "\n\nRules:\n"
            + _rules("No new questions", "No solutions", "No rephrasing")
            + "\n\nOutput format:\nANALYSIS:"
        )

    def next_why(self, answer: str) -> str:
        return (
            "You are a causal reasoning engine.\n\n"
            f"Given Answer:\n\"{answer}\"\n\n"
            "Objective:\nGenerate the next deeper WHY question.\n\n"
            "Rules:\n"
            + _rules(
                "Must go deeper in causality",
                "Must not repeat previous structure",
                "Must avoid surface-level causes",
                "Must avoid symptoms",
            )
            + "\n\nOutput format:\nNEXT WHY:"
        )

    def root_cause(self, steps: Sequence[CausalStep]) -> str:
        categories = [category.value.capitalize() for category in RootCauseCategory]
        return (
            "You are a root-cause analysis AI system.\n\n"
            f"5-Why Chain:\n{render_chain(steps)}\n"
            "Objective:\nExtract the TRUE ROOT CAUSE.\n\n"
            f"Classification Dimensions:\n{_rules(*categories)}\n\n"
            f"Output JSON schema:\n{_schema(_ROOT_CAUSE_SCHEMA)}\n\n"
            "Rules:\n"
            + _rules(
                "Root cause must be systemic",
                "Not a symptom",
                "Not a surface cause",
                "Not a human blame statement",
                "Must be structurally actionable",
            )
            + "\n\nReturn ONLY valid JSON."
        )

    def solution(self, root_cause: RootCauseResult, steps: Sequence[CausalStep]) -> str:
        return (
            "You are a solution engineering AI.\n\n"
            f"Root Cause:\n\"{root_cause.root_cause}\"\n\n"
            f"5-Why Evidence:\n{render_analyses(steps)}\n"
            "Objective:\nGenerate a multi-layer solution strategy.\n\n"
            f"Output JSON schema:\n{_schema(_SOLUTION_SCHEMA)}\n\n"
            "Rules:\n"
            + _rules(
                "Actions must map to root cause",
                "No generic advice",
                "Must be implementable",
                "Must be operational",
            )
            + "\n\nReturn ONLY valid JSON."
        )

    def reframe(self, original: str, root_cause: RootCauseResult) -> str:
        return (
            "You are a cognitive reframing AI.\n\n"
            f"Original Question:\n\"{original}\"\n\n"
            f"Root Cause:\n\"{root_cause.root_cause}\"\n\n"
            "Objective:\nReframe the question to target the real problem.\n\n"
            f"Output JSON schema:\n{_schema(_REFRAME_SCHEMA)}\n\n"
            "Rules:\n"
            + _rules(
                "Reframed question must target cause, not symptom",
                "Must be actionable",
                "Must be strategic",
                "Must be precise",
            )
            + "\n\nReturn ONLY valid JSON."
        )

    def memory_summary(self, conversation: str) -> str:
        return (
            "You are a memory compression AI.\n\n"
            f"Conversation Data:\n{conversation}\n\n"
            "Objective:\nSummarize into long-term semantic memory.\n\n"
            "Rules:\n"
            + _rules("Preserve meaning", "Preserve intent", "Preserve causal info", "Remove noise")
            + "\n\nOutput format:\nMEMORY:"
        )

    def chat(self, context: str, message: str) -> str:
        return f"Context:\n{context}\nUser:\n{message}"

    def parse_root_cause(self, raw: str) -> RootCauseResult:
        return parsing.parse_root_cause(raw)

    def parse_solution(self, raw: str) -> SolutionResult:
        return parsing.parse_solution(raw)

    def parse_reframe(self, raw: str) -> ReframedQuestion:
        return parsing.parse_reframe(raw)
