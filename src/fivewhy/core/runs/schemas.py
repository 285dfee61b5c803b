from __future__ import annotations

from pydantic import BaseModel, Field


class ChatRecord(BaseModel):
    id: str
    session_id: str
    user_id: str
    user_msg: str
    ai_msg: str
    created_at_iso: str


class FiveWhyRecord(BaseModel):
    id: str
    user_id: str
    session_id: str
    steps: list[dict] = Field(default_factory=list)
    root_cause: dict = Field(default_factory=dict)
    solution: dict = Field(default_factory=dict)
    reframed: dict = Field(default_factory=dict)
    created_at_iso: str
