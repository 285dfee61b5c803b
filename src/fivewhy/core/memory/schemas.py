from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field

from fivewhy.core.vector.base import VectorDocument

Role = Literal["user", "assistant"]
ROLES: frozenset[str] = frozenset({"user", "assistant"})


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MemoryMessage(BaseModel):
    role: Role
    content: str
    timestamp: datetime = Field(default_factory=utc_now)


class SessionMemory(BaseModel):
    session_id: str
    messages: list[MemoryMessage] = Field(default_factory=list)
    updated_at: datetime = Field(default_factory=utc_now)


class RetrievedMemory(BaseModel):
    documents: list[VectorDocument] = Field(default_factory=list)
    context: str = ""
