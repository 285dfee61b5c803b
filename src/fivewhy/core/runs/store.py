from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol, TypeVar
from uuid import uuid4

from pydantic import BaseModel

from fivewhy.core.orchestration.schemas import FiveWhySession

from .schemas import ChatRecord, FiveWhyRecord

R = TypeVar("R", bound=BaseModel)


class Repository(Protocol):
    def save_message(self, session_id: str, user_id: str, user_message: str, ai_message: str) -> None: ...

    def save_five_why_session(self, user_id: str, session: FiveWhySession) -> None: ...

    def get_session_history(self, session_id: str, limit: int = 50) -> list[ChatRecord]: ...


class JsonlRepository:
    """Append-only JSONL persistence for finished conversations and 5-Why runs."""

    def __init__(self, state_dir: Path) -> None:
        self.messages_path = state_dir / "messages.jsonl"
        self.sessions_path = state_dir / "five_why_sessions.jsonl"
        state_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _append(self, path: Path, record: BaseModel) -> None:
        with self._lock:
            with path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(record.model_dump(mode="json"), ensure_ascii=False) + "\n")

    def _load_all(self, path: Path, model: type[R]) -> list[R]:
        if not path.exists():
            return []
        records: list[R] = []
        with path.open("r", encoding="utf-8") as handle:
            for line in handle:
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(model.model_validate(json.loads(line)))
                except (json.JSONDecodeError, ValueError):
                    continue
        return records

    def save_message(self, session_id: str, user_id: str, user_message: str, ai_message: str) -> None:
        self._append(
            self.messages_path,
            ChatRecord(
                id=str(uuid4()),
                session_id=session_id,
                user_id=user_id,
                user_msg=user_message,
                ai_msg=ai_message,
                created_at_iso=datetime.now(timezone.utc).isoformat(),
            ),
        )

    def save_five_why_session(self, user_id: str, session: FiveWhySession) -> None:
        payload = session.model_dump(mode="json")
        self._append(
            self.sessions_path,
            FiveWhyRecord(
                id=str(uuid4()),
                user_id=user_id,
                session_id=session.session_id,
                steps=payload["steps"],
                root_cause=payload["root_cause"],
                solution=payload["solution"],
                reframed=payload["reframed"],
                created_at_iso=payload["created_at"],
            ),
        )

    def get_session_history(self, session_id: str, limit: int = 50) -> list[ChatRecord]:
        if limit <= 0:
            return []
        matches = [record for record in self._load_all(self.messages_path, ChatRecord) if record.session_id == session_id]
        return list(reversed(matches[-limit:]))

    def list_five_why_sessions(self, user_id: str | None = None, limit: int = 50) -> list[FiveWhyRecord]:
        if limit <= 0:
            return []
        records = self._load_all(self.sessions_path, FiveWhyRecord)
        if user_id is not None:
            records = [record for record in records if record.user_id == user_id]
        return list(reversed(records[-limit:]))
