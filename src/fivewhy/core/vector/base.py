from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel, Field

from fivewhy.core.cancellation import CancellationToken

DEFAULT_SEARCH_LIMIT = 5


class VectorDocument(BaseModel):
    id: str
    content: str = ""
    vector: list[float] = Field(default_factory=list)
    metadata: dict[str, str] = Field(default_factory=dict)


class VectorStore(ABC):
    """Upsert-by-id document store with nearest-first L2 similarity search.

    Shared by every pipeline run without per-run locking: two writers using the
    same id simply overwrite each other.
    """

    @abstractmethod
    def init(self, token: CancellationToken | None = None) -> None: ...

    @abstractmethod
    def store(self, doc: VectorDocument, token: CancellationToken | None = None) -> None: ...

    @abstractmethod
    def search(self, vector: list[float], limit: int = DEFAULT_SEARCH_LIMIT, token: CancellationToken | None = None) -> list[VectorDocument]: ...

    @abstractmethod
    def delete(self, doc_id: str, token: CancellationToken | None = None) -> None: ...
