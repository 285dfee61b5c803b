from __future__ import annotations

import json
import logging
import threading
from pathlib import Path

import numpy as np

from fivewhy.core.cancellation import CancellationToken, check
from fivewhy.core.errors import EmptyVector, MissingId, MissingVector, StoreFailure

from .base import DEFAULT_SEARCH_LIMIT, VectorDocument, VectorStore

logger = logging.getLogger("fivewhy.vector")


class LocalVectorStore(VectorStore):
    """In-process vector store with optional JSONL durability.

    Without ``file_path`` documents live only in memory. With it, every write
    rewrites the file and ``init()`` reloads it, so the store survives restarts.
    """

    def __init__(self, file_path: Path | None = None) -> None:
        self.file_path = file_path
        self._docs: dict[str, VectorDocument] = {}
        self._lock = threading.Lock()

    def init(self, token: CancellationToken | None = None) -> None:
        check(token, "vector.init")
        if self.file_path is None:
            return
        try:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            loaded = self._load_all()
        except OSError as exc:
            raise StoreFailure("vector", str(exc)) from exc
        with self._lock:
            self._docs = {doc.id: doc for doc in loaded}
        logger.info("vector_store_loaded", extra={"extra_fields": {"path": str(self.file_path), "count": len(loaded)}})

    def _load_all(self) -> list[VectorDocument]:
        if self.file_path is None or not self.file_path.exists():
            return []
        docs: list[VectorDocument] = []
        with self.file_path.open("r", encoding="utf-8") as handle:
            for line in handle:
                line = line.strip()
                if not line:
                    continue
                try:
                    docs.append(VectorDocument.model_validate(json.loads(line)))
                except (json.JSONDecodeError, ValueError):
                    continue
        return docs

    def _write_all(self, docs: list[VectorDocument]) -> None:
        if self.file_path is None:
            return
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.file_path.with_suffix(self.file_path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as handle:
            for doc in docs:
                handle.write(json.dumps(doc.model_dump(), ensure_ascii=False) + "\n")
        tmp.replace(self.file_path)

    def store(self, doc: VectorDocument, token: CancellationToken | None = None) -> None:
        if not doc.id:
            raise MissingId("missing document id")
        if not doc.vector:
            raise MissingVector("missing embedding vector")
        check(token, "vector.store")
        with self._lock:
            docs = dict(self._docs)
            docs[doc.id] = doc.model_copy(deep=True)
            self._persist(docs)
            self._docs = docs

    def search(self, vector: list[float], limit: int = DEFAULT_SEARCH_LIMIT, token: CancellationToken | None = None) -> list[VectorDocument]:
        if not vector:
            raise EmptyVector("empty query vector")
        if limit <= 0:
            limit = DEFAULT_SEARCH_LIMIT
        check(token, "vector.search")

        query = np.asarray(vector, dtype=np.float32)
        with self._lock:
            candidates = [doc for doc in self._docs.values() if len(doc.vector) == query.shape[0]]
        if not candidates:
            return []

        matrix = np.asarray([doc.vector for doc in candidates], dtype=np.float32)
        distances = np.linalg.norm(matrix - query, axis=1)
        order = np.argsort(distances, kind="stable")[:limit]
        return [candidates[int(i)].model_copy(deep=True) for i in order]

    def delete(self, doc_id: str, token: CancellationToken | None = None) -> None:
        if not doc_id:
            raise MissingId("missing document id")
        check(token, "vector.delete")
        with self._lock:
            if doc_id not in self._docs:
                return
            docs = {key: value for key, value in self._docs.items() if key != doc_id}
            self._persist(docs)
            self._docs = docs

    def get(self, doc_id: str) -> VectorDocument | None:
        with self._lock:
            doc = self._docs.get(doc_id)
        return doc.model_copy(deep=True) if doc is not None else None

    def count(self) -> int:
        with self._lock:
            return len(self._docs)

    def _persist(self, docs: dict[str, VectorDocument]) -> None:
        # The file is written first; the in-memory index only changes once it succeeded.
        try:
            self._write_all(list(docs.values()))
        except OSError as exc:
            raise StoreFailure("vector", str(exc)) from exc
