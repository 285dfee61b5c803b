from __future__ import annotations

from typing import Protocol

import numpy as np

from fivewhy.core.errors import InvalidRequest

DEFAULT_DIMENSION = 384


class Embedder(Protocol):
    dimension: int

    def embed(self, text: str) -> list[float]: ...


class LengthEmbedder:
    """Deterministic stand-in: component i is len(text) / (i + 1).

    Carries no semantics; nearest neighbours are simply the documents of the
    closest length. Swap in a real model for meaningful recall.
    """

    def __init__(self, dimension: int = DEFAULT_DIMENSION) -> None:
        self.dimension = max(1, int(dimension))

    def embed(self, text: str) -> list[float]:
        if not text:
            raise InvalidRequest("empty text")
        divisors = np.arange(1, self.dimension + 1, dtype=np.float32)
        return (np.float32(len(text)) / divisors).tolist()


class SentenceTransformerEmbedder:
    def __init__(self, model_name: str = "all-MiniLM-L6-v2") -> None:
        from sentence_transformers import SentenceTransformer

        self.model_name = model_name
        self.model = SentenceTransformer(model_name)
        self.dimension = int(self.model.get_sentence_embedding_dimension())

    def embed(self, text: str) -> list[float]:
        if not text or not text.strip():
            raise InvalidRequest("empty text")
        vector = self.model.encode([text])[0]
        return np.asarray(vector, dtype=np.float32).tolist()
