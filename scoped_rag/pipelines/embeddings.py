"""
Embedding providers.

The index only needs a stable, deterministic vector per document; ranking is
not performed yet. HashEmbedding is the default placeholder (FNV-1a hashes of
the composed text). SentenceTransformerEmbedding is the real model, loaded
lazily so the core never imports sentence-transformers unless asked to.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping

from scoped_rag.config import Settings, settings

_FNV64_OFFSET = 0xCBF29CE484222325
_FNV64_PRIME = 0x100000001B3
_FNV64_MASK = 0xFFFFFFFFFFFFFFFF


def fnv1a_64(data: bytes) -> int:
    h = _FNV64_OFFSET
    for byte in data:
        h ^= byte
        h = (h * _FNV64_PRIME) & _FNV64_MASK
    return h


def compose_embedding_text(content: str, attributes: Mapping[str, str]) -> str:
    """
    Build the text fed to an embedding model: content followed by the attributes.

    Attributes are sorted by key so the result does not depend on read order.
    """
    if not attributes:
        return content
    pairs = ", ".join(f"{key}={attributes[key]}" for key in sorted(attributes))
    return f"{content}\n\nExtended Attributes: {pairs}"


class EmbeddingProvider(ABC):
    @property
    @abstractmethod
    def dimension(self) -> int: ...

    @abstractmethod
    def embed(self, text: str, attributes: Mapping[str, str]) -> list[float]:
        """Return a vector of exactly `dimension` floats."""


class HashEmbedding(EmbeddingProvider):
    """Deterministic placeholder: slot i is the FNV-1a hash of "i:<text>" mapped to [-1, 1]."""

    def __init__(self, dimension: int = 8) -> None:
        if dimension < 1:
            raise ValueError("dimension must be >= 1")
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed(self, text: str, attributes: Mapping[str, str]) -> list[float]:
        composed = compose_embedding_text(text, attributes).encode("utf-8")
        vector = []
        for slot in range(self._dimension):
            value = fnv1a_64(str(slot).encode("ascii") + b":" + composed)
            vector.append((value / _FNV64_MASK) * 2 - 1)
        return vector


class SentenceTransformerEmbedding(EmbeddingProvider):
    """sentence-transformers model; attributes are appended to the encoded text."""

    def __init__(self, model_name: str = "sentence-transformers/all-MiniLM-L6-v2") -> None:
        self.model_name = model_name
        self._model = None
        self._dimension: int | None = None

    @property
    def model(self):
        if self._model is None:
            from sentence_transformers import SentenceTransformer

            self._model = SentenceTransformer(self.model_name)
        return self._model

    @property
    def dimension(self) -> int:
        if self._dimension is None:
            self._dimension = int(self.model.get_sentence_embedding_dimension())
        return self._dimension

    def embed(self, text: str, attributes: Mapping[str, str]) -> list[float]:
        composed = compose_embedding_text(text, attributes)
        return self.model.encode(composed, convert_to_numpy=True).tolist()


def get_embedding_provider(config: Settings = settings) -> EmbeddingProvider:
    """Return the provider named by config.embed_provider."""
    if config.embed_provider == "hash":
        return HashEmbedding(config.embedding_dimension)
    elif config.embed_provider == "sentence-transformers":
        return SentenceTransformerEmbedding(config.embed_model)
    else:
        raise ValueError(f"Unknown embed_provider: {config.embed_provider!r}")
