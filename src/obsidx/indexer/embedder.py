"""Embedders — the "text → fixed-length vector" capability.

``HashEmbedder`` is a deterministic offline stand-in that captures no
meaning. ``OpenAIEmbedder`` calls the OpenAI embeddings API. Anything that
satisfies ``Embedder`` can be handed to the vector store.
"""

from __future__ import annotations

import hashlib
import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import numpy as np
from openai import OpenAI

if TYPE_CHECKING:
    from obsidx.config import EmbeddingConfig

logger = logging.getLogger(__name__)


@runtime_checkable
class Embedder(Protocol):
    """Maps text to a vector of ``dimensions`` floats."""

    @property
    def dimensions(self) -> int: ...

    def embed(self, text: str) -> list[float]: ...

    def embed_many(self, texts: list[str]) -> list[list[float]]: ...


def l2_normalize(vector: np.ndarray) -> np.ndarray:
    """Scale *vector* to unit length; a zero vector is returned unchanged."""
    norm = float(np.linalg.norm(vector))
    if norm == 0.0:
        return vector
    return vector / norm


class HashEmbedder:
    """Position-aware character hashing into a fixed number of buckets.

    Each character is hashed together with its position, the bucket for that
    hash is incremented, and the result is L2-normalized. Same text, same
    vector, bit for bit.
    """

    def __init__(self, dimensions: int = 256) -> None:
        if dimensions <= 0:
            raise ValueError(f"dimensions must be positive, got {dimensions}")
        self._dimensions = dimensions

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def _bucket(self, char: str, position: int) -> int:
        payload = char.encode("utf-8", errors="surrogatepass") + position.to_bytes(8, "little")
        digest = hashlib.blake2b(payload, digest_size=8).digest()
        return int.from_bytes(digest, "little") % self._dimensions

    def embed(self, text: str) -> list[float]:
        vector = np.zeros(self._dimensions, dtype=np.float64)
        for position, char in enumerate(text):
            vector[self._bucket(char, position)] += 1.0
        return l2_normalize(vector).tolist()

    def embed_many(self, texts: list[str]) -> list[list[float]]:
        return [self.embed(t) for t in texts]


class OpenAIEmbedder:
    """Embeddings from the OpenAI API, batched per ``config.batch_size``."""

    def __init__(
        self,
        config: EmbeddingConfig,
        api_key: str,
        client: OpenAI | None = None,
    ) -> None:
        self.config = config
        self._client = client or OpenAI(api_key=api_key)

    @property
    def dimensions(self) -> int:
        return self.config.dimensions

    def embed_many(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []

        all_embeddings: list[list[float]] = []
        for i in range(0, len(texts), self.config.batch_size):
            batch = texts[i : i + self.config.batch_size]
            response = self._client.embeddings.create(
                model=self.config.model,
                input=batch,
                dimensions=self.config.dimensions,
            )
            all_embeddings.extend(item.embedding for item in response.data)
            logger.debug(
                "Embedded batch %d-%d of %d",
                i,
                min(i + self.config.batch_size, len(texts)),
                len(texts),
            )
        return all_embeddings

    def embed(self, text: str) -> list[float]:
        return self.embed_many([text])[0]


def create_embedder(config: EmbeddingConfig, api_key: str = "") -> Embedder:
    """Pick the embedder named by ``config.provider``."""
    if config.provider == "openai":
        if not api_key:
            raise ValueError("OpenAI embeddings need OBSIDX_OPENAI_API_KEY")
        return OpenAIEmbedder(config, api_key)
    return HashEmbedder(config.dimensions)
