"""
Embedding backends

Turn chunk and query text into float32 vectors. The OpenAI backend calls the
embeddings API in batches; the hashing backend is deterministic and offline.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

import numpy as np
import structlog
from openai import OpenAI, OpenAIError
from sklearn.feature_extraction.text import HashingVectorizer

from .errors import StoreError

logger = structlog.get_logger(__name__)


class Embedder(ABC):
    """Base class for text embedders."""

    dimension: int

    @abstractmethod
    def embed(self, texts: List[str]) -> np.ndarray:
        """Return an array of shape (len(texts), dimension)."""

    def embed_query(self, text: str) -> np.ndarray:
        return self.embed([text])[0]


class OpenAIEmbedder(Embedder):
    """Embeddings from the OpenAI API."""

    def __init__(self,
                 client: OpenAI,
                 model: str = "text-embedding-3-small",
                 dimension: int = 1536,
                 batch_size: int = 100):
        self.client = client
        self.model = model
        self.dimension = dimension
        self.batch_size = batch_size

    def embed(self, texts: List[str]) -> np.ndarray:
        if not texts:
            return np.zeros((0, self.dimension), dtype=np.float32)

        vectors: List[List[float]] = []
        try:
            for start in range(0, len(texts), self.batch_size):
                batch = texts[start:start + self.batch_size]
                response = self.client.embeddings.create(model=self.model, input=batch)
                vectors.extend(data.embedding for data in response.data)
        except OpenAIError as e:
            logger.error("Embedding generation failed", text_count=len(texts), error=str(e))
            raise StoreError(f"Embedding generation failed: {e}") from e

        matrix = np.asarray(vectors, dtype=np.float32)
        if matrix.shape != (len(texts), self.dimension):
            raise StoreError(
                f"Embedding model returned shape {matrix.shape}, expected ({len(texts)}, {self.dimension})"
            )

        logger.info("Embeddings generated successfully",
                    text_count=len(texts),
                    embedding_dimension=self.dimension)
        return matrix


class HashingEmbedder(Embedder):
    """Deterministic bag-of-words embedder.

    Hashes word unigrams and bigrams into a fixed number of buckets and
    l2-normalizes the counts, so cosine similarity tracks keyword overlap.
    Stable across processes, unlike Python's salted ``hash``.
    """

    def __init__(self, dimension: int = 1536, vectorizer: Optional[HashingVectorizer] = None):
        self.dimension = dimension
        self.vectorizer = vectorizer or HashingVectorizer(
            n_features=dimension,
            ngram_range=(1, 2),
            alternate_sign=False,
            norm="l2",
            lowercase=True,
        )

    def embed(self, texts: List[str]) -> np.ndarray:
        if not texts:
            return np.zeros((0, self.dimension), dtype=np.float32)
        return self.vectorizer.transform(texts).toarray().astype(np.float32)
