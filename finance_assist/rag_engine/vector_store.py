"""
Vector Stores

Store chunk embeddings and answer similarity searches. The in-memory store is
the default and is owned by the application object that builds it; the
Pinecone store keeps the same interface over a managed index.
"""

import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Union

import numpy as np
import structlog
from langchain_core.documents import Document
from pinecone import Pinecone, ServerlessSpec
from sklearn.neighbors import NearestNeighbors

from .embeddings import Embedder
from .errors import StoreError

logger = structlog.get_logger(__name__)

DEFAULT_TOP_K = 4
DEFAULT_SIMILARITY_THRESHOLD = 0.0


@dataclass(frozen=True)
class SearchRequest:
    """Parameters of one similarity search."""

    query: str = ""
    top_k: int = DEFAULT_TOP_K
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD
    filter: Optional[Dict[str, Any]] = field(default=None)

    def __post_init__(self):
        if self.top_k <= 0:
            raise ValueError("top_k must be positive")
        if not 0.0 <= self.similarity_threshold <= 1.0:
            raise ValueError("similarity_threshold must be between 0.0 and 1.0")

    def with_query(self, query: str) -> "SearchRequest":
        return replace(self, query=query)


class VectorStore(ABC):
    """Base class for vector stores."""

    @abstractmethod
    def add(self, chunks: List[Document]) -> None:
        """Embed and persist chunks, replacing records with the same id."""

    @abstractmethod
    def similarity_search(self, request: Union[SearchRequest, str]) -> List[Document]:
        """Return the stored chunks nearest to the query, best first."""

    @abstractmethod
    def count(self) -> int:
        """Return the number of stored records."""


def _as_request(request: Union[SearchRequest, str]) -> SearchRequest:
    if isinstance(request, str):
        return SearchRequest(query=request)
    return request


def _passes_threshold(score: float, request: SearchRequest) -> bool:
    # A zero threshold accepts every match, including negative similarities
    return request.similarity_threshold == 0.0 or score >= request.similarity_threshold


def _matches(metadata: Dict[str, Any], filter_dict: Optional[Dict[str, Any]]) -> bool:
    if not filter_dict:
        return True
    return all(metadata.get(key) == value for key, value in filter_dict.items())


class InMemoryVectorStore(VectorStore):
    """Flat cosine-similarity index held in process memory."""

    def __init__(self, embedder: Embedder):
        self.embedder = embedder
        self.dimension = embedder.dimension
        self.ids: List[str] = []
        self.texts: List[str] = []
        self.metadata: List[Dict[str, Any]] = []
        self.vectors: Optional[np.ndarray] = None
        self.nn: Optional[NearestNeighbors] = None
        self._lock = threading.RLock()

    def add(self, chunks: List[Document]) -> None:
        """
        Embed and store chunks, replacing any record with the same id.

        The whole batch is embedded before the index changes, so a failed
        call leaves the store as it was.
        """
        if not chunks:
            return

        vectors = self.embedder.embed([chunk.page_content for chunk in chunks])
        if vectors.ndim != 2 or vectors.shape != (len(chunks), self.dimension):
            raise StoreError("Invalid vector shape for this store")

        with self._lock:
            ids = list(self.ids)
            texts = list(self.texts)
            metadata = list(self.metadata)
            rows = [] if self.vectors is None else list(self.vectors)
            positions = {record_id: i for i, record_id in enumerate(ids)}

            for chunk, vector in zip(chunks, vectors):
                chunk_id = chunk.id or f"chunk_{len(ids)}"
                if chunk_id in positions:
                    i = positions[chunk_id]
                    texts[i] = chunk.page_content
                    metadata[i] = dict(chunk.metadata)
                    rows[i] = vector
                else:
                    positions[chunk_id] = len(ids)
                    ids.append(chunk_id)
                    texts.append(chunk.page_content)
                    metadata.append(dict(chunk.metadata))
                    rows.append(vector)

            self.ids, self.texts, self.metadata = ids, texts, metadata
            self.vectors = np.vstack(rows)
            self._reindex()
            total = len(self.ids)

        logger.info("Documents added to vector store", count=len(chunks), total=total)

    def _reindex(self) -> None:
        if self.vectors is None or len(self.vectors) == 0:
            self.nn = None
            return
        self.nn = NearestNeighbors(n_neighbors=min(DEFAULT_TOP_K, len(self.vectors)), metric="cosine")
        self.nn.fit(self.vectors)

    def similarity_search(self, request: Union[SearchRequest, str]) -> List[Document]:
        request = _as_request(request)

        with self._lock:
            nn, ids, texts, metadata = self.nn, self.ids, self.texts, self.metadata
        if nn is None:
            return []

        query_vector = self.embedder.embed_query(request.query)
        # Filtering and thresholds need every candidate ranked
        if request.filter or request.similarity_threshold > 0.0:
            n = len(ids)
        else:
            n = min(request.top_k, len(ids))
        distances, indices = nn.kneighbors(query_vector.reshape(1, -1), n_neighbors=n)

        results: List[Document] = []
        for dist, idx in zip(distances[0], indices[0]):
            i = int(idx)
            score = 1.0 - float(dist)
            if not _passes_threshold(score, request) or not _matches(metadata[i], request.filter):
                continue
            results.append(Document(
                page_content=texts[i],
                metadata={**metadata[i], "score": score, "distance": float(dist)},
                id=ids[i],
            ))
            if len(results) >= request.top_k:
                break

        logger.info("Similarity search completed",
                    query_results=len(results),
                    top_score=results[0].metadata["score"] if results else 0)
        return results

    def count(self) -> int:
        with self._lock:
            return len(self.ids)


class PineconeVectorStore(VectorStore):
    """Vector store backed by a Pinecone serverless index."""

    batch_size = 100  # Pinecone recommendation

    def __init__(self,
                 embedder: Embedder,
                 api_key: str,
                 index_name: str = "finance-assist",
                 cloud: str = "aws",
                 region: str = "us-east-1",
                 namespace: str = "",
                 client: Optional[Pinecone] = None):
        self.embedder = embedder
        self.dimension = embedder.dimension
        self.index_name = index_name
        self.namespace = namespace
        self.pc = client or Pinecone(api_key=api_key)

        self._ensure_index_exists(cloud, region)
        self.index = self.pc.Index(self.index_name)

        logger.info("PineconeVectorStore initialized",
                    index_name=self.index_name,
                    dimension=self.dimension)

    def _ensure_index_exists(self, cloud: str, region: str):
        """Create index if it doesn't exist."""
        try:
            existing_indexes = [index.name for index in self.pc.list_indexes()]
            if self.index_name in existing_indexes:
                logger.info("Using existing Pinecone index", index_name=self.index_name)
                return

            logger.info("Creating new Pinecone index", index_name=self.index_name)
            self.pc.create_index(
                name=self.index_name,
                dimension=self.dimension,
                metric="cosine",
                spec=ServerlessSpec(cloud=cloud, region=region),
            )
            while not self.pc.describe_index(self.index_name).status["ready"]:
                time.sleep(1)
            logger.info("Pinecone index created successfully", index_name=self.index_name)
        except Exception as e:
            if "already exists" in str(e).lower():
                logger.warning("Index already exists, continuing with existing index", error=str(e))
                return
            logger.error("Pinecone index creation failed", error=str(e))
            raise StoreError(f"Pinecone Error: {e}") from e

    def add(self, chunks: List[Document]) -> None:
        """
        Embed and upsert chunks.

        Upserts go out in batches, so a failure part way through can leave
        earlier batches committed.
        """
        if not chunks:
            return

        vectors = self.embedder.embed([chunk.page_content for chunk in chunks])
        records = [
            {
                "id": chunk.id or f"chunk_{int(time.time())}_{i}",
                "values": vector.tolist(),
                "metadata": {**_pinecone_metadata(chunk.metadata), "text": chunk.page_content},
            }
            for i, (chunk, vector) in enumerate(zip(chunks, vectors))
        ]

        try:
            for i in range(0, len(records), self.batch_size):
                self.index.upsert(vectors=records[i:i + self.batch_size], namespace=self.namespace)
        except Exception as e:
            logger.error("Failed to add documents to vector store", error=str(e))
            raise StoreError(f"Failed to upsert vectors: {e}") from e

        logger.info("Documents added to vector store", count=len(records), index_name=self.index_name)

    def similarity_search(self, request: Union[SearchRequest, str]) -> List[Document]:
        request = _as_request(request)
        query_vector = self.embedder.embed_query(request.query)

        try:
            response = self.index.query(
                vector=query_vector.tolist(),
                top_k=request.top_k,
                include_metadata=True,
                filter=request.filter,
                namespace=self.namespace,
            )
        except Exception as e:
            logger.error("Similarity search failed", error=str(e))
            raise StoreError(f"Similarity search failed: {e}") from e

        results = []
        for match in response.matches:
            score = float(match.score)
            if not _passes_threshold(score, request):
                continue
            metadata = {k: v for k, v in (match.metadata or {}).items() if k != "text"}
            results.append(Document(
                page_content=(match.metadata or {}).get("text", ""),
                metadata={**metadata, "score": score, "distance": 1.0 - score},
                id=match.id,
            ))

        logger.info("Similarity search completed",
                    query_results=len(results),
                    top_score=results[0].metadata["score"] if results else 0)
        return results

    def count(self) -> int:
        try:
            stats = self.index.describe_index_stats()
        except Exception as e:
            raise StoreError(f"Failed to get vector store stats: {e}") from e
        return int(stats.total_vector_count)


def _pinecone_metadata(metadata: Dict[str, Any]) -> Dict[str, Any]:
    """Pinecone accepts strings, numbers, booleans and string lists only."""
    cleaned = {}
    for key, value in metadata.items():
        if value is None:
            continue
        if isinstance(value, (str, int, float, bool)):
            cleaned[key] = value
        elif isinstance(value, (list, tuple)):
            cleaned[key] = [str(v) for v in value]
        else:
            cleaned[key] = str(value)
    return cleaned
