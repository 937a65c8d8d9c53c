"""
Vector Store Infrastructure
============================

Vector storage for historical tickets: an in-memory numpy index and a
Milvus / Zilliz Cloud implementation.

This module provides a clean interface for vector operations following
the Repository pattern.
"""

import asyncio
import itertools
import json
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
from pymilvus import MilvusClient

from ticket_rag.core import (
    ApplicationException, ResourceNotFoundException, ValidationException,
    VectorStoreException
)
from ticket_rag.infrastructure.common import call_with_timeout
from ticket_rag.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

MAX_DIMENSION = 4096
HYBRID_VECTOR_WEIGHT = 0.7


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class VectorMetadata:
    """Snapshot of a historical ticket stored next to its vector."""
    title: str
    description: str
    category: str
    priority: int
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    tags: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.created_at = as_utc(self.created_at)

    def copy(self) -> "VectorMetadata":
        return replace(self, tags=list(self.tags))

    @property
    def document_text(self) -> str:
        """Text handed to the reranker for this record."""
        return f"{self.title} {self.description}"

    def to_payload(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "priority": self.priority,
            "created_at": self.created_at.isoformat(),
            "created_ts": self.created_at.timestamp(),
            "tags": list(self.tags),
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "VectorMetadata":
        created_at = payload.get("created_at")
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        tags = payload.get("tags") or []
        if isinstance(tags, str):
            tags = json.loads(tags)
        return cls(
            title=payload.get("title", ""),
            description=payload.get("description", ""),
            category=payload.get("category", ""),
            priority=int(payload.get("priority", 0)),
            created_at=created_at or datetime.now(timezone.utc),
            tags=list(tags),
        )


@dataclass
class VectorRecord:
    """A stored vector with its metadata."""
    id: uuid.UUID
    vector: List[float]
    metadata: VectorMetadata


@dataclass
class SearchResult:
    """Result from vector search."""
    id: uuid.UUID
    score: float
    metadata: VectorMetadata
    vector: Optional[List[float]] = None


@dataclass
class VectorFilter:
    """
    Metadata restrictions applied to a search.

    Every set field must match; ``tags`` matches records carrying any of
    the given tags. Ranges are inclusive; naive date bounds are read as UTC.
    """
    category: Optional[str] = None
    priority_range: Optional[Tuple[int, int]] = None
    date_range: Optional[Tuple[datetime, datetime]] = None
    tags: Optional[List[str]] = None

    def __post_init__(self):
        if self.date_range is not None:
            start, end = self.date_range
            self.date_range = (as_utc(start), as_utc(end))

    def matches(self, metadata: VectorMetadata) -> bool:
        if self.category is not None and metadata.category != self.category:
            return False
        if self.priority_range is not None:
            low, high = self.priority_range
            if not low <= metadata.priority <= high:
                return False
        if self.date_range is not None:
            start, end = self.date_range
            if not start <= metadata.created_at <= end:
                return False
        if self.tags and not set(self.tags) & set(metadata.tags):
            return False
        return True


@dataclass
class DatabaseStats:
    """Store statistics."""
    total_vectors: int
    dimension: int
    storage_size: int
    index_type: str


@dataclass
class DatabaseInfo:
    """Capability flags callers use to pick a search variant."""
    name: str
    version: str
    supports_hybrid_search: bool
    supports_filtering: bool
    max_dimension: int
    recommended_batch_size: int


def keyword_score(metadata: VectorMetadata, keywords: List[str]) -> float:
    """Fraction of keywords found (case-insensitive) in title, description or tags."""
    wanted = [k.lower() for k in keywords if k.strip()]
    if not wanted:
        return 0.0
    haystack = " ".join([metadata.title, metadata.description, " ".join(metadata.tags)]).lower()
    return sum(1 for k in wanted if k in haystack) / len(wanted)


def fuse_scores(vector_score: float, kw_score: float, alpha: float = HYBRID_VECTOR_WEIGHT) -> float:
    """Linear fusion of vector and keyword relevance."""
    return alpha * vector_score + (1.0 - alpha) * kw_score


class IVectorStore(ABC):
    """
    Interface for vector store operations.

    Following Interface Segregation and Dependency Inversion principles.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the vector store."""

    @abstractmethod
    async def insert(self, id: uuid.UUID, vector: List[float], metadata: VectorMetadata) -> None:
        """Insert one vector."""

    @abstractmethod
    async def insert_batch(self, records: List[VectorRecord]) -> None:
        """Insert many vectors."""

    @abstractmethod
    async def search(
        self,
        query_vector: List[float],
        limit: int,
        filter: Optional[VectorFilter] = None
    ) -> List[SearchResult]:
        """At most ``limit`` results, descending score, ties newest first."""

    @abstractmethod
    async def hybrid_search(
        self,
        query_vector: List[float],
        keywords: List[str],
        limit: int,
        filter: Optional[VectorFilter] = None
    ) -> List[SearchResult]:
        """Vector and keyword relevance fused; at most ``limit`` results."""

    @abstractmethod
    async def delete(self, id: uuid.UUID) -> None:
        """Delete a vector."""

    @abstractmethod
    async def update(
        self,
        id: uuid.UUID,
        vector: List[float],
        metadata: Optional[VectorMetadata] = None
    ) -> None:
        """Replace a vector, and its metadata when given."""

    @abstractmethod
    async def get(self, id: uuid.UUID) -> Optional[VectorRecord]:
        """Fetch a record, or None."""

    @abstractmethod
    async def stats(self) -> DatabaseStats:
        """Store statistics."""

    @abstractmethod
    async def health_check(self) -> bool:
        """Return False (never raise) when the store is unusable."""

    @abstractmethod
    def database_info(self) -> DatabaseInfo:
        """Capability flags."""

    async def close(self) -> None:
        """Release connections."""


class BaseVectorStore(IVectorStore):
    """Argument checks shared by the implementations."""

    def __init__(self, dimension: int):
        if not 1 <= dimension <= MAX_DIMENSION:
            raise ValidationException("dimension", f"dimension must be between 1 and {MAX_DIMENSION}")
        self._dimension = dimension

    def _check_dimension(self, vector: List[float], field_name: str = "vector") -> None:
        if len(vector) != self._dimension:
            raise ValidationException(
                field_name,
                f"expected dimension {self._dimension}, got {len(vector)}"
            )

    @staticmethod
    def _check_limit(limit: int) -> None:
        if limit < 0:
            raise ValidationException("limit", "limit must not be negative")


class InMemoryVectorStore(BaseVectorStore):
    """
    Process-local vector store using numpy cosine similarity.

    Suitable for development, tests and small datasets. Operations do not
    await between reads and writes, so concurrent tasks on one event loop
    see consistent state.
    """

    def __init__(self, dimension: int):
        super().__init__(dimension)
        self._vectors: Dict[uuid.UUID, np.ndarray] = {}
        self._metadata: Dict[uuid.UUID, VectorMetadata] = {}
        self._sequence: Dict[uuid.UUID, int] = {}
        self._counter = itertools.count()

    async def initialize(self) -> None:
        return None

    def _store(self, id: uuid.UUID, vector: List[float], metadata: VectorMetadata) -> None:
        self._check_dimension(vector)
        self._vectors[id] = np.asarray(vector, dtype=np.float32)
        self._metadata[id] = metadata.copy()
        self._sequence[id] = next(self._counter)

    async def insert(self, id: uuid.UUID, vector: List[float], metadata: VectorMetadata) -> None:
        self._store(id, vector, metadata)

    async def insert_batch(self, records: List[VectorRecord]) -> None:
        for record in records:
            self._check_dimension(record.vector)
        for record in records:
            self._store(record.id, record.vector, record.metadata)

    def _scored(
        self,
        query_vector: List[float],
        filter: Optional[VectorFilter]
    ) -> List[Tuple[uuid.UUID, float]]:
        self._check_dimension(query_vector, "query_vector")
        ids = [i for i in self._vectors if filter is None or filter.matches(self._metadata[i])]
        if not ids:
            return []

        matrix = np.stack([self._vectors[i] for i in ids])
        query = np.asarray(query_vector, dtype=np.float32)
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        dots = matrix @ query
        scores = np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)
        return [(i, float(s)) for i, s in zip(ids, scores)]

    def _ranked(self, scored: List[Tuple[uuid.UUID, float]], limit: int) -> List[SearchResult]:
        scored.sort(key=lambda item: (-item[1], -self._sequence[item[0]]))
        return [
            SearchResult(id=i, score=score, metadata=self._metadata[i].copy())
            for i, score in scored[:limit]
        ]

    async def search(
        self,
        query_vector: List[float],
        limit: int,
        filter: Optional[VectorFilter] = None
    ) -> List[SearchResult]:
        self._check_limit(limit)
        if limit == 0:
            return []
        return self._ranked(self._scored(query_vector, filter), limit)

    async def hybrid_search(
        self,
        query_vector: List[float],
        keywords: List[str],
        limit: int,
        filter: Optional[VectorFilter] = None
    ) -> List[SearchResult]:
        self._check_limit(limit)
        if limit == 0:
            return []
        fused = [
            (i, fuse_scores(score, keyword_score(self._metadata[i], keywords)))
            for i, score in self._scored(query_vector, filter)
        ]
        return self._ranked(fused, limit)

    async def delete(self, id: uuid.UUID) -> None:
        if id not in self._vectors:
            raise ResourceNotFoundException("Vector", str(id))
        del self._vectors[id]
        del self._metadata[id]
        del self._sequence[id]

    async def update(
        self,
        id: uuid.UUID,
        vector: List[float],
        metadata: Optional[VectorMetadata] = None
    ) -> None:
        if id not in self._vectors:
            raise ResourceNotFoundException("Vector", str(id))
        self._check_dimension(vector)
        self._vectors[id] = np.asarray(vector, dtype=np.float32)
        if metadata is not None:
            self._metadata[id] = metadata.copy()

    async def get(self, id: uuid.UUID) -> Optional[VectorRecord]:
        if id not in self._vectors:
            return None
        return VectorRecord(
            id=id,
            vector=self._vectors[id].tolist(),
            metadata=self._metadata[id].copy(),
        )

    async def stats(self) -> DatabaseStats:
        total = len(self._vectors)
        return DatabaseStats(
            total_vectors=total,
            dimension=self._dimension,
            storage_size=total * self._dimension * 4,
            index_type="flat",
        )

    async def health_check(self) -> bool:
        return True

    def database_info(self) -> DatabaseInfo:
        return DatabaseInfo(
            name="In-memory (numpy)",
            version="1.0",
            supports_hybrid_search=True,
            supports_filtering=True,
            max_dimension=MAX_DIMENSION,
            recommended_batch_size=1000,
        )


class MilvusVectorStore(BaseVectorStore):
    """
    Zilliz Cloud (Managed Milvus) implementation of vector store.

    Metadata lives in dynamic fields next to the vector. ``inserted_at``
    (epoch milliseconds) breaks score ties in favour of newer records.
    The pymilvus client is synchronous; calls run in a worker thread under
    the configured timeout.
    """

    OUTPUT_FIELDS = [
        "title", "description", "category", "priority",
        "created_at", "tags", "inserted_at"
    ]

    def __init__(
        self,
        uri: str,
        dimension: int,
        collection_name: str = "ticket_vectors",
        token: str = "",
        timeout: float = 10.0,
        client: Optional[MilvusClient] = None,
    ):
        super().__init__(dimension)
        self._uri = uri
        self._token = token
        self._collection_name = collection_name
        self._timeout = timeout
        self._client = client
        self._initialized = False

    async def _call(self, method: str, **kwargs: Any) -> Any:
        """Run a client method off the event loop, mapping failures."""
        if not self._initialized:
            await self.initialize()
        try:
            return await call_with_timeout(
                asyncio.to_thread(getattr(self._client, method), **kwargs),
                self._timeout,
                "Vector Store",
            )
        except ApplicationException:
            raise
        except Exception as e:
            raise VectorStoreException(f"{method} failed: {e}")

    async def initialize(self) -> None:
        """Connect and create the collection if it does not exist."""
        if self._initialized:
            return

        try:
            await call_with_timeout(
                asyncio.to_thread(self._setup_collection),
                self._timeout,
                "Vector Store",
            )
            self._initialized = True

        except ApplicationException:
            raise
        except Exception as e:
            raise VectorStoreException(f"Failed to initialize Milvus: {e}")

    def _setup_collection(self) -> None:
        if self._client is None:
            if not self._uri:
                raise VectorStoreException("Milvus URI not configured")
            self._client = MilvusClient(uri=self._uri, token=self._token)

        if not self._client.has_collection(self._collection_name):
            self._client.create_collection(
                collection_name=self._collection_name,
                dimension=self._dimension,
                primary_field_name="id",
                id_type="string",
                max_length=64,
                vector_field_name="vector",
                metric_type="COSINE",
                auto_id=False,
            )
            logger.info("Created Milvus collection", extra={"collection": self._collection_name})
        else:
            self._verify_dimension()

    def _verify_dimension(self) -> None:
        description = self._client.describe_collection(self._collection_name)
        for f in description.get("fields", []):
            dim = f.get("params", {}).get("dim")
            if dim is not None and int(dim) != self._dimension:
                raise VectorStoreException(
                    f"collection {self._collection_name} has dimension {dim}, "
                    f"configured {self._dimension}"
                )

    def _row(self, id: uuid.UUID, vector: List[float], metadata: VectorMetadata) -> Dict[str, Any]:
        self._check_dimension(vector)
        return {
            "id": str(id),
            "vector": [float(v) for v in vector],
            "inserted_at": int(time.time() * 1000),
            **metadata.to_payload(),
        }

    @staticmethod
    def _quote(value: str) -> str:
        return json.dumps(value)

    def _filter_expression(self, filter: Optional[VectorFilter]) -> str:
        """Translate a VectorFilter into a Milvus boolean expression."""
        if filter is None:
            return ""
        clauses = []
        if filter.category is not None:
            clauses.append(f"category == {self._quote(filter.category)}")
        if filter.priority_range is not None:
            low, high = filter.priority_range
            clauses.append(f"(priority >= {int(low)} and priority <= {int(high)})")
        if filter.date_range is not None:
            start, end = filter.date_range
            clauses.append(f"(created_ts >= {start.timestamp()} and created_ts <= {end.timestamp()})")
        if filter.tags:
            clauses.append(f"json_contains_any(tags, {json.dumps(list(filter.tags))})")
        return " and ".join(clauses)

    def _hits(self, raw: Any) -> List[Tuple[SearchResult, int]]:
        hits = []
        if raw and len(raw) > 0:
            for hit in raw[0]:
                entity = hit.get("entity", {})
                result = SearchResult(
                    id=uuid.UUID(str(hit["id"])),
                    score=float(hit["distance"]),
                    metadata=VectorMetadata.from_payload(entity),
                )
                hits.append((result, int(entity.get("inserted_at", 0))))
        return hits

    @staticmethod
    def _order(hits: List[Tuple[SearchResult, int]], limit: int) -> List[SearchResult]:
        hits.sort(key=lambda item: (-item[0].score, -item[1]))
        return [result for result, _ in hits[:limit]]

    async def insert(self, id: uuid.UUID, vector: List[float], metadata: VectorMetadata) -> None:
        row = self._row(id, vector, metadata)
        await self._call("insert", collection_name=self._collection_name, data=[row])

    async def insert_batch(self, records: List[VectorRecord]) -> None:
        if not records:
            return
        rows = [self._row(r.id, r.vector, r.metadata) for r in records]
        await self._call("insert", collection_name=self._collection_name, data=rows)

    async def search(
        self,
        query_vector: List[float],
        limit: int,
        filter: Optional[VectorFilter] = None
    ) -> List[SearchResult]:
        """
        Search for similar tickets.

        Args:
            query_vector: Query vector
            limit: Maximum number of results
            filter: Optional metadata filter

        Returns:
            List of SearchResult objects

        Raises:
            VectorStoreException: If search fails
        """
        self._check_limit(limit)
        if limit == 0:
            return []
        self._check_dimension(query_vector, "query_vector")

        raw = await self._call(
            "search",
            collection_name=self._collection_name,
            data=[[float(v) for v in query_vector]],
            limit=limit,
            filter=self._filter_expression(filter),
            output_fields=self.OUTPUT_FIELDS,
            search_params={"metric_type": "COSINE"},
        )
        return self._order(self._hits(raw), limit)

    async def hybrid_search(
        self,
        query_vector: List[float],
        keywords: List[str],
        limit: int,
        filter: Optional[VectorFilter] = None
    ) -> List[SearchResult]:
        """Over-fetch by vector similarity, then fuse keyword relevance client-side."""
        self._check_limit(limit)
        if limit == 0:
            return []
        self._check_dimension(query_vector, "query_vector")

        raw = await self._call(
            "search",
            collection_name=self._collection_name,
            data=[[float(v) for v in query_vector]],
            limit=min(limit * 4, 16384),
            filter=self._filter_expression(filter),
            output_fields=self.OUTPUT_FIELDS,
            search_params={"metric_type": "COSINE"},
        )
        hits = []
        for result, inserted_at in self._hits(raw):
            result.score = fuse_scores(result.score, keyword_score(result.metadata, keywords))
            hits.append((result, inserted_at))
        return self._order(hits, limit)

    async def delete(self, id: uuid.UUID) -> None:
        if await self.get(id) is None:
            raise ResourceNotFoundException("Vector", str(id))
        await self._call("delete", collection_name=self._collection_name, ids=[str(id)])

    async def update(
        self,
        id: uuid.UUID,
        vector: List[float],
        metadata: Optional[VectorMetadata] = None
    ) -> None:
        existing = await self.get(id)
        if existing is None:
            raise ResourceNotFoundException("Vector", str(id))
        row = self._row(id, vector, metadata or existing.metadata)
        await self._call("upsert", collection_name=self._collection_name, data=[row])

    async def get(self, id: uuid.UUID) -> Optional[VectorRecord]:
        rows = await self._call(
            "get",
            collection_name=self._collection_name,
            ids=[str(id)],
            output_fields=self.OUTPUT_FIELDS + ["vector"],
        )
        if not rows:
            return None
        row = rows[0]
        return VectorRecord(
            id=uuid.UUID(str(row["id"])),
            vector=[float(v) for v in row["vector"]],
            metadata=VectorMetadata.from_payload(row),
        )

    async def stats(self) -> DatabaseStats:
        raw = await self._call("get_collection_stats", collection_name=self._collection_name)
        total = int(raw.get("row_count", 0))
        return DatabaseStats(
            total_vectors=total,
            dimension=self._dimension,
            storage_size=total * self._dimension * 4,
            index_type="AUTOINDEX",
        )

    async def health_check(self) -> bool:
        try:
            await self._call("has_collection", collection_name=self._collection_name)
            return True
        except Exception as e:
            logger.warning("Vector store health check failed", extra={"error": str(e)})
            return False

    def database_info(self) -> DatabaseInfo:
        return DatabaseInfo(
            name="Milvus",
            version="2.x",
            supports_hybrid_search=True,
            supports_filtering=True,
            max_dimension=MAX_DIMENSION,
            recommended_batch_size=500,
        )

    async def close(self) -> None:
        if self._client is not None:
            await asyncio.to_thread(self._client.close)
