"""Pytest configuration and fixtures."""

import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Tuple

import pytest

from ticket_rag.config import EmbeddingConfig, LLMConfig, PipelineConfig, RerankingConfig, Settings, VectorDbConfig
from ticket_rag.infrastructure.container import ServiceContainer
from ticket_rag.infrastructure.embedding import HashEmbeddingProvider
from ticket_rag.infrastructure.llm import MockLLMProvider
from ticket_rag.infrastructure.rerank import BaseRerankProvider, LexicalRerankProvider
from ticket_rag.infrastructure.common import ModelInfo
from ticket_rag.infrastructure.vectorstore import InMemoryVectorStore, VectorMetadata
from ticket_rag.processing.application import TicketProcessor
from ticket_rag.processing.domain import NewTicket, Ticket
from ticket_rag.shared.infrastructure.metrics import MetricsCollector

DIMENSION = 16


HISTORY = [
    ("Password reset email not arriving", "User requested a password reset but no email arrived", "auth", ["email"]),
    ("VPN disconnects every hour", "Corporate VPN drops the connection every sixty minutes", "network", ["vpn"]),
    ("Invoice shows duplicate charge", "Customer was billed twice for the March invoice", "billing", ["invoice"]),
    ("Printer offline on floor three", "Shared printer reports offline status", "hardware", []),
    ("Cannot log in after password change", "Login fails with invalid credentials after password reset", "auth", ["login"]),
]


class FixedRerankProvider(BaseRerankProvider):
    """Reranker returning preset ``(index, score)`` pairs."""

    def __init__(self, scored: List[Tuple[int, float]], max_documents: int = 100):
        super().__init__(max_documents=max_documents)
        self.scored = scored

    async def _score(self, query, documents):
        return list(self.scored)

    def model_info(self) -> ModelInfo:
        return ModelInfo(name="fixed", version="1", provider="Test", max_tokens=512)


@pytest.fixture
def test_settings() -> Settings:
    """Settings using only offline providers."""
    return Settings(
        environment="test",
        embedding=EmbeddingConfig(provider="mock", dimension=DIMENSION),
        reranking=RerankingConfig(provider="mock"),
        vector_db=VectorDbConfig(provider="memory", dimension=DIMENSION),
        llm=LLMConfig(provider="mock"),
        pipeline=PipelineConfig(),
    )


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector()


@pytest.fixture
def embedding_service() -> HashEmbeddingProvider:
    return HashEmbeddingProvider(dimension=DIMENSION)


@pytest.fixture
def vector_store() -> InMemoryVectorStore:
    return InMemoryVectorStore(dimension=DIMENSION)


@pytest.fixture
def rerank_service() -> LexicalRerankProvider:
    return LexicalRerankProvider(max_documents=100)


@pytest.fixture
def llm_service() -> MockLLMProvider:
    return MockLLMProvider()


@pytest.fixture
def metadata_factory():
    """Factory for vector metadata."""

    def create(**kwargs) -> VectorMetadata:
        defaults = {
            "title": "Sample ticket",
            "description": "Sample description",
            "category": "general",
            "priority": 3,
            "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
            "tags": [],
        }
        return VectorMetadata(**{**defaults, **kwargs})

    return create


@pytest.fixture
def ticket_factory():
    """Factory for tickets built through ``Ticket.from_new``."""

    def create(**kwargs) -> Ticket:
        defaults = {
            "title": "Password reset not working",
            "description": "The password reset email never arrives",
            "category": "auth",
            "priority": 2,
            "tags": ["email"],
        }
        return Ticket.from_new(NewTicket(**{**defaults, **kwargs}))

    return create


@pytest.fixture
async def seeded_store(vector_store, embedding_service, metadata_factory) -> InMemoryVectorStore:
    """In-memory store holding the historical tickets."""
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    for offset, (title, description, category, tags) in enumerate(HISTORY):
        metadata = metadata_factory(
            title=title,
            description=description,
            category=category,
            tags=tags,
            created_at=base + timedelta(days=offset),
        )
        vector = await embedding_service.embed(metadata.document_text)
        await vector_store.insert(uuid.uuid4(), vector, metadata)
    return vector_store


@pytest.fixture
def processor(embedding_service, rerank_service, seeded_store, llm_service, metrics) -> TicketProcessor:
    return TicketProcessor(
        embedding_service=embedding_service,
        rerank_service=rerank_service,
        vector_db=seeded_store,
        llm_service=llm_service,
        metrics=metrics,
    )


@pytest.fixture
def container(embedding_service, rerank_service, seeded_store, llm_service, metrics) -> ServiceContainer:
    return ServiceContainer(
        embedding_service=embedding_service,
        rerank_service=rerank_service,
        vector_db=seeded_store,
        llm_service=llm_service,
        metrics=metrics,
    )


@pytest.fixture
def fixed_rerank():
    """Factory for rerankers with preset ``(index, score)`` output."""

    def create(scored: List[Tuple[int, float]], max_documents: int = 100) -> FixedRerankProvider:
        return FixedRerankProvider(scored, max_documents=max_documents)

    return create
