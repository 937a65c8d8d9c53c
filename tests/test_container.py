"""Tests for the service container and factory."""

from unittest.mock import AsyncMock

import pytest

from ticket_rag.config import (
    EmbeddingConfig, LLMConfig, PipelineConfig, RerankingConfig, VectorDbConfig
)
from ticket_rag.core import ConfigurationException
from ticket_rag.infrastructure.container import ServiceContainer
from ticket_rag.infrastructure.embedding import HashEmbeddingProvider, OpenAIEmbeddingProvider
from ticket_rag.infrastructure.factory import ServiceFactory, create_service_container
from ticket_rag.infrastructure.llm import MockLLMProvider, OpenAILLMProvider
from ticket_rag.infrastructure.rerank import HttpRerankProvider, LexicalRerankProvider
from ticket_rag.infrastructure.vectorstore import InMemoryVectorStore, MilvusVectorStore


class TestServiceContainer:

    def test_processor_shares_provider_instances(self, container):
        processor = container.ticket_processor
        assert processor._embedding is container.embedding_service
        assert processor._rerank is container.rerank_service
        assert processor._vector_db is container.vector_db
        assert processor._llm is container.llm_service
        assert processor.metrics is container.metrics

    @pytest.mark.asyncio
    async def test_health_all_ok(self, container):
        status = await container.health_check()

        assert status.overall is True
        assert status.to_dict()["llm_service"] is True

    @pytest.mark.asyncio
    async def test_one_unhealthy_provider(self, container):
        container.rerank_service.health_check = AsyncMock(return_value=False)

        status = await container.health_check()

        assert status.overall is False
        assert status.rerank_service is False
        assert status.embedding_service is True
        assert status.vector_database is True
        assert status.llm_service is True

    @pytest.mark.asyncio
    async def test_raising_check_does_not_short_circuit(self, container):
        container.embedding_service.health_check = AsyncMock(side_effect=RuntimeError("boom"))
        container.llm_service.health_check = AsyncMock(return_value=True)

        status = await container.health_check()

        assert status.overall is False
        assert status.embedding_service is False
        assert status.rerank_service is True
        assert status.vector_database is True
        assert status.llm_service is True
        container.llm_service.health_check.assert_awaited_once()

    def test_model_and_database_info(self, container):
        info = container.model_info()
        assert set(info) == {"embedding", "rerank", "llm"}
        assert info["embedding"].provider == "Local"
        assert container.database_info().name == "In-memory (numpy)"

    @pytest.mark.asyncio
    async def test_process_ticket_updates_stats(self, container, ticket_factory):
        result = await container.process_ticket(ticket_factory())

        assert 0.0 <= result.confidence <= 1.0
        assert container.get_stats().request_count == 1

    def test_pipeline_settings_applied(self, embedding_service, vector_store, rerank_service, llm_service):
        container = ServiceContainer(
            embedding_service, rerank_service, vector_store, llm_service,
            pipeline=PipelineConfig(search_limit=20, top_n=5, batch_concurrency=4),
        )
        assert container.ticket_processor._search_limit == 20
        assert container.ticket_processor._top_n == 5
        assert container.ticket_processor._batch_concurrency == 4

    @pytest.mark.asyncio
    async def test_close_tolerates_failures(self, container):
        container.llm_service.close = AsyncMock(side_effect=RuntimeError("already closed"))
        await container.close()


class TestServiceFactory:

    def test_creates_offline_container(self, test_settings):
        container = create_service_container(test_settings)

        assert isinstance(container.embedding_service, HashEmbeddingProvider)
        assert isinstance(container.rerank_service, LexicalRerankProvider)
        assert isinstance(container.vector_db, InMemoryVectorStore)
        assert isinstance(container.llm_service, MockLLMProvider)

    @pytest.mark.parametrize(
        "section, config",
        [
            ("embedding", EmbeddingConfig(provider="word2vec", dimension=16)),
            ("reranking", RerankingConfig(provider="bm25")),
            ("vector_db", VectorDbConfig(provider="pinecone", dimension=16)),
            ("llm", LLMConfig(provider="llama")),
        ],
    )
    def test_unknown_selector_raises(self, test_settings, section, config):
        settings = test_settings.model_copy(update={section: config})

        with pytest.raises(ConfigurationException) as exc_info:
            create_service_container(settings)
        assert exc_info.value.kind == "Configuration"

    @pytest.mark.parametrize(
        "section, config",
        [
            ("embedding", EmbeddingConfig(provider="openai", api_key="", dimension=16)),
            ("reranking", RerankingConfig(provider="qwen", api_key="")),
            ("llm", LLMConfig(provider="zai", api_key="")),
        ],
    )
    def test_missing_api_key_raises(self, test_settings, section, config):
        settings = test_settings.model_copy(update={section: config})

        with pytest.raises(ConfigurationException):
            create_service_container(settings)

    def test_missing_key_reported_before_construction(self, test_settings, monkeypatch):
        settings = test_settings.model_copy(update={
            "embedding": EmbeddingConfig(provider="openai", api_key="sk-test", dimension=16),
            "llm": LLMConfig(provider="openai", api_key=""),
        })
        built = []
        monkeypatch.setattr(
            ServiceFactory, "create_embedding_service",
            staticmethod(lambda config: built.append(config) or HashEmbeddingProvider(16)),
        )

        with pytest.raises(ConfigurationException):
            create_service_container(settings)
        assert built == []

    def test_dimension_mismatch_raises(self, test_settings):
        settings = test_settings.model_copy(update={"vector_db": VectorDbConfig(provider="memory", dimension=32)})
        with pytest.raises(ConfigurationException):
            create_service_container(settings)

    def test_milvus_requires_connection_string(self, test_settings):
        settings = test_settings.model_copy(update={"vector_db": VectorDbConfig(provider="milvus", dimension=16)})
        with pytest.raises(ConfigurationException):
            create_service_container(settings)

    def test_remote_providers(self):
        embedding = ServiceFactory.create_embedding_service(
            EmbeddingConfig(provider="qwen", api_key="k", model="text-embedding-v3", dimension=1024)
        )
        rerank = ServiceFactory.create_rerank_service(RerankingConfig(provider="jina", api_key="k"))
        llm = ServiceFactory.create_llm_service(LLMConfig(provider="qwen", api_key="k", model="qwen-plus"))
        store = ServiceFactory.create_vector_database(
            VectorDbConfig(provider="milvus", connection_string="https://example.zillizcloud.com", dimension=1024)
        )

        assert isinstance(embedding, OpenAIEmbeddingProvider)
        assert embedding.model_info().provider == "Qwen"
        assert isinstance(rerank, HttpRerankProvider)
        assert rerank.model_info().provider == "Jina"
        assert isinstance(llm, OpenAILLMProvider)
        assert llm.model_info().provider == "Qwen"
        assert isinstance(store, MilvusVectorStore)

    def test_selectors_are_case_insensitive(self):
        assert isinstance(
            ServiceFactory.create_rerank_service(RerankingConfig(provider="MOCK")),
            LexicalRerankProvider,
        )
