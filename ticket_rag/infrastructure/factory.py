"""
Service Factory
===============

Builds providers from configuration selectors and wires them into a
ServiceContainer. Every configuration problem surfaces here, before any
ticket is processed.
"""

from typing import Optional

from ticket_rag.config import (
    EmbeddingConfig, LLMConfig, RerankingConfig, Settings, VectorDbConfig,
    get_settings
)
from ticket_rag.core import ConfigurationException
from ticket_rag.infrastructure.container import ServiceContainer
from ticket_rag.infrastructure.embedding import (
    HashEmbeddingProvider, IEmbeddingProvider, OpenAIEmbeddingProvider,
    ZAIEmbeddingProvider
)
from ticket_rag.infrastructure.llm import (
    ILLMProvider, MockLLMProvider, OpenAILLMProvider, ZAILLMProvider
)
from ticket_rag.infrastructure.rerank import (
    HttpRerankProvider, IRerankProvider, LexicalRerankProvider
)
from ticket_rag.infrastructure.vectorstore import (
    InMemoryVectorStore, IVectorStore, MilvusVectorStore
)
from ticket_rag.shared.infrastructure.logging import get_logger
from ticket_rag.shared.infrastructure.metrics import MetricsCollector

logger = get_logger(__name__)

QWEN_COMPATIBLE_ENDPOINT = "https://dashscope.aliyuncs.com/compatible-mode/v1"
OPENAI_ENDPOINT = "https://api.openai.com/v1"
DASHSCOPE_RERANK_ENDPOINT = "https://dashscope.aliyuncs.com/api/v1/services/rerank/text-rerank/text-rerank"
RERANK_ENDPOINTS = {
    "cohere": "https://api.cohere.com/v2/rerank",
    "jina": "https://api.jina.ai/v1/rerank",
}


def _require_key(api_key: str, what: str) -> str:
    if not api_key:
        raise ConfigurationException(f"{what} API key not configured")
    return api_key


def _qwen_endpoint(endpoint: str) -> str:
    # The OpenAI default means nobody pointed Qwen somewhere specific
    return QWEN_COMPATIBLE_ENDPOINT if endpoint in ("", OPENAI_ENDPOINT) else endpoint


def _rerank_endpoint(provider: str, endpoint: str) -> str:
    if endpoint in ("", DASHSCOPE_RERANK_ENDPOINT):
        return RERANK_ENDPOINTS.get(provider, DASHSCOPE_RERANK_ENDPOINT)
    return endpoint


class ServiceFactory:
    """Creates providers by selector name."""

    EMBEDDING_PROVIDERS = ("openai", "qwen", "zai", "mock")
    RERANK_PROVIDERS = ("qwen", "cohere", "jina", "mock")
    VECTOR_DB_PROVIDERS = ("milvus", "memory")
    LLM_PROVIDERS = ("openai", "qwen", "zai", "mock")
    REMOTE_PROVIDERS = {
        "embedding": ("openai", "qwen", "zai"),
        "reranking": ("qwen", "cohere", "jina"),
        "llm": ("openai", "qwen", "zai"),
    }

    @staticmethod
    def create_embedding_service(config: EmbeddingConfig) -> IEmbeddingProvider:
        provider = config.provider.lower()

        if provider == "openai":
            return OpenAIEmbeddingProvider(
                api_key=_require_key(config.api_key, "OpenAI embedding"),
                model=config.model,
                dimension=config.dimension,
                endpoint=config.endpoint,
                batch_size=config.batch_size,
                timeout=config.timeout,
            )
        if provider == "qwen":
            return OpenAIEmbeddingProvider(
                api_key=_require_key(config.api_key, "Qwen embedding"),
                model=config.model,
                dimension=config.dimension,
                endpoint=_qwen_endpoint(config.endpoint),
                batch_size=min(config.batch_size, 10),
                timeout=config.timeout,
                provider_label="Qwen",
            )
        if provider == "zai":
            return ZAIEmbeddingProvider(
                api_key=_require_key(config.api_key, "ZAI embedding"),
                model=config.model,
                dimension=config.dimension,
                batch_size=config.batch_size,
                timeout=config.timeout,
            )
        if provider == "mock":
            return HashEmbeddingProvider(dimension=config.dimension, batch_size=config.batch_size)

        raise ConfigurationException(
            f"Unknown embedding provider '{config.provider}'; "
            f"expected one of {', '.join(ServiceFactory.EMBEDDING_PROVIDERS)}"
        )

    @staticmethod
    def create_rerank_service(config: RerankingConfig) -> IRerankProvider:
        provider = config.provider.lower()

        if provider == "qwen":
            return HttpRerankProvider(
                api_key=_require_key(config.api_key, "Qwen rerank"),
                model=config.model,
                endpoint=config.endpoint,
                api_style="dashscope",
                max_documents=config.max_documents,
                timeout=config.timeout,
                provider_label="Qwen",
            )
        if provider in ("cohere", "jina"):
            return HttpRerankProvider(
                api_key=_require_key(config.api_key, f"{provider.title()} rerank"),
                model=config.model,
                endpoint=_rerank_endpoint(provider, config.endpoint),
                api_style="cohere",
                max_documents=config.max_documents,
                timeout=config.timeout,
                provider_label=provider.title(),
            )
        if provider == "mock":
            return LexicalRerankProvider(max_documents=config.max_documents, timeout=config.timeout)

        raise ConfigurationException(
            f"Unknown rerank provider '{config.provider}'; "
            f"expected one of {', '.join(ServiceFactory.RERANK_PROVIDERS)}"
        )

    @staticmethod
    def create_vector_database(config: VectorDbConfig) -> IVectorStore:
        provider = config.provider.lower()

        if provider == "milvus":
            if not config.connection_string:
                raise ConfigurationException("Milvus connection string not configured")
            return MilvusVectorStore(
                uri=config.connection_string,
                dimension=config.dimension,
                collection_name=config.collection_name,
                token=config.api_key,
                timeout=config.timeout,
            )
        if provider == "memory":
            return InMemoryVectorStore(dimension=config.dimension)

        raise ConfigurationException(
            f"Unknown vector database provider '{config.provider}'; "
            f"expected one of {', '.join(ServiceFactory.VECTOR_DB_PROVIDERS)}"
        )

    @staticmethod
    def create_llm_service(config: LLMConfig) -> ILLMProvider:
        provider = config.provider.lower()

        if provider == "openai":
            return OpenAILLMProvider(
                api_key=_require_key(config.api_key, "OpenAI LLM"),
                model=config.model,
                endpoint=config.endpoint,
                max_tokens=config.max_tokens,
                temperature=config.temperature,
                timeout=config.timeout,
            )
        if provider == "qwen":
            return OpenAILLMProvider(
                api_key=_require_key(config.api_key, "Qwen LLM"),
                model=config.model,
                endpoint=_qwen_endpoint(config.endpoint),
                max_tokens=config.max_tokens,
                temperature=config.temperature,
                timeout=config.timeout,
                provider_label="Qwen",
            )
        if provider == "zai":
            return ZAILLMProvider(
                api_key=_require_key(config.api_key, "ZAI LLM"),
                model=config.model,
                max_tokens=config.max_tokens,
                temperature=config.temperature,
                timeout=config.timeout,
            )
        if provider == "mock":
            return MockLLMProvider(max_tokens=config.max_tokens)

        raise ConfigurationException(
            f"Unknown LLM provider '{config.provider}'; "
            f"expected one of {', '.join(ServiceFactory.LLM_PROVIDERS)}"
        )

    @staticmethod
    def validate_settings(settings: Settings) -> None:
        """
        Check every selector and credential without constructing anything.

        Raises:
            ConfigurationException: On the first problem found
        """
        sections = (
            ("embedding", settings.embedding, ServiceFactory.EMBEDDING_PROVIDERS),
            ("reranking", settings.reranking, ServiceFactory.RERANK_PROVIDERS),
            ("vector_db", settings.vector_db, ServiceFactory.VECTOR_DB_PROVIDERS),
            ("llm", settings.llm, ServiceFactory.LLM_PROVIDERS),
        )
        for section, config, known in sections:
            provider = config.provider.lower()
            if provider not in known:
                raise ConfigurationException(
                    f"Unknown {section} provider '{config.provider}'; "
                    f"expected one of {', '.join(known)}",
                    {"section": section}
                )
            if provider in ServiceFactory.REMOTE_PROVIDERS.get(section, ()) and not config.api_key:
                raise ConfigurationException(
                    f"{section} provider '{provider}' requires an API key",
                    {"section": section}
                )

        if settings.vector_db.provider.lower() == "milvus" and not settings.vector_db.connection_string:
            raise ConfigurationException("Milvus connection string not configured")

        if settings.embedding.dimension != settings.vector_db.dimension:
            raise ConfigurationException(
                f"Embedding dimension {settings.embedding.dimension} does not match "
                f"vector database dimension {settings.vector_db.dimension}"
            )

    @staticmethod
    def create_service_container(
        settings: Optional[Settings] = None,
        metrics: Optional[MetricsCollector] = None,
    ) -> ServiceContainer:
        """
        Build a ServiceContainer from settings.

        All configuration is validated before any provider is constructed.

        Raises:
            ConfigurationException: Unknown selector, missing credential, or an
                embedding dimension that differs from the vector store's
        """
        settings = settings or get_settings()
        ServiceFactory.validate_settings(settings)

        container = ServiceContainer(
            embedding_service=ServiceFactory.create_embedding_service(settings.embedding),
            rerank_service=ServiceFactory.create_rerank_service(settings.reranking),
            vector_db=ServiceFactory.create_vector_database(settings.vector_db),
            llm_service=ServiceFactory.create_llm_service(settings.llm),
            metrics=metrics,
            pipeline=settings.pipeline,
        )

        logger.info(
            "Service container created",
            extra={
                "embedding_provider": settings.embedding.provider,
                "rerank_provider": settings.reranking.provider,
                "vector_db_provider": settings.vector_db.provider,
                "llm_provider": settings.llm.provider,
                "dimension": settings.embedding.dimension,
            }
        )
        return container


def create_service_container(
    settings: Optional[Settings] = None,
    metrics: Optional[MetricsCollector] = None,
) -> ServiceContainer:
    """Shortcut for ``ServiceFactory.create_service_container``."""
    return ServiceFactory.create_service_container(settings, metrics)
