"""
Configuration Module
====================

Application settings and configuration management using Pydantic.

Provider sections are nested models; override them from the environment
with a double underscore, e.g. ``EMBEDDING__API_KEY`` or
``LLM__TEMPERATURE``.
"""

from enum import Enum
from functools import lru_cache

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


MAX_VECTOR_DIMENSION = 4096


def _validate_endpoint(v: str) -> str:
    """Endpoints must be HTTP(S) URLs."""
    if v and not (v.startswith("http://") or v.startswith("https://")):
        raise ValueError("endpoint must be a valid HTTP(S) URL")
    return v.rstrip("/")


class EmbeddingConfig(BaseModel):
    """Embedding provider settings."""

    provider: str = Field(default="mock", description="openai, qwen, zai or mock")
    model: str = Field(default="text-embedding-3-small", description="Embedding model name")
    api_key: str = Field(default="", description="Provider API key")
    endpoint: str = Field(default="https://api.openai.com/v1", description="API base URL")
    dimension: int = Field(default=1536, ge=1, le=MAX_VECTOR_DIMENSION)
    batch_size: int = Field(default=100, ge=1, description="Texts per upstream request")
    timeout: float = Field(default=30.0, gt=0, description="Per-call timeout in seconds")

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        """Ensure the endpoint is an HTTP(S) URL."""
        return _validate_endpoint(v)


class RerankingConfig(BaseModel):
    """Rerank provider settings."""

    provider: str = Field(default="mock", description="qwen, cohere, jina or mock")
    model: str = Field(default="gte-rerank", description="Rerank model name")
    api_key: str = Field(default="", description="Provider API key")
    endpoint: str = Field(
        default="https://dashscope.aliyuncs.com/api/v1/services/rerank/text-rerank/text-rerank",
        description="Rerank API URL"
    )
    max_documents: int = Field(default=100, ge=1, description="Max documents per rerank call")
    timeout: float = Field(default=30.0, gt=0)

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        """Ensure the endpoint is an HTTP(S) URL."""
        return _validate_endpoint(v)


class VectorDbConfig(BaseModel):
    """Vector store settings."""

    provider: str = Field(default="memory", description="milvus or memory")
    connection_string: str = Field(default="", description="Milvus / Zilliz Cloud URI")
    api_key: str = Field(default="", description="Milvus token")
    dimension: int = Field(default=1536, ge=1, le=MAX_VECTOR_DIMENSION)
    collection_name: str = Field(default="ticket_vectors")
    timeout: float = Field(default=10.0, gt=0)


class LLMConfig(BaseModel):
    """Generation provider settings."""

    provider: str = Field(default="mock", description="openai, qwen, zai or mock")
    model: str = Field(default="gpt-4o-mini", description="Chat model name")
    api_key: str = Field(default="", description="Provider API key")
    endpoint: str = Field(default="https://api.openai.com/v1", description="API base URL")
    max_tokens: int = Field(default=1000, ge=1, le=32000)
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    timeout: float = Field(default=60.0, gt=0)

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        """Ensure the endpoint is an HTTP(S) URL."""
        return _validate_endpoint(v)


class PipelineConfig(BaseModel):
    """Orchestrator tuning."""

    search_limit: int = Field(default=100, ge=1, description="Candidate pool fetched from the vector store")
    top_n: int = Field(default=10, ge=1, description="Similar tickets returned per result")
    batch_concurrency: int = Field(default=1, ge=1, le=16, description="In-flight tickets in a batch")


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: str = Field(default="INFO")
    json_format: bool = Field(default=True)

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Ensure the level is a standard logging level."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"level must be one of {allowed}")
        return v.upper()


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="ticket-rag", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")

    # ========== Providers ==========
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    reranking: RerankingConfig = Field(default_factory=RerankingConfig)
    vector_db: VectorDbConfig = Field(default_factory=VectorDbConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)

    # ========== Pipeline ==========
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)

    # ========== Logging ==========
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production", "test"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# ========== Constants ==========

class TicketStatus(str, Enum):
    """Ticket lifecycle statuses, in forward order."""
    NEW = "new"
    PROCESSING = "processing"
    RESOLVED = "resolved"
    CLOSED = "closed"


class PipelineStage(str, Enum):
    """Stages a ticket moves through during processing."""
    EMBEDDING = "embedding"
    VECTOR_SEARCH = "vector_search"
    RERANKING = "reranking"
    GENERATION_INFERENCE = "generation_inference"
    RESULT_ASSEMBLY = "result_assembly"
    DONE = "done"


# ========== Lists for validation ==========

STATUS_ORDER = [
    TicketStatus.NEW, TicketStatus.PROCESSING,
    TicketStatus.RESOLVED, TicketStatus.CLOSED
]
STAGE_ORDER = [
    PipelineStage.EMBEDDING, PipelineStage.VECTOR_SEARCH,
    PipelineStage.RERANKING, PipelineStage.GENERATION_INFERENCE,
    PipelineStage.RESULT_ASSEMBLY, PipelineStage.DONE
]

MIN_PRIORITY = 1
MAX_PRIORITY = 5
MAX_TITLE_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 5000
MAX_TAGS = 10
MAX_TAG_LENGTH = 50
MAX_SOLUTION_LENGTH = 10000

