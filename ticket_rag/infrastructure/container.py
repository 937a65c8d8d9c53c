"""
Service Container
=================

Composition root holding one instance of each provider and the ticket
processor built from those same instances.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

from ticket_rag.config import PipelineConfig
from ticket_rag.infrastructure.common import ModelInfo
from ticket_rag.infrastructure.embedding import IEmbeddingProvider
from ticket_rag.infrastructure.llm import ILLMProvider
from ticket_rag.infrastructure.rerank import IRerankProvider
from ticket_rag.infrastructure.vectorstore import DatabaseInfo, IVectorStore
from ticket_rag.processing.application import TicketProcessor
from ticket_rag.processing.domain import ProcessResult, Ticket
from ticket_rag.shared.infrastructure.logging import get_logger
from ticket_rag.shared.infrastructure.metrics import MetricsCollector, SystemMetrics

logger = get_logger(__name__)


@dataclass
class HealthStatus:
    """Aggregate health of the four providers."""
    overall: bool
    embedding_service: bool
    rerank_service: bool
    vector_database: bool
    llm_service: bool
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "overall": self.overall,
            "embedding_service": self.embedding_service,
            "rerank_service": self.rerank_service,
            "vector_database": self.vector_database,
            "llm_service": self.llm_service,
            "timestamp": self.timestamp.isoformat(),
        }


class ServiceContainer:
    """
    Holds the providers and the processor wired from them.

    Effectively immutable after construction; safe to share across
    concurrent requests.
    """

    def __init__(
        self,
        embedding_service: IEmbeddingProvider,
        rerank_service: IRerankProvider,
        vector_db: IVectorStore,
        llm_service: ILLMProvider,
        metrics: Optional[MetricsCollector] = None,
        pipeline: Optional[PipelineConfig] = None,
    ):
        pipeline = pipeline or PipelineConfig()
        self.embedding_service = embedding_service
        self.rerank_service = rerank_service
        self.vector_db = vector_db
        self.llm_service = llm_service
        self.metrics = metrics or MetricsCollector()

        self.ticket_processor = TicketProcessor(
            embedding_service=embedding_service,
            rerank_service=rerank_service,
            vector_db=vector_db,
            llm_service=llm_service,
            metrics=self.metrics,
            search_limit=pipeline.search_limit,
            top_n=pipeline.top_n,
            batch_concurrency=pipeline.batch_concurrency,
        )

    async def process_ticket(self, ticket: Ticket) -> ProcessResult:
        """Entry point for the transport layer: process one ticket."""
        return await self.ticket_processor.process(ticket)

    async def health_check(self) -> HealthStatus:
        """
        Check every provider.

        All four checks run to completion even when some fail; a check that
        raises counts as unhealthy.
        """
        checks = await asyncio.gather(
            self.embedding_service.health_check(),
            self.rerank_service.health_check(),
            self.vector_db.health_check(),
            self.llm_service.health_check(),
            return_exceptions=True,
        )
        names = ("embedding_service", "rerank_service", "vector_database", "llm_service")

        flags = {}
        for name, outcome in zip(names, checks):
            if isinstance(outcome, BaseException):
                logger.warning("Health check raised", extra={"provider": name, "error": str(outcome)})
                flags[name] = False
            else:
                flags[name] = outcome is True

        status = HealthStatus(overall=all(flags.values()), **flags)
        if not status.overall:
            logger.warning("Service unhealthy", extra=status.to_dict())
        return status

    def model_info(self) -> Dict[str, ModelInfo]:
        """Model descriptors of the model-backed providers."""
        return {
            "embedding": self.embedding_service.model_info(),
            "rerank": self.rerank_service.model_info(),
            "llm": self.llm_service.model_info(),
        }

    def database_info(self) -> DatabaseInfo:
        return self.vector_db.database_info()

    def get_stats(self) -> SystemMetrics:
        return self.metrics.get_metrics()

    async def close(self) -> None:
        """Release provider clients; errors are logged, not raised."""
        results = await asyncio.gather(
            self.embedding_service.close(),
            self.rerank_service.close(),
            self.vector_db.close(),
            self.llm_service.close(),
            return_exceptions=True,
        )
        for outcome in results:
            if isinstance(outcome, Exception):
                logger.warning("Provider close failed", extra={"error": str(outcome)})
