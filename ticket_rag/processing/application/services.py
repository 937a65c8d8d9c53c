"""
Processing Application Services
================================

The ticket processing pipeline.

Orchestrates the embedding, vector store, rerank and LLM providers to turn
a ticket into a suggested solution backed by similar historical tickets.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ticket_rag.config import PipelineStage
from ticket_rag.core import ApplicationException, InternalException
from ticket_rag.infrastructure.embedding import IEmbeddingProvider
from ticket_rag.infrastructure.llm import ILLMProvider
from ticket_rag.infrastructure.rerank import IRerankProvider, RerankResult
from ticket_rag.infrastructure.vectorstore import IVectorStore, SearchResult
from ticket_rag.processing.domain import (
    NewTicket, ProcessResult, SimilarTicket, Ticket, TicketValidator
)
from ticket_rag.shared.infrastructure.logging import get_logger, log_latency
from ticket_rag.shared.infrastructure.metrics import MetricsCollector

logger = get_logger(__name__)

DEFAULT_SEARCH_LIMIT = 100
DEFAULT_TOP_N = 10


@dataclass
class TicketOutcome:
    """Result of one ticket in a batch: either ``result`` or ``error`` is set."""
    ticket_id: uuid.UUID
    result: Optional[ProcessResult] = None
    error: Optional[ApplicationException] = None
    failed_stage: Optional[PipelineStage] = None

    @property
    def succeeded(self) -> bool:
        return self.result is not None


class StageFailure(Exception):
    """Carries the stage a ticket failed in alongside the original error."""

    def __init__(self, stage: PipelineStage, error: ApplicationException):
        self.stage = stage
        self.error = error
        super().__init__(str(error))


def pair_candidates(
    candidates: List[SearchResult],
    reranked: List[RerankResult],
    top_n: int
) -> List[SimilarTicket]:
    """
    Join rerank results back to the candidates they score.

    Pairs follow the rerank order and use each result's ``index`` to find
    its candidate, so a reranker that drops or reorders entries keeps the
    correspondence. Out-of-range or repeated indices are skipped. The list
    is cut to ``top_n``.
    """
    similar: List[SimilarTicket] = []
    used = set()
    for rerank_result in reranked:
        if len(similar) >= top_n:
            break
        index = rerank_result.index
        if not 0 <= index < len(candidates) or index in used:
            logger.warning(
                "Skipping rerank result with unusable index",
                extra={"index": index, "candidates": len(candidates)}
            )
            continue
        used.add(index)
        candidate = candidates[index]
        similar.append(SimilarTicket(
            ticket_id=candidate.id,
            title=candidate.metadata.title,
            description=candidate.metadata.description,
            similarity_score=candidate.score,
            rerank_score=rerank_result.score,
            solution=None,
        ))
    return similar


class TicketProcessor:
    """
    Ticket processing pipeline.

    Stages run strictly in order: embedding, vector search, reranking,
    generation, result assembly. A failing stage aborts the ticket and its
    error propagates unchanged. The processor holds no state of its own
    beyond shared references to the providers and the metrics collector.
    """

    def __init__(
        self,
        embedding_service: IEmbeddingProvider,
        rerank_service: IRerankProvider,
        vector_db: IVectorStore,
        llm_service: ILLMProvider,
        metrics: Optional[MetricsCollector] = None,
        search_limit: int = DEFAULT_SEARCH_LIMIT,
        top_n: int = DEFAULT_TOP_N,
        batch_concurrency: int = 1,
    ):
        self._embedding = embedding_service
        self._rerank = rerank_service
        self._vector_db = vector_db
        self._llm = llm_service
        self._metrics = metrics or MetricsCollector()
        self._search_limit = search_limit
        self._top_n = top_n
        self._batch_concurrency = max(1, batch_concurrency)

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    def create_ticket(self, new_ticket: NewTicket) -> Ticket:
        """
        Validate a request and build the ticket.

        Raises:
            ValidationException: If a field breaks a business rule
        """
        TicketValidator.validate_new_ticket(new_ticket)
        ticket = Ticket.from_new(new_ticket)
        logger.info("Ticket created", extra={"ticket_id": str(ticket.id)})
        return ticket

    async def process(self, ticket: Ticket) -> ProcessResult:
        """
        Process a ticket into a suggested solution.

        Args:
            ticket: Ticket to process

        Returns:
            ProcessResult with at most ``top_n`` similar tickets

        Raises:
            ApplicationException: The failing provider's error, unchanged
        """
        try:
            result = await self._run(ticket)
        except StageFailure as failure:
            self._metrics.record_error()
            raise failure.error from None
        self._metrics.record_request(result.processing_time_ms)
        return result

    async def _run(self, ticket: Ticket) -> ProcessResult:
        ticket_id = str(ticket.id)
        start_time = time.perf_counter()
        stage = PipelineStage.EMBEDDING

        try:
            # 1-2. Embed title + description
            query_text = ticket.embedding_text
            with log_latency(logger, "embedding", ticket_id=ticket_id, stage=stage.value):
                self._metrics.record_embedding_call()
                embedding = await self._embedding.embed(query_text)

            # 3. Over-fetch candidates for the reranker
            stage = PipelineStage.VECTOR_SEARCH
            with log_latency(logger, "vector_search", ticket_id=ticket_id, stage=stage.value):
                self._metrics.record_vector_search()
                candidates = await self._vector_db.search(embedding, self._search_limit, None)

            # 4. Rerank candidate documents against the ticket text
            stage = PipelineStage.RERANKING
            candidates = candidates[:self._rerank.max_documents()]
            documents = [c.metadata.document_text for c in candidates]
            with log_latency(logger, "reranking", ticket_id=ticket_id, stage=stage.value):
                self._metrics.record_rerank_call()
                reranked = await self._rerank.rerank(query_text, documents)

            # 5. Generate from the reranked context
            stage = PipelineStage.GENERATION_INFERENCE
            with log_latency(logger, "generation", ticket_id=ticket_id, stage=stage.value):
                self._metrics.record_llm_call()
                response = await self._llm.generate_solution(ticket, reranked)

            processing_time_ms = int((time.perf_counter() - start_time) * 1000)

            # 6. Assemble
            stage = PipelineStage.RESULT_ASSEMBLY
            result = ProcessResult(
                ticket_id=ticket.id,
                similar_tickets=pair_candidates(candidates, reranked, self._top_n),
                suggested_solution=response.content,
                confidence=response.confidence,
                reasoning=response.reasoning,
                processing_time_ms=processing_time_ms,
            )

        except ApplicationException as e:
            raise StageFailure(stage, e)
        except Exception as e:
            logger.exception("Unexpected pipeline failure", extra={"ticket_id": ticket_id, "stage": stage.value})
            raise StageFailure(stage, InternalException(f"{stage.value} failed: {e}"))

        logger.info(
            "Ticket processed",
            extra={
                "ticket_id": ticket_id,
                "stage": PipelineStage.DONE.value,
                "candidates": len(candidates),
                "similar_tickets": len(result.similar_tickets),
                "confidence": result.confidence,
                "processing_time_ms": result.processing_time_ms,
            }
        )
        return result

    async def _outcome(self, ticket: Ticket, semaphore: asyncio.Semaphore) -> TicketOutcome:
        async with semaphore:
            try:
                result = await self._run(ticket)
            except StageFailure as failure:
                self._metrics.record_error()
                return TicketOutcome(
                    ticket_id=ticket.id,
                    error=failure.error,
                    failed_stage=failure.stage,
                )
        self._metrics.record_request(result.processing_time_ms)
        return TicketOutcome(ticket_id=ticket.id, result=result)

    async def process_batch_outcomes(self, tickets: Sequence[Ticket]) -> List[TicketOutcome]:
        """
        Process tickets independently, one outcome per ticket in input order.

        At most ``batch_concurrency`` tickets are in flight; a failure never
        affects the other tickets.
        """
        semaphore = asyncio.Semaphore(self._batch_concurrency)
        return list(await asyncio.gather(*(self._outcome(t, semaphore) for t in tickets)))

    async def process_batch(self, tickets: Sequence[Ticket]) -> List[ProcessResult]:
        """
        Best-effort batch processing.

        Failed tickets are logged and left out of the returned list; compare
        ticket ids of input and output for full accounting.
        """
        outcomes = await self.process_batch_outcomes(tickets)

        failures = [o for o in outcomes if not o.succeeded]
        for outcome in failures:
            logger.error(
                "Ticket processing failed",
                extra={
                    "ticket_id": str(outcome.ticket_id),
                    "stage": outcome.failed_stage.value if outcome.failed_stage else None,
                    "error_kind": outcome.error.kind if outcome.error else None,
                    "error": str(outcome.error),
                }
            )

        results = [o.result for o in outcomes if o.succeeded]
        logger.info(
            "Batch processed",
            extra={"total": len(outcomes), "succeeded": len(results), "failed": len(failures)}
        )
        return results
