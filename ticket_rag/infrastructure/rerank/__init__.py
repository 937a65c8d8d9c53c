"""
Rerank Provider Infrastructure
===============================

Rerankers reorder a candidate list by query relevance.

Results keep the ``index`` of the document they score so callers can map
them back to the candidates they were built from, even when the backend
reorders or drops entries.
"""

import asyncio
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import httpx

from ticket_rag.core import (
    ApplicationException, ConfigurationException, RerankServiceException,
    ValidationException
)
from ticket_rag.infrastructure.common import ModelInfo, call_with_timeout
from ticket_rag.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


@dataclass
class RerankResult:
    """Relevance of one input document; ``index`` points into the submitted list."""
    index: int
    score: float
    document: str


class IRerankProvider(ABC):
    """
    Interface for rerank providers.

    Implementations must be safe for concurrent use by many tickets.
    """

    @abstractmethod
    async def rerank(self, query: str, documents: List[str]) -> List[RerankResult]:
        """Score documents against the query, strictly descending by score."""

    @abstractmethod
    async def rerank_batch(
        self,
        queries: List[str],
        documents: List[List[str]]
    ) -> List[List[RerankResult]]:
        """One result list per query, in query order."""

    @abstractmethod
    def max_documents(self) -> int:
        """Largest document list accepted by one ``rerank`` call."""

    @abstractmethod
    def model_info(self) -> ModelInfo:
        """Describe the backing model."""

    @abstractmethod
    async def health_check(self) -> bool:
        """Return False (never raise) when the backend is unusable."""

    async def close(self) -> None:
        """Release network resources."""


class BaseRerankProvider(IRerankProvider):
    """
    Input checks, index validation and ordering shared by the backends.

    Subclasses implement ``_score`` returning ``(index, score)`` pairs for a
    subset of the documents in any order.
    """

    service_name = "Rerank Service"

    def __init__(self, max_documents: int = 100, timeout: float = 30.0):
        self._max_documents = max_documents
        self._timeout = timeout

    @abstractmethod
    async def _score(self, query: str, documents: List[str]) -> List[Tuple[int, float]]:
        """Score documents; may return fewer entries than it was given."""

    def max_documents(self) -> int:
        return self._max_documents

    def _build_results(
        self,
        scored: List[Tuple[int, float]],
        documents: List[str]
    ) -> List[RerankResult]:
        seen = set()
        results = []
        for index, score in scored:
            if not 0 <= index < len(documents):
                raise RerankServiceException(
                    f"result index {index} out of range for {len(documents)} documents"
                )
            if index in seen:
                raise RerankServiceException(f"duplicate result index {index}")
            seen.add(index)
            results.append(RerankResult(index=index, score=float(score), document=documents[index]))

        results.sort(key=lambda r: (-r.score, r.index))
        return results

    async def rerank(self, query: str, documents: List[str]) -> List[RerankResult]:
        """
        Rerank documents against a query.

        Args:
            query: Query text
            documents: Candidate documents, at most ``max_documents()``

        Returns:
            Results ordered by descending score; empty for no documents

        Raises:
            ValidationException: If more than ``max_documents()`` are given
            NetworkException: On transport failure or timeout
            RerankServiceException: On a malformed upstream response
        """
        if not documents:
            return []
        if len(documents) > self._max_documents:
            raise ValidationException(
                "documents",
                f"{len(documents)} documents exceed the limit of {self._max_documents}"
            )

        try:
            scored = await call_with_timeout(
                self._score(query, documents), self._timeout, self.service_name
            )
        except ApplicationException:
            raise
        except Exception as e:
            raise RerankServiceException(f"Rerank failed: {e}")

        return self._build_results(scored, documents)

    async def rerank_batch(
        self,
        queries: List[str],
        documents: List[List[str]]
    ) -> List[List[RerankResult]]:
        if len(queries) != len(documents):
            raise ValidationException(
                "documents",
                f"{len(queries)} queries but {len(documents)} document lists"
            )
        return list(await asyncio.gather(
            *(self.rerank(q, docs) for q, docs in zip(queries, documents))
        ))

    async def health_check(self) -> bool:
        try:
            await self.rerank("health check", ["health check"])
            return True
        except Exception as e:
            logger.warning(
                "Rerank health check failed",
                extra={"provider": self.model_info().provider, "error": str(e)}
            )
            return False


class HttpRerankProvider(BaseRerankProvider):
    """
    Rerank over HTTP.

    ``api_style`` selects the wire shape:
    - ``dashscope``: Qwen text-rerank (``input``/``parameters`` envelope,
      results under ``output.results``)
    - ``cohere``: Cohere / Jina style ``/rerank`` (flat body, top-level
      ``results``)
    """

    API_STYLES = ("dashscope", "cohere")

    def __init__(
        self,
        api_key: str,
        model: str,
        endpoint: str,
        api_style: str = "dashscope",
        max_documents: int = 100,
        timeout: float = 30.0,
        provider_label: str = "Qwen",
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not api_key:
            raise ConfigurationException(f"{provider_label} rerank API key not configured")
        if api_style not in self.API_STYLES:
            raise ConfigurationException(f"Unknown rerank API style: {api_style}")
        super().__init__(max_documents, timeout)
        self._model = model
        self._endpoint = endpoint
        self._api_style = api_style
        self._provider_label = provider_label
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    def _payload(self, query: str, documents: List[str]) -> Dict[str, Any]:
        if self._api_style == "dashscope":
            return {
                "model": self._model,
                "input": {"query": query, "documents": documents},
                "parameters": {"return_documents": False, "top_n": len(documents)},
            }
        return {
            "model": self._model,
            "query": query,
            "documents": documents,
            "top_n": len(documents),
        }

    def _parse(self, body: Dict[str, Any]) -> List[Tuple[int, float]]:
        if self._api_style == "dashscope":
            results = (body.get("output") or {}).get("results")
        else:
            results = body.get("results")
        if not isinstance(results, list):
            raise RerankServiceException("response has no results list")

        try:
            return [(int(item["index"]), float(item["relevance_score"])) for item in results]
        except (KeyError, TypeError, ValueError) as e:
            raise RerankServiceException(f"malformed result entry: {e}")

    async def _score(self, query: str, documents: List[str]) -> List[Tuple[int, float]]:
        response = await self._client.post(
            self._endpoint,
            json=self._payload(query, documents),
            headers=self._headers,
        )
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RerankServiceException(
                f"HTTP {e.response.status_code}: {e.response.text[:200]}"
            )
        try:
            body = response.json()
        except ValueError as e:
            raise RerankServiceException(f"invalid JSON response: {e}")
        return self._parse(body)

    def model_info(self) -> ModelInfo:
        return ModelInfo(
            name=self._model,
            version="1.0",
            provider=self._provider_label,
            max_tokens=512,
            cost_per_call=0.0002,
        )

    async def close(self) -> None:
        await self._client.aclose()


class LexicalRerankProvider(BaseRerankProvider):
    """
    Offline reranker scoring token-set Jaccard similarity.

    A document identical to the query scores 1.0.
    """

    @staticmethod
    def _tokens(text: str) -> set:
        return set(_TOKEN_RE.findall(text.lower()))

    async def _score(self, query: str, documents: List[str]) -> List[Tuple[int, float]]:
        query_tokens = self._tokens(query)
        scored = []
        for index, document in enumerate(documents):
            doc_tokens = self._tokens(document)
            union = query_tokens | doc_tokens
            score = len(query_tokens & doc_tokens) / len(union) if union else 0.0
            scored.append((index, score))
        return scored

    def model_info(self) -> ModelInfo:
        return ModelInfo(
            name="lexical-jaccard",
            version="1.0",
            provider="Local",
            max_tokens=512,
            cost_per_call=None,
        )

    async def health_check(self) -> bool:
        return True
