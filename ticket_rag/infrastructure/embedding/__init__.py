"""
Embedding Provider Infrastructure
==================================

Text -> vector providers (OpenAI-compatible APIs, Z.AI, offline hashing).

The pipeline depends on ``IEmbeddingProvider`` only; concrete backends are
chosen by the service factory from the ``embedding.provider`` setting.
"""

import asyncio
import hashlib
import math
import re
from abc import ABC, abstractmethod
from typing import List, Optional

import openai
from openai import AsyncOpenAI
from zai import ZaiClient

from ticket_rag.core import (
    ApplicationException, ConfigurationException, EmbeddingServiceException
)
from ticket_rag.infrastructure.common import ModelInfo, call_with_timeout
from ticket_rag.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


class IEmbeddingProvider(ABC):
    """
    Interface for embedding providers.

    Implementations must be safe for concurrent use by many tickets.
    """

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Embed a single text."""

    @abstractmethod
    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Embed texts in order, one vector per input; failure fails the whole batch."""

    @abstractmethod
    def dimension(self) -> int:
        """Vector length, known without a network call."""

    @abstractmethod
    def model_info(self) -> ModelInfo:
        """Describe the backing model."""

    @abstractmethod
    async def health_check(self) -> bool:
        """Return False (never raise) when the backend is unusable."""

    async def close(self) -> None:
        """Release network resources."""


class BaseEmbeddingProvider(IEmbeddingProvider):
    """
    Shared batching and vector validation.

    Subclasses implement ``_fetch`` for one upstream request.
    """

    service_name = "Embedding Service"

    def __init__(self, dimension: int, batch_size: int = 100, timeout: float = 30.0):
        self._dimension = dimension
        self._batch_size = batch_size
        self._timeout = timeout

    @abstractmethod
    async def _fetch(self, texts: List[str]) -> List[List[float]]:
        """Embed one chunk of at most ``batch_size`` texts."""

    def dimension(self) -> int:
        return self._dimension

    def _check_vector(self, vector: Optional[List[float]]) -> List[float]:
        if not vector:
            raise EmbeddingServiceException("upstream returned an empty vector")
        if len(vector) != self._dimension:
            raise EmbeddingServiceException(
                f"expected dimension {self._dimension}, got {len(vector)}",
                {"expected": self._dimension, "actual": len(vector)}
            )
        return [float(v) for v in vector]

    async def _fetch_checked(self, texts: List[str]) -> List[List[float]]:
        try:
            vectors = await call_with_timeout(self._fetch(texts), self._timeout, self.service_name)
        except ApplicationException:
            raise
        except Exception as e:
            raise EmbeddingServiceException(f"Embedding generation failed: {e}")

        if len(vectors) != len(texts):
            raise EmbeddingServiceException(
                f"expected {len(texts)} vectors, got {len(vectors)}"
            )
        return [self._check_vector(v) for v in vectors]

    async def embed(self, text: str) -> List[float]:
        """
        Embed a single text.

        Raises:
            NetworkException: On transport failure or timeout
            EmbeddingServiceException: On a malformed upstream response
        """
        vectors = await self._fetch_checked([text])
        return vectors[0]

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Embed texts in chunks of ``batch_size``, preserving input order.

        Raises:
            NetworkException: On transport failure or timeout
            EmbeddingServiceException: On a malformed upstream response
        """
        if not texts:
            return []

        vectors: List[List[float]] = []
        for start in range(0, len(texts), self._batch_size):
            chunk = texts[start:start + self._batch_size]
            vectors.extend(await self._fetch_checked(chunk))
        return vectors

    async def health_check(self) -> bool:
        try:
            await self.embed("health check")
            return True
        except Exception as e:
            logger.warning(
                "Embedding health check failed",
                extra={"provider": self.model_info().provider, "error": str(e)}
            )
            return False


class OpenAIEmbeddingProvider(BaseEmbeddingProvider):
    """
    Embeddings through an OpenAI-compatible API.

    Also serves Qwen (DashScope compatible mode) by pointing ``endpoint``
    at the compatible base URL.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        dimension: int,
        endpoint: Optional[str] = None,
        batch_size: int = 100,
        timeout: float = 30.0,
        provider_label: str = "OpenAI",
        client: Optional[AsyncOpenAI] = None,
    ):
        if not api_key and client is None:
            raise ConfigurationException(f"{provider_label} embedding API key not configured")
        super().__init__(dimension, batch_size, timeout)
        self._model = model
        self._provider_label = provider_label
        self._client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=endpoint or None,
            timeout=timeout,
        )

    async def _fetch(self, texts: List[str]) -> List[List[float]]:
        try:
            response = await self._client.embeddings.create(model=self._model, input=texts)
        except openai.APIConnectionError:
            raise
        except openai.APIError as e:
            raise EmbeddingServiceException(f"Embedding generation failed: {e}")

        data = sorted(response.data, key=lambda item: item.index)
        return [item.embedding for item in data]

    def model_info(self) -> ModelInfo:
        return ModelInfo(
            name=self._model,
            version="1",
            provider=self._provider_label,
            max_tokens=8192,
            cost_per_call=0.0001,
        )

    async def close(self) -> None:
        await self._client.close()


class ZAIEmbeddingProvider(BaseEmbeddingProvider):
    """
    Z.AI SDK embeddings.

    The SDK is synchronous, so requests run in a worker thread.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        dimension: int,
        batch_size: int = 64,
        timeout: float = 30.0,
        client: Optional[ZaiClient] = None,
    ):
        if not api_key and client is None:
            raise ConfigurationException("Z.AI API key not configured")
        super().__init__(dimension, batch_size, timeout)
        self._model = model
        self._client = client or ZaiClient(api_key=api_key)

    async def _fetch(self, texts: List[str]) -> List[List[float]]:
        response = await asyncio.to_thread(
            self._client.embeddings.create,
            model=self._model,
            input=texts,
        )
        data = sorted(response.data, key=lambda item: item.index)
        return [item.embedding for item in data]

    def model_info(self) -> ModelInfo:
        return ModelInfo(
            name=self._model,
            version="3",
            provider="Z.AI",
            max_tokens=8192,
            cost_per_call=0.0001,
        )


class HashEmbeddingProvider(BaseEmbeddingProvider):
    """
    Deterministic offline embeddings for development and tests.

    Each token is hashed into a signed bucket and the result is L2
    normalized, so texts sharing words land close together.
    """

    def __init__(self, dimension: int, batch_size: int = 100, timeout: float = 5.0):
        super().__init__(dimension, batch_size, timeout)

    def _vectorize(self, text: str) -> List[float]:
        vector = [0.0] * self._dimension
        tokens = _TOKEN_RE.findall(text.lower()) or [text]
        for token in tokens:
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            bucket = int.from_bytes(digest[:4], "big") % self._dimension
            sign = 1.0 if digest[4] % 2 == 0 else -1.0
            vector[bucket] += sign

        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0.0:
            # every token cancelled out; fall back to a single hashed axis
            vector[int(hashlib.sha256(text.encode("utf-8")).hexdigest()[:8], 16) % self._dimension] = 1.0
            return vector
        return [v / norm for v in vector]

    async def _fetch(self, texts: List[str]) -> List[List[float]]:
        return [self._vectorize(text) for text in texts]

    def model_info(self) -> ModelInfo:
        return ModelInfo(
            name="hash-embedding",
            version="1",
            provider="Local",
            max_tokens=8192,
            cost_per_call=None,
        )

    async def health_check(self) -> bool:
        return True
