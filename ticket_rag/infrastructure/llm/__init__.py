"""
LLM Client Infrastructure
==========================

Generation providers (OpenAI-compatible APIs, Z.AI, mock) that turn a
ticket and its reranked similar cases into a suggested solution.

This module abstracts the LLM client implementation following the
Dependency Inversion Principle - the pipeline depends on abstractions,
not concrete implementations.
"""

import asyncio
import json
import math
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

import openai
from openai import AsyncOpenAI
from zai import ZaiClient

from ticket_rag.core import ApplicationException, ConfigurationException, LLMException
from ticket_rag.infrastructure.common import ModelInfo, call_with_timeout
from ticket_rag.infrastructure.rerank import RerankResult
from ticket_rag.processing.domain import Ticket
from ticket_rag.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


def clamp_confidence(value: Any) -> float:
    """Coerce a model-reported confidence into [0, 1]; unusable values become 0.0."""
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(confidence):
        return 0.0
    return min(1.0, max(0.0, confidence))


@dataclass
class TokenUsage:
    """Token accounting reported by the backend."""
    prompt_tokens: int
    completion_tokens: int

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass
class LLMResponse:
    """
    Result of a generation call.

    ``confidence`` is clamped to [0, 1] on construction.
    """
    content: str
    confidence: float
    reasoning: str
    token_usage: Optional[TokenUsage] = None

    def __post_init__(self):
        self.confidence = clamp_confidence(self.confidence)


def parse_llm_output(content: str) -> Tuple[str, float, str]:
    """
    Extract ``(solution, confidence, reasoning)`` from model output.

    Accepts fenced or bare JSON objects. Output without a JSON object is
    returned as the solution text with zero confidence.
    """
    text = content.strip()
    if "```json" in text:
        text = text.split("```json")[1].split("```")[0].strip()
    elif "```" in text:
        text = text.split("```")[1].split("```")[0].strip()

    match = _JSON_OBJECT_RE.search(text)
    if match:
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict):
            solution = data.get("solution") or data.get("content") or ""
            return (
                str(solution).strip(),
                clamp_confidence(data.get("confidence")),
                str(data.get("reasoning", "")).strip(),
            )

    return content.strip(), 0.0, "Model returned unstructured output"


class SolutionPromptBuilder:
    """
    Builds prompts for solution generation.

    All prompt logic in one place.
    """

    MAX_CASE_CHARS = 1000

    SYSTEM_PROMPT = """You are a senior support engineer.

You receive a new support ticket and a list of similar historical tickets,
ordered from most to least relevant. Suggest how to resolve the new ticket.

Guidelines:
1. Base the suggestion on the similar cases when they apply
2. Reference cases by their number, e.g. [1]
3. If the cases do not help, say so and suggest next diagnostic steps
4. Be concise and actionable

Respond ONLY in JSON format:
{
    "solution": "step-by-step resolution",
    "confidence": 0.85,
    "reasoning": "why this solution fits the ticket"
}

confidence is a number between 0 and 1."""

    @classmethod
    def get_system_prompt(cls) -> str:
        """Get the system prompt for solution generation."""
        return cls.SYSTEM_PROMPT

    @classmethod
    def build_prompt(cls, ticket: Ticket, similar_cases: List[RerankResult]) -> str:
        """Build the user prompt from the ticket and its reranked context."""
        if similar_cases:
            cases = "\n\n".join(
                f"[{i}] (relevance {case.score:.2f})\n{case.document[:cls.MAX_CASE_CHARS]}"
                for i, case in enumerate(similar_cases, 1)
            )
        else:
            cases = "No similar historical tickets were found."

        tags = ", ".join(ticket.tags) if ticket.tags else "none"
        return f"""New ticket
Title: {ticket.title}
Category: {ticket.category}
Priority: {ticket.priority}
Tags: {tags}

Description:
{ticket.description}

Similar historical tickets:
{cases}

Suggest a resolution (respond with JSON only):"""


class ILLMProvider(ABC):
    """
    Interface for generation providers.

    Implementations must be safe for concurrent use by many tickets.
    """

    @abstractmethod
    async def generate_solution(
        self,
        ticket: Ticket,
        similar_cases: List[RerankResult]
    ) -> LLMResponse:
        """Suggest a resolution for the ticket."""

    @abstractmethod
    async def generate_solutions_batch(
        self,
        requests: List[Tuple[Ticket, List[RerankResult]]]
    ) -> List[LLMResponse]:
        """One response per request, in request order."""

    @abstractmethod
    async def chat(self, prompt: str) -> LLMResponse:
        """Free-form prompt."""

    @abstractmethod
    def model_info(self) -> ModelInfo:
        """Describe the backing model."""

    @abstractmethod
    async def health_check(self) -> bool:
        """Return False (never raise) when the backend is unusable."""

    async def close(self) -> None:
        """Release network resources."""


class BaseLLMProvider(ILLMProvider):
    """
    Prompting, parsing, batching and error mapping shared by the backends.

    Subclasses implement ``_complete`` for one chat completion.
    """

    service_name = "LLM Service"

    def __init__(
        self,
        model: str,
        max_tokens: int = 1000,
        temperature: float = 0.3,
        timeout: float = 60.0,
    ):
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._timeout = timeout

    @abstractmethod
    async def _complete(self, messages: List[dict]) -> Tuple[str, Optional[TokenUsage]]:
        """Run one chat completion, returning text and token usage."""

    async def _run(self, messages: List[dict]) -> Tuple[str, Optional[TokenUsage]]:
        start_time = time.perf_counter()
        try:
            content, usage = await call_with_timeout(
                self._complete(messages), self._timeout, self.service_name
            )
        except ApplicationException:
            raise
        except Exception as e:
            raise LLMException(f"Chat completion failed: {e}")

        if not content or not content.strip():
            raise LLMException("Chat completion returned no content")

        logger.debug(
            "LLM completion finished",
            extra={
                "model": self._model,
                "latency_ms": int((time.perf_counter() - start_time) * 1000),
                "total_tokens": usage.total_tokens if usage else None,
            }
        )
        return content, usage

    async def generate_solution(
        self,
        ticket: Ticket,
        similar_cases: List[RerankResult]
    ) -> LLMResponse:
        """
        Generate a suggested resolution.

        Args:
            ticket: Ticket being processed
            similar_cases: Reranked context, most relevant first

        Returns:
            LLMResponse with clamped confidence

        Raises:
            NetworkException: On transport failure or timeout
            LLMException: If completion fails or returns nothing
        """
        messages = [
            {"role": "system", "content": SolutionPromptBuilder.get_system_prompt()},
            {"role": "user", "content": SolutionPromptBuilder.build_prompt(ticket, similar_cases)},
        ]
        content, usage = await self._run(messages)
        solution, confidence, reasoning = parse_llm_output(content)
        if not solution:
            raise LLMException("Model response contained no solution")
        return LLMResponse(
            content=solution,
            confidence=confidence,
            reasoning=reasoning,
            token_usage=usage,
        )

    async def generate_solutions_batch(
        self,
        requests: List[Tuple[Ticket, List[RerankResult]]]
    ) -> List[LLMResponse]:
        return list(await asyncio.gather(
            *(self.generate_solution(ticket, cases) for ticket, cases in requests)
        ))

    async def chat(self, prompt: str) -> LLMResponse:
        content, usage = await self._run([{"role": "user", "content": prompt}])
        solution, confidence, reasoning = parse_llm_output(content)
        return LLMResponse(
            content=solution or content.strip(),
            confidence=confidence,
            reasoning=reasoning,
            token_usage=usage,
        )

    async def health_check(self) -> bool:
        try:
            await self.chat("Reply with the single word: ok")
            return True
        except Exception as e:
            logger.warning(
                "LLM health check failed",
                extra={"provider": self.model_info().provider, "error": str(e)}
            )
            return False


class OpenAILLMProvider(BaseLLMProvider):
    """
    OpenAI-compatible chat completions.

    Serves OpenAI and Qwen (DashScope compatible mode) depending on
    ``endpoint``.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        endpoint: Optional[str] = None,
        max_tokens: int = 1000,
        temperature: float = 0.3,
        timeout: float = 60.0,
        provider_label: str = "OpenAI",
        client: Optional[AsyncOpenAI] = None,
    ):
        if not api_key and client is None:
            raise ConfigurationException(f"{provider_label} API key not configured")
        super().__init__(model, max_tokens, temperature, timeout)
        self._provider_label = provider_label
        self._client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=endpoint or None,
            timeout=timeout,
        )

    async def _complete(self, messages: List[dict]) -> Tuple[str, Optional[TokenUsage]]:
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=messages,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            )
        except openai.APIConnectionError:
            raise
        except openai.APIError as e:
            raise LLMException(f"Chat completion failed: {e}")

        content = response.choices[0].message.content or ""
        usage = None
        if response.usage is not None:
            usage = TokenUsage(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
            )
        return content, usage

    def model_info(self) -> ModelInfo:
        return ModelInfo(
            name=self._model,
            version="1",
            provider=self._provider_label,
            max_tokens=self._max_tokens,
            cost_per_call=0.001,
        )

    async def close(self) -> None:
        await self._client.close()


class ZAILLMProvider(BaseLLMProvider):
    """
    Z.AI SDK client implementation for GLM models.

    The SDK is synchronous, so requests run in a worker thread.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "glm-4.7",
        max_tokens: int = 1000,
        temperature: float = 0.3,
        timeout: float = 60.0,
        client: Optional[ZaiClient] = None,
    ):
        if not api_key and client is None:
            raise ConfigurationException("Z.AI API key not configured")
        super().__init__(model, max_tokens, temperature, timeout)
        self._client = client or ZaiClient(api_key=api_key)

    async def _complete(self, messages: List[dict]) -> Tuple[str, Optional[TokenUsage]]:
        response = await asyncio.to_thread(
            self._client.chat.completions.create,
            model=self._model,
            messages=messages,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )
        content = response.choices[0].message.content or ""

        usage = None
        raw_usage = getattr(response, "usage", None)
        if raw_usage is not None:
            usage = TokenUsage(
                prompt_tokens=getattr(raw_usage, "prompt_tokens", 0) or 0,
                completion_tokens=getattr(raw_usage, "completion_tokens", 0) or 0,
            )
        return content, usage

    def model_info(self) -> ModelInfo:
        return ModelInfo(
            name=self._model,
            version="4.7",
            provider="Z.AI",
            max_tokens=self._max_tokens,
            cost_per_call=0.001,
        )


class MockLLMProvider(BaseLLMProvider):
    """
    Mock LLM provider for development and tests.

    Returns predictable responses without calling external APIs: the
    suggestion points at the most relevant case and the confidence is that
    case's rerank score.
    """

    def __init__(self, model: str = "mock-model", max_tokens: int = 1000):
        super().__init__(model, max_tokens, temperature=0.0, timeout=5.0)

    async def _complete(self, messages: List[dict]) -> Tuple[str, Optional[TokenUsage]]:
        user_content = str(messages[-1].get("content", "")) if messages else ""
        content = json.dumps({
            "solution": "Mock: follow the resolution of the most similar ticket.",
            "confidence": 0.5,
            "reasoning": "Mock response",
        })
        return content, TokenUsage(prompt_tokens=len(user_content.split()), completion_tokens=12)

    async def generate_solution(
        self,
        ticket: Ticket,
        similar_cases: List[RerankResult]
    ) -> LLMResponse:
        if not similar_cases:
            return LLMResponse(
                content="No similar tickets found; escalate for manual triage.",
                confidence=0.0,
                reasoning="Mock: no historical context available",
                token_usage=TokenUsage(prompt_tokens=0, completion_tokens=0),
            )

        top = similar_cases[0]
        return LLMResponse(
            content=f"Mock: apply the fix from the most similar ticket [1]: {top.document[:200]}",
            confidence=top.score,
            reasoning=f"Mock: based on {len(similar_cases)} similar tickets",
            token_usage=TokenUsage(prompt_tokens=len(ticket.embedding_text.split()), completion_tokens=20),
        )

    def model_info(self) -> ModelInfo:
        return ModelInfo(
            name=self._model,
            version="0",
            provider="Mock",
            max_tokens=self._max_tokens,
            cost_per_call=None,
        )

    async def health_check(self) -> bool:
        return True
