"""
Provider Common Types
=====================

Types and helpers shared by every provider family: the uniform model
descriptor and the per-call timeout wrapper.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Optional, TypeVar

import httpx
import openai

from ticket_rag.core import NetworkException

T = TypeVar("T")

TRANSPORT_ERRORS = (
    httpx.TransportError,
    openai.APIConnectionError,
    ConnectionError,
)


@dataclass(frozen=True)
class ModelInfo:
    """Observability descriptor exposed by every provider."""
    name: str
    version: str
    provider: str
    max_tokens: int
    cost_per_call: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "provider": self.provider,
            "max_tokens": self.max_tokens,
            "cost_per_call": self.cost_per_call,
        }


async def call_with_timeout(call: Awaitable[T], timeout: float, service: str) -> T:
    """
    Await a provider call under its own timeout.

    Timeouts and transport failures surface as ``NetworkException``; every
    other exception propagates unchanged so providers can map it to their
    own error kind.

    Args:
        call: Awaitable performing the network round trip
        timeout: Seconds before the call is abandoned
        service: Service name used in the error message

    Raises:
        NetworkException: On timeout or transport failure
    """
    try:
        return await asyncio.wait_for(call, timeout=timeout)
    except asyncio.TimeoutError:
        raise NetworkException(f"call timed out after {timeout}s", service_name=service)
    except TRANSPORT_ERRORS as e:
        raise NetworkException(f"transport failure: {e}", service_name=service)
