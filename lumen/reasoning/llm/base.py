"""
Base LLM Adapter

Defines the abstract interface for the LLM providers used by query
rewriting and reranking. Implementations only translate one completion
request; retries and timeouts live here.

Design decisions:
- Async-first: All methods are async for non-blocking I/O
- Provider-agnostic: Common interface hides provider differences
- Retry logic: Built into base class with configurable backoff
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Protocol, runtime_checkable

from lumen.config.settings import LLMSettings
from lumen.core.exceptions import (
    LLMConnectionError,
    LLMRateLimitError,
    LLMTimeoutError,
)
from lumen.core.types import LLMResponse, Message


@runtime_checkable
class LLMAdapterProtocol(Protocol):
    """
    Interface for LLM providers.

    Implemented by: OpenAIAdapter, AnthropicAdapter, StubLLMAdapter
    Used by: LLMQueryRewriter, LLMReranker, BatchLLMReranker
    """

    async def complete(
        self,
        messages: list[Message],
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """Generate a completion."""
        ...

    async def close(self) -> None:
        """Release client resources."""
        ...


class BaseLLMAdapter(ABC):
    """
    Abstract base class for LLM providers.

    All LLM interactions go through this interface, enabling:
    - Provider switching without code changes
    - Consistent error handling
    - Built-in retry logic
    """

    def __init__(self, settings: LLMSettings):
        self.settings = settings
        self._retry_count = settings.max_retries
        self._retry_delay = settings.retry_delay
        self._timeout = settings.request_timeout

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider identifier."""
        pass

    @abstractmethod
    async def _do_complete(
        self,
        messages: list[Message],
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """
        Provider-specific implementation of completion.

        Called by complete(); implementations should NOT handle retries.
        """
        pass

    async def complete(
        self,
        messages: list[Message],
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """
        Send a completion request to the LLM.

        Retries with exponential backoff on rate limits, timeouts and
        connection errors. Cancellation propagates immediately.

        Raises:
            LLMConnectionError: Cannot reach provider
            LLMRateLimitError: Rate limit exceeded (after retries)
            LLMTimeoutError: Request timed out (after retries)
        """
        last_error: Exception | None = None

        for attempt in range(self._retry_count + 1):
            try:
                return await asyncio.wait_for(
                    self._do_complete(
                        messages,
                        model=model,
                        temperature=temperature,
                        max_tokens=max_tokens,
                        **kwargs,
                    ),
                    timeout=self._timeout,
                )
            except asyncio.TimeoutError:
                last_error = LLMTimeoutError(
                    f"Request timed out after {self._timeout}s",
                    context={"attempt": attempt + 1},
                )
                if attempt < self._retry_count:
                    await asyncio.sleep(self._retry_delay * (2**attempt))
            except LLMRateLimitError as e:
                last_error = e
                delay = e.retry_after or (self._retry_delay * (2**attempt))
                if attempt < self._retry_count:
                    await asyncio.sleep(delay)
            except LLMConnectionError as e:
                last_error = e
                if attempt < self._retry_count:
                    await asyncio.sleep(self._retry_delay * (2**attempt))

        if last_error:
            raise last_error
        raise LLMConnectionError("Request failed after all retries")

    @abstractmethod
    async def close(self) -> None:
        """Clean up resources (connection pools, etc)."""
        pass

    async def __aenter__(self) -> "BaseLLMAdapter":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def convert_messages_to_dicts(messages: list[Message]) -> list[dict[str, Any]]:
    """Convert Message objects to provider-compatible dicts."""
    return [{"role": msg.role.value, "content": msg.content} for msg in messages]
