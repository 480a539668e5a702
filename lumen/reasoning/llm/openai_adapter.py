"""
OpenAI LLM Adapter

Chat completions against the OpenAI API or any OpenAI-compatible server.
"""

import time
from typing import Any

from lumen.config.settings import LLMSettings
from lumen.core.exceptions import (
    ConfigurationError,
    LLMConnectionError,
    LLMRateLimitError,
    LLMResponseError,
)
from lumen.core.types import LLMResponse, Message
from lumen.reasoning.llm.base import BaseLLMAdapter, convert_messages_to_dicts

# Lazy import to avoid requiring openai if not used
_openai_module = None


def _get_openai():
    global _openai_module
    if _openai_module is None:
        try:
            import openai

            _openai_module = openai
        except ImportError:
            raise ImportError("openai package required. Install with: pip install openai")
    return _openai_module


class OpenAIAdapter(BaseLLMAdapter):
    """OpenAI chat completion adapter."""

    def __init__(self, settings: LLMSettings):
        super().__init__(settings)

        if settings.openai_api_key is None and settings.openai_base_url is None:
            raise ConfigurationError(
                "OpenAI API key is required",
                context={"setting": "LLM_OPENAI_API_KEY"},
            )

        openai = _get_openai()

        client_kwargs: dict[str, Any] = {
            "timeout": settings.request_timeout,
            "max_retries": 0,  # We handle retries ourselves
        }

        if settings.openai_api_key:
            client_kwargs["api_key"] = settings.openai_api_key.get_secret_value()

        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._default_model = settings.openai_default_model

    @property
    def provider_name(self) -> str:
        return "openai"

    async def _do_complete(
        self,
        messages: list[Message],
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """Execute a chat completion request."""
        openai = _get_openai()

        request_kwargs: dict[str, Any] = {
            "model": model or self._default_model,
            "messages": convert_messages_to_dicts(messages),
            "temperature": temperature if temperature is not None else self.settings.default_temperature,
            "max_tokens": max_tokens or self.settings.default_max_tokens,
        }

        # Handle extra kwargs (e.g., response_format for JSON mode)
        request_kwargs.update(kwargs)

        start_time = time.perf_counter()

        try:
            response = await self._client.chat.completions.create(**request_kwargs)
        except openai.RateLimitError as e:
            raise LLMRateLimitError(
                str(e),
                retry_after=float(e.response.headers.get("retry-after", 1.0)),
            )
        except openai.APIConnectionError as e:
            raise LLMConnectionError(str(e), cause=e)
        except openai.APIError as e:
            raise LLMResponseError(str(e), cause=e)

        latency_ms = (time.perf_counter() - start_time) * 1000
        choice = response.choices[0]

        return LLMResponse(
            content=choice.message.content,
            input_tokens=response.usage.prompt_tokens if response.usage else 0,
            output_tokens=response.usage.completion_tokens if response.usage else 0,
            model=response.model,
            finish_reason=choice.finish_reason,
            latency_ms=latency_ms,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.close()
