"""
Anthropic LLM Adapter

Message completions against Anthropic's API. System prompts are passed
separately from the conversation, as the API requires.
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
from lumen.core.types import LLMResponse, Message, MessageRole
from lumen.reasoning.llm.base import BaseLLMAdapter

# Lazy import
_anthropic_module = None


def _get_anthropic():
    global _anthropic_module
    if _anthropic_module is None:
        try:
            import anthropic

            _anthropic_module = anthropic
        except ImportError:
            raise ImportError("anthropic package required. Install with: pip install anthropic")
    return _anthropic_module


class AnthropicAdapter(BaseLLMAdapter):
    """Anthropic Claude API adapter."""

    def __init__(self, settings: LLMSettings):
        super().__init__(settings)

        if settings.anthropic_api_key is None:
            raise ConfigurationError(
                "Anthropic API key is required",
                context={"setting": "LLM_ANTHROPIC_API_KEY"},
            )

        anthropic = _get_anthropic()

        self._client = anthropic.AsyncAnthropic(
            api_key=settings.anthropic_api_key.get_secret_value(),
            timeout=settings.request_timeout,
            max_retries=0,
        )
        self._default_model = settings.anthropic_default_model

    @property
    def provider_name(self) -> str:
        return "anthropic"

    def _convert_messages(
        self,
        messages: list[Message],
    ) -> tuple[str | None, list[dict[str, Any]]]:
        """Split out the system prompt; returns (system_prompt, messages)."""
        system_prompt = None
        converted = []

        for msg in messages:
            if msg.role == MessageRole.SYSTEM:
                system_prompt = msg.content
            else:
                converted.append({"role": msg.role.value, "content": msg.content})

        return system_prompt, converted

    async def _do_complete(
        self,
        messages: list[Message],
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """Execute a message request."""
        anthropic = _get_anthropic()

        system_prompt, converted_messages = self._convert_messages(messages)

        request_kwargs: dict[str, Any] = {
            "model": model or self._default_model,
            "messages": converted_messages,
            "max_tokens": max_tokens or self.settings.default_max_tokens,
            "temperature": temperature if temperature is not None else self.settings.default_temperature,
        }

        if system_prompt:
            request_kwargs["system"] = system_prompt

        start_time = time.perf_counter()

        try:
            response = await self._client.messages.create(**request_kwargs)
        except anthropic.RateLimitError as e:
            raise LLMRateLimitError(str(e))
        except anthropic.APIConnectionError as e:
            raise LLMConnectionError(str(e), cause=e)
        except anthropic.APIError as e:
            raise LLMResponseError(str(e), cause=e)

        latency_ms = (time.perf_counter() - start_time) * 1000

        content_parts = [block.text for block in response.content if block.type == "text"]

        return LLMResponse(
            content="\n".join(content_parts) if content_parts else None,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            model=response.model,
            finish_reason=response.stop_reason,
            latency_ms=latency_ms,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.close()
