"""
Stub LLM Adapter

A deterministic, offline LLM adapter for tests and offline mode.

Design decisions:
- Implements LLMAdapterProtocol
- Returns scripted responses chosen by regex on the last user message
- Can script failures to exercise degrade-on-failure paths
- NEVER makes external network calls

Usage:
    adapter = StubLLMAdapter(responses=[
        StubResponse(pattern=r"paraphrase", content="q1\\nq2"),
    ])
"""

import asyncio
import re
from dataclasses import dataclass
from typing import Any

from lumen.core.exceptions import LLMResponseError
from lumen.core.types import LLMResponse, Message, MessageRole


@dataclass
class StubResponse:
    """A scripted response for the stub adapter."""

    pattern: str | None = None  # Regex to match user message
    content: str = ""
    error: str | None = None  # Raise LLMResponseError instead of answering
    tokens: int = 100

    def matches(self, message: str) -> bool:
        if self.pattern is None:
            return True
        return bool(re.search(self.pattern, message, re.IGNORECASE | re.DOTALL))


DEFAULT_RESPONSES: list[StubResponse] = [
    StubResponse(pattern=None, content="[STUB] offline response"),
]


class StubLLMAdapter:
    """
    A deterministic LLM adapter for offline testing.

    Records every prompt it receives in `requests` so tests can assert on
    what the rewriter or reranker sent.
    """

    def __init__(
        self,
        model: str = "stub-model-v1",
        responses: list[StubResponse] | None = None,
        default_response: str | None = None,
    ):
        self._model = model
        self._responses = list(responses or []) + DEFAULT_RESPONSES
        self._call_count = 0
        self.requests: list[list[Message]] = []

        if default_response is not None:
            self._responses.insert(len(self._responses) - 1, StubResponse(content=default_response))

    @property
    def model(self) -> str:
        return self._model

    @property
    def provider_name(self) -> str:
        return "stub"

    @property
    def call_count(self) -> int:
        return self._call_count

    def add_response(self, response: StubResponse) -> None:
        """Add a custom response pattern with the highest priority."""
        self._responses.insert(0, response)

    def _find_response(self, messages: list[Message]) -> StubResponse:
        user_message = ""
        for msg in reversed(messages):
            if msg.role == MessageRole.USER:
                user_message = msg.content
                break

        for response in self._responses:
            if response.matches(user_message):
                return response

        return self._responses[-1]

    async def complete(
        self,
        messages: list[Message],
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """Return the first scripted response whose pattern matches."""
        self._call_count += 1
        self.requests.append(list(messages))
        response = self._find_response(messages)

        # Yield to the loop like a real network call would
        await asyncio.sleep(0)

        if response.error is not None:
            raise LLMResponseError(response.error)

        return LLMResponse(
            content=response.content,
            model=model or self._model,
            finish_reason="stop",
            input_tokens=response.tokens // 3,
            output_tokens=response.tokens - response.tokens // 3,
        )

    async def close(self) -> None:
        pass
