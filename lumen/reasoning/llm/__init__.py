"""
LLM Module

Provider adapters used by query rewriting and reranking.
"""

from lumen.config.settings import LLMSettings
from lumen.core.exceptions import ConfigurationError
from lumen.reasoning.llm.base import BaseLLMAdapter, LLMAdapterProtocol
from lumen.reasoning.llm.stub_adapter import StubLLMAdapter, StubResponse


def create_llm_adapter(settings: LLMSettings) -> LLMAdapterProtocol:
    """Build the adapter selected by LLM_DEFAULT_PROVIDER."""
    provider = settings.default_provider

    if provider == "stub":
        return StubLLMAdapter(model=settings.stub_model_name)
    if provider == "openai":
        from lumen.reasoning.llm.openai_adapter import OpenAIAdapter

        return OpenAIAdapter(settings)
    if provider == "anthropic":
        from lumen.reasoning.llm.anthropic_adapter import AnthropicAdapter

        return AnthropicAdapter(settings)

    raise ConfigurationError(f"Unknown LLM provider: {provider}")


__all__ = [
    "BaseLLMAdapter",
    "LLMAdapterProtocol",
    "StubLLMAdapter",
    "StubResponse",
    "create_llm_adapter",
]
