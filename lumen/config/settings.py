"""
Settings Management

Provides centralized, type-safe configuration using Pydantic.
Supports environment variables, .env files, and hierarchical config.

Design decisions:
- Using pydantic-settings for validation and type coercion
- Immutable settings after initialization (frozen model)
- Separate concerns: provider settings vs. pipeline settings vs. logging
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class EmbeddingSettings(BaseSettings):
    """Embedding provider configuration."""

    model_config = SettingsConfigDict(env_prefix="EMBEDDING_")

    # hash = deterministic offline embedder, no API key required
    provider: Literal["nomic", "openai", "local", "hash"] = "nomic"

    # Nomic Atlas settings
    nomic_api_key: SecretStr | None = Field(default=None)
    nomic_base_url: str = Field(default="https://api-atlas.nomic.ai/v1")
    nomic_text_model: str = Field(default="nomic-embed-text-v1.5")
    nomic_vision_model: str = Field(default="nomic-embed-vision-v1.5")

    # OpenAI settings
    openai_api_key: SecretStr | None = Field(default=None)
    openai_base_url: str | None = Field(default=None)
    openai_model: str = Field(default="text-embedding-3-small")

    # sentence-transformers model name
    local_model: str = Field(default="all-MiniLM-L6-v2")
    local_device: str = Field(default="cpu")

    # Used by providers without a fixed dimension (hash, optional openai reduction)
    dimension: int | None = Field(default=None, ge=1)

    request_timeout: float = Field(default=60.0, gt=0)
    cache_enabled: bool = Field(default=False)
    cache_redis_url: str | None = Field(default=None)


class LLMSettings(BaseSettings):
    """LLM provider configuration for query rewriting and reranking."""

    model_config = SettingsConfigDict(env_prefix="LLM_")

    default_provider: Literal["openai", "anthropic", "stub"] = "openai"

    # OpenAI settings
    openai_api_key: SecretStr | None = Field(default=None)
    openai_base_url: str | None = Field(default=None)
    openai_default_model: str = Field(default="gpt-4o-mini")

    # Anthropic settings
    anthropic_api_key: SecretStr | None = Field(default=None)
    anthropic_default_model: str = Field(default="claude-3-5-haiku-latest")

    stub_model_name: str = Field(default="stub-model-v1")

    # Shared settings
    default_temperature: float = Field(default=0.0, ge=0.0, le=2.0)
    default_max_tokens: int = Field(default=1024, ge=1)
    request_timeout: float = Field(default=60.0, gt=0)
    max_retries: int = Field(default=3, ge=0)
    retry_delay: float = Field(default=1.0, ge=0)

    @property
    def default_model(self) -> str:
        """Get default model based on provider."""
        if self.default_provider == "stub":
            return self.stub_model_name
        elif self.default_provider == "anthropic":
            return self.anthropic_default_model
        return self.openai_default_model


class KnowledgeSettings(BaseSettings):
    """Ingestion and retrieval pipeline configuration."""

    model_config = SettingsConfigDict(env_prefix="KNOWLEDGE_")

    store_provider: Literal["memory", "faiss"] = "memory"
    faiss_index_path: str | None = Field(default=None)

    # Reranking
    rerank_enabled: bool = Field(default=False)
    use_batch_rerank: bool = Field(default=False)
    rerank_model: str = Field(default="gpt-4o-mini")
    rerank_concurrency: int = Field(default=4, ge=1)
    retrieval_factor: int = Field(default=3, ge=1)

    # Query rewriting
    query_rewrite_enabled: bool = Field(default=False)
    query_rewrite_strategy: Literal["none", "paraphrase", "multi_angle"] = "paraphrase"
    query_rewrite_model: str | None = Field(default=None)
    max_rewritten_queries: int = Field(default=5, ge=1)

    # Chunking
    text_chunk_size: int = Field(default=1000, ge=1)
    image_jpeg_quality: int = Field(default=85, ge=1, le=95)


class ObservabilitySettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="OBS_")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    """
    Master settings aggregator.

    This is the single source of truth for all configuration.
    Sub-settings are composed here to maintain clear boundaries.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,  # Immutable after creation
    )

    app_name: str = Field(default="Lumen")
    environment: Literal["development", "staging", "production"] = "development"

    # Component settings (composed)
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    knowledge: KnowledgeSettings = Field(default_factory=KnowledgeSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Safe to cache because settings are frozen/immutable.
    """
    return Settings()
