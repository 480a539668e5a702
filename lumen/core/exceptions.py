"""
Exception Hierarchy

Defines all exceptions used by the Lumen knowledge core.
Exceptions are organized by domain and include context for debugging.

Design decisions:
- All exceptions inherit from LumenError for easy catching
- Exceptions carry structured context, not just messages
- Error codes enable programmatic handling
"""

from typing import Any


class LumenError(Exception):
    """
    Base exception for all Lumen errors.

    Provides structured error information including:
    - Human-readable message
    - Machine-readable error code
    - Additional context for debugging
    """

    error_code: str = "LUMEN_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.error_code
        self.context = context or {}
        if cause is not None:
            self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        """Serialize exception for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "context": self.context,
        }


# ============================================================
# Configuration Errors
# ============================================================

class ConfigurationError(LumenError):
    """Error in configuration or settings."""

    error_code = "CONFIGURATION_ERROR"


# ============================================================
# LLM Errors
# ============================================================

class LLMError(LumenError):
    """Base error for LLM-related issues."""

    error_code = "LLM_ERROR"


class LLMConnectionError(LLMError):
    """Failed to connect to LLM provider."""

    error_code = "LLM_CONNECTION_ERROR"


class LLMRateLimitError(LLMError):
    """Rate limit exceeded for LLM provider."""

    error_code = "LLM_RATE_LIMIT"

    def __init__(
        self,
        message: str,
        *,
        retry_after: float | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class LLMTimeoutError(LLMError):
    """LLM request timed out."""

    error_code = "LLM_TIMEOUT"


class LLMResponseError(LLMError):
    """Invalid or unexpected response from LLM."""

    error_code = "LLM_RESPONSE_ERROR"


# ============================================================
# Knowledge / RAG Errors
# ============================================================

class KnowledgeError(LumenError):
    """Base error for knowledge/RAG issues."""

    error_code = "KNOWLEDGE_ERROR"


class DocumentIngestionError(KnowledgeError):
    """Content could not be parsed, or produced no usable documents."""

    error_code = "DOCUMENT_INGESTION_ERROR"


IngestionError = DocumentIngestionError


class EmbeddingError(KnowledgeError):
    """Embedding provider failure or output-count mismatch."""

    error_code = "EMBEDDING_ERROR"


class VectorStoreError(KnowledgeError):
    """Error with knowledge store operations."""

    error_code = "VECTOR_STORE_ERROR"


class SearchError(VectorStoreError):
    """Similarity search failed."""

    error_code = "SEARCH_ERROR"


class KnowledgeNotFoundError(KnowledgeError):
    """Requested knowledge ID does not exist."""

    error_code = "KNOWLEDGE_NOT_FOUND"

    def __init__(self, knowledge_id: str, **kwargs: Any):
        super().__init__(
            f"knowledge not found: {knowledge_id}",
            context={"knowledge_id": knowledge_id},
            **kwargs,
        )
        self.knowledge_id = knowledge_id


class RerankError(KnowledgeError):
    """Reranking failed. Never fatal to retrieval."""

    error_code = "RERANK_ERROR"


class QueryRewriteError(KnowledgeError):
    """Query rewriting failed. Never fatal to retrieval."""

    error_code = "QUERY_REWRITE_ERROR"
