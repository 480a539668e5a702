"""
Core Module

Shared types and exceptions.
"""

from lumen.core.exceptions import (
    ConfigurationError,
    DocumentIngestionError,
    EmbeddingError,
    IngestionError,
    KnowledgeError,
    KnowledgeNotFoundError,
    LumenError,
    QueryRewriteError,
    RerankError,
    SearchError,
    VectorStoreError,
)
from lumen.core.types import (
    Document,
    DocumentReader,
    EmbeddingTaskType,
    ImageContent,
    ImageReader,
    Knowledge,
    KnowledgeSearchResult,
    TextContent,
)

__all__ = [
    "ConfigurationError",
    "Document",
    "DocumentIngestionError",
    "DocumentReader",
    "EmbeddingError",
    "EmbeddingTaskType",
    "ImageContent",
    "ImageReader",
    "IngestionError",
    "Knowledge",
    "KnowledgeError",
    "KnowledgeNotFoundError",
    "KnowledgeSearchResult",
    "LumenError",
    "QueryRewriteError",
    "RerankError",
    "SearchError",
    "TextContent",
    "VectorStoreError",
]
