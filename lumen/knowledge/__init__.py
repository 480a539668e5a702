"""
Knowledge / RAG Module

Document ingestion, chunking, embedding, storage and retrieval.
"""

from lumen.knowledge.chunking import ChunkingStrategy, MarkdownChunker, TextChunker
from lumen.knowledge.embeddings import (
    CachedEmbeddings,
    Embedder,
    HashEmbeddings,
    LocalEmbeddings,
    NomicEmbeddings,
    OpenAIEmbeddings,
    create_embedder,
)
from lumen.knowledge.extraction import documents_from_maps, extract_text_from_map
from lumen.knowledge.images import process_image
from lumen.knowledge.ingestion import KnowledgeIngester
from lumen.knowledge.loaders import ContentRouter, DocumentLoader, process_document
from lumen.knowledge.reranker import (
    BatchLLMReranker,
    CrossEncoderReranker,
    LLMReranker,
    NoOpReranker,
    Reranker,
)
from lumen.knowledge.rewriter import (
    LLMQueryRewriter,
    MultiAngleQueryRewriter,
    NoOpQueryRewriter,
    QueryRewriter,
    create_query_rewriter,
)
from lumen.knowledge.service import KnowledgeService, create_knowledge_service
from lumen.knowledge.vector_store import (
    FAISSKnowledgeStore,
    InMemoryKnowledgeStore,
    KnowledgeStore,
)

__all__ = [
    # Chunking
    "ChunkingStrategy",
    "MarkdownChunker",
    "TextChunker",
    # Loading
    "ContentRouter",
    "DocumentLoader",
    "documents_from_maps",
    "extract_text_from_map",
    "process_document",
    "process_image",
    # Ingestion
    "KnowledgeIngester",
    # Embeddings
    "CachedEmbeddings",
    "Embedder",
    "HashEmbeddings",
    "LocalEmbeddings",
    "NomicEmbeddings",
    "OpenAIEmbeddings",
    "create_embedder",
    # Knowledge store
    "FAISSKnowledgeStore",
    "InMemoryKnowledgeStore",
    "KnowledgeStore",
    # Query rewriting
    "LLMQueryRewriter",
    "MultiAngleQueryRewriter",
    "NoOpQueryRewriter",
    "QueryRewriter",
    "create_query_rewriter",
    # Reranking
    "BatchLLMReranker",
    "CrossEncoderReranker",
    "LLMReranker",
    "NoOpReranker",
    "Reranker",
    # Service
    "KnowledgeService",
    "create_knowledge_service",
]
