"""
Knowledge Service

Public entry point of the knowledge core: index content under a knowledge
ID and retrieve the documents most relevant to a query.

Retrieval pipeline:
1. Rewrite the query (falls back to the original on failure)
2. Over-fetch when reranking is enabled
3. Embed and search every query concurrently
4. Weight, merge by document ID and sort
5. Rerank (falls back to vector order on failure) and cut to limit
"""

import asyncio
from typing import Any
from uuid import uuid4

from lumen.config.settings import Settings, get_settings
from lumen.core.exceptions import ConfigurationError, LumenError, VectorStoreError
from lumen.core.types import (
    DocumentReader,
    EmbeddingTaskType,
    ImageReader,
    Knowledge,
    KnowledgeSearchResult,
)
from lumen.knowledge.embeddings import Embedder, create_embedder
from lumen.knowledge.ingestion import KnowledgeIngester, ReaderStream
from lumen.knowledge.reranker import (
    BatchLLMReranker,
    CrossEncoderReranker,
    LLMReranker,
    NoOpReranker,
    Reranker,
    is_cross_encoder_model,
)
from lumen.knowledge.rewriter import NoOpQueryRewriter, QueryRewriter, create_query_rewriter
from lumen.knowledge.vector_store import (
    FAISSKnowledgeStore,
    InMemoryKnowledgeStore,
    KnowledgeStore,
)
from lumen.observability.logging import StructuredLogger, configure_logging, get_logger
from lumen.reasoning.llm import create_llm_adapter
from lumen.reasoning.llm.base import LLMAdapterProtocol

PRIMARY_QUERY_WEIGHT = 1.0
REWRITTEN_QUERY_WEIGHT = 0.9


class KnowledgeService:
    """
    Knowledge ingestion and retrieval orchestrator.

    Usage:
        async with create_knowledge_service() as service:
            await service.index_from_map("faq", [{"title": "...", "content": "..."}])
            results = await service.retrieve_relevant("how do I ...", limit=5)
    """

    def __init__(
        self,
        store: KnowledgeStore,
        embedder: Embedder,
        rewriter: QueryRewriter | None = None,
        reranker: Reranker | None = None,
        rerank_enabled: bool = False,
        retrieval_factor: int = 1,
        max_queries: int = 5,
        chunk_size: int = 1000,
        jpeg_quality: int = 85,
        logger: StructuredLogger | None = None,
        llm: LLMAdapterProtocol | None = None,
    ):
        self._store = store
        self._embedder = embedder
        self._rewriter = rewriter or NoOpQueryRewriter()
        self._reranker = reranker or NoOpReranker()
        self._rerank_enabled = rerank_enabled
        self._retrieval_factor = retrieval_factor
        self._max_queries = max_queries
        self._llm = llm
        self._logger = logger or get_logger("lumen.knowledge")
        self._ingester = KnowledgeIngester(
            embedder,
            chunk_size=chunk_size,
            jpeg_quality=jpeg_quality,
            logger=self._logger,
        )

    # ============================================================
    # Indexing
    # ============================================================

    async def _replace(self, knowledge_id: str, build) -> Knowledge:
        """Delete, build, store. A failed build leaves the ID empty."""
        with self._logger.context(knowledge_id=knowledge_id):
            if knowledge_id:
                await self.delete_knowledge(knowledge_id)

            knowledge = await build()

            try:
                await self._store.store(knowledge)
            except LumenError:
                raise
            except Exception as e:
                raise VectorStoreError(
                    f"failed to store knowledge: {e}",
                    context={"knowledge_id": knowledge_id},
                    cause=e,
                ) from e

            self._logger.info(
                "Knowledge indexed",
                documents=len(knowledge.documents),
                source_type=knowledge.metadata.get("source_type"),
            )
            return knowledge

    async def index_from_map(self, knowledge_id: str, items: list[dict[str, Any]]) -> Knowledge:
        """Index one document per record, replacing the knowledge ID."""
        return await self._replace(
            knowledge_id, lambda: self._ingester.build_from_maps(knowledge_id, items)
        )

    async def index_from_documents(
        self,
        knowledge_id: str,
        readers: "ReaderStream[DocumentReader]",
    ) -> Knowledge:
        """
        Index a stream of documents of mixed content types.

        Unparseable documents are skipped; a failing stream or an embedding
        failure aborts the call.
        """
        return await self._replace(
            knowledge_id, lambda: self._ingester.build_from_documents(knowledge_id, readers)
        )

    async def index_from_images(
        self,
        knowledge_id: str,
        readers: "ReaderStream[ImageReader]",
        metadata: dict[str, Any] | None = None,
    ) -> Knowledge:
        """Index a stream of images; caller metadata is attached to every image."""
        return await self._replace(
            knowledge_id,
            lambda: self._ingester.build_from_images(knowledge_id, readers, metadata),
        )

    async def delete_knowledge(self, knowledge_id: str) -> None:
        try:
            await self._store.delete_by_id(knowledge_id)
        except LumenError:
            raise
        except Exception as e:
            raise VectorStoreError(
                f"failed to delete knowledge: {e}",
                context={"knowledge_id": knowledge_id},
                cause=e,
            ) from e

    async def get_knowledge(self, knowledge_id: str) -> Knowledge:
        return await self._store.get_by_id(knowledge_id)

    # ============================================================
    # Retrieval
    # ============================================================

    async def _rewrite(self, query: str) -> list[str]:
        try:
            queries = await self._rewriter.rewrite(query)
        except Exception as e:
            self._logger.warning("Query rewriting failed, using original query", error=e)
            return [query]

        if not queries:
            return [query]
        return queries[: self._max_queries]

    async def _search_one(
        self,
        index: int,
        query: str,
        limit: int,
        allowed_ids: list[str] | None,
    ) -> list[KnowledgeSearchResult]:
        """One fan-out branch. Failures skip the branch."""
        try:
            vectors = await self._embedder.embed_texts(EmbeddingTaskType.QUERY, query)
        except Exception as e:
            self._logger.warning(
                "Failed to embed query, skipping", query_index=index, query=query, error=e
            )
            return []

        if not vectors:
            return []

        try:
            return await self._store.search(vectors[0], limit, allowed_ids)
        except Exception as e:
            self._logger.warning(
                "Search failed for query, skipping", query_index=index, query=query, error=e
            )
            return []

    @staticmethod
    def _merge(per_query: list[list[KnowledgeSearchResult]]) -> list[KnowledgeSearchResult]:
        """Weight, dedupe by document ID keeping the best score, sort."""
        merged: dict[str, KnowledgeSearchResult] = {}

        for index, results in enumerate(per_query):
            weight = PRIMARY_QUERY_WEIGHT if index == 0 else REWRITTEN_QUERY_WEIGHT
            for result in results:
                score = result.score * weight
                existing = merged.get(result.id)
                if existing is None or score > existing.score:
                    merged[result.id] = result.model_copy(update={"score": score})

        return sorted(merged.values(), key=lambda r: (-r.score, r.id))

    async def retrieve_relevant(
        self,
        query: str,
        limit: int,
        allowed_knowledge_ids: list[str] | None = None,
    ) -> list[KnowledgeSearchResult]:
        """
        Retrieve the documents most relevant to a query.

        Args:
            query: Natural-language query
            limit: Maximum number of results
            allowed_knowledge_ids: Knowledge IDs to search; empty or None searches all

        Returns:
            At most `limit` results, most relevant first. Empty when nothing
            matches.
        """
        if limit <= 0:
            return []

        with self._logger.context(request_id=uuid4().hex, operation="retrieve"):
            queries = await self._rewrite(query)

            retrieval_limit = limit
            if self._rerank_enabled and self._retrieval_factor > 1:
                retrieval_limit = limit * self._retrieval_factor

            per_query = await asyncio.gather(
                *(
                    self._search_one(i, q, retrieval_limit, allowed_knowledge_ids)
                    for i, q in enumerate(queries)
                )
            )
            candidates = self._merge(list(per_query))

            self._logger.debug(
                "Retrieved candidates",
                queries=len(queries),
                candidates=len(candidates),
                retrieval_limit=retrieval_limit,
            )

            if self._rerank_enabled and len(candidates) > limit:
                try:
                    reranked = await self._reranker.rerank(query, candidates, limit)
                except Exception as e:
                    self._logger.warning(
                        "Reranking failed, falling back to original results", error=e
                    )
                    return candidates[:limit]
                return reranked[:limit]

            return candidates[:limit]

    # ============================================================
    # Lifecycle
    # ============================================================

    async def close(self) -> None:
        await self._store.close()
        await self._embedder.close()
        if self._llm is not None:
            await self._llm.close()

    async def __aenter__(self) -> "KnowledgeService":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def _create_store(
    settings: Settings, embedder: Embedder, logger: StructuredLogger
) -> KnowledgeStore:
    provider = settings.knowledge.store_provider
    if provider == "memory":
        return InMemoryKnowledgeStore(logger=logger.child("lumen.knowledge.vector_store"))
    if provider == "faiss":
        return FAISSKnowledgeStore(
            dimension=embedder.dimension,
            index_path=settings.knowledge.faiss_index_path,
        )
    raise ConfigurationError(f"Unknown knowledge store provider: {provider}")


def create_knowledge_service(
    settings: Settings | None = None,
    store: KnowledgeStore | None = None,
    embedder: Embedder | None = None,
    llm: LLMAdapterProtocol | None = None,
    logger: StructuredLogger | None = None,
) -> KnowledgeService:
    """
    Build a KnowledgeService from settings.

    Explicit collaborators take precedence over settings. An LLM adapter is
    only created when reranking or query rewriting needs one.
    """
    settings = settings or get_settings()
    knowledge = settings.knowledge

    if logger is None:
        logger = configure_logging(
            settings.observability.log_level,
            json_output=settings.observability.log_format == "json",
        )

    embedder = embedder or create_embedder(settings.embedding)
    store = store or _create_store(settings, embedder, logger)

    def get_llm() -> LLMAdapterProtocol:
        nonlocal llm
        if llm is None:
            llm = create_llm_adapter(settings.llm)
        return llm

    reranker: Reranker = NoOpReranker()
    if knowledge.rerank_enabled:
        if knowledge.use_batch_rerank:
            reranker = BatchLLMReranker(get_llm(), model=knowledge.rerank_model)
        elif is_cross_encoder_model(knowledge.rerank_model):
            reranker = CrossEncoderReranker(knowledge.rerank_model)
        else:
            reranker = LLMReranker(
                get_llm(),
                model=knowledge.rerank_model,
                concurrency=knowledge.rerank_concurrency,
            )

    rewriter: QueryRewriter = NoOpQueryRewriter()
    if knowledge.query_rewrite_enabled and knowledge.query_rewrite_strategy != "none":
        # Defaults to the rerank model unless that one is a cross-encoder
        rewrite_model = knowledge.query_rewrite_model
        if rewrite_model is None and not is_cross_encoder_model(knowledge.rerank_model):
            rewrite_model = knowledge.rerank_model

        rewriter = create_query_rewriter(
            knowledge.query_rewrite_strategy,
            get_llm(),
            model=rewrite_model,
            max_queries=knowledge.max_rewritten_queries,
        )

    return KnowledgeService(
        store=store,
        embedder=embedder,
        rewriter=rewriter,
        reranker=reranker,
        rerank_enabled=knowledge.rerank_enabled,
        retrieval_factor=knowledge.retrieval_factor,
        max_queries=knowledge.max_rewritten_queries,
        chunk_size=knowledge.text_chunk_size,
        jpeg_quality=knowledge.image_jpeg_quality,
        logger=logger,
        llm=llm,
    )
