"""
Reranker

Reorder retrieval candidates by relevance to the query and keep the top k.

Design decisions:
- Output is always a subset of the candidates, at most top_k long
- Failures raise RerankError; the orchestrator falls back to vector order
"""

import asyncio
import json
import re
from abc import ABC, abstractmethod

from lumen.core.exceptions import RerankError
from lumen.core.types import KnowledgeSearchResult, Message, MessageRole
from lumen.reasoning.llm.base import LLMAdapterProtocol

DEFAULT_CROSS_ENCODER = "cross-encoder/ms-marco-MiniLM-L-6-v2"


class Reranker(ABC):
    """Abstract reranker."""

    @abstractmethod
    async def rerank(
        self,
        query: str,
        candidates: list[KnowledgeSearchResult],
        top_k: int,
    ) -> list[KnowledgeSearchResult]:
        """
        Rerank candidates by relevance to query.

        Returns:
            At most top_k candidates, most relevant first

        Raises:
            RerankError: reranking failed
        """
        pass


class NoOpReranker(Reranker):
    """Keeps the incoming order."""

    async def rerank(
        self,
        query: str,
        candidates: list[KnowledgeSearchResult],
        top_k: int,
    ) -> list[KnowledgeSearchResult]:
        return candidates[: max(top_k, 0)]


class LLMReranker(Reranker):
    """
    Pointwise LLM reranking.

    One LLM call per candidate asks for a 0-10 relevance score. Calls run
    concurrently up to `concurrency` at a time.
    """

    SYSTEM_PROMPT = (
        "You judge how relevant a document is to a search query. "
        "Reply with a single integer from 0 (irrelevant) to 10 (perfect match)."
    )

    _SCORE = re.compile(r"\d+(?:\.\d+)?")

    def __init__(self, llm: LLMAdapterProtocol, model: str | None = None, concurrency: int = 4):
        self._llm = llm
        self._model = model
        self._semaphore = asyncio.Semaphore(max(concurrency, 1))

    async def _score(self, query: str, candidate: KnowledgeSearchResult) -> float:
        messages = [
            Message(role=MessageRole.SYSTEM, content=self.SYSTEM_PROMPT),
            Message(
                role=MessageRole.USER,
                content=f"Query: {query}\n\nDocument:\n{candidate.embedding_text}\n\nScore:",
            ),
        ]

        async with self._semaphore:
            response = await self._llm.complete(messages, model=self._model, temperature=0.0)

        match = self._SCORE.search(response.content or "")
        if match is None:
            raise RerankError(
                "reranker returned no score",
                context={"document_id": candidate.id, "response": response.content},
            )
        return min(max(float(match.group()), 0.0), 10.0)

    async def rerank(
        self,
        query: str,
        candidates: list[KnowledgeSearchResult],
        top_k: int,
    ) -> list[KnowledgeSearchResult]:
        if top_k <= 0 or not candidates:
            return []

        try:
            scores = await asyncio.gather(*(self._score(query, c) for c in candidates))
        except RerankError:
            raise
        except Exception as e:
            raise RerankError(f"LLM reranking failed: {e}", cause=e) from e

        # sorted() is stable, so equal scores keep vector order
        ranked = sorted(zip(scores, candidates), key=lambda item: -item[0])
        return [candidate for _, candidate in ranked[:top_k]]


class BatchLLMReranker(Reranker):
    """
    Listwise LLM reranking.

    One LLM call sees every candidate and answers with a JSON array of
    candidate indices, most relevant first. Unknown or repeated indices are
    ignored; candidates the LLM leaves out follow in their original order.
    """

    SYSTEM_PROMPT = (
        "You rank documents by relevance to a search query. Reply with a JSON "
        "array of document indices, most relevant first, and nothing else."
    )

    _ARRAY = re.compile(r"\[[^\[\]]*\]", re.DOTALL)

    def __init__(self, llm: LLMAdapterProtocol, model: str | None = None):
        self._llm = llm
        self._model = model

    def _build_prompt(self, query: str, candidates: list[KnowledgeSearchResult]) -> str:
        lines = [f"Query: {query}", "", "Documents:"]
        for i, candidate in enumerate(candidates):
            lines.append(f"[{i}] {candidate.embedding_text}")
        lines.append("")
        lines.append("Ranking:")
        return "\n".join(lines)

    def _parse_ranking(self, content: str) -> list[int]:
        match = self._ARRAY.search(content)
        if match is None:
            raise RerankError("reranker returned no JSON array", context={"response": content})

        try:
            ranking = json.loads(match.group())
        except json.JSONDecodeError as e:
            raise RerankError(f"invalid ranking JSON: {e}", cause=e) from e

        return [i for i in ranking if isinstance(i, int) and not isinstance(i, bool)]

    async def rerank(
        self,
        query: str,
        candidates: list[KnowledgeSearchResult],
        top_k: int,
    ) -> list[KnowledgeSearchResult]:
        if top_k <= 0 or not candidates:
            return []

        messages = [
            Message(role=MessageRole.SYSTEM, content=self.SYSTEM_PROMPT),
            Message(role=MessageRole.USER, content=self._build_prompt(query, candidates)),
        ]

        try:
            response = await self._llm.complete(messages, model=self._model, temperature=0.0)
        except Exception as e:
            raise RerankError(f"batch LLM reranking failed: {e}", cause=e) from e

        order: list[int] = []
        for index in self._parse_ranking(response.content or ""):
            if 0 <= index < len(candidates) and index not in order:
                order.append(index)
        order.extend(i for i in range(len(candidates)) if i not in order)

        return [candidates[i] for i in order[:top_k]]


class CrossEncoderReranker(Reranker):
    """
    Cross-encoder reranking.

    Scores (query, document) pairs with a sentence-transformers
    cross-encoder in a worker thread.
    """

    def __init__(self, model_name: str = DEFAULT_CROSS_ENCODER, batch_size: int = 32):
        self._model_name = model_name
        self._batch_size = batch_size
        self._model = None

    def _get_model(self):
        """Lazy load the cross-encoder model."""
        if self._model is None:
            try:
                from sentence_transformers import CrossEncoder
            except ImportError:
                raise ImportError(
                    "sentence-transformers required. Install with: "
                    "pip install sentence-transformers"
                )

            self._model = CrossEncoder(self._model_name)
        return self._model

    def _predict(self, query: str, candidates: list[KnowledgeSearchResult]) -> list[float]:
        model = self._get_model()
        pairs = [(query, c.embedding_text) for c in candidates]
        scores = model.predict(pairs, batch_size=self._batch_size)
        return [float(s) for s in scores]

    async def rerank(
        self,
        query: str,
        candidates: list[KnowledgeSearchResult],
        top_k: int,
    ) -> list[KnowledgeSearchResult]:
        if top_k <= 0 or not candidates:
            return []

        try:
            scores = await asyncio.to_thread(self._predict, query, candidates)
        except Exception as e:
            raise RerankError(f"cross-encoder reranking failed: {e}", cause=e) from e

        ranked = sorted(zip(scores, candidates), key=lambda item: -item[0])
        return [candidate for _, candidate in ranked[:top_k]]


def is_cross_encoder_model(model_name: str) -> bool:
    """Whether a rerank model name refers to a cross-encoder checkpoint."""
    return model_name.startswith("cross-encoder/")
