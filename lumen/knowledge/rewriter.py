"""
Query Rewriting

Expand one search query into several, so retrieval can match documents
phrased differently from the question.

The original query is always element 0; the retrieval orchestrator weights
it above the rewritten variants.
"""

import re
from abc import ABC, abstractmethod

from lumen.core.exceptions import ConfigurationError, QueryRewriteError
from lumen.core.types import Message, MessageRole
from lumen.reasoning.llm.base import LLMAdapterProtocol

DEFAULT_MAX_QUERIES = 5

# Leading list markers an LLM tends to add: "1.", "2)", "-", "*", "•"
_LIST_MARKER = re.compile(r"^\s*(?:\d+[.)]|[-*•])\s*")


def parse_query_lines(text: str) -> list[str]:
    """One query per non-blank line, list markers and wrapping quotes removed."""
    queries = []
    for line in text.splitlines():
        line = _LIST_MARKER.sub("", line).strip().strip("\"'").strip()
        if line:
            queries.append(line)
    return queries


def finalize_queries(original: str, candidates: list[str], max_queries: int) -> list[str]:
    """Original first, then unique candidates, capped at max_queries."""
    queries = [original]
    seen = {original.strip().lower()}
    for candidate in candidates:
        key = candidate.strip().lower()
        if key in seen:
            continue
        seen.add(key)
        queries.append(candidate)
    return queries[: max(max_queries, 1)]


class QueryRewriter(ABC):
    """Abstract query rewriter."""

    @abstractmethod
    async def rewrite(self, query: str) -> list[str]:
        """
        Rewrite a query into an ordered list of queries.

        Raises:
            QueryRewriteError: rewriting failed
        """
        pass


class NoOpQueryRewriter(QueryRewriter):
    """Passes the query through unchanged."""

    async def rewrite(self, query: str) -> list[str]:
        return [query]


class LLMQueryRewriter(QueryRewriter):
    """
    Paraphrase rewriting.

    Asks an LLM for alternative phrasings of the query, one per line.
    """

    SYSTEM_PROMPT = (
        "You rewrite search queries for a semantic document search engine. "
        "Reply with alternative phrasings only, one per line, without "
        "numbering or commentary."
    )

    USER_PROMPT = (
        "Write {count} paraphrases of the following search query that keep its "
        "meaning but use different wording or synonyms.\n\nQuery: {query}"
    )

    def __init__(
        self,
        llm: LLMAdapterProtocol,
        model: str | None = None,
        max_queries: int = DEFAULT_MAX_QUERIES,
    ):
        self._llm = llm
        self._model = model
        self._max_queries = max_queries

    def _build_messages(self, query: str) -> list[Message]:
        return [
            Message(role=MessageRole.SYSTEM, content=self.SYSTEM_PROMPT),
            Message(
                role=MessageRole.USER,
                content=self.USER_PROMPT.format(count=self._max_queries - 1, query=query),
            ),
        ]

    async def rewrite(self, query: str) -> list[str]:
        if not query.strip() or self._max_queries <= 1:
            return [query]

        try:
            response = await self._llm.complete(
                self._build_messages(query),
                model=self._model,
                temperature=0.0,
            )
        except Exception as e:
            raise QueryRewriteError(f"query rewrite failed: {e}", cause=e) from e

        return finalize_queries(query, parse_query_lines(response.content or ""), self._max_queries)


class MultiAngleQueryRewriter(LLMQueryRewriter):
    """
    Multi-angle decomposition.

    Asks an LLM for focused sub-questions, each covering a different aspect
    of the original query.
    """

    SYSTEM_PROMPT = (
        "You decompose search queries for a semantic document search engine. "
        "Reply with sub-questions only, one per line, without numbering or "
        "commentary."
    )

    USER_PROMPT = (
        "Break the following search query into {count} focused sub-questions, "
        "each looking at a different angle (definitions, causes, examples, "
        "comparisons, procedures).\n\nQuery: {query}"
    )


REWRITE_STRATEGIES = {
    "paraphrase": LLMQueryRewriter,
    "multi_angle": MultiAngleQueryRewriter,
}


def create_query_rewriter(
    strategy: str,
    llm: LLMAdapterProtocol | None = None,
    model: str | None = None,
    max_queries: int = DEFAULT_MAX_QUERIES,
) -> QueryRewriter:
    """
    Build a rewriter for a strategy name: none, paraphrase or multi_angle.

    Raises:
        ConfigurationError: unknown strategy, or an LLM strategy without an LLM
    """
    if strategy == "none":
        return NoOpQueryRewriter()

    rewriter_class = REWRITE_STRATEGIES.get(strategy)
    if rewriter_class is None:
        raise ConfigurationError(
            f"Unknown query rewrite strategy: {strategy}",
            context={"available": ["none", *REWRITE_STRATEGIES]},
        )

    if llm is None:
        raise ConfigurationError(f"Query rewrite strategy '{strategy}' requires an LLM adapter")

    return rewriter_class(llm, model=model, max_queries=max_queries)
