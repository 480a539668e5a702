"""
Unit Tests - Query Rewriting
"""

import pytest

from lumen.core.exceptions import ConfigurationError, QueryRewriteError
from lumen.core.types import MessageRole
from lumen.knowledge.rewriter import (
    LLMQueryRewriter,
    MultiAngleQueryRewriter,
    NoOpQueryRewriter,
    create_query_rewriter,
    parse_query_lines,
)
from lumen.reasoning.llm import StubLLMAdapter, StubResponse

PARAPHRASES = '1. Refund timeline\n2. refund policy\n- How long do refunds take?\n\n"Refund rules"\n'


class TestParseQueryLines:
    def test_strips_markers_and_quotes(self):
        assert parse_query_lines(PARAPHRASES) == [
            "Refund timeline",
            "refund policy",
            "How long do refunds take?",
            "Refund rules",
        ]

    def test_blank_response(self):
        assert parse_query_lines("\n \n") == []


class TestNoOpQueryRewriter:
    @pytest.mark.asyncio
    async def test_passthrough(self):
        assert await NoOpQueryRewriter().rewrite("refund policy") == ["refund policy"]


class TestLLMQueryRewriter:
    """Tests for paraphrase rewriting."""

    @pytest.mark.asyncio
    async def test_original_first_then_unique_paraphrases(self):
        llm = StubLLMAdapter(responses=[StubResponse(pattern="paraphrase", content=PARAPHRASES)])

        queries = await LLMQueryRewriter(llm).rewrite("Refund policy")

        assert queries == [
            "Refund policy",
            "Refund timeline",
            "How long do refunds take?",
            "Refund rules",
        ]

    @pytest.mark.asyncio
    async def test_capped_at_max_queries(self):
        llm = StubLLMAdapter(responses=[StubResponse(pattern="paraphrase", content=PARAPHRASES)])

        queries = await LLMQueryRewriter(llm, max_queries=2).rewrite("Refund policy")

        assert queries == ["Refund policy", "Refund timeline"]

    @pytest.mark.asyncio
    async def test_prompt_contains_query(self):
        llm = StubLLMAdapter(default_response="other wording")

        await LLMQueryRewriter(llm, max_queries=3).rewrite("vacation days")

        messages = llm.requests[0]
        assert messages[0].role == MessageRole.SYSTEM
        assert "Query: vacation days" in messages[-1].content
        assert "2 paraphrases" in messages[-1].content

    @pytest.mark.asyncio
    async def test_single_query_budget_skips_llm(self):
        llm = StubLLMAdapter()

        assert await LLMQueryRewriter(llm, max_queries=1).rewrite("q") == ["q"]
        assert llm.call_count == 0

    @pytest.mark.asyncio
    async def test_llm_failure(self):
        llm = StubLLMAdapter(responses=[StubResponse(pattern="paraphrase", error="model overloaded")])

        with pytest.raises(QueryRewriteError) as exc_info:
            await LLMQueryRewriter(llm).rewrite("Refund policy")

        assert exc_info.value.__cause__ is not None


class TestMultiAngleQueryRewriter:
    @pytest.mark.asyncio
    async def test_asks_for_sub_questions(self):
        llm = StubLLMAdapter(
            responses=[
                StubResponse(
                    pattern="sub-questions",
                    content="What is a refund window?\nWhich items are refundable?",
                )
            ]
        )

        queries = await MultiAngleQueryRewriter(llm).rewrite("refunds")

        assert queries == ["refunds", "What is a refund window?", "Which items are refundable?"]


class TestCreateQueryRewriter:
    """Tests for the strategy factory."""

    def test_none(self):
        assert isinstance(create_query_rewriter("none"), NoOpQueryRewriter)

    def test_paraphrase(self, stub_llm):
        rewriter = create_query_rewriter("paraphrase", stub_llm)
        assert type(rewriter) is LLMQueryRewriter

    def test_multi_angle(self, stub_llm):
        assert isinstance(create_query_rewriter("multi_angle", stub_llm), MultiAngleQueryRewriter)

    def test_unknown_strategy(self, stub_llm):
        with pytest.raises(ConfigurationError, match="Unknown query rewrite strategy"):
            create_query_rewriter("hyde", stub_llm)

    def test_llm_strategy_requires_llm(self):
        with pytest.raises(ConfigurationError):
            create_query_rewriter("paraphrase")
