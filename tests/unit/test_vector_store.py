"""
Unit Tests - Knowledge Store

Tests for the in-memory and FAISS knowledge stores.
"""

import asyncio

import pytest

from lumen.core.exceptions import KnowledgeNotFoundError, SearchError, VectorStoreError
from lumen.core.types import Document, Knowledge, TextContent
from lumen.knowledge.vector_store import InMemoryKnowledgeStore


def make_knowledge(knowledge_id: str, vectors: dict[str, list[float]], **metadata) -> Knowledge:
    return Knowledge(
        id=knowledge_id,
        metadata=metadata,
        documents=[
            Document(
                id=doc_id,
                content=TextContent(text=f"text of {doc_id}"),
                embedding_text=f"text of {doc_id}",
                embeddings=vector,
                metadata={"doc": doc_id},
            )
            for doc_id, vector in vectors.items()
        ],
    )


class StoreContract:
    """Behaviour every knowledge store must share."""

    @pytest.fixture
    def knowledge_store(self):
        raise NotImplementedError

    @pytest.mark.asyncio
    async def test_store_then_get_round_trip(self, knowledge_store):
        knowledge = make_knowledge("faq", {"faq_1": [1.0, 0.0], "faq_2": [0.0, 1.0]}, source_type="map")

        await knowledge_store.store(knowledge)
        loaded = await knowledge_store.get_by_id("faq")

        assert loaded == knowledge

    @pytest.mark.asyncio
    async def test_get_returns_a_copy(self, knowledge_store):
        await knowledge_store.store(make_knowledge("faq", {"faq_1": [1.0, 0.0]}))

        loaded = await knowledge_store.get_by_id("faq")
        loaded.documents.clear()

        assert len((await knowledge_store.get_by_id("faq")).documents) == 1

    @pytest.mark.asyncio
    async def test_get_missing(self, knowledge_store):
        with pytest.raises(KnowledgeNotFoundError) as exc_info:
            await knowledge_store.get_by_id("missing")
        assert exc_info.value.context == {"knowledge_id": "missing"}

    @pytest.mark.asyncio
    async def test_store_replaces(self, knowledge_store):
        await knowledge_store.store(make_knowledge("faq", {"old_1": [1.0, 0.0], "old_2": [0.5, 0.5]}))
        await knowledge_store.store(make_knowledge("faq", {"new_1": [0.0, 1.0]}))

        results = await knowledge_store.search([1.0, 0.0], limit=10)

        assert [r.id for r in results] == ["new_1"]

    @pytest.mark.asyncio
    async def test_delete(self, knowledge_store):
        await knowledge_store.store(make_knowledge("faq", {"faq_1": [1.0, 0.0]}))

        await knowledge_store.delete_by_id("faq")

        assert await knowledge_store.search([1.0, 0.0], limit=5) == []
        with pytest.raises(KnowledgeNotFoundError):
            await knowledge_store.get_by_id("faq")

    @pytest.mark.asyncio
    async def test_delete_missing_is_noop(self, knowledge_store):
        await knowledge_store.delete_by_id("never-stored")

    @pytest.mark.asyncio
    async def test_search_ranks_by_cosine(self, knowledge_store):
        await knowledge_store.store(
            make_knowledge("k", {"far": [0.0, 1.0], "near": [2.0, 0.1], "mid": [1.0, 1.0]})
        )

        results = await knowledge_store.search([1.0, 0.0], limit=3)

        assert [r.id for r in results] == ["near", "mid", "far"]
        assert results[1].score == pytest.approx(2 ** -0.5, rel=1e-5)
        assert results[0].embedding_text == "text of near"
        assert results[0].metadata == {"doc": "near"}

    @pytest.mark.asyncio
    async def test_search_limit(self, knowledge_store):
        await knowledge_store.store(
            make_knowledge("k", {f"d{i}": [1.0, i / 10] for i in range(6)})
        )

        assert len(await knowledge_store.search([1.0, 0.0], limit=4)) == 4
        assert await knowledge_store.search([1.0, 0.0], limit=0) == []

    @pytest.mark.asyncio
    async def test_equal_scores_ordered_by_id(self, knowledge_store):
        await knowledge_store.store(make_knowledge("a", {"b_doc": [1.0, 0.0], "a_doc": [3.0, 0.0]}))
        await knowledge_store.store(make_knowledge("b", {"c_doc": [2.0, 0.0]}))

        results = await knowledge_store.search([1.0, 0.0], limit=3)

        assert [r.id for r in results] == ["a_doc", "b_doc", "c_doc"]

    @pytest.mark.asyncio
    async def test_allowed_ids_filter(self, knowledge_store):
        await knowledge_store.store(make_knowledge("hr", {"hr_1": [1.0, 0.0]}))
        await knowledge_store.store(make_knowledge("it", {"it_1": [0.9, 0.1]}))
        await knowledge_store.store(make_knowledge("ops", {"ops_1": [0.8, 0.2]}))

        results = await knowledge_store.search([1.0, 0.0], limit=10, allowed_ids=["it", "ops"])

        assert [r.id for r in results] == ["it_1", "ops_1"]

    @pytest.mark.asyncio
    async def test_empty_or_none_allowed_ids_match_all(self, knowledge_store):
        await knowledge_store.store(make_knowledge("hr", {"hr_1": [1.0, 0.0]}))
        await knowledge_store.store(make_knowledge("it", {"it_1": [0.9, 0.1]}))

        assert len(await knowledge_store.search([1.0, 0.0], limit=10, allowed_ids=None)) == 2
        assert len(await knowledge_store.search([1.0, 0.0], limit=10, allowed_ids=[])) == 2

    @pytest.mark.asyncio
    async def test_unknown_allowed_id(self, knowledge_store):
        await knowledge_store.store(make_knowledge("hr", {"hr_1": [1.0, 0.0]}))
        assert await knowledge_store.search([1.0, 0.0], limit=10, allowed_ids=["nope"]) == []

    @pytest.mark.asyncio
    async def test_document_without_embedding_rejected(self, knowledge_store):
        with pytest.raises(VectorStoreError):
            await knowledge_store.store(make_knowledge("k", {"d": []}))


class TestInMemoryKnowledgeStore(StoreContract):
    """Tests for the numpy-backed store."""

    @pytest.fixture
    def knowledge_store(self, logger):
        return InMemoryKnowledgeStore(logger=logger)

    @pytest.mark.asyncio
    async def test_mismatched_dimension_is_skipped(self, knowledge_store, log_buffer):
        await knowledge_store.store(make_knowledge("old", {"o": [1.0, 0.0]}))
        await knowledge_store.store(make_knowledge("new", {"n": [1.0, 0.0, 0.0]}))

        results = await knowledge_store.search([1.0, 0.0, 0.0], limit=5)

        assert [r.id for r in results] == ["n"]
        [warning] = log_buffer.records
        assert warning.message == "Skipping knowledge with mismatched embedding dimension"
        assert warning.data["knowledge_id"] == "old"

    @pytest.mark.asyncio
    async def test_locks_are_released_with_their_ids(self, knowledge_store):
        await knowledge_store.delete_by_id("never-stored")
        await knowledge_store.store(make_knowledge("k", {"d": [1.0]}))
        await knowledge_store.delete_by_id("k")

        assert len(knowledge_store._locks) == 0

    @pytest.mark.asyncio
    async def test_inconsistent_dimensions_rejected(self, knowledge_store):
        with pytest.raises(VectorStoreError):
            await knowledge_store.store(make_knowledge("k", {"a": [1.0, 0.0], "b": [1.0]}))

    @pytest.mark.asyncio
    async def test_stored_knowledge_is_isolated_from_caller(self, knowledge_store):
        knowledge = make_knowledge("k", {"d": [1.0, 0.0]})
        await knowledge_store.store(knowledge)

        knowledge.documents[0].embedding_text = "mutated"

        [result] = await knowledge_store.search([1.0, 0.0], limit=1)
        assert result.embedding_text == "text of d"

    @pytest.mark.asyncio
    async def test_concurrent_replace_never_mixes_generations(self, knowledge_store):
        """Readers see the old or the new set, never a mix."""
        old = make_knowledge("k", {f"old_{i}": [1.0, 0.0] for i in range(5)})
        new = make_knowledge("k", {f"new_{i}": [1.0, 0.0] for i in range(3)})
        await knowledge_store.store(old)

        async def reader():
            seen = []
            for _ in range(20):
                results = await knowledge_store.search([1.0, 0.0], limit=10)
                seen.append({r.id.split("_")[0] for r in results})
                await asyncio.sleep(0)
            return seen

        async def writer():
            for _ in range(10):
                await knowledge_store.delete_by_id("k")
                await knowledge_store.store(new)
                await asyncio.sleep(0)
                await knowledge_store.store(old)

        snapshots, _ = await asyncio.gather(reader(), writer())

        assert all(len(prefixes) <= 1 for prefixes in snapshots)

    @pytest.mark.asyncio
    async def test_count(self, knowledge_store):
        await knowledge_store.store(make_knowledge("a", {"a1": [1.0], "a2": [0.5]}))
        await knowledge_store.store(make_knowledge("b", {"b1": [1.0]}))
        assert await knowledge_store.count() == 3


class TestFAISSKnowledgeStore(StoreContract):
    """Tests for the FAISS-backed store; skipped without faiss."""

    @pytest.fixture
    def knowledge_store(self):
        pytest.importorskip("faiss")
        from lumen.knowledge.vector_store import FAISSKnowledgeStore

        return FAISSKnowledgeStore(dimension=2)

    @pytest.mark.asyncio
    async def test_wrong_dimension_rejected(self, knowledge_store):
        with pytest.raises(VectorStoreError):
            await knowledge_store.store(make_knowledge("k", {"d": [1.0, 0.0, 0.0]}))

    @pytest.mark.asyncio
    async def test_wrong_query_dimension(self, knowledge_store):
        await knowledge_store.store(make_knowledge("k", {"d": [1.0, 0.0]}))

        with pytest.raises(SearchError):
            await knowledge_store.search([1.0, 0.0, 0.0], limit=1)

    @pytest.mark.asyncio
    async def test_save_and_load(self, knowledge_store, tmp_path):
        from lumen.knowledge.vector_store import FAISSKnowledgeStore

        await knowledge_store.store(make_knowledge("k", {"x": [1.0, 0.0], "y": [0.0, 1.0]}))
        await knowledge_store.store(make_knowledge("k", {"z": [1.0, 0.1]}))
        knowledge_store.save(str(tmp_path))

        restored = FAISSKnowledgeStore(dimension=2, index_path=str(tmp_path))

        assert [r.id for r in await restored.search([1.0, 0.0], limit=5)] == ["z"]
        assert (await restored.get_by_id("k")).documents[0].id == "z"
