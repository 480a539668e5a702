"""
Integration Tests - Knowledge Pipeline

End-to-end ingestion and retrieval with the offline embedder, real
loaders, the in-memory (or FAISS) store, and scripted LLM responses.
"""

import pytest
import pytest_asyncio

from lumen.core.exceptions import KnowledgeNotFoundError
from lumen.core.types import DocumentReader, ImageReader
from lumen.knowledge.embeddings import HashEmbeddings
from lumen.knowledge.images import image_bytes
from lumen.knowledge.reranker import BatchLLMReranker
from lumen.knowledge.rewriter import LLMQueryRewriter
from lumen.knowledge.service import KnowledgeService
from lumen.knowledge.vector_store import InMemoryKnowledgeStore
from lumen.reasoning.llm import StubLLMAdapter, StubResponse

HANDBOOK = """# Leave

Employees receive fifteen vacation days per year.

## Sick leave

Sick leave requires a doctor's note after three days.

# Equipment

Laptops are replaced every three years.
"""


@pytest.mark.integration
class TestCsvRetrieval:
    @pytest.mark.asyncio
    async def test_query_finds_matching_row(self, service, employees_csv):
        await service.index_from_documents("staff", [DocumentReader(employees_csv, "text/csv")])

        results = await service.retrieve_relevant("software engineer", limit=1)

        assert len(results) == 1
        assert "role: Engineer" in results[0].embedding_text
        assert results[0].metadata["row_data"]["name"] == "Alice"
        assert results[0].metadata["source_type"] == "csv"


@pytest.mark.integration
class TestMixedKnowledge:
    """Several knowledge IDs sharing one store."""

    @pytest_asyncio.fixture
    async def populated(self, service, employees_csv, make_image):
        await service.index_from_documents(
            "handbook",
            [
                DocumentReader(HANDBOOK, "text/markdown"),
                DocumentReader(employees_csv, "text/csv"),
            ],
        )
        await service.index_from_map(
            "faq",
            [
                {"title": "Vacation carry-over", "content": "Unused vacation days carry over once."},
                {"title": "Expenses", "content": "Submit receipts within a month."},
            ],
        )
        await service.index_from_images(
            "photos",
            [ImageReader(make_image("PNG"), "image/png"), ImageReader(make_image("JPEG"), "image/jpeg")],
            metadata={"album": "office"},
        )
        return service

    @pytest.mark.asyncio
    async def test_markdown_sections(self, populated):
        knowledge = await populated.get_knowledge("handbook")

        markdown = [d for d in knowledge.documents if d.metadata["source_type"] == "markdown"]
        assert len(markdown) == 2
        assert markdown[0].embedding_text.startswith("# Leave")
        assert "## Sick leave" in markdown[0].embedding_text
        assert markdown[1].embedding_text.startswith("# Equipment")
        assert knowledge.metadata["document_types"] == ["csv:1", "markdown:1"]

    @pytest.mark.asyncio
    async def test_allowed_ids_restrict_search(self, populated):
        results = await populated.retrieve_relevant(
            "vacation days", limit=10, allowed_knowledge_ids=["faq"]
        )

        assert results
        assert all(r.id.startswith("faq_item_") for r in results)
        assert results[0].id == "faq_item_1"

    @pytest.mark.asyncio
    async def test_search_across_all(self, populated):
        results = await populated.retrieve_relevant("vacation days", limit=20)

        found = {r.id.split("_")[0] for r in results}
        assert {"handbook", "faq"} <= found
        assert [r.score for r in results] == sorted((r.score for r in results), reverse=True)

    @pytest.mark.asyncio
    async def test_images_stored_as_jpeg(self, populated):
        knowledge = await populated.get_knowledge("photos")

        assert knowledge.metadata["total_images"] == 2
        for document in knowledge.documents:
            assert image_bytes(document)[:2] == b"\xff\xd8"
            assert document.metadata["album"] == "office"

    @pytest.mark.asyncio
    async def test_delete_one_knowledge(self, populated):
        await populated.delete_knowledge("faq")

        with pytest.raises(KnowledgeNotFoundError):
            await populated.get_knowledge("faq")

        results = await populated.retrieve_relevant("vacation days", limit=20)
        assert not any(r.id.startswith("faq_") for r in results)
        assert (await populated.get_knowledge("handbook")).documents


@pytest.mark.integration
class TestRewriteAndRerank:
    """Full retrieval with scripted rewriting and listwise reranking."""

    @pytest.mark.asyncio
    async def test_pipeline(self, logger):
        llm = StubLLMAdapter(
            responses=[
                StubResponse(pattern="paraphrase", content="holiday allowance\nannual leave"),
                StubResponse(pattern=r"Documents:", content="[2, 0]"),
            ]
        )
        service = KnowledgeService(
            store=InMemoryKnowledgeStore(),
            embedder=HashEmbeddings(),
            rewriter=LLMQueryRewriter(llm, max_queries=3),
            reranker=BatchLLMReranker(llm),
            rerank_enabled=True,
            retrieval_factor=3,
            logger=logger,
            llm=llm,
        )
        await service.index_from_map(
            "faq",
            [
                {"content": "vacation days reset in January"},
                {"content": "holiday allowance is fifteen days"},
                {"content": "annual leave requests need approval"},
                {"content": "parking permits are issued monthly"},
            ],
        )

        results = await service.retrieve_relevant("vacation days", limit=2)

        assert len(results) == 2
        assert llm.call_count == 2
        rerank_prompt = llm.requests[1][-1].content
        assert "Query: vacation days" in rerank_prompt

        await service.close()
