"""
Test Configuration

Shared fixtures and test utilities for the knowledge core.
"""

import io

import pytest
from PIL import Image

from lumen.knowledge.embeddings import HashEmbeddings
from lumen.knowledge.service import KnowledgeService
from lumen.knowledge.vector_store import InMemoryKnowledgeStore
from lumen.observability.logging import BufferHandler, LogLevel, StructuredLogger
from lumen.reasoning.llm import StubLLMAdapter


@pytest.fixture
def embedder():
    """Deterministic offline embedder."""
    return HashEmbeddings(dimension=256)


@pytest.fixture
def store():
    """Empty in-memory knowledge store."""
    return InMemoryKnowledgeStore()


@pytest.fixture
def log_buffer():
    """Captures every record written through the `logger` fixture."""
    return BufferHandler(level=LogLevel.DEBUG)


@pytest.fixture
def logger(log_buffer):
    """Structured logger writing to the buffer only."""
    StructuredLogger.clear_context()
    return StructuredLogger(name="lumen.test", level=LogLevel.DEBUG, handlers=[log_buffer])


@pytest.fixture
def stub_llm():
    """Offline LLM adapter with no scripted responses."""
    return StubLLMAdapter()


@pytest.fixture
def service(store, embedder, logger):
    """Knowledge service without rewriting or reranking."""
    return KnowledgeService(store=store, embedder=embedder, logger=logger)


@pytest.fixture
def make_image():
    """Factory producing encoded image bytes."""

    def _make(
        fmt: str = "PNG",
        size: tuple[int, int] = (8, 6),
        color: tuple[int, int, int] = (200, 30, 30),
        mode: str = "RGB",
    ) -> bytes:
        image = Image.new(mode, size, color if mode == "RGB" else color + (128,))
        buffer = io.BytesIO()
        image.save(buffer, format=fmt)
        return buffer.getvalue()

    return _make


@pytest.fixture
def employees_csv() -> bytes:
    """Small CSV with a header and three data rows."""
    return (
        "name,role,city\n"
        "Alice,Engineer,Seoul\n"
        "Bob,Designer,Busan\n"
        "Carol,Manager,Incheon\n"
    ).encode("utf-8")


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
