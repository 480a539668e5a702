"""
Document Loaders

Turn one input document (bytes plus content type) into embedded documents
and batch-level metadata.

Design decisions:
- One loader per format, selected by content type
- Unknown content types degrade to plain text with a warning
- Loaders only parse and chunk; the router embeds every loader's output
  in a single batch
"""

import asyncio
import csv
import io
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from lumen.core.exceptions import DocumentIngestionError, EmbeddingError
from lumen.core.types import Document, DocumentReader, EmbeddingTaskType, TextContent
from lumen.knowledge.chunking import MarkdownChunker, TextChunker
from lumen.knowledge.constants import (
    CONTENT_TYPE_CSV,
    CONTENT_TYPE_JSON,
    CONTENT_TYPE_MARKDOWN,
    CONTENT_TYPE_PDF,
    CONTENT_TYPE_TEXT,
    CONTENT_TYPE_TEXT_JSON,
    DEFAULT_CHUNK_SIZE,
    METADATA_KEY_SOURCE_TYPE,
    SOURCE_TYPE_CSV,
    SOURCE_TYPE_JSON,
    SOURCE_TYPE_MARKDOWN,
    SOURCE_TYPE_PDF,
    SOURCE_TYPE_TEXT,
    normalize_content_type,
)
from lumen.knowledge.embeddings import Embedder
from lumen.knowledge.extraction import documents_from_maps
from lumen.observability.logging import StructuredLogger, get_logger


@dataclass
class LoadedChunks:
    """Documents parsed from one input, not yet embedded."""

    documents: list[Document]
    metadata: dict[str, Any] = field(default_factory=dict)


def _decode(data: bytes) -> str:
    return data.decode("utf-8-sig", errors="replace")


def _text_documents(chunks: list[str], mime_type: str, number_key: str) -> list[Document]:
    return [
        Document(
            content=TextContent(text=chunk, mime_type=mime_type),
            embedding_text=chunk,
            metadata={number_key: i},
        )
        for i, chunk in enumerate(chunks, start=1)
    ]


class DocumentLoader(ABC):
    """Abstract document loader."""

    content_types: frozenset[str] = frozenset()

    def supports(self, content_type: str) -> bool:
        """Check if this loader handles the (normalized) content type."""
        return normalize_content_type(content_type) in self.content_types

    @abstractmethod
    async def load(self, data: bytes, logger: StructuredLogger) -> LoadedChunks:
        """Parse raw bytes into documents."""
        pass


class CSVLoader(DocumentLoader):
    """
    One document per data row.

    The first row is the header. Rows whose column count differs from the
    header are skipped with a warning; rows without any non-empty value are
    skipped silently.
    """

    content_types = frozenset({CONTENT_TYPE_CSV})

    async def load(self, data: bytes, logger: StructuredLogger) -> LoadedChunks:
        try:
            records = list(csv.reader(io.StringIO(_decode(data))))
        except csv.Error as e:
            raise DocumentIngestionError(f"failed to read CSV: {e}", cause=e) from e

        if not records:
            raise DocumentIngestionError("empty CSV file")

        # Blank lines are not rows
        headers, rows = records[0], [record for record in records[1:] if record]
        documents = []

        for row_number, row in enumerate(rows, start=1):
            if len(row) != len(headers):
                logger.warning(
                    "CSV row column count mismatch",
                    row=row_number,
                    expected=len(headers),
                    got=len(row),
                )
                continue

            parts = [f"{header}: {value}" for header, value in zip(headers, row) if value]
            if not parts:
                continue

            text = " | ".join(parts)
            documents.append(
                Document(
                    content=TextContent(text=text, mime_type=CONTENT_TYPE_TEXT),
                    embedding_text=text,
                    metadata={"row_number": row_number, "row_data": dict(zip(headers, row))},
                )
            )

        if not documents:
            raise DocumentIngestionError("no valid rows found in CSV")

        logger.info("Processed CSV", rows=len(documents), columns=len(headers))
        return LoadedChunks(
            documents,
            {
                METADATA_KEY_SOURCE_TYPE: SOURCE_TYPE_CSV,
                "total_rows": len(rows),
                "columns": headers,
            },
        )


class JSONLoader(DocumentLoader):
    """
    One document per object.

    Accepts an array of objects or a single object. Text comes from the
    generic map extraction; the object itself is the document metadata.
    """

    content_types = frozenset({CONTENT_TYPE_JSON, CONTENT_TYPE_TEXT_JSON})

    async def load(self, data: bytes, logger: StructuredLogger) -> LoadedChunks:
        try:
            parsed = json.loads(_decode(data))
        except json.JSONDecodeError as e:
            raise DocumentIngestionError(f"failed to parse JSON: {e}", cause=e) from e

        if isinstance(parsed, list) and all(isinstance(item, dict) for item in parsed):
            items, data_type = parsed, "array"
        elif isinstance(parsed, dict):
            items, data_type = [parsed], "object"
        else:
            raise DocumentIngestionError("failed to parse JSON as array or object")

        documents = documents_from_maps(items)
        if not documents:
            raise DocumentIngestionError(f"no valid items found in JSON {data_type}")

        logger.info("Processed JSON", items=len(documents), data_type=data_type)
        return LoadedChunks(
            documents,
            {
                METADATA_KEY_SOURCE_TYPE: SOURCE_TYPE_JSON,
                "total_items": len(items),
                "data_type": data_type,
            },
        )


class TextLoader(DocumentLoader):
    """Plain text, greedily packed into size-limited chunks."""

    content_types = frozenset({CONTENT_TYPE_TEXT})

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self._chunker = TextChunker(chunk_size)

    async def load(self, data: bytes, logger: StructuredLogger) -> LoadedChunks:
        text = _decode(data).strip()
        if not text:
            raise DocumentIngestionError("empty text content")

        chunks = [chunk for chunk in self._chunker.split(text) if chunk.strip()]
        documents = _text_documents(chunks, CONTENT_TYPE_TEXT, "chunk_number")

        logger.info("Processed text", chunks=len(documents), chars=len(text))
        return LoadedChunks(
            documents,
            {
                METADATA_KEY_SOURCE_TYPE: SOURCE_TYPE_TEXT,
                "total_chars": len(text),
                "chunk_count": len(documents),
            },
        )


class MarkdownLoader(DocumentLoader):
    """Markdown, split into header-delimited sections."""

    content_types = frozenset({CONTENT_TYPE_MARKDOWN})

    def __init__(self):
        self._chunker = MarkdownChunker()

    async def load(self, data: bytes, logger: StructuredLogger) -> LoadedChunks:
        text = _decode(data).strip()
        if not text:
            raise DocumentIngestionError("empty markdown content")

        sections = self._chunker.split(text)
        documents = _text_documents(sections, CONTENT_TYPE_MARKDOWN, "section_number")
        for document in documents:
            heading = MarkdownChunker.heading_of(document.text)
            if heading:
                document.metadata["heading"] = heading

        logger.info("Processed markdown", sections=len(documents), chars=len(text))
        return LoadedChunks(
            documents,
            {
                METADATA_KEY_SOURCE_TYPE: SOURCE_TYPE_MARKDOWN,
                "total_chars": len(text),
                "section_count": len(documents),
            },
        )


class PDFLoader(DocumentLoader):
    """
    PDF text, chunked like plain text.

    Requires pypdf package.
    """

    content_types = frozenset({CONTENT_TYPE_PDF})

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self._chunker = TextChunker(chunk_size)

    @staticmethod
    def _extract(data: bytes) -> tuple[list[str], dict[str, Any]]:
        try:
            from pypdf import PdfReader
        except ImportError:
            raise ImportError("pypdf required for PDF loading. Install with: pip install pypdf")

        try:
            reader = PdfReader(io.BytesIO(data))
            pages = [page.extract_text() or "" for page in reader.pages]
        except Exception as e:
            raise DocumentIngestionError(f"failed to read PDF: {e}", cause=e) from e

        metadata: dict[str, Any] = {"page_count": len(pages)}
        if reader.metadata:
            if reader.metadata.title:
                metadata["title"] = reader.metadata.title
            if reader.metadata.author:
                metadata["author"] = reader.metadata.author

        return pages, metadata

    async def load(self, data: bytes, logger: StructuredLogger) -> LoadedChunks:
        if not data:
            raise DocumentIngestionError("empty PDF content")

        pages, pdf_metadata = await asyncio.to_thread(self._extract, data)

        text = "\n\n".join(page.strip() for page in pages if page.strip())
        if not text:
            raise DocumentIngestionError("no extractable text in PDF")

        chunks = self._chunker.split(text)
        documents = _text_documents(chunks, CONTENT_TYPE_TEXT, "chunk_number")

        logger.info("Processed PDF", pages=pdf_metadata["page_count"], chunks=len(documents))
        return LoadedChunks(
            documents,
            {
                METADATA_KEY_SOURCE_TYPE: SOURCE_TYPE_PDF,
                **pdf_metadata,
                "total_chars": len(text),
                "chunk_count": len(documents),
            },
        )


class ContentRouter:
    """
    Dispatches documents to format loaders and embeds their output.

    Anything no loader claims is processed as plain text.
    """

    def __init__(
        self,
        embedder: Embedder,
        loaders: list[DocumentLoader] | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        logger: StructuredLogger | None = None,
    ):
        self._embedder = embedder
        self._fallback = TextLoader(chunk_size)
        self._loaders = loaders or [
            PDFLoader(chunk_size),
            CSVLoader(),
            JSONLoader(),
            MarkdownLoader(),
            self._fallback,
        ]
        self._logger = logger or get_logger("lumen.knowledge.loaders")

    def _find_loader(self, content_type: str) -> DocumentLoader:
        for loader in self._loaders:
            if loader.supports(content_type):
                return loader

        self._logger.warning(
            "Unknown content type, processing as plain text",
            content_type=content_type,
        )
        return self._fallback

    async def process(self, reader: DocumentReader) -> tuple[list[Document], dict[str, Any]]:
        """
        Parse, chunk and embed one document.

        Returns:
            Embedded documents (without IDs) and batch-level metadata

        Raises:
            DocumentIngestionError: content is unreadable or yields nothing
            EmbeddingError: embedding failed or returned the wrong count
        """
        loader = self._find_loader(reader.content_type)

        try:
            data = reader.read()
        except Exception as e:
            raise DocumentIngestionError(f"failed to read document: {e}", cause=e) from e

        loaded = await loader.load(data, self._logger)

        texts = [document.embedding_text for document in loaded.documents]
        embeddings = await self._embedder.embed_texts(EmbeddingTaskType.DOCUMENT, *texts)
        if len(embeddings) != len(loaded.documents):
            raise EmbeddingError(
                f"embedding count mismatch: got {len(embeddings)}, expected {len(loaded.documents)}"
            )

        for document, embedding in zip(loaded.documents, embeddings):
            document.embeddings = embedding

        return loaded.documents, loaded.metadata


async def process_document(
    reader: DocumentReader,
    embedder: Embedder,
    logger: StructuredLogger | None = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> tuple[list[Document], dict[str, Any]]:
    """Route one document by content type; see ContentRouter.process."""
    router = ContentRouter(embedder, chunk_size=chunk_size, logger=logger)
    return await router.process(reader)
