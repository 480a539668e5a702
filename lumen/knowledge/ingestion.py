"""
Knowledge Ingestion Pipeline

Builds embedded Knowledge collections from records, documents and images.

Design decisions:
- Readers may arrive as a sync or async iterable, consumed lazily
- A failure raised by the input stream itself aborts the whole build
- A document or image that fails to parse is logged and skipped
- Embedding failures are fatal; a collection is never stored half-embedded
"""

import asyncio
from collections import Counter
from collections.abc import AsyncIterable, Iterable
from typing import Any, TypeVar

from lumen.core.exceptions import DocumentIngestionError, EmbeddingError
from lumen.core.types import DocumentReader, EmbeddingTaskType, ImageReader, Knowledge
from lumen.knowledge.constants import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_JPEG_QUALITY,
    METADATA_KEY_SOURCE_TYPE,
    SOURCE_TYPE_DOCUMENT,
    SOURCE_TYPE_IMAGE,
    SOURCE_TYPE_MAP,
    source_type_for,
)
from lumen.knowledge.embeddings import Embedder
from lumen.knowledge.extraction import documents_from_maps
from lumen.knowledge.images import image_bytes, process_image
from lumen.knowledge.loaders import ContentRouter
from lumen.observability.logging import StructuredLogger, get_logger

T = TypeVar("T")

ReaderStream = Iterable[T] | AsyncIterable[T]


class _InputStream:
    """
    Uniform async iteration over a sync or async reader stream.

    Anything the stream raises (or yields as an exception instance) becomes
    a DocumentIngestionError. The underlying generator is closed on exit.
    """

    def __init__(self, source: "ReaderStream[Any]"):
        self._is_async = hasattr(source, "__aiter__")
        self._iterator = source.__aiter__() if self._is_async else iter(source)

    async def __aenter__(self) -> "_InputStream":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._is_async:
            aclose = getattr(self._iterator, "aclose", None)
            if aclose is not None:
                await aclose()
        else:
            close = getattr(self._iterator, "close", None)
            if close is not None:
                close()

    def __aiter__(self) -> "_InputStream":
        return self

    async def __anext__(self) -> Any:
        try:
            if self._is_async:
                item = await self._iterator.__anext__()
            else:
                item = next(self._iterator)
        except (StopIteration, StopAsyncIteration):
            raise StopAsyncIteration
        except Exception as e:
            raise DocumentIngestionError(f"input stream failed: {e}", cause=e) from e

        if isinstance(item, Exception):
            raise DocumentIngestionError(f"input stream failed: {item}", cause=item) from item
        return item


class KnowledgeIngester:
    """
    Turns raw inputs into an embedded Knowledge, without storing it.

    Usage:
        ingester = KnowledgeIngester(embedder)
        knowledge = await ingester.build_from_documents("faq", readers)
    """

    def __init__(
        self,
        embedder: Embedder,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        jpeg_quality: int = DEFAULT_JPEG_QUALITY,
        logger: StructuredLogger | None = None,
    ):
        self._embedder = embedder
        self._jpeg_quality = jpeg_quality
        self._logger = logger or get_logger("lumen.knowledge.ingestion")
        self._router = ContentRouter(embedder, chunk_size=chunk_size, logger=self._logger)

    async def build_from_maps(self, knowledge_id: str, items: list[dict[str, Any]]) -> Knowledge:
        """One document per record with extractable text."""
        documents = documents_from_maps(items)
        if not documents:
            raise DocumentIngestionError(
                f"no valid items found for knowledge {knowledge_id}",
                context={"knowledge_id": knowledge_id, "item_count": len(items)},
            )

        texts = [document.embedding_text for document in documents]
        embeddings = await self._embedder.embed_texts(EmbeddingTaskType.DOCUMENT, *texts)
        if len(embeddings) != len(documents):
            raise EmbeddingError(
                f"embedding count mismatch: got {len(embeddings)}, expected {len(documents)}"
            )

        for number, (document, embedding) in enumerate(zip(documents, embeddings), start=1):
            document.id = f"{knowledge_id}_item_{number}"
            document.embeddings = embedding

        self._logger.info("Processed map items", items=len(documents))
        return Knowledge(
            id=knowledge_id,
            metadata={
                METADATA_KEY_SOURCE_TYPE: SOURCE_TYPE_MAP,
                "item_count": len(documents),
            },
            documents=documents,
        )

    async def build_from_documents(
        self,
        knowledge_id: str,
        readers: "ReaderStream[DocumentReader]",
    ) -> Knowledge:
        """
        Merge every readable document into one Knowledge.

        Raises:
            DocumentIngestionError: the stream failed, or nothing was usable
            EmbeddingError: embedding failed for any document
        """
        knowledge = Knowledge(id=knowledge_id)
        document_count = 0
        global_index = 1
        document_types: Counter[str] = Counter()

        async with _InputStream(readers) as stream:
            async for reader in stream:
                document_count += 1

                try:
                    documents, batch_metadata = await self._router.process(reader)
                except DocumentIngestionError as e:
                    self._logger.warning(
                        "Failed to process document",
                        document_number=document_count,
                        content_type=reader.content_type,
                        knowledge_id=knowledge_id,
                        error=e,
                    )
                    continue

                source_type = source_type_for(reader.content_type)
                document_types[source_type] += 1

                for document in documents:
                    document.id = f"{knowledge_id}_doc_{document_count}_{global_index}"
                    document.metadata.update(
                        {
                            "document_number": document_count,
                            "global_index": global_index,
                            "source_content_type": reader.content_type,
                            METADATA_KEY_SOURCE_TYPE: source_type,
                        }
                    )
                    for extra in (reader.metadata or {}, batch_metadata):
                        for key, value in extra.items():
                            document.metadata.setdefault(key, value)

                    knowledge.documents.append(document)
                    global_index += 1

        if not knowledge.documents:
            raise DocumentIngestionError(
                f"no valid documents found for knowledge {knowledge_id}",
                context={"knowledge_id": knowledge_id, "document_count": document_count},
            )

        types_list = sorted(f"{t}:{count}" for t, count in document_types.items())
        knowledge.metadata = {
            METADATA_KEY_SOURCE_TYPE: SOURCE_TYPE_DOCUMENT,
            "document_count": document_count,
            "total_chunks": global_index - 1,
            "document_types": types_list,
        }

        self._logger.info(
            "Processed multiple documents",
            document_count=document_count,
            total_chunks=len(knowledge.documents),
            document_types=types_list,
        )
        return knowledge

    async def build_from_images(
        self,
        knowledge_id: str,
        readers: "ReaderStream[ImageReader]",
        metadata: dict[str, Any] | None = None,
    ) -> Knowledge:
        """
        One image document per decodable image, embedded from its JPEG bytes.

        Caller metadata overrides computed and per-reader metadata.
        """
        metadata = metadata or {}
        knowledge = Knowledge(id=knowledge_id)
        image_count = 0
        global_image_number = 1

        async with _InputStream(readers) as stream:
            async for reader in stream:
                image_count += 1

                try:
                    document = await asyncio.to_thread(
                        process_image, reader, global_image_number, self._jpeg_quality
                    )
                except DocumentIngestionError as e:
                    self._logger.warning(
                        "Failed to process image",
                        image_number=image_count,
                        content_type=reader.content_type,
                        knowledge_id=knowledge_id,
                        error=e,
                    )
                    continue

                document.id = f"{knowledge_id}_image_{global_image_number}"
                document.metadata["image_number"] = image_count
                document.metadata["global_image_number"] = global_image_number
                document.metadata.update(reader.metadata or {})
                document.metadata.update(metadata)

                knowledge.documents.append(document)
                global_image_number += 1

        if not knowledge.documents:
            raise DocumentIngestionError(
                f"no valid images found for knowledge {knowledge_id}",
                context={"knowledge_id": knowledge_id, "image_count": image_count},
            )

        images = [image_bytes(document) for document in knowledge.documents]
        embeddings = await self._embedder.embed_images("image/jpeg", *images)
        if len(embeddings) != len(knowledge.documents):
            raise EmbeddingError(
                f"embedding count mismatch: got {len(embeddings)}, expected {len(knowledge.documents)}"
            )

        for document, embedding in zip(knowledge.documents, embeddings):
            document.embeddings = embedding

        knowledge.metadata = {
            METADATA_KEY_SOURCE_TYPE: SOURCE_TYPE_IMAGE,
            "image_count": image_count,
            "total_images": global_image_number - 1,
            **metadata,
        }

        self._logger.info(
            "Processed multiple images",
            image_count=image_count,
            total_images=len(knowledge.documents),
        )
        return knowledge
