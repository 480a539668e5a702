"""
Core Types and Data Structures

Defines the fundamental types used throughout the knowledge core.
These are intentionally simple and serializable; input readers are the
exception because they wrap live byte streams.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, BinaryIO, Literal

from pydantic import BaseModel, Field


class MessageRole(str, Enum):
    """Role of a message sent to an LLM."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """A single prompt message."""

    role: MessageRole
    content: str

    class Config:
        frozen = True


class LLMResponse(BaseModel):
    """
    Response from an LLM call.

    Normalized across different providers.
    """

    content: str | None = None

    # Token usage
    input_tokens: int = 0
    output_tokens: int = 0

    # Metadata
    model: str
    finish_reason: str | None = None
    latency_ms: float = 0.0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class EmbeddingTaskType(str, Enum):
    """Lets providers pick asymmetric document/query embedding models."""

    DOCUMENT = "document"
    QUERY = "query"


class TextContent(BaseModel):
    """Text payload of a document."""

    type: Literal["text"] = "text"
    text: str
    mime_type: str = "text/plain"


class ImageContent(BaseModel):
    """Image payload of a document, base64-encoded."""

    type: Literal["image"] = "image"
    data: str
    mime_type: str = "image/jpeg"


Content = Annotated[TextContent | ImageContent, Field(discriminator="type")]


class Document(BaseModel):
    """
    One indexed, embeddable unit of content.

    Owned by its parent Knowledge. For text documents embedding_text is the
    exact embedding input; for images it is a descriptive label and the
    embedding is computed from the image bytes.
    """

    id: str = ""
    content: Content
    embedding_text: str
    embeddings: list[float] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_image(self) -> bool:
        return isinstance(self.content, ImageContent)

    @property
    def text(self) -> str:
        """Text content, or an empty string for images."""
        if isinstance(self.content, TextContent):
            return self.content.text
        return ""


class Knowledge(BaseModel):
    """A named, replaceable collection of documents."""

    id: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    documents: list[Document] = Field(default_factory=list)


class KnowledgeSearchResult(BaseModel):
    """Read-only projection of a document matched by a search."""

    id: str
    score: float
    embedding_text: str
    metadata: dict[str, Any] = Field(default_factory=dict)


def _read_all(content: BinaryIO | bytes | str) -> bytes:
    if isinstance(content, bytes):
        return content
    if isinstance(content, str):
        return content.encode("utf-8")
    data = content.read()
    if isinstance(data, str):
        return data.encode("utf-8")
    return data


@dataclass
class DocumentReader:
    """
    Input descriptor for one document.

    Consumed exactly once by an ingestion call; never stored.
    Content types: text/plain, text/markdown, text/csv,
    application/json (text/json), application/pdf.
    """

    content: BinaryIO | bytes | str
    content_type: str
    metadata: dict[str, Any] | None = None

    def read(self) -> bytes:
        return _read_all(self.content)


@dataclass
class ImageReader:
    """Input descriptor for one image (image/jpeg, png, gif, webp)."""

    content: BinaryIO | bytes
    content_type: str
    metadata: dict[str, Any] = field(default_factory=dict)

    def read(self) -> bytes:
        return _read_all(self.content)
