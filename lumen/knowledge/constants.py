"""Metadata keys, source types and content types shared by loaders and the service."""

METADATA_KEY_SOURCE_TYPE = "source_type"

SOURCE_TYPE_DOCUMENT = "document"
SOURCE_TYPE_CSV = "csv"
SOURCE_TYPE_JSON = "json"
SOURCE_TYPE_TEXT = "text"
SOURCE_TYPE_MARKDOWN = "markdown"
SOURCE_TYPE_PDF = "pdf"
SOURCE_TYPE_IMAGE = "image"
SOURCE_TYPE_MAP = "map"

CONTENT_TYPE_PDF = "application/pdf"
CONTENT_TYPE_CSV = "text/csv"
CONTENT_TYPE_JSON = "application/json"
CONTENT_TYPE_TEXT_JSON = "text/json"
CONTENT_TYPE_MARKDOWN = "text/markdown"
CONTENT_TYPE_TEXT = "text/plain"

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_JPEG_QUALITY = 85


def normalize_content_type(content_type: str | None) -> str:
    """Lower-case a content type and drop parameters such as charset."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def source_type_for(content_type: str | None) -> str:
    """Map a document content type to its source type; unknown types are text."""
    return {
        CONTENT_TYPE_PDF: SOURCE_TYPE_PDF,
        CONTENT_TYPE_CSV: SOURCE_TYPE_CSV,
        CONTENT_TYPE_JSON: SOURCE_TYPE_JSON,
        CONTENT_TYPE_TEXT_JSON: SOURCE_TYPE_JSON,
        CONTENT_TYPE_MARKDOWN: SOURCE_TYPE_MARKDOWN,
        CONTENT_TYPE_TEXT: SOURCE_TYPE_TEXT,
    }.get(normalize_content_type(content_type), SOURCE_TYPE_TEXT)
