"""
Map to text extraction.

Turns schema-less records (JSON objects, caller-supplied dicts) into the
text that gets embedded. Only string values contribute text; numbers,
booleans and nested structures stay in metadata.
"""

from typing import Any

from lumen.core.types import Document, TextContent

PRIORITY_KEYS = ("content", "description", "title")


def _string_fields(data: dict[str, Any]) -> dict[str, str]:
    return {
        key: value
        for key, value in data.items()
        if isinstance(value, str) and value.strip()
    }


def extract_text_from_map(data: dict[str, Any]) -> str:
    """
    Build embedding text from a record.

    With any of `content`, `description`, `title` present, their values come
    first in that order, followed by the remaining string values (bare, in
    key order). Without them, every string field is rendered as
    "key: value" in key order.

    >>> extract_text_from_map({"title": "T", "description": "D", "content": "C"})
    'C D T'
    >>> extract_text_from_map({"city": "Seoul", "info": "Technology hub"})
    'city: Seoul info: Technology hub'
    """
    fields = _string_fields(data)

    priority = [fields[key] for key in PRIORITY_KEYS if key in fields]
    if priority:
        rest = [fields[key] for key in sorted(fields) if key not in PRIORITY_KEYS]
        return " ".join(priority + rest)

    return " ".join(f"{key}: {fields[key]}" for key in sorted(fields))


def documents_from_maps(items: list[dict[str, Any]]) -> list[Document]:
    """
    One text document per record with non-empty extracted text.

    The record itself becomes the document's metadata. IDs and embeddings
    are assigned by the caller.
    """
    documents = []
    for item in items:
        text = extract_text_from_map(item)
        if not text:
            continue

        documents.append(
            Document(
                content=TextContent(text=text, mime_type="text/plain"),
                embedding_text=text,
                metadata=dict(item),
            )
        )
    return documents
