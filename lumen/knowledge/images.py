"""
Image Processing

Decode an uploaded image and normalize it to base64 JPEG for storage.
"""

import base64
import io
from typing import Any

from PIL import Image

from lumen.core.exceptions import DocumentIngestionError
from lumen.core.types import Document, ImageContent, ImageReader
from lumen.knowledge.constants import DEFAULT_JPEG_QUALITY, normalize_content_type

# Declared MIME type -> Pillow format; anything else is auto-detected
DECLARED_FORMATS = {
    "image/jpeg": "JPEG",
    "image/jpg": "JPEG",
    "image/png": "PNG",
    "image/gif": "GIF",
    "image/webp": "WEBP",
}


def decode_image(data: bytes, content_type: str) -> Image.Image:
    """
    Decode image bytes with the declared format, or auto-detect.

    Raises:
        DocumentIngestionError: the bytes are not a decodable image
    """
    declared = DECLARED_FORMATS.get(normalize_content_type(content_type))
    formats = [declared] if declared else None

    try:
        image = Image.open(io.BytesIO(data), formats=formats)
        image.load()
    except Exception as e:
        raise DocumentIngestionError(
            f"failed to decode image: {e}",
            context={"content_type": content_type},
            cause=e,
        ) from e

    return image


def encode_jpeg(image: Image.Image, quality: int = DEFAULT_JPEG_QUALITY) -> bytes:
    buffer = io.BytesIO()
    image.convert("RGB").save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


def process_image(
    reader: ImageReader,
    image_number: int,
    jpeg_quality: int = DEFAULT_JPEG_QUALITY,
) -> Document:
    """
    Turn one image into an (unembedded) image document.

    Every decodable image is re-encoded to JPEG, whatever its source
    format, so stored content and vision embeddings share one MIME type.
    """
    try:
        data = reader.read()
    except Exception as e:
        raise DocumentIngestionError(f"failed to read image data: {e}", cause=e) from e

    if not data:
        raise DocumentIngestionError("empty image data")

    image = decode_image(data, reader.content_type)
    original_format = (image.format or "unknown").lower()
    width, height = image.size

    try:
        jpeg_data = encode_jpeg(image, jpeg_quality)
    except Exception as e:
        raise DocumentIngestionError(f"failed to encode image as JPEG: {e}", cause=e) from e

    metadata: dict[str, Any] = {
        "image_number": image_number,
        "original_format": original_format,
        "width": width,
        "height": height,
        "size_bytes": len(data),
    }

    return Document(
        content=ImageContent(
            data=base64.b64encode(jpeg_data).decode("ascii"),
            mime_type="image/jpeg",
        ),
        embedding_text=f"Image {image_number}",
        metadata=metadata,
    )


def image_bytes(document: Document) -> bytes:
    """Raw JPEG bytes of an image document."""
    if not isinstance(document.content, ImageContent):
        raise DocumentIngestionError(
            "document has no image content", context={"document_id": document.id}
        )
    return base64.b64decode(document.content.data)
