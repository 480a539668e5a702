"""
Chunking Strategies

Split text into embeddable chunks.

Design decisions:
- Strategy pattern so loaders pick the splitter that fits their format
- Greedy packing: a chunk grows until the next piece would overflow it
- No overlap between chunks; every character lands in exactly one chunk
"""

from abc import ABC, abstractmethod

from lumen.knowledge.constants import DEFAULT_CHUNK_SIZE


class ChunkingStrategy(ABC):
    """Abstract chunking strategy."""

    @abstractmethod
    def split(self, text: str) -> list[str]:
        """Split text into chunks."""
        pass


class TextChunker(ChunkingStrategy):
    """
    Paragraph-then-sentence greedy packer.

    Paragraphs (separated by a blank line) are packed into chunks of at most
    `chunk_size` characters. A paragraph that alone exceeds the limit is
    packed by sentences (split on ". ") with the same rule. A single sentence
    longer than the limit is cut into limit-sized slices.
    """

    PARAGRAPH_SEPARATOR = "\n\n"
    SENTENCE_SEPARATOR = ". "

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        if chunk_size < 1:
            raise ValueError("chunk_size must be positive")
        self._chunk_size = chunk_size

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    def split(self, text: str) -> list[str]:
        if not text:
            return []

        if len(text) <= self._chunk_size:
            return [text]

        chunks: list[str] = []
        current = ""

        for paragraph in text.split(self.PARAGRAPH_SEPARATOR):
            if self._fits(current, paragraph, self.PARAGRAPH_SEPARATOR):
                current = self._join(current, paragraph, self.PARAGRAPH_SEPARATOR)
                continue

            if current:
                chunks.append(current)

            if len(paragraph) <= self._chunk_size:
                current = paragraph
                continue

            # Oversized paragraph: pack its sentences, keep the tail open
            sentence_chunks = self._pack_sentences(paragraph)
            chunks.extend(sentence_chunks[:-1])
            current = sentence_chunks[-1] if sentence_chunks else ""

        if current:
            chunks.append(current)

        return chunks

    def _pack_sentences(self, paragraph: str) -> list[str]:
        chunks: list[str] = []
        current = ""

        for sentence in paragraph.split(self.SENTENCE_SEPARATOR):
            if self._fits(current, sentence, self.SENTENCE_SEPARATOR):
                current = self._join(current, sentence, self.SENTENCE_SEPARATOR)
                continue

            if current:
                chunks.append(current)

            if len(sentence) <= self._chunk_size:
                current = sentence
            else:
                pieces = self._force_split(sentence)
                chunks.extend(pieces[:-1])
                current = pieces[-1]

        if current:
            chunks.append(current)

        return chunks

    def _fits(self, current: str, piece: str, separator: str) -> bool:
        if not current:
            return len(piece) <= self._chunk_size
        return len(current) + len(separator) + len(piece) <= self._chunk_size

    @staticmethod
    def _join(current: str, piece: str, separator: str) -> str:
        return f"{current}{separator}{piece}" if current else piece

    def _force_split(self, text: str) -> list[str]:
        return [text[i : i + self._chunk_size] for i in range(0, len(text), self._chunk_size)]


class MarkdownChunker(ChunkingStrategy):
    """
    Header-based markdown splitter.

    A header whose level is less than or equal to the level of the header
    that opened the current chunk starts a new chunk; deeper headers stay
    inside their parent. A document whose headers only ever get deeper
    therefore stays a single chunk.
    """

    def split(self, text: str) -> list[str]:
        chunks: list[str] = []
        current_lines: list[str] = []
        opening_level = 0  # 0 until the current chunk has seen a header

        for line in text.split("\n"):
            if line.startswith("#"):
                level = len(line) - len(line.lstrip("#"))

                if level <= opening_level and current_lines:
                    chunks.append("\n".join(current_lines).strip())
                    current_lines = []
                    opening_level = level
                elif not opening_level:
                    opening_level = level

            current_lines.append(line)

        if current_lines:
            chunks.append("\n".join(current_lines).strip())

        return [chunk for chunk in chunks if chunk]

    @staticmethod
    def heading_of(chunk: str) -> str | None:
        """First header line of a chunk, without the leading hashes."""
        first_line = chunk.split("\n", 1)[0]
        if first_line.startswith("#"):
            return first_line.lstrip("#").strip() or None
        return None


def split_text_into_chunks(text: str, max_chunk_size: int = DEFAULT_CHUNK_SIZE) -> list[str]:
    """Greedy paragraph/sentence packing; see TextChunker."""
    return TextChunker(max_chunk_size).split(text)


def split_markdown_into_chunks(text: str) -> list[str]:
    """Header-level section splitting; see MarkdownChunker."""
    return MarkdownChunker().split(text)
