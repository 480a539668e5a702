"""
Unit Tests - Chunking

Tests for the text and markdown splitters.
"""

import pytest

from lumen.knowledge.chunking import (
    MarkdownChunker,
    TextChunker,
    split_markdown_into_chunks,
    split_text_into_chunks,
)


class TestTextChunker:
    """Tests for greedy paragraph/sentence packing."""

    def test_short_text_is_single_chunk(self):
        """Text within the limit comes back unchanged."""
        text = "A short note about embeddings."
        assert split_text_into_chunks(text) == [text]

    def test_text_exactly_at_limit(self):
        text = "x" * 1000
        assert split_text_into_chunks(text) == [text]

    def test_empty_text(self):
        assert TextChunker().split("") == []

    def test_paragraphs_are_packed(self):
        """Paragraphs join with a blank line while the chunk fits."""
        a, b, c = "a" * 10, "b" * 10, "c" * 10
        text = f"{a}\n\n{b}\n\n{c}"

        chunks = TextChunker(chunk_size=25).split(text)

        assert chunks == [f"{a}\n\n{b}", c]

    def test_paragraph_overflow_starts_new_chunk(self):
        a, b, c = "a" * 10, "b" * 10, "c" * 10
        chunks = TextChunker(chunk_size=20).split(f"{a}\n\n{b}\n\n{c}")
        assert chunks == [a, b, c]

    def test_oversized_paragraph_split_by_sentences(self):
        """A paragraph over the limit is packed sentence by sentence."""
        text = "First sentence here. Second sentence here. Third one"

        chunks = TextChunker(chunk_size=30).split(text)

        assert chunks == ["First sentence here", "Second sentence here", "Third one"]

    def test_sentences_pack_together(self):
        text = "One. Two. Three. " + "z" * 40
        chunks = TextChunker(chunk_size=20).split(text)
        assert chunks[0] == "One. Two. Three"

    def test_oversized_sentence_is_force_split(self):
        chunks = TextChunker(chunk_size=10).split("x" * 25)
        assert chunks == ["x" * 10, "x" * 10, "x" * 5]

    def test_chunks_never_exceed_limit(self):
        """Every chunk respects the limit, whatever the input shape."""
        paragraph = ". ".join(f"Sentence number {i} talks about retrieval" for i in range(40))
        text = "\n\n".join([paragraph, "Short paragraph.", paragraph])

        chunks = TextChunker(chunk_size=200).split(text)

        assert len(chunks) > 1
        assert all(len(chunk) <= 200 for chunk in chunks)

    def test_invalid_chunk_size(self):
        with pytest.raises(ValueError):
            TextChunker(chunk_size=0)


class TestMarkdownChunker:
    """Tests for header-based markdown splitting."""

    def test_sibling_headers_split(self):
        """A same-level header closes the previous section."""
        chunks = split_markdown_into_chunks("# A\n\ntext\n\n# B\n\ntext2")
        assert chunks == ["# A\n\ntext", "# B\n\ntext2"]

    def test_subheaders_stay_in_parent(self):
        text = "# A\nintro\n## A1\nbody\n## A2\nmore\n# B\nend"

        chunks = split_markdown_into_chunks(text)

        assert chunks == ["# A\nintro\n## A1\nbody\n## A2\nmore", "# B\nend"]

    def test_higher_level_header_closes_section(self):
        chunks = split_markdown_into_chunks("## Setup\nsteps\n# Usage\nrun it")
        assert chunks == ["## Setup\nsteps", "# Usage\nrun it"]

    def test_monotonically_deepening_is_single_chunk(self):
        text = "# One\na\n## Two\nb\n### Three\nc"
        assert split_markdown_into_chunks(text) == [text]

    def test_preamble_joins_first_section(self):
        chunks = split_markdown_into_chunks("preface\n# A\nbody\n# B\nbody")
        assert chunks == ["preface\n# A\nbody", "# B\nbody"]

    def test_chunks_are_trimmed(self):
        chunks = split_markdown_into_chunks("# A\n\nbody\n\n\n# B\n\n")
        assert chunks == ["# A\n\nbody", "# B"]

    def test_heading_of(self):
        assert MarkdownChunker.heading_of("## Install\npip install") == "Install"
        assert MarkdownChunker.heading_of("plain text") is None
