"""
Unit Tests - Map Extraction

Tests for turning records into embedding text.
"""

from lumen.knowledge.extraction import documents_from_maps, extract_text_from_map


class TestExtractTextFromMap:
    """Tests for extract_text_from_map."""

    def test_priority_keys_in_order(self):
        """content, description, title come first, in that order."""
        data = {"title": "T", "description": "D", "content": "C"}
        assert extract_text_from_map(data) == "C D T"

    def test_priority_then_other_strings_sorted(self):
        """Other string values follow as bare values, ordered by key."""
        data = {"title": "Guide", "zone": "Z", "author": "Kim", "pages": 12}
        assert extract_text_from_map(data) == "Guide Kim Z"

    def test_fallback_to_key_value_pairs(self):
        data = {"info": "Technology hub", "city": "Seoul", "population": 9_700_000}
        assert extract_text_from_map(data) == "city: Seoul info: Technology hub"

    def test_non_string_values_excluded(self):
        data = {"count": 3, "active": True, "tags": ["a", "b"], "nested": {"x": "y"}}
        assert extract_text_from_map(data) == ""

    def test_blank_priority_value_is_ignored(self):
        data = {"title": "   ", "city": "Busan"}
        assert extract_text_from_map(data) == "city: Busan"

    def test_empty_map(self):
        assert extract_text_from_map({}) == ""


class TestDocumentsFromMaps:
    """Tests for documents_from_maps."""

    def test_one_document_per_usable_item(self):
        items = [
            {"title": "Refunds", "content": "Refunds take five days."},
            {"count": 1},
            {"question": "Shipping?", "answer": "Two days."},
        ]

        documents = documents_from_maps(items)

        assert len(documents) == 2
        assert documents[0].embedding_text == "Refunds take five days. Refunds"
        assert documents[0].text == documents[0].embedding_text
        assert documents[1].embedding_text == "answer: Two days. question: Shipping?"

    def test_metadata_is_a_copy_of_the_item(self):
        item = {"title": "Refunds", "priority": 2}

        documents = documents_from_maps([item])
        documents[0].metadata["extra"] = True

        assert documents[0].metadata["priority"] == 2
        assert "extra" not in item

    def test_ids_and_embeddings_are_left_empty(self):
        documents = documents_from_maps([{"content": "text"}])
        assert documents[0].id == ""
        assert documents[0].embeddings == []
