"""
Lumen: Knowledge Ingestion and Retrieval Core

Turns heterogeneous content (CSV, JSON, text, markdown, PDF, images) into
embedded, searchable knowledge and answers relevance queries with query
rewriting, vector search, weighted merging and optional reranking.
"""

__version__ = "0.1.0"
