"""
Knowledge Store

Persist Knowledge collections and search their document embeddings.

Design decisions:
- Abstract interface for backend independence
- store() replaces everything held under a knowledge ID
- Cosine similarity, ties broken by document ID for deterministic order
- Mutations are serialized per knowledge ID; searches never observe a
  half-replaced document set
"""

import asyncio
import json
import weakref
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from lumen.core.exceptions import KnowledgeNotFoundError, SearchError, VectorStoreError
from lumen.core.types import Document, Knowledge, KnowledgeSearchResult
from lumen.observability.logging import StructuredLogger, get_logger


def _normalize_rows(matrix: np.ndarray) -> np.ndarray:
    """L2 normalize rows for cosine similarity; zero rows stay zero."""
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return matrix / norms


def _embedding_matrix(knowledge: Knowledge) -> np.ndarray:
    if not knowledge.documents:
        return np.zeros((0, 0), dtype=np.float32)

    dimensions = {len(document.embeddings) for document in knowledge.documents}
    if 0 in dimensions:
        raise VectorStoreError(
            "document has no embedding", context={"knowledge_id": knowledge.id}
        )
    if len(dimensions) > 1:
        raise VectorStoreError(
            "documents have inconsistent embedding dimensions",
            context={"knowledge_id": knowledge.id, "dimensions": sorted(dimensions)},
        )

    matrix = np.array([document.embeddings for document in knowledge.documents], dtype=np.float32)
    return _normalize_rows(matrix)


def _to_result(document: Document, score: float) -> KnowledgeSearchResult:
    return KnowledgeSearchResult(
        id=document.id,
        score=score,
        embedding_text=document.embedding_text,
        metadata=dict(document.metadata),
    )


def _rank(scored: list[tuple[float, Document]], limit: int) -> list[KnowledgeSearchResult]:
    scored.sort(key=lambda item: (-item[0], item[1].id))
    return [_to_result(document, score) for score, document in scored[:limit]]


class KnowledgeStore(ABC):
    """
    Abstract knowledge store interface.

    Callers that want clean-replace semantics delete the ID before storing.
    """

    @abstractmethod
    async def store(self, knowledge: Knowledge) -> None:
        """Store a knowledge collection, replacing any prior contents for its ID."""
        pass

    @abstractmethod
    async def search(
        self,
        query_vector: list[float],
        limit: int,
        allowed_ids: list[str] | None = None,
    ) -> list[KnowledgeSearchResult]:
        """
        Search documents by similarity to a query vector.

        Args:
            query_vector: Query embedding
            limit: Maximum number of results
            allowed_ids: Knowledge IDs to search; empty or None searches all

        Returns:
            Results ordered by descending score, then document ID
        """
        pass

    @abstractmethod
    async def delete_by_id(self, knowledge_id: str) -> None:
        """Remove a knowledge collection. Absent IDs are a no-op."""
        pass

    @abstractmethod
    async def get_by_id(self, knowledge_id: str) -> Knowledge:
        """Get a knowledge collection, or raise KnowledgeNotFoundError."""
        pass

    async def close(self) -> None:
        """Release resources."""
        pass


class _IdLocks:
    """
    Lazily created asyncio locks, one per knowledge ID.

    Entries live only while some caller holds or awaits the lock.
    """

    def __init__(self):
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def __call__(self, knowledge_id: str) -> asyncio.Lock:
        lock = self._locks.get(knowledge_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[knowledge_id] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)


@dataclass(frozen=True)
class _Generation:
    """Immutable snapshot of one stored knowledge collection."""

    knowledge: Knowledge
    matrix: np.ndarray


class InMemoryKnowledgeStore(KnowledgeStore):
    """
    In-memory knowledge store using numpy.

    Each knowledge ID maps to an immutable generation (a private copy of
    the Knowledge plus its normalized embedding matrix). Replacing a
    collection swaps the generation in a single assignment. Collections
    whose dimension differs from the query are skipped, not fatal.
    """

    def __init__(self, logger: StructuredLogger | None = None):
        self._generations: dict[str, _Generation] = {}
        self._locks = _IdLocks()
        self._logger = logger or get_logger("lumen.knowledge.vector_store")

    async def store(self, knowledge: Knowledge) -> None:
        snapshot = knowledge.model_copy(deep=True)
        generation = _Generation(knowledge=snapshot, matrix=_embedding_matrix(snapshot))

        async with self._locks(knowledge.id):
            self._generations[knowledge.id] = generation

    async def search(
        self,
        query_vector: list[float],
        limit: int,
        allowed_ids: list[str] | None = None,
    ) -> list[KnowledgeSearchResult]:
        if limit <= 0 or not query_vector:
            return []

        generations = list(self._generations.values())
        if allowed_ids:
            allowed = set(allowed_ids)
            generations = [g for g in generations if g.knowledge.id in allowed]

        query = _normalize_rows(np.array([query_vector], dtype=np.float32))[0]

        scored: list[tuple[float, Document]] = []
        for generation in generations:
            if not generation.knowledge.documents:
                continue

            if generation.matrix.shape[1] != query.shape[0]:
                self._logger.warning(
                    "Skipping knowledge with mismatched embedding dimension",
                    knowledge_id=generation.knowledge.id,
                    query_dimension=query.shape[0],
                    stored_dimension=generation.matrix.shape[1],
                )
                continue

            scores = generation.matrix @ query
            scored.extend(
                (float(score), document)
                for score, document in zip(scores, generation.knowledge.documents)
            )

        return _rank(scored, limit)

    async def delete_by_id(self, knowledge_id: str) -> None:
        async with self._locks(knowledge_id):
            self._generations.pop(knowledge_id, None)

    async def get_by_id(self, knowledge_id: str) -> Knowledge:
        generation = self._generations.get(knowledge_id)
        if generation is None:
            raise KnowledgeNotFoundError(knowledge_id)
        return generation.knowledge.model_copy(deep=True)

    async def count(self) -> int:
        """Count stored documents across all collections."""
        return sum(len(g.knowledge.documents) for g in self._generations.values())


class FAISSKnowledgeStore(KnowledgeStore):
    """
    FAISS-based knowledge store.

    Uses Facebook AI Similarity Search for efficient local vector search.
    Good for development and single-node deployments.

    Limitations:
    - In-memory (requires save/load for persistence)
    - Single-node only
    - Knowledge ID filtering is applied after the search
    """

    INDEX_FILE = "index.faiss"
    STATE_FILE = "state.json"

    def __init__(self, dimension: int, index_path: str | None = None):
        self._dimension = dimension
        self._index_path = Path(index_path) if index_path else None

        self._index = None
        self._knowledge: dict[str, Knowledge] = {}
        self._faiss_ids: dict[str, list[int]] = {}  # knowledge ID -> FAISS int IDs
        self._documents: dict[int, tuple[str, Document]] = {}  # FAISS int ID -> (knowledge ID, doc)
        self._next_id = 0
        self._locks = _IdLocks()

        self._initialize_index()

    def _initialize_index(self) -> None:
        """Initialize FAISS index."""
        try:
            import faiss
        except ImportError:
            raise ImportError(
                "faiss required. Install with: pip install faiss-cpu "
                "or pip install faiss-gpu"
            )

        # Inner product over normalized vectors is cosine similarity
        self._index = faiss.IndexIDMap2(faiss.IndexFlatIP(self._dimension))

        if self._index_path and (self._index_path / self.STATE_FILE).exists():
            self.load()

    @property
    def dimension(self) -> int:
        return self._dimension

    def _remove(self, knowledge_id: str) -> None:
        ids = self._faiss_ids.pop(knowledge_id, [])
        if ids:
            self._index.remove_ids(np.array(ids, dtype=np.int64))
        for internal_id in ids:
            self._documents.pop(internal_id, None)
        self._knowledge.pop(knowledge_id, None)

    async def store(self, knowledge: Knowledge) -> None:
        snapshot = knowledge.model_copy(deep=True)
        matrix = _embedding_matrix(snapshot)

        if snapshot.documents and matrix.shape[1] != self._dimension:
            raise VectorStoreError(
                f"Expected dimension {self._dimension}, got {matrix.shape[1]}",
                context={"knowledge_id": knowledge.id},
            )

        async with self._locks(knowledge.id):
            self._remove(knowledge.id)

            ids = list(range(self._next_id, self._next_id + len(snapshot.documents)))
            self._next_id += len(ids)
            if ids:
                self._index.add_with_ids(matrix, np.array(ids, dtype=np.int64))

            for internal_id, document in zip(ids, snapshot.documents):
                self._documents[internal_id] = (knowledge.id, document)
            self._faiss_ids[knowledge.id] = ids
            self._knowledge[knowledge.id] = snapshot

    async def search(
        self,
        query_vector: list[float],
        limit: int,
        allowed_ids: list[str] | None = None,
    ) -> list[KnowledgeSearchResult]:
        if limit <= 0 or self._index.ntotal == 0:
            return []

        if len(query_vector) != self._dimension:
            raise SearchError(
                f"Expected dimension {self._dimension}, got {len(query_vector)}"
            )

        query = _normalize_rows(np.array([query_vector], dtype=np.float32))
        allowed = set(allowed_ids) if allowed_ids else None

        # Post-filtering needs every candidate; a flat index scans them all anyway
        search_k = self._index.ntotal if allowed else min(limit, self._index.ntotal)
        distances, indices = self._index.search(query, search_k)

        scored: list[tuple[float, Document]] = []
        for dist, idx in zip(distances[0], indices[0]):
            if idx == -1:
                continue

            entry = self._documents.get(int(idx))
            if entry is None:
                continue

            knowledge_id, document = entry
            if allowed is not None and knowledge_id not in allowed:
                continue

            scored.append((float(dist), document))

        return _rank(scored, limit)

    async def delete_by_id(self, knowledge_id: str) -> None:
        async with self._locks(knowledge_id):
            self._remove(knowledge_id)

    async def get_by_id(self, knowledge_id: str) -> Knowledge:
        knowledge = self._knowledge.get(knowledge_id)
        if knowledge is None:
            raise KnowledgeNotFoundError(knowledge_id)
        return knowledge.model_copy(deep=True)

    async def count(self) -> int:
        """Count indexed documents."""
        return int(self._index.ntotal)

    def save(self, path: str | None = None) -> None:
        """Save index and knowledge state to a directory."""
        import faiss

        target = Path(path) if path else self._index_path
        if target is None:
            raise VectorStoreError("no index path configured for save")

        target.mkdir(parents=True, exist_ok=True)
        faiss.write_index(self._index, str(target / self.INDEX_FILE))

        state = {
            "next_id": self._next_id,
            "faiss_ids": self._faiss_ids,
            "knowledge": {kid: k.model_dump(mode="json") for kid, k in self._knowledge.items()},
        }
        with open(target / self.STATE_FILE, "w") as f:
            json.dump(state, f)

    def load(self, path: str | None = None) -> None:
        """Load index and knowledge state from a directory."""
        import faiss

        source = Path(path) if path else self._index_path
        if source is None or not (source / self.STATE_FILE).exists():
            raise VectorStoreError("no saved index found", context={"path": str(source)})

        index_file = source / self.INDEX_FILE
        if index_file.exists():
            self._index = faiss.read_index(str(index_file))

        with open(source / self.STATE_FILE) as f:
            state = json.load(f)

        self._next_id = state["next_id"]
        self._faiss_ids = {kid: list(ids) for kid, ids in state["faiss_ids"].items()}
        self._knowledge = {
            kid: Knowledge.model_validate(data) for kid, data in state["knowledge"].items()
        }
        self._documents = {}
        for kid, ids in self._faiss_ids.items():
            for internal_id, document in zip(ids, self._knowledge[kid].documents):
                self._documents[internal_id] = (kid, document)

    async def close(self) -> None:
        if self._index_path is not None:
            self.save()
