"""
Embedding Service

Turn text and images into fixed-dimension vectors.
Abstracts different embedding providers.

Design decisions:
- Provider-agnostic interface with a task type, so providers can use
  asymmetric document/query models
- Output count must match input count; anything else is an EmbeddingError
- Provider failures are wrapped in EmbeddingError with the cause chained
"""

import asyncio
import hashlib
import json
import math
import re
from abc import ABC, abstractmethod
from io import BytesIO
from typing import Any

import httpx
import numpy as np

from lumen.config.settings import EmbeddingSettings
from lumen.core.exceptions import ConfigurationError, EmbeddingError
from lumen.core.types import EmbeddingTaskType


class Embedder(ABC):
    """
    Abstract embedding service.

    Generates dense vector representations of text (and, where the
    provider supports it, images) for semantic similarity search.
    """

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Embedding dimension."""
        pass

    @abstractmethod
    async def _embed_texts(
        self, task_type: EmbeddingTaskType, texts: list[str]
    ) -> list[list[float]]:
        """Provider call for a non-empty list of texts."""
        pass

    async def _embed_images(self, mime_type: str, images: list[bytes]) -> list[list[float]]:
        raise EmbeddingError(
            f"{type(self).__name__} does not support image embeddings",
            context={"mime_type": mime_type},
        )

    async def embed_texts(
        self, task_type: EmbeddingTaskType, *texts: str
    ) -> list[list[float]]:
        """Embed texts; one vector per input, in order."""
        if not texts:
            return []
        try:
            vectors = await self._embed_texts(task_type, list(texts))
        except EmbeddingError:
            raise
        except Exception as e:
            raise EmbeddingError(f"failed to embed texts: {e}", cause=e) from e
        return self._check_count(vectors, len(texts))

    async def embed_images(self, mime_type: str, *images: bytes) -> list[list[float]]:
        """Embed raw image bytes; one vector per input, in order."""
        if not images:
            return []
        try:
            vectors = await self._embed_images(mime_type, list(images))
        except EmbeddingError:
            raise
        except Exception as e:
            raise EmbeddingError(f"failed to embed images: {e}", cause=e) from e
        return self._check_count(vectors, len(images))

    @staticmethod
    def _check_count(vectors: list[list[float]], expected: int) -> list[list[float]]:
        if len(vectors) != expected:
            raise EmbeddingError(
                f"embedding count mismatch: got {len(vectors)}, expected {expected}",
                context={"got": len(vectors), "expected": expected},
            )
        return vectors

    async def close(self) -> None:
        """Release provider resources."""
        pass


class NomicEmbeddings(Embedder):
    """
    Nomic Atlas embedding service.

    Text uses nomic-embed-text with search_document / search_query task
    types; images use nomic-embed-vision, which shares the text model's
    768-dimensional space.
    """

    TASK_TYPES = {
        EmbeddingTaskType.DOCUMENT: "search_document",
        EmbeddingTaskType.QUERY: "search_query",
    }

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api-atlas.nomic.ai/v1",
        text_model: str = "nomic-embed-text-v1.5",
        vision_model: str = "nomic-embed-vision-v1.5",
        dimension: int = 768,
        timeout: float = 60.0,
        batch_size: int = 64,
        client: httpx.AsyncClient | None = None,
    ):
        if not api_key:
            raise ConfigurationError(
                "Nomic API key is required",
                context={"setting": "EMBEDDING_NOMIC_API_KEY"},
            )
        self._text_model = text_model
        self._vision_model = vision_model
        self._dimension = dimension
        self._batch_size = batch_size
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Authorization": f"Bearer {api_key}"},
        )

    @property
    def dimension(self) -> int:
        return self._dimension

    async def _post(self, path: str, **kwargs: Any) -> list[list[float]]:
        response = await self._client.post(path, **kwargs)
        if response.status_code >= 400:
            raise EmbeddingError(
                f"nomic embedding request failed with status {response.status_code}",
                context={"path": path, "body": response.text[:500]},
            )
        return response.json()["embeddings"]

    async def _embed_texts(
        self, task_type: EmbeddingTaskType, texts: list[str]
    ) -> list[list[float]]:
        vectors: list[list[float]] = []
        for i in range(0, len(texts), self._batch_size):
            vectors.extend(
                await self._post(
                    "/embedding/text",
                    json={
                        "model": self._text_model,
                        "texts": texts[i : i + self._batch_size],
                        "task_type": self.TASK_TYPES[task_type],
                        "dimensionality": self._dimension,
                    },
                )
            )
        return vectors

    async def _embed_images(self, mime_type: str, images: list[bytes]) -> list[list[float]]:
        extension = mime_type.split("/")[-1]
        vectors: list[list[float]] = []
        for start in range(0, len(images), self._batch_size):
            batch = images[start : start + self._batch_size]
            files = [
                ("images", (f"image_{start + i}.{extension}", data, mime_type))
                for i, data in enumerate(batch)
            ]
            vectors.extend(
                await self._post(
                    "/embedding/image",
                    data={"model": self._vision_model},
                    files=files,
                )
            )
        return vectors

    async def close(self) -> None:
        await self._client.aclose()


class OpenAIEmbeddings(Embedder):
    """
    OpenAI embedding service.

    Uses text-embedding-3-small/large models. Text only.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "text-embedding-3-small",
        dimensions: int | None = None,  # Optional dimension reduction
        base_url: str | None = None,
    ):
        if not api_key and not base_url:
            raise ConfigurationError(
                "OpenAI API key is required",
                context={"setting": "EMBEDDING_OPENAI_API_KEY"},
            )
        self._model = model
        self._dimensions = dimensions
        self._api_key = api_key
        self._base_url = base_url
        self._client = None

    def _get_client(self):
        if self._client is None:
            try:
                from openai import AsyncOpenAI
            except ImportError:
                raise ImportError("openai package required. Install with: pip install openai")

            kwargs: dict[str, Any] = {}
            if self._api_key:
                kwargs["api_key"] = self._api_key
            if self._base_url:
                kwargs["base_url"] = self._base_url

            self._client = AsyncOpenAI(**kwargs)
        return self._client

    @property
    def dimension(self) -> int:
        if self._dimensions:
            return self._dimensions

        if "3-large" in self._model:
            return 3072
        return 1536

    async def _embed_texts(
        self, task_type: EmbeddingTaskType, texts: list[str]
    ) -> list[list[float]]:
        client = self._get_client()

        kwargs: dict[str, Any] = {
            "model": self._model,
            "input": texts,
        }
        if self._dimensions:
            kwargs["dimensions"] = self._dimensions

        response = await client.embeddings.create(**kwargs)
        ordered = sorted(response.data, key=lambda item: item.index)
        return [item.embedding for item in ordered]

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()


class LocalEmbeddings(Embedder):
    """
    Local embedding service using sentence-transformers.

    Runs on CPU/GPU locally, no API calls needed. CLIP-style models
    (e.g. clip-ViT-B-32) also embed images.
    """

    def __init__(
        self,
        model_name: str = "all-MiniLM-L6-v2",
        device: str = "cpu",
    ):
        self._model_name = model_name
        self._device = device
        self._model = None

    def _get_model(self):
        if self._model is None:
            try:
                from sentence_transformers import SentenceTransformer
            except ImportError:
                raise ImportError(
                    "sentence-transformers required. Install with: "
                    "pip install sentence-transformers"
                )

            self._model = SentenceTransformer(self._model_name, device=self._device)
        return self._model

    @property
    def dimension(self) -> int:
        return self._get_model().get_sentence_embedding_dimension()

    async def _embed_texts(
        self, task_type: EmbeddingTaskType, texts: list[str]
    ) -> list[list[float]]:
        model = self._get_model()
        embeddings = await asyncio.to_thread(model.encode, texts, convert_to_numpy=True)
        return embeddings.tolist()

    async def _embed_images(self, mime_type: str, images: list[bytes]) -> list[list[float]]:
        from PIL import Image

        model = self._get_model()
        decoded = [Image.open(BytesIO(data)).convert("RGB") for data in images]
        embeddings = await asyncio.to_thread(model.encode, decoded, convert_to_numpy=True)
        return embeddings.tolist()


class HashEmbeddings(Embedder):
    """
    Deterministic offline embedder.

    Hashes lower-cased word tokens into signed buckets (feature hashing) and
    L2-normalizes, so texts sharing words have positive cosine similarity.
    Images are mapped to a pseudo-random unit vector seeded by their bytes.
    Intended for tests and offline development, not for real relevance.
    """

    _TOKEN = re.compile(r"\w+")

    def __init__(self, dimension: int = 256):
        if dimension < 1:
            raise ConfigurationError("hash embedding dimension must be positive")
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed_text_sync(self, text: str) -> list[float]:
        vector = [0.0] * self._dimension
        for token in self._TOKEN.findall(text.lower()):
            digest = hashlib.md5(token.encode()).digest()
            bucket = int.from_bytes(digest[:8], "little") % self._dimension
            sign = 1.0 if digest[8] & 1 else -1.0
            vector[bucket] += sign

        norm = math.sqrt(sum(x * x for x in vector))
        if norm > 0:
            return [x / norm for x in vector]
        return vector

    async def _embed_texts(
        self, task_type: EmbeddingTaskType, texts: list[str]
    ) -> list[list[float]]:
        return [self.embed_text_sync(text) for text in texts]

    async def _embed_images(self, mime_type: str, images: list[bytes]) -> list[list[float]]:
        vectors = []
        for data in images:
            seed = int.from_bytes(hashlib.sha256(data).digest()[:8], "little")
            vector = np.random.default_rng(seed).standard_normal(self._dimension)
            vectors.append((vector / np.linalg.norm(vector)).tolist())
        return vectors


class CachedEmbeddings(Embedder):
    """
    Embedder wrapper caching text embeddings.

    Keys include the task type, since document and query embeddings of the
    same text can differ. Images are never cached.
    """

    def __init__(
        self,
        base_service: Embedder,
        cache_backend: str = "memory",  # memory, redis
        redis_url: str | None = None,
    ):
        if cache_backend == "redis" and not redis_url:
            raise ConfigurationError("redis_url is required for the redis cache backend")
        self._base = base_service
        self._cache_backend = cache_backend
        self._redis_url = redis_url
        self._redis = None
        self._memory_cache: dict[str, list[float]] = {}

    @property
    def dimension(self) -> int:
        return self._base.dimension

    def _cache_key(self, task_type: EmbeddingTaskType, text: str) -> str:
        return f"emb:{task_type.value}:{hashlib.md5(text.encode()).hexdigest()}"

    def _get_redis(self):
        if self._redis is None:
            import redis.asyncio as redis

            self._redis = redis.from_url(self._redis_url)
        return self._redis

    async def _get_from_cache(self, key: str) -> list[float] | None:
        if self._cache_backend == "redis":
            data = await self._get_redis().get(key)
            return json.loads(data) if data else None
        return self._memory_cache.get(key)

    async def _set_in_cache(self, key: str, value: list[float]) -> None:
        if self._cache_backend == "redis":
            await self._get_redis().set(key, json.dumps(value))
        else:
            self._memory_cache[key] = value

    async def _embed_texts(
        self, task_type: EmbeddingTaskType, texts: list[str]
    ) -> list[list[float]]:
        results: list[list[float] | None] = [None] * len(texts)
        uncached: list[tuple[int, str]] = []

        for i, text in enumerate(texts):
            cached = await self._get_from_cache(self._cache_key(task_type, text))
            if cached:
                results[i] = cached
            else:
                uncached.append((i, text))

        if uncached:
            embeddings = await self._base.embed_texts(task_type, *(t for _, t in uncached))
            for (original_idx, text), embedding in zip(uncached, embeddings):
                results[original_idx] = embedding
                await self._set_in_cache(self._cache_key(task_type, text), embedding)

        return [r for r in results if r is not None]

    async def _embed_images(self, mime_type: str, images: list[bytes]) -> list[list[float]]:
        return await self._base.embed_images(mime_type, *images)

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
        await self._base.close()


def create_embedder(settings: EmbeddingSettings) -> Embedder:
    """Build the embedder selected by EMBEDDING_PROVIDER."""
    provider = settings.provider

    if provider == "nomic":
        api_key = settings.nomic_api_key.get_secret_value() if settings.nomic_api_key else ""
        embedder: Embedder = NomicEmbeddings(
            api_key=api_key,
            base_url=settings.nomic_base_url,
            text_model=settings.nomic_text_model,
            vision_model=settings.nomic_vision_model,
            dimension=settings.dimension or 768,
            timeout=settings.request_timeout,
        )
    elif provider == "openai":
        embedder = OpenAIEmbeddings(
            api_key=settings.openai_api_key.get_secret_value() if settings.openai_api_key else None,
            model=settings.openai_model,
            dimensions=settings.dimension,
            base_url=settings.openai_base_url,
        )
    elif provider == "local":
        embedder = LocalEmbeddings(model_name=settings.local_model, device=settings.local_device)
    elif provider == "hash":
        embedder = HashEmbeddings(dimension=settings.dimension or 256)
    else:
        raise ConfigurationError(f"Unknown embedding provider: {provider}")

    if settings.cache_enabled:
        backend = "redis" if settings.cache_redis_url else "memory"
        embedder = CachedEmbeddings(embedder, cache_backend=backend, redis_url=settings.cache_redis_url)

    return embedder
