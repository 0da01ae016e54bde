"""Embedding service using OpenAI.

Generates vector embeddings for text chunks and queries.
"""

import asyncio
import logging

import httpx
from openai import AsyncOpenAI, OpenAIError

from askly.core.config import get_settings
from askly.core.exceptions import EmbeddingError, ValidationError

logger = logging.getLogger(__name__)


class Embedder:
    """OpenAI embedding service.

    Uses text-embedding-3-large by default (3072 dimensions). Batch
    embedding is all-or-nothing: either every text gets a vector or an
    EmbeddingError is raised.
    """

    DEFAULT_MODEL = "text-embedding-3-large"
    BATCH_SIZE = 100  # Provider limit per request

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = DEFAULT_MODEL,
        dimensions: int | None = None,
        batch_size: int = BATCH_SIZE,
        concurrency: int = 4,
    ):
        self.client = client
        self.model = model
        self.dimensions = dimensions
        self.batch_size = batch_size
        self.concurrency = max(1, concurrency)

    async def _create(self, texts: list[str]) -> list[list[float]]:
        try:
            response = await self.client.embeddings.create(
                input=texts,
                model=self.model,
            )
        except OpenAIError as e:
            raise EmbeddingError("Embedding provider request failed.", detail=str(e)) from e

        vectors = [item.embedding for item in response.data]
        if len(vectors) != len(texts):
            raise EmbeddingError(
                f"Embedding provider returned {len(vectors)} vectors for {len(texts)} texts."
            )
        if self.dimensions:
            for vector in vectors:
                if len(vector) != self.dimensions:
                    raise EmbeddingError(
                        f"Embedding dimension {len(vector)} does not match "
                        f"the configured {self.dimensions}."
                    )
        return vectors

    async def embed_text(self, text: str) -> list[float]:
        """Generate embedding for a single text.

        Args:
            text: Text to embed

        Returns:
            Embedding vector
        """
        text = text.strip()
        if not text:
            raise ValidationError("Cannot embed empty text")

        vectors = await self._create([text])
        return vectors[0]

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts in batches.

        Batches run concurrently (bounded by ``concurrency``); the result is
        returned only once every batch has succeeded.

        Args:
            texts: List of texts to embed

        Returns:
            List of embedding vectors, in input order
        """
        if not texts:
            return []

        cleaned = [t.strip() for t in texts]
        if not all(cleaned):
            raise ValidationError("Cannot embed empty text")

        semaphore = asyncio.Semaphore(self.concurrency)

        async def run_batch(batch: list[str]) -> list[list[float]]:
            async with semaphore:
                return await self._create(batch)

        batches = [
            cleaned[start : start + self.batch_size]
            for start in range(0, len(cleaned), self.batch_size)
        ]
        logger.debug(f"[Embedder] Embedding {len(cleaned)} texts in {len(batches)} batches")

        # First failing batch propagates; no partial result is returned
        results = await asyncio.gather(*(run_batch(b) for b in batches))
        return [vector for batch_vectors in results for vector in batch_vectors]

    async def embed_query(self, query: str) -> list[float]:
        """Embed a search query.

        Alias for embed_text, but can be extended for query-specific processing.
        """
        return await self.embed_text(query)


# Singleton instance
_embedder: Embedder | None = None


def get_embedder() -> Embedder:
    """Get or create the global Embedder instance."""
    global _embedder

    if _embedder is None:
        settings = get_settings()

        logger.info(f"Initializing embedder with model '{settings.embedding_model}'")

        # Long timeout for batch embedding of large documents
        client = AsyncOpenAI(
            api_key=settings.openai_api_key or None,
            base_url=settings.openai_base_url,
            timeout=httpx.Timeout(settings.openai_timeout, connect=30.0),
            max_retries=settings.openai_max_retries,
        )

        _embedder = Embedder(
            client=client,
            model=settings.embedding_model,
            dimensions=settings.embedding_dimensions,
            batch_size=settings.embedding_batch_size,
            concurrency=settings.embedding_concurrency,
        )

    return _embedder
