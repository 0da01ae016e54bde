"""RAG Retriever - semantic search scoped to one user.

Combines query embedding and filtered vector search.
"""

import logging
from dataclasses import dataclass

from askly.core.config import get_settings
from askly.rag.embedder import Embedder, get_embedder
from askly.rag.metadata import display_name
from askly.rag.vector_store import VectorStore, get_vector_store

logger = logging.getLogger(__name__)

CONTEXT_SEPARATOR = "\n\n---\n\n"


@dataclass
class RetrievedChunk:
    """A chunk retrieved from vector search."""

    id: str
    text: str
    score: float
    document_id: str
    chunk_index: int
    metadata: dict

    @property
    def source_name(self) -> str:
        return display_name(self.metadata) or "Unknown"

    def to_source(self) -> dict:
        """Citation entry returned alongside an answer."""
        return {
            "documentId": self.document_id,
            "name": self.source_name,
            "type": self.metadata.get("source"),
            "fileName": self.metadata.get("file_name"),
            "textName": self.metadata.get("text_name"),
            "url": self.metadata.get("url") or self.metadata.get("video_url"),
            "videoTitle": self.metadata.get("video_title"),
            "chunkIndex": self.chunk_index,
            "score": self.score,
        }


class Retriever:
    """Semantic retrieval over a single user's documents."""

    def __init__(self, vector_store: VectorStore, embedder: Embedder):
        self.vector_store = vector_store
        self.embedder = embedder

    async def retrieve(
        self,
        query: str,
        user_id: str,
        document_id: str | None = None,
        limit: int | None = None,
    ) -> list[RetrievedChunk]:
        """Retrieve relevant chunks for a query.

        Args:
            query: User's search query
            user_id: Only this user's chunks are searched
            document_id: Restrict to one document
            limit: Max chunks (defaults to RETRIEVAL_TOP_K)

        Returns:
            At most ``limit`` chunks, best match first
        """
        if not query.strip():
            return []

        limit = limit or get_settings().retrieval_top_k
        query_vector = await self.embedder.embed_query(query)

        results = await self.vector_store.search(
            query_vector=query_vector,
            user_id=user_id,
            document_id=document_id,
            limit=limit,
        )
        logger.debug(f"[Retriever] {len(results)} chunks for user '{user_id}'")

        return [
            RetrievedChunk(
                id=r["id"],
                text=r["text"],
                score=r["score"],
                document_id=r["document_id"],
                chunk_index=r["chunk_index"],
                metadata=r.get("metadata", {}),
            )
            for r in results[:limit]
        ]


def format_context(chunks: list[RetrievedChunk]) -> str:
    """Format retrieved chunks as numbered context blocks, in search order."""
    return CONTEXT_SEPARATOR.join(
        f"[Document {i}: {chunk.source_name}]\n{chunk.text}"
        for i, chunk in enumerate(chunks, 1)
    )


# Singleton instance
_retriever: Retriever | None = None


def get_retriever() -> Retriever:
    """Get or create the global Retriever instance."""
    global _retriever

    if _retriever is None:
        _retriever = Retriever(get_vector_store(), get_embedder())

    return _retriever
