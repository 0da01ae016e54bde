"""Qdrant vector store client.

Manages the single shared collection that holds every user's chunks.
Users are isolated only by payload filtering: every read and delete goes
through ``build_filter``, which refuses to build a filter without a user id.
"""

import logging
from dataclasses import dataclass
from uuid import NAMESPACE_DNS, uuid5

import httpx
from qdrant_client import QdrantClient
from qdrant_client.http import models as qdrant_models
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse
from qdrant_client.http.models import Distance, PayloadSchemaType, VectorParams

from askly.core.config import get_settings
from askly.core.exceptions import StorageError, ValidationError
from askly.rag.metadata import TaggedDocument, display_name

logger = logging.getLogger(__name__)

# Failures the client surfaces for an unreachable or rejecting server
STORAGE_ERRORS = (UnexpectedResponse, ResponseHandlingException, httpx.HTTPError, OSError, ValueError)

USER_FIELD = "user_id"
DOCUMENT_FIELD = "document_id"
SCROLL_PAGE_SIZE = 256


def build_filter(user_id: str, document_id: str | None = None) -> qdrant_models.Filter:
    """Build the mandatory tenant filter, optionally narrowed to one document.

    Raises:
        ValidationError: If ``user_id`` is blank
    """
    if not user_id or not str(user_id).strip():
        raise ValidationError("A user id is required for every vector store query")

    conditions = [
        qdrant_models.FieldCondition(
            key=USER_FIELD,
            match=qdrant_models.MatchValue(value=user_id),
        )
    ]
    if document_id:
        conditions.append(
            qdrant_models.FieldCondition(
                key=DOCUMENT_FIELD,
                match=qdrant_models.MatchValue(value=document_id),
            )
        )
    return qdrant_models.Filter(must=conditions)


def point_id(document_id: str, chunk_index: int) -> str:
    """Deterministic point id for a chunk."""
    return str(uuid5(NAMESPACE_DNS, f"{document_id}:{chunk_index}"))


@dataclass
class DocumentSummary:
    """A document as seen by the user, aggregated from its chunks."""

    id: str
    name: str
    source: str
    uploaded_at: str | None
    chunk_count: int
    url: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.source,
            "uploadedAt": self.uploaded_at,
            "chunkCount": self.chunk_count,
            "url": self.url,
        }


class VectorStore:
    """Qdrant vector store for RAG embeddings.

    One shared collection with:
    - Vector embeddings (dimensions from config)
    - Flat payload: user_id, document_id, chunk_index, source, uploaded_at,
      text, and source-specific name fields
    """

    def __init__(
        self,
        client: QdrantClient,
        collection_name: str | None = None,
        embedding_dim: int | None = None,
        upsert_batch_size: int | None = None,
    ):
        self.client = client
        settings = get_settings()
        self.collection_name = collection_name or settings.qdrant_collection
        self.embedding_dim = embedding_dim or settings.embedding_dimensions
        self.upsert_batch_size = upsert_batch_size or settings.qdrant_upsert_batch_size

    def _collection_exists(self) -> bool:
        collections = self.client.get_collections()
        return any(c.name == self.collection_name for c in collections.collections)

    def _create_payload_indexes(self, existing: set[str] | None = None) -> None:
        existing = existing or set()

        # Tenant index: co-locates each user's vectors for filtered search
        if USER_FIELD not in existing:
            self.client.create_payload_index(
                collection_name=self.collection_name,
                field_name=USER_FIELD,
                field_schema=qdrant_models.KeywordIndexParams(
                    type=qdrant_models.KeywordIndexType.KEYWORD,
                    is_tenant=True,
                ),
            )
        if DOCUMENT_FIELD not in existing:
            self.client.create_payload_index(
                collection_name=self.collection_name,
                field_name=DOCUMENT_FIELD,
                field_schema=PayloadSchemaType.KEYWORD,
            )

    async def ensure_collection(self) -> bool:
        """Create the shared collection and its payload indexes if absent.

        When the collection already exists, its vector size is checked
        against the embedding dimension (a mismatch is only logged) and any
        missing payload index is added.

        Returns:
            True if created, False if it already existed
        """
        try:
            if self._collection_exists():
                self._verify_collection()
                return False

            # See: https://qdrant.tech/documentation/guides/multitenancy/
            self.client.create_collection(
                collection_name=self.collection_name,
                vectors_config=VectorParams(
                    size=self.embedding_dim,
                    distance=Distance.COSINE,
                ),
                # Store large text payloads on disk to save RAM
                on_disk_payload=True,
                # Per-tenant HNSW graphs instead of one global graph
                hnsw_config=qdrant_models.HnswConfigDiff(payload_m=16, m=0),
                optimizers_config=qdrant_models.OptimizersConfigDiff(
                    indexing_threshold=1000,
                ),
            )
            self._create_payload_indexes()
        except STORAGE_ERRORS as e:
            raise StorageError("Could not initialize the vector collection.", detail=str(e)) from e

        logger.info(f"[VectorStore] Created shared collection '{self.collection_name}'")
        return True

    def _verify_collection(self) -> None:
        info = self.client.get_collection(self.collection_name)

        vectors = info.config.params.vectors
        size = getattr(vectors, "size", None)
        if size is not None and size != self.embedding_dim:
            logger.warning(
                f"[VectorStore] Collection '{self.collection_name}' has vector size {size}, "
                f"embedding model produces {self.embedding_dim}; writes will fail until they match"
            )

        self._create_payload_indexes(existing=set((info.payload_schema or {}).keys()))

    async def upsert_chunks(
        self,
        document: TaggedDocument,
        vectors: list[list[float]],
    ) -> int:
        """Store every chunk of one document.

        Either all points are written or the call fails: if any batch is
        rejected, points already written for this document are deleted
        and StorageError is raised.

        Returns:
            Number of chunks upserted
        """
        if len(vectors) != document.chunk_count:
            raise ValueError(
                f"Got {len(vectors)} vectors for {document.chunk_count} chunks"
            )
        if not document.chunks:
            return 0

        logger.info(
            f"[VectorStore] Upserting {document.chunk_count} chunks for document "
            f"'{document.document_id}' to collection '{self.collection_name}'"
        )

        points = [
            qdrant_models.PointStruct(
                id=point_id(document.document_id, chunk.chunk_index),
                vector=vector,
                payload=chunk.payload,
            )
            for chunk, vector in zip(document.chunks, vectors, strict=True)
        ]

        # Batch upserts to avoid timeout on large payloads
        # Each vector is ~12KB (3072 floats * 4 bytes), so 100 points = ~1.2MB
        batch_size = self.upsert_batch_size
        total_upserted = 0

        try:
            for i in range(0, len(points), batch_size):
                batch = points[i : i + batch_size]
                self.client.upsert(
                    collection_name=self.collection_name,
                    points=batch,
                    wait=True,
                )
                total_upserted += len(batch)
        except STORAGE_ERRORS as e:
            logger.error(
                f"[VectorStore] Upsert failed after {total_upserted} points, "
                f"rolling back document '{document.document_id}': {e}"
            )
            self._rollback(document.user_id, document.document_id)
            raise StorageError("Failed to store document chunks.", detail=str(e)) from e

        logger.info(f"[VectorStore] Successfully upserted {total_upserted} points")
        return total_upserted

    def _rollback(self, user_id: str, document_id: str) -> None:
        """Best-effort removal of a partially written document."""
        try:
            self.client.delete(
                collection_name=self.collection_name,
                points_selector=qdrant_models.FilterSelector(
                    filter=build_filter(user_id, document_id)
                ),
            )
        except STORAGE_ERRORS as e:
            logger.error(f"[VectorStore] Rollback of '{document_id}' failed: {e}")

    async def search(
        self,
        query_vector: list[float],
        user_id: str,
        document_id: str | None = None,
        limit: int = 8,
    ) -> list[dict]:
        """Search the user's chunks by cosine similarity.

        Args:
            query_vector: Query embedding
            user_id: Owner of the chunks to search (mandatory)
            document_id: Restrict the search to one document
            limit: Maximum results

        Returns:
            Up to ``limit`` chunks, best match first. Empty when nothing
            matches or the store is unavailable.
        """
        query_filter = build_filter(user_id, document_id)

        try:
            if not self._collection_exists():
                return []
            results = self.client.query_points(
                collection_name=self.collection_name,
                query=query_vector,
                limit=limit,
                query_filter=query_filter,
                with_payload=True,
            )
        except STORAGE_ERRORS as e:
            logger.error(f"[VectorStore] Search failed for user '{user_id}': {e}")
            return []

        return [
            {
                "id": str(point.id),
                "score": point.score,
                "text": point.payload.get("text", ""),
                "document_id": point.payload.get(DOCUMENT_FIELD),
                "chunk_index": point.payload.get("chunk_index"),
                "metadata": point.payload,
            }
            for point in results.points
        ]

    async def list_documents(self, user_id: str) -> list[DocumentSummary]:
        """Aggregate the user's chunks into document summaries.

        Scrolls every point of the user (payload only), groups by
        document_id, newest upload first. An absent collection or an
        unavailable store yields an empty list.
        """
        scroll_filter = build_filter(user_id)
        groups: dict[str, dict] = {}
        counts: dict[str, int] = {}

        try:
            if not self._collection_exists():
                return []

            offset = None
            while True:
                points, offset = self.client.scroll(
                    collection_name=self.collection_name,
                    scroll_filter=scroll_filter,
                    limit=SCROLL_PAGE_SIZE,
                    offset=offset,
                    with_payload=True,
                    with_vectors=False,
                )
                for point in points:
                    payload = point.payload or {}
                    doc_id = payload.get(DOCUMENT_FIELD)
                    if not doc_id:
                        continue
                    counts[doc_id] = counts.get(doc_id, 0) + 1
                    first = groups.get(doc_id)
                    if first is None or payload.get("chunk_index", 0) < first.get("chunk_index", 0):
                        groups[doc_id] = payload
                if offset is None:
                    break
        except STORAGE_ERRORS as e:
            logger.error(f"[VectorStore] Listing documents failed for user '{user_id}': {e}")
            return []

        summaries = [
            DocumentSummary(
                id=doc_id,
                name=display_name(payload) or "Untitled",
                source=payload.get("source", "unknown"),
                uploaded_at=payload.get("uploaded_at"),
                chunk_count=counts[doc_id],
                url=payload.get("url") or payload.get("video_url"),
            )
            for doc_id, payload in groups.items()
        ]
        summaries.sort(key=lambda s: s.uploaded_at or "", reverse=True)
        return summaries

    async def delete_document(self, user_id: str, document_id: str) -> int:
        """Delete every chunk of one of the user's documents.

        Deleting a document that does not exist (or was already deleted)
        succeeds and returns 0.

        Returns:
            Number of chunks deleted
        """
        if not document_id:
            raise ValidationError("Document ID is required")
        delete_filter = build_filter(user_id, document_id)

        try:
            if not self._collection_exists():
                return 0

            count_before = self.client.count(
                collection_name=self.collection_name,
                count_filter=delete_filter,
                exact=True,
            ).count
            if count_before == 0:
                return 0

            self.client.delete(
                collection_name=self.collection_name,
                points_selector=qdrant_models.FilterSelector(filter=delete_filter),
                wait=True,
            )
        except STORAGE_ERRORS as e:
            raise StorageError("Failed to delete document.", detail=str(e)) from e

        logger.info(
            f"[VectorStore] Deleted {count_before} chunks of document '{document_id}'"
        )
        return count_before

    async def collection_ready(self) -> bool:
        """Whether the shared collection exists (False when Qdrant is unreachable)."""
        try:
            return self._collection_exists()
        except STORAGE_ERRORS as e:
            logger.warning(f"[VectorStore] Collection check failed: {e}")
            return False

    async def get_collection_info(self) -> dict | None:
        """Get collection statistics."""
        try:
            info = self.client.get_collection(self.collection_name)
        except STORAGE_ERRORS:
            return None
        return {
            "name": self.collection_name,
            "points_count": info.points_count,
            "status": info.status.value if hasattr(info.status, "value") else str(info.status),
        }


# Singleton instance
_vector_store: VectorStore | None = None


def get_vector_store() -> VectorStore:
    """Get or create the global VectorStore instance."""
    global _vector_store

    if _vector_store is None:
        settings = get_settings()
        # Default 5s is too short for batched upserts
        client = QdrantClient(
            url=settings.qdrant_url,
            api_key=settings.qdrant_api_key,
            timeout=settings.qdrant_timeout,
        )
        _vector_store = VectorStore(client)

    return _vector_store
