"""Unit tests for the Qdrant gateway, against Qdrant's local in-memory mode."""

from __future__ import annotations

import logging

import pytest
from qdrant_client.http.exceptions import ResponseHandlingException

from askly.core.exceptions import StorageError, ValidationError
from askly.rag.chunking import Chunk
from askly.rag.metadata import SourceMetadata, tag_chunks
from askly.rag.vector_store import VectorStore, build_filter


class FlakyClient:
    """Wraps a real client and fails selected calls."""

    def __init__(self, client, fail_upsert_on: int | None = None, fail: set[str] | None = None):
        self._client = client
        self._fail_upsert_on = fail_upsert_on
        self._fail = fail or set()
        self.upserts = 0

    def __getattr__(self, name):
        if name in self._fail:
            def broken(*args, **kwargs):
                raise ResponseHandlingException(ConnectionError("connection refused"))

            return broken
        return getattr(self._client, name)

    def upsert(self, **kwargs):
        self.upserts += 1
        if self.upserts == self._fail_upsert_on:
            raise ResponseHandlingException(ConnectionError("connection reset"))
        return self._client.upsert(**kwargs)


class IndexRecordingClient:
    """Wraps a real client, reports a fixed set of payload indexes and records new ones."""

    def __init__(self, client, indexed: set[str]):
        self._client = client
        self._indexed = indexed
        self.created_indexes: list[str] = []

    def __getattr__(self, name):
        return getattr(self._client, name)

    def get_collection(self, collection_name):
        info = self._client.get_collection(collection_name)
        return info.model_copy(update={"payload_schema": {field: None for field in self._indexed}})

    def create_payload_index(self, collection_name, field_name, field_schema):
        self.created_indexes.append(field_name)


def _document(user_id: str, name: str, texts: list[str]):
    chunks = [Chunk(index=i, text=t, start_char=0, end_char=len(t)) for i, t in enumerate(texts)]
    return tag_chunks(chunks, SourceMetadata.for_text(name), user_id)


async def _store(store: VectorStore, embedder, user_id: str, name: str, texts: list[str]):
    document = _document(user_id, name, texts)
    vectors = await embedder.embed_texts([c.text for c in document.chunks])
    await store.upsert_chunks(document, vectors)
    return document


class TestBuildFilter:
    def test_user_only(self) -> None:
        f = build_filter("alice")
        assert [c.key for c in f.must] == ["user_id"]
        assert f.must[0].match.value == "alice"

    def test_user_and_document(self) -> None:
        f = build_filter("alice", "doc-1")
        assert [c.key for c in f.must] == ["user_id", "document_id"]

    @pytest.mark.parametrize("user_id", ["", "   ", None])
    def test_blank_user_rejected(self, user_id) -> None:
        with pytest.raises(ValidationError):
            build_filter(user_id)


class TestCollectionLifecycle:
    @pytest.mark.asyncio
    async def test_ensure_collection_is_idempotent(self, vector_store) -> None:
        assert await vector_store.ensure_collection() is True
        assert await vector_store.ensure_collection() is False

        info = await vector_store.get_collection_info()
        assert info["name"] == "test-documents"
        assert info["points_count"] == 0

    @pytest.mark.asyncio
    async def test_reads_tolerate_absent_collection(self, vector_store, fake_embedder) -> None:
        assert await vector_store.list_documents("alice") == []
        assert await vector_store.search(fake_embedder.vector("anything"), "alice") == []
        assert await vector_store.delete_document("alice", "doc-1") == 0

    @pytest.mark.asyncio
    async def test_collection_ready(self, vector_store, qdrant_client) -> None:
        assert await vector_store.collection_ready() is False
        await vector_store.ensure_collection()
        assert await vector_store.collection_ready() is True

        unreachable = VectorStore(
            FlakyClient(qdrant_client, fail={"get_collections"}), collection_name="c", embedding_dim=64
        )
        assert await unreachable.collection_ready() is False

    @pytest.mark.asyncio
    async def test_vector_size_mismatch_is_only_a_warning(self, qdrant_client, caplog) -> None:
        caplog.set_level(logging.WARNING, logger="askly.rag.vector_store")
        await VectorStore(qdrant_client, collection_name="shared", embedding_dim=64).ensure_collection()

        resized = VectorStore(qdrant_client, collection_name="shared", embedding_dim=32)

        assert await resized.ensure_collection() is False
        assert "vector size 64" in caplog.text
        assert "produces 32" in caplog.text

    @pytest.mark.asyncio
    async def test_missing_payload_index_is_added(self, qdrant_client) -> None:
        await VectorStore(qdrant_client, collection_name="shared", embedding_dim=64).ensure_collection()
        client = IndexRecordingClient(qdrant_client, indexed={"user_id"})

        store = VectorStore(client, collection_name="shared", embedding_dim=64)

        assert await store.ensure_collection() is False
        assert client.created_indexes == ["document_id"]

    @pytest.mark.asyncio
    async def test_complete_collection_is_left_alone(self, qdrant_client) -> None:
        await VectorStore(qdrant_client, collection_name="shared", embedding_dim=64).ensure_collection()
        client = IndexRecordingClient(qdrant_client, indexed={"user_id", "document_id"})

        await VectorStore(client, collection_name="shared", embedding_dim=64).ensure_collection()

        assert client.created_indexes == []


class TestUpsertAndSearch:
    @pytest.mark.asyncio
    async def test_search_is_scoped_to_user(self, vector_store, fake_embedder) -> None:
        await vector_store.ensure_collection()
        await _store(vector_store, fake_embedder, "alice", "Garden", ["tomatoes need sunlight"])
        bob_doc = await _store(vector_store, fake_embedder, "bob", "Garden", ["tomatoes need sunlight"])

        hits = await vector_store.search(fake_embedder.vector("tomatoes sunlight"), "bob", limit=10)

        assert len(hits) == 1
        assert hits[0]["document_id"] == bob_doc.document_id
        assert hits[0]["metadata"]["user_id"] == "bob"

    @pytest.mark.asyncio
    async def test_search_scoped_to_document(self, vector_store, fake_embedder) -> None:
        await vector_store.ensure_collection()
        first = await _store(vector_store, fake_embedder, "alice", "One", ["jupiter has many moons"])
        await _store(vector_store, fake_embedder, "alice", "Two", ["jupiter storms are large"])

        hits = await vector_store.search(
            fake_embedder.vector("jupiter"), "alice", document_id=first.document_id
        )
        assert {h["document_id"] for h in hits} == {first.document_id}

    @pytest.mark.asyncio
    async def test_results_bounded_and_ranked(self, vector_store, fake_embedder) -> None:
        await vector_store.ensure_collection()
        texts = [f"note {i} about compost and soil" for i in range(20)]
        await _store(vector_store, fake_embedder, "alice", "Notes", texts)

        hits = await vector_store.search(fake_embedder.vector("compost soil"), "alice", limit=8)

        assert len(hits) == 8
        scores = [h["score"] for h in hits]
        assert scores == sorted(scores, reverse=True)

    @pytest.mark.asyncio
    async def test_failed_batch_rolls_back_document(self, qdrant_client, fake_embedder) -> None:
        flaky = FlakyClient(qdrant_client, fail_upsert_on=2)
        store = VectorStore(flaky, collection_name="flaky", embedding_dim=64, upsert_batch_size=2)
        await store.ensure_collection()
        document = _document("alice", "Big", [f"chunk number {i}" for i in range(5)])
        vectors = await fake_embedder.embed_texts([c.text for c in document.chunks])

        with pytest.raises(StorageError):
            await store.upsert_chunks(document, vectors)

        assert qdrant_client.count(collection_name="flaky", exact=True).count == 0

    @pytest.mark.asyncio
    async def test_vector_count_must_match_chunks(self, vector_store, fake_embedder) -> None:
        document = _document("alice", "Doc", ["one", "two"])
        with pytest.raises(ValueError):
            await vector_store.upsert_chunks(document, [fake_embedder.vector("one")])

    @pytest.mark.asyncio
    async def test_search_degrades_to_empty_on_storage_failure(self, qdrant_client, fake_embedder) -> None:
        store = VectorStore(
            FlakyClient(qdrant_client, fail={"query_points"}), collection_name="c", embedding_dim=64
        )
        await store.ensure_collection()
        assert await store.search(fake_embedder.vector("q"), "alice") == []


class TestListAndDelete:
    @pytest.mark.asyncio
    async def test_list_groups_chunks_per_document(self, vector_store, fake_embedder) -> None:
        await vector_store.ensure_collection()
        await _store(vector_store, fake_embedder, "alice", "Older", ["a1", "a2", "a3"])
        newer = await _store(vector_store, fake_embedder, "alice", "Newer", ["b1"])
        await _store(vector_store, fake_embedder, "bob", "Bobs", ["c1"])

        documents = await vector_store.list_documents("alice")

        assert [d.name for d in documents] == ["Newer", "Older"]
        assert documents[0].id == newer.document_id
        assert documents[0].chunk_count == 1
        assert documents[1].chunk_count == 3
        assert documents[1].source == "text"

    @pytest.mark.asyncio
    async def test_list_pages_through_large_documents(self, vector_store, fake_embedder) -> None:
        await vector_store.ensure_collection()
        await _store(vector_store, fake_embedder, "alice", "Huge", [f"part {i}" for i in range(300)])

        documents = await vector_store.list_documents("alice")
        assert len(documents) == 1
        assert documents[0].chunk_count == 300

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, vector_store, fake_embedder) -> None:
        await vector_store.ensure_collection()
        doc = await _store(vector_store, fake_embedder, "alice", "Doc", ["x1", "x2"])

        assert await vector_store.delete_document("alice", doc.document_id) == 2
        assert await vector_store.delete_document("alice", doc.document_id) == 0
        assert await vector_store.list_documents("alice") == []

    @pytest.mark.asyncio
    async def test_cannot_delete_another_users_document(self, vector_store, fake_embedder) -> None:
        await vector_store.ensure_collection()
        doc = await _store(vector_store, fake_embedder, "alice", "Private", ["secret"])

        assert await vector_store.delete_document("mallory", doc.document_id) == 0
        assert len(await vector_store.list_documents("alice")) == 1

    @pytest.mark.asyncio
    async def test_delete_failure_raises(self, qdrant_client) -> None:
        store = VectorStore(FlakyClient(qdrant_client, fail={"count"}), collection_name="c", embedding_dim=64)
        await store.ensure_collection()
        with pytest.raises(StorageError):
            await store.delete_document("alice", "doc-1")
