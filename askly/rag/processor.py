"""Document processor for RAG ingestion.

Handles extraction, chunking, tagging, embedding, and storage for every
source kind. One call indexes one document; batch forms index many,
one after another, recording per-item failures instead of aborting.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from urllib.parse import urlparse

from askly.core.config import get_settings
from askly.core.exceptions import AsklyError, ExtractionError, ValidationError
from askly.observability.metrics import CHUNKS_INDEXED, DOCUMENTS_FAILED, DOCUMENTS_INDEXED
from askly.rag.chunking import ChunkingStrategy, get_chunker
from askly.rag.embedder import Embedder, get_embedder
from askly.rag.extractors import (
    DocumentExtractor,
    WebsiteExtractor,
    YouTubeExtractor,
    ensure_meaningful_text,
    get_extractor,
)
from askly.rag.metadata import SourceMetadata, SourceType, tag_chunks
from askly.rag.vector_store import VectorStore, get_vector_store

logger = logging.getLogger(__name__)


@dataclass
class IndexResult:
    """Result of indexing one document."""

    document_id: str
    chunk_count: int
    source: str
    name: str
    processing_time_ms: int = 0

    def to_dict(self) -> dict:
        return {
            "documentId": self.document_id,
            "chunkCount": self.chunk_count,
            "type": self.source,
            "name": self.name,
        }


@dataclass
class BatchResult:
    """Outcome of a batch ingestion: successes and per-item failures."""

    results: list[IndexResult] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)

    @property
    def indexed(self) -> int:
        return len(self.results)

    @property
    def failed(self) -> int:
        return len(self.errors)

    def to_dict(self) -> dict:
        return {
            "indexed": self.indexed,
            "failed": self.failed,
            "results": [r.to_dict() for r in self.results],
            "errors": self.errors,
        }


def website_name(url: str) -> str:
    """Name used for a website in a batch: hostname with dots as dashes."""
    hostname = urlparse(url).hostname
    if not hostname:
        raise ValidationError("Valid URL is required", detail=url)
    return hostname.replace(".", "-")


def _require_http_url(url: str | None) -> str:
    url = (url or "").strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError("Valid URL is required", detail=url or None)
    return url


class DocumentProcessor:
    """Processes documents for RAG ingestion.

    Pipeline:
    1. Extract text from the source
    2. Split into chunks
    3. Tag chunks with document identity
    4. Generate embeddings
    5. Store in the vector database
    """

    def __init__(
        self,
        vector_store: VectorStore,
        embedder: Embedder,
        chunker: ChunkingStrategy | None = None,
        extractor: DocumentExtractor | None = None,
        website_extractor: WebsiteExtractor | None = None,
        youtube_extractor: YouTubeExtractor | None = None,
    ):
        self.settings = get_settings()
        self.vector_store = vector_store
        self.embedder = embedder
        self.chunker = chunker or get_chunker(
            "recursive",
            chunk_size=self.settings.chunk_size,
            overlap=self.settings.chunk_overlap,
        )
        self.extractor = extractor or get_extractor()
        self._website_extractor = website_extractor
        self._youtube_extractor = youtube_extractor
        self._collection_ready = False

    @property
    def website_extractor(self) -> WebsiteExtractor:
        if self._website_extractor is None:
            self._website_extractor = WebsiteExtractor()
        return self._website_extractor

    @property
    def youtube_extractor(self) -> YouTubeExtractor:
        if self._youtube_extractor is None:
            self._youtube_extractor = YouTubeExtractor()
        return self._youtube_extractor

    async def _ensure_collection(self) -> None:
        if not self._collection_ready:
            await self.vector_store.ensure_collection()
            self._collection_ready = True

    async def _index(self, text: str, source: SourceMetadata, user_id: str) -> IndexResult:
        """Chunk, tag, embed and store extracted text as one document."""
        if not user_id or not user_id.strip():
            raise ValidationError("A user id is required to index documents")

        start_time = datetime.now(UTC)
        logger.info(
            f"[Processor] Starting document processing: source={source.source.value}, "
            f"name='{source.display_name}', user={user_id}"
        )

        logger.debug(f"[Processor] Chunking document, text length: {len(text)}")
        chunks = self.chunker.chunk(text)
        if not chunks:
            raise ExtractionError("No chunks generated from document.")
        logger.info(f"[Processor] Generated {len(chunks)} chunks")

        document = tag_chunks(chunks, source, user_id)

        logger.info(f"[Processor] Generating embeddings for {document.chunk_count} chunks...")
        vectors = await self.embedder.embed_texts([c.text for c in document.chunks])

        await self._ensure_collection()
        await self.vector_store.upsert_chunks(document, vectors)

        processing_time = int((datetime.now(UTC) - start_time).total_seconds() * 1000)
        DOCUMENTS_INDEXED.labels(source=source.source.value).inc()
        CHUNKS_INDEXED.labels(source=source.source.value).inc(document.chunk_count)

        logger.info(
            f"[Processor] Document '{document.document_id}' processed in {processing_time}ms: "
            f"{document.chunk_count} chunks"
        )
        return IndexResult(
            document_id=document.document_id,
            chunk_count=document.chunk_count,
            source=source.source.value,
            name=document.name,
            processing_time_ms=processing_time,
        )

    # ============================================
    # Single-source ingestion
    # ============================================

    async def index_pdf(self, content: bytes, file_name: str, user_id: str) -> IndexResult:
        """Index the text layer of a PDF."""
        if not file_name:
            raise ValidationError("File name is required")
        if not content:
            raise ValidationError("No file provided")

        text = self.extractor.extract(content, "application/pdf")
        text = ensure_meaningful_text(text, "PDF", self.settings.min_text_length)
        return await self._index(text, SourceMetadata.for_pdf(file_name), user_id)

    async def index_pdf_file(self, path: str | Path, file_name: str, user_id: str) -> IndexResult:
        """Index a PDF stored in a temporary file, removing the file afterwards."""
        path = Path(path)
        try:
            content = path.read_bytes()
            return await self.index_pdf(content, file_name, user_id)
        finally:
            path.unlink(missing_ok=True)
            logger.debug(f"[Processor] Removed temporary upload {path}")

    async def index_text(self, text: str, text_name: str, user_id: str) -> IndexResult:
        """Index text pasted by the user."""
        if not text or not text_name or not text_name.strip():
            raise ValidationError("Text content and name are required")

        text = text.strip()
        if len(text) < self.settings.min_text_length:
            raise ValidationError(
                f"Text must be at least {self.settings.min_text_length} characters long"
            )
        return await self._index(text, SourceMetadata.for_text(text_name.strip()), user_id)

    async def index_website(self, url: str, url_name: str, user_id: str) -> IndexResult:
        """Fetch a web page and index its visible text."""
        url = _require_http_url(url)
        if not url_name or not url_name.strip():
            raise ValidationError("URL name is required")

        page = await self.website_extractor.extract(url)
        text = ensure_meaningful_text(page.text, "website", self.settings.min_text_length)
        return await self._index(text, SourceMetadata.for_website(url, url_name.strip()), user_id)

    async def index_youtube(self, url: str, user_id: str) -> IndexResult:
        """Fetch a YouTube transcript and index it."""
        transcript = await self.youtube_extractor.extract((url or "").strip())
        text = ensure_meaningful_text(
            transcript.text, "video transcript", self.settings.min_text_length
        )
        source = SourceMetadata.for_youtube(
            video_id=transcript.video_id,
            video_url=transcript.url,
            video_title=transcript.title,
            channel_name=transcript.channel_name,
        )
        return await self._index(text, source, user_id)

    async def index_document(self, kind: SourceType | str, payload: dict, user_id: str) -> IndexResult:
        """Index one document of any supported kind.

        Args:
            kind: pdf, text, website or youtube
            payload: Source fields for the kind:
                pdf: content (bytes) or path, file_name
                text: text, text_name
                website: url, url_name
                youtube: url
            user_id: Owner of the new document

        Returns:
            IndexResult with the generated document id and chunk count
        """
        try:
            kind = SourceType(kind)
        except ValueError as e:
            raise ValidationError(f"Unsupported source type: {kind}") from e

        try:
            if kind is SourceType.PDF:
                if payload.get("path"):
                    return await self.index_pdf_file(payload["path"], payload.get("file_name"), user_id)
                return await self.index_pdf(payload.get("content"), payload.get("file_name"), user_id)
            if kind is SourceType.TEXT:
                return await self.index_text(payload.get("text"), payload.get("text_name"), user_id)
            if kind is SourceType.WEBSITE:
                return await self.index_website(payload.get("url"), payload.get("url_name"), user_id)
            return await self.index_youtube(payload.get("url"), user_id)
        except AsklyError as e:
            DOCUMENTS_FAILED.labels(source=kind.value, category=e.category).inc()
            logger.warning(f"[Processor] Indexing {kind.value} failed ({e.category}): {e.message}")
            raise

    # ============================================
    # Batch ingestion
    # ============================================

    def _check_batch(self, urls: list[str], limit: int, label: str) -> list[str]:
        urls = [u.strip() for u in (urls or []) if u and u.strip()]
        if not urls:
            raise ValidationError(f"At least one {label} URL is required")
        if len(urls) > limit:
            raise ValidationError(f"Maximum {limit} {label} URLs allowed per batch")
        return urls

    async def index_multiple_websites(self, urls: list[str], user_id: str) -> BatchResult:
        """Index websites one at a time; each is named after its hostname."""
        urls = self._check_batch(urls, self.settings.max_website_batch, "website")
        batch = BatchResult()

        for url in urls:
            try:
                result = await self.index_document(
                    SourceType.WEBSITE, {"url": url, "url_name": website_name(url)}, user_id
                )
            except AsklyError as e:
                batch.errors.append({"url": url, "error": e.message, "category": e.category})
                continue
            batch.results.append(result)

        logger.info(f"[Processor] Website batch done: {batch.indexed} indexed, {batch.failed} failed")
        return batch

    async def index_multiple_youtube_videos(self, urls: list[str], user_id: str) -> BatchResult:
        """Index YouTube videos one at a time."""
        urls = self._check_batch(urls, self.settings.max_youtube_batch, "YouTube")
        batch = BatchResult()

        for url in urls:
            try:
                result = await self.index_document(SourceType.YOUTUBE, {"url": url}, user_id)
            except AsklyError as e:
                batch.errors.append({"url": url, "error": e.message, "category": e.category})
                continue
            batch.results.append(result)

        logger.info(f"[Processor] YouTube batch done: {batch.indexed} indexed, {batch.failed} failed")
        return batch

    async def aclose(self) -> None:
        """Close HTTP clients opened by the remote extractors."""
        if self._website_extractor is not None:
            await self._website_extractor.aclose()
        if self._youtube_extractor is not None:
            await self._youtube_extractor.aclose()


# Singleton instance
_processor: DocumentProcessor | None = None


def get_processor() -> DocumentProcessor:
    """Get or create the global DocumentProcessor instance."""
    global _processor

    if _processor is None:
        _processor = DocumentProcessor(get_vector_store(), get_embedder())

    return _processor


async def shutdown_processor() -> None:
    """Close the global processor's HTTP clients."""
    global _processor
    if _processor:
        await _processor.aclose()
        _processor = None
