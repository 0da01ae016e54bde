"""RAG (Retrieval-Augmented Generation) package.

Components:
- Extractors: text from PDF, plain text, web pages, YouTube transcripts
- Chunker: Document chunking strategies
- Metadata: document ids and chunk payloads
- Embedder: OpenAI embedding service
- VectorStore: Qdrant client for vector operations
- Processor: Document ingestion pipeline
- Retriever: Semantic search scoped to one user
"""

from askly.rag.chunking import Chunk, get_chunker
from askly.rag.embedder import Embedder, get_embedder
from askly.rag.extractors import DocumentExtractor, WebsiteExtractor, YouTubeExtractor, get_extractor
from askly.rag.metadata import SourceMetadata, SourceType, TaggedDocument, tag_chunks
from askly.rag.processor import BatchResult, DocumentProcessor, IndexResult, get_processor
from askly.rag.retriever import RetrievedChunk, Retriever, format_context, get_retriever
from askly.rag.vector_store import DocumentSummary, VectorStore, build_filter, get_vector_store

__all__ = [
    "BatchResult",
    "Chunk",
    "DocumentExtractor",
    "DocumentProcessor",
    "DocumentSummary",
    "Embedder",
    "IndexResult",
    "RetrievedChunk",
    "Retriever",
    "SourceMetadata",
    "SourceType",
    "TaggedDocument",
    "VectorStore",
    "WebsiteExtractor",
    "YouTubeExtractor",
    "build_filter",
    "format_context",
    "get_chunker",
    "get_embedder",
    "get_extractor",
    "get_processor",
    "get_retriever",
    "get_vector_store",
    "tag_chunks",
]
