"""Shared pytest fixtures for the Askly test suite.

Everything runs offline: Qdrant in local in-memory mode, a deterministic
bag-of-words embedder, a scripted language model, and httpx mock
transports for web pages and YouTube oEmbed.
"""

from __future__ import annotations

import hashlib
import io
import math
import re
from collections.abc import Callable

import httpx
import pytest
from pypdf import PdfWriter
from qdrant_client import QdrantClient
from youtube_transcript_api import TranscriptsDisabled

from askly.agent.orchestrator import RetrievalOrchestrator
from askly.agent.runtime import ChatMessage, ChatResponse
from askly.core.config import get_settings
from askly.core.exceptions import ModelProviderError
from askly.rag.extractors import WebsiteExtractor, YouTubeExtractor
from askly.rag.processor import DocumentProcessor
from askly.rag.retriever import Retriever
from askly.rag.vector_store import VectorStore

EMBEDDING_DIM = 64

# ---------------------------------------------------------------------------
# Sample content
# ---------------------------------------------------------------------------

GARDEN_TEXT = (
    "Tomatoes need at least six hours of direct sunlight every day. "
    "Water them deeply twice a week and mulch the soil to keep moisture in. "
    "Prune the suckers that grow between the stem and the branches."
)

ASTRONOMY_TEXT = (
    "Jupiter is the largest planet in the solar system and has dozens of moons. "
    "Its Great Red Spot is a storm larger than the Earth that has raged for centuries."
)

GUIDE_HTML = """<html>
<head><title>Composting Guide</title><script>var tracking = "do not index";</script>
<style>body { color: red; }</style></head>
<body>
<h1>Composting at home</h1>
<p>Mix green kitchen scraps with brown leaves and cardboard in equal parts.</p>
<p>Turn the compost pile every week so the microbes get enough oxygen.</p>
<noscript>Enable JavaScript</noscript>
</body></html>"""

EMPTY_HTML = "<html><head><title>Empty</title></head><body><p>Hi</p></body></html>"

TRANSCRIPTS = {
    "dQw4w9WgXcQ": (
        "Welcome back to the channel. Today we are building a raised garden bed "
        "from cedar boards and filling it with a mix of compost and topsoil."
    ),
}


def long_text(paragraphs: int = 30) -> str:
    """Multi-paragraph text large enough to produce many chunks."""
    return "\n\n".join(
        f"Paragraph {i} talks about topic number {i}. "
        + " ".join(f"Sentence {j} of paragraph {i} adds more detail." for j in range(8))
        for i in range(paragraphs)
    )


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeEmbedder:
    """Deterministic hashed bag-of-words embedder."""

    def __init__(self, dim: int = EMBEDDING_DIM):
        self.dim = dim
        self.calls: list[list[str]] = []

    def vector(self, text: str) -> list[float]:
        vec = [0.0] * self.dim
        vec[0] = 0.01  # never the zero vector
        for token in re.findall(r"\w+", text.lower()):
            digest = hashlib.md5(token.encode()).hexdigest()
            vec[int(digest, 16) % self.dim] += 1.0
        norm = math.sqrt(sum(v * v for v in vec))
        return [v / norm for v in vec]

    async def embed_text(self, text: str) -> list[float]:
        return self.vector(text)

    async def embed_query(self, query: str) -> list[float]:
        return self.vector(query)

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [self.vector(t) for t in texts]


class FakeRuntime:
    """Language model stand-in that records every prompt it receives."""

    def __init__(self, reply: str = "Tomatoes need six hours of sun (Document 1).", fail: bool = False):
        self.reply = reply
        self.fail = fail
        self.calls: list[list[ChatMessage]] = []

    async def complete(self, messages: list[ChatMessage], **kwargs) -> ChatResponse:
        self.calls.append(messages)
        if self.fail:
            raise ModelProviderError("Language model request failed.", detail="rate limited")
        return ChatResponse(
            content=self.reply,
            model="fake-model",
            prompt_tokens=10,
            completion_tokens=5,
            total_tokens=15,
            latency_ms=1.0,
            finish_reason="stop",
        )


def _http_handler(request: httpx.Request) -> httpx.Response:
    host = request.url.host
    if host == "slow.example.com":
        raise httpx.ReadTimeout("timed out", request=request)
    if host == "www.youtube.com" and request.url.path == "/oembed":
        return httpx.Response(200, json={"title": "Raised Bed Build", "author_name": "Garden Channel"})
    if host == "example.com" and request.url.path == "/guide":
        return httpx.Response(200, html=GUIDE_HTML)
    if host == "example.com" and request.url.path == "/empty":
        return httpx.Response(200, html=EMPTY_HTML)
    return httpx.Response(404, text="Not Found")


def _fake_transcript(video_id: str, languages: list[str]) -> str:
    if video_id not in TRANSCRIPTS:
        raise TranscriptsDisabled(video_id)
    return TRANSCRIPTS[video_id]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    """Isolate every test from the developer's .env and cached settings."""
    monkeypatch.setenv("ENVIRONMENT", "test")
    monkeypatch.setenv("DEV_BYPASS_ENABLED", "false")
    monkeypatch.setenv("LANGFUSE_PUBLIC_KEY", "")
    monkeypatch.setenv("LANGFUSE_SECRET_KEY", "")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def fake_runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def qdrant_client() -> QdrantClient:
    client = QdrantClient(":memory:")
    yield client
    client.close()


@pytest.fixture
def vector_store(qdrant_client) -> VectorStore:
    return VectorStore(
        qdrant_client,
        collection_name="test-documents",
        embedding_dim=EMBEDDING_DIM,
        upsert_batch_size=10,
    )


@pytest.fixture
def http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(_http_handler))


@pytest.fixture
def website_extractor(http_client) -> WebsiteExtractor:
    return WebsiteExtractor(http_client=http_client)


@pytest.fixture
def youtube_extractor(http_client) -> YouTubeExtractor:
    return YouTubeExtractor(http_client=http_client, transcript_fetcher=_fake_transcript)


@pytest.fixture
def processor(vector_store, fake_embedder, website_extractor, youtube_extractor) -> DocumentProcessor:
    return DocumentProcessor(
        vector_store=vector_store,
        embedder=fake_embedder,
        website_extractor=website_extractor,
        youtube_extractor=youtube_extractor,
    )


@pytest.fixture
def retriever(vector_store, fake_embedder) -> Retriever:
    return Retriever(vector_store, fake_embedder)


@pytest.fixture
def orchestrator(retriever, fake_runtime) -> RetrievalOrchestrator:
    return RetrievalOrchestrator(retriever, fake_runtime)


@pytest.fixture
def make_pdf() -> Callable[[list[str]], bytes]:
    """Build a one-page PDF whose text layer holds the given lines."""

    def _escape(line: str) -> str:
        return line.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")

    def build(lines: list[str]) -> bytes:
        ops = ["BT", "/F1 12 Tf", "72 720 Td"]
        for line in lines:
            ops.append(f"({_escape(line)}) Tj")
            ops.append("0 -16 Td")
        ops.append("ET")
        stream = "\n".join(ops).encode("latin-1")

        objects = [
            b"<< /Type /Catalog /Pages 2 0 R >>",
            b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
            b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
            b"/Contents 4 0 R /Resources << /Font << /F1 5 0 R >> >> >>",
            b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream",
            b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
        ]

        out = bytearray(b"%PDF-1.4\n")
        offsets = []
        for number, body in enumerate(objects, 1):
            offsets.append(len(out))
            out += b"%d 0 obj\n" % number + body + b"\nendobj\n"

        xref_at = len(out)
        out += b"xref\n0 %d\n" % (len(objects) + 1)
        out += b"0000000000 65535 f \n"
        for offset in offsets:
            out += b"%010d 00000 n \n" % offset
        out += b"trailer\n<< /Size %d /Root 1 0 R >>\n" % (len(objects) + 1)
        out += b"startxref\n%d\n%%%%EOF\n" % xref_at
        return bytes(out)

    return build


@pytest.fixture
def blank_pdf() -> bytes:
    writer = PdfWriter()
    writer.add_blank_page(width=612, height=792)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


@pytest.fixture
def garden_text() -> str:
    return GARDEN_TEXT


@pytest.fixture
def astronomy_text() -> str:
    return ASTRONOMY_TEXT


@pytest.fixture
def sample_long_text() -> str:
    return long_text()


@pytest.fixture
def failing_runtime() -> FakeRuntime:
    return FakeRuntime(fail=True)
