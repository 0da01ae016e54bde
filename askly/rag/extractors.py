"""Text extraction for every supported source.

Supports: PDF bytes, web pages, YouTube transcripts
"""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from io import BytesIO

import httpx
import requests
from bs4 import BeautifulSoup
from pypdf import PdfReader
from pypdf.errors import PdfReadError
from youtube_transcript_api import (
    CouldNotRetrieveTranscript,
    NoTranscriptFound,
    TranscriptsDisabled,
    YouTubeTranscriptApi,
)

from askly.core.config import get_settings
from askly.core.exceptions import (
    ExtractionError,
    FetchError,
    FetchTimeoutError,
    NoTranscriptError,
    ValidationError,
)

logger = logging.getLogger(__name__)

MIN_TEXT_LENGTH = 50

_WHITESPACE = re.compile(r"\s+")
_YOUTUBE_ID = re.compile(r"(?:youtu\.be/|youtube\.com/(?:watch\?(?:.*&)?v=|embed/|shorts/))([\w-]{11})")
_STRIPPED_TAGS = ["script", "style", "noscript", "iframe"]
_OEMBED_URL = "https://www.youtube.com/oembed"


def ensure_meaningful_text(text: str | None, source_label: str, min_length: int = MIN_TEXT_LENGTH) -> str:
    """Return the trimmed text, or fail if too little is left.

    Raises:
        ExtractionError: If fewer than ``min_length`` characters remain
    """
    cleaned = (text or "").strip()
    if len(cleaned) < min_length:
        raise ExtractionError(
            f"No meaningful text found in the {source_label}.",
            detail=f"Extracted {len(cleaned)} characters, need at least {min_length}",
        )
    return cleaned


class TextExtractor(ABC):
    """Base class for byte-content extractors."""

    @abstractmethod
    def extract(self, content: bytes) -> str:
        """Extract text from document content."""

    @abstractmethod
    def supported_types(self) -> list[str]:
        """Return list of supported MIME types."""


class PDFExtractor(TextExtractor):
    """Extract the text layer from PDF files using pypdf."""

    def extract(self, content: bytes) -> str:
        """Concatenate the text of all pages.

        Scanned or image-only PDFs come back empty; the caller decides
        whether that is enough text.
        """
        try:
            reader = PdfReader(BytesIO(content))
        except (PdfReadError, ValueError, OSError) as e:
            raise ExtractionError("Could not read the PDF file.", detail=str(e)) from e

        text_parts = []
        for page_num, page in enumerate(reader.pages, 1):
            try:
                page_text = page.extract_text()
            except Exception as e:
                logger.warning(f"[Extractor] PDF page {page_num} extraction failed: {e}")
                continue
            if page_text and page_text.strip():
                text_parts.append(page_text)

        return "\n\n".join(text_parts)

    def supported_types(self) -> list[str]:
        return ["application/pdf"]


class DocumentExtractor:
    """Unified byte-content extractor that delegates by MIME type."""

    def __init__(self):
        self.extractors: list[TextExtractor] = [PDFExtractor()]

        # Build MIME type mapping
        self._mime_map: dict[str, TextExtractor] = {}
        for extractor in self.extractors:
            for mime_type in extractor.supported_types():
                self._mime_map[mime_type] = extractor

    def supported_types(self) -> list[str]:
        """Get all supported MIME types."""
        return list(self._mime_map.keys())

    def extract(self, content: bytes, mime_type: str) -> str:
        """Extract text from document based on MIME type.

        Args:
            content: Raw document bytes
            mime_type: Document MIME type

        Returns:
            Extracted, normalized text (possibly empty)

        Raises:
            ValidationError: If the type is not supported
            ExtractionError: If the content cannot be read
        """
        extractor = self._mime_map.get(mime_type)

        if not extractor:
            raise ValidationError(
                f"Unsupported file type: {mime_type}. "
                f"Supported types: {', '.join(self.supported_types())}"
            )

        return clean_text(extractor.extract(content))


def clean_text(text: str) -> str:
    """Clean and normalize extracted text."""
    # Normalize line endings
    text = text.replace("\r\n", "\n").replace("\r", "\n")

    # Remove excessive whitespace
    text = re.sub(r"[ \t]+", " ", text)

    # Remove excessive newlines (more than 2)
    text = re.sub(r"\n{3,}", "\n\n", text)

    # Strip leading/trailing whitespace from each line
    lines = [line.strip() for line in text.split("\n")]
    text = "\n".join(lines)

    return text.strip()


# ============================================
# Remote sources
# ============================================


@dataclass
class WebPage:
    """Visible text of a fetched web page."""

    url: str
    title: str | None
    text: str


@dataclass
class VideoTranscript:
    """Caption text and metadata of a YouTube video."""

    video_id: str
    url: str
    title: str
    channel_name: str
    text: str


def _default_http_client() -> httpx.AsyncClient:
    settings = get_settings()
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.fetch_timeout),
        headers={
            "User-Agent": settings.fetch_user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        },
        follow_redirects=True,
    )


def html_to_text(html: str) -> tuple[str | None, str]:
    """Return (title, visible body text) of an HTML document."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(_STRIPPED_TAGS):
        tag.decompose()

    title = soup.title.get_text(strip=True) if soup.title else None
    root = soup.body or soup
    text = _WHITESPACE.sub(" ", root.get_text(separator=" ")).strip()
    return title or None, text


class WebsiteExtractor:
    """Fetch a URL and extract its visible text."""

    def __init__(self, http_client: httpx.AsyncClient | None = None):
        self._client = http_client or _default_http_client()

    async def extract(self, url: str) -> WebPage:
        """Fetch ``url`` and strip it down to body text.

        Raises:
            FetchTimeoutError: The site did not answer within the timeout
            FetchError: Transport failure or non-2xx status
        """
        try:
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise FetchTimeoutError(
                "Website request timed out. Please try again or use a different URL.",
                detail=url,
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise FetchError(
                f"Website returned HTTP {exc.response.status_code}.",
                detail=url,
            ) from exc
        except httpx.HTTPError as exc:
            raise FetchError(f"Could not fetch website: {exc}", detail=url) from exc

        title, text = html_to_text(response.text)
        logger.info(f"[Extractor] Fetched {url}: {len(text)} characters of visible text")
        return WebPage(url=url, title=title, text=text)

    async def aclose(self) -> None:
        await self._client.aclose()


def extract_video_id(url: str) -> str:
    """Pull the 11-character video id out of a YouTube URL.

    Raises:
        ValidationError: If the URL is not a recognizable YouTube video URL
    """
    match = _YOUTUBE_ID.search(url or "")
    if not match:
        raise ValidationError("Valid YouTube URL is required", detail=url)
    return match.group(1)


TranscriptFetcher = Callable[[str, list[str]], str]


class _TimeoutSession(requests.Session):
    """requests session that applies a default timeout to every call."""

    def __init__(self, timeout: float):
        super().__init__()
        self.timeout = timeout

    def request(self, method, url, **kwargs):
        kwargs.setdefault("timeout", self.timeout)
        return super().request(method, url, **kwargs)


def fetch_transcript_text(video_id: str, languages: list[str]) -> str:
    """Blocking fetch of the caption track, joined into one text.

    Each HTTP request to YouTube is bounded by ``FETCH_TIMEOUT``.
    """
    with _TimeoutSession(get_settings().fetch_timeout) as session:
        transcript = YouTubeTranscriptApi(http_client=session).fetch(video_id, languages=languages)
    return "\n".join(snippet.text for snippet in transcript)


class YouTubeExtractor:
    """Fetch a video's English transcript plus title/channel metadata."""

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        transcript_fetcher: TranscriptFetcher = fetch_transcript_text,
        languages: list[str] | None = None,
        timeout: float | None = None,
    ):
        settings = get_settings()
        self._client = http_client or _default_http_client()
        self._fetch_transcript = transcript_fetcher
        self.languages = languages or settings.transcript_languages
        # Overall bound for the transcript fetch, which makes several requests
        self.timeout = timeout or settings.transcript_timeout

    async def _fetch_video_info(self, url: str) -> tuple[str, str]:
        """Title and channel via oEmbed; defaults when unavailable."""
        try:
            response = await self._client.get(_OEMBED_URL, params={"url": url, "format": "json"})
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(f"[Extractor] Video info lookup failed for {url}: {exc}")
            return "Untitled Video", "Unknown Channel"

        return (
            data.get("title") or "Untitled Video",
            data.get("author_name") or "Unknown Channel",
        )

    async def extract(self, url: str) -> VideoTranscript:
        """Fetch the transcript for ``url``.

        Raises:
            ValidationError: Not a YouTube video URL
            NoTranscriptError: The video has no usable captions
            FetchTimeoutError: YouTube did not answer within the timeout
            FetchError: YouTube could not be reached
        """
        video_id = extract_video_id(url)

        try:
            text = await asyncio.wait_for(
                asyncio.to_thread(self._fetch_transcript, video_id, self.languages),
                timeout=self.timeout,
            )
        except (NoTranscriptFound, TranscriptsDisabled) as exc:
            raise NoTranscriptError(
                "No transcript or captions found for this video.", detail=video_id
            ) from exc
        except CouldNotRetrieveTranscript as exc:
            raise FetchError("Could not retrieve the video transcript.", detail=str(exc)) from exc
        except (TimeoutError, requests.Timeout) as exc:
            raise FetchTimeoutError(
                "YouTube request timed out. Please try again later.", detail=video_id
            ) from exc
        except requests.RequestException as exc:
            raise FetchError("Could not reach YouTube.", detail=f"{video_id}: {exc}") from exc

        if not text or not text.strip():
            raise NoTranscriptError("No transcript or captions found for this video.", detail=video_id)

        title, channel_name = await self._fetch_video_info(url)
        logger.info(f"[Extractor] Transcript loaded for {video_id}: {len(text)} characters")

        return VideoTranscript(
            video_id=video_id,
            url=url,
            title=title,
            channel_name=channel_name,
            text=text,
        )

    async def aclose(self) -> None:
        await self._client.aclose()


# Singleton instance
_extractor: DocumentExtractor | None = None


def get_extractor() -> DocumentExtractor:
    """Get or create the global DocumentExtractor instance."""
    global _extractor
    if _extractor is None:
        _extractor = DocumentExtractor()
    return _extractor
