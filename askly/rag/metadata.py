"""Chunk metadata tagging.

Stamps every chunk of one ingestion call with the same document identity
and a dense 0..N-1 ``chunk_index``. This is the only place chunk payloads
are constructed; nothing downstream mutates them.
"""

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from askly.rag.chunking import Chunk

_SLUG_PATTERN = re.compile(r"[^a-zA-Z0-9]")


class SourceType(str, Enum):
    """Where a document came from."""

    PDF = "pdf"
    TEXT = "text"
    WEBSITE = "website"
    YOUTUBE = "youtube"


# Payload keys that may hold a human-readable document name, in priority order
NAME_FIELDS = ("file_name", "url_name", "text_name", "video_title")


@dataclass
class SourceMetadata:
    """Source kind, human-readable name, and source-specific payload fields."""

    source: SourceType
    name: str
    fields: dict[str, str] = field(default_factory=dict)

    @classmethod
    def for_pdf(cls, file_name: str) -> "SourceMetadata":
        return cls(SourceType.PDF, file_name, {"file_name": file_name})

    @classmethod
    def for_text(cls, text_name: str) -> "SourceMetadata":
        return cls(SourceType.TEXT, text_name, {"text_name": text_name})

    @classmethod
    def for_website(cls, url: str, url_name: str) -> "SourceMetadata":
        return cls(SourceType.WEBSITE, url_name, {"url": url, "url_name": url_name})

    @classmethod
    def for_youtube(
        cls,
        video_id: str,
        video_url: str,
        video_title: str,
        channel_name: str,
    ) -> "SourceMetadata":
        # The document id is built from the video id, not the (mutable) title
        return cls(
            SourceType.YOUTUBE,
            video_id,
            {
                "video_id": video_id,
                "video_url": video_url,
                "video_title": video_title,
                "channel_name": channel_name,
            },
        )

    @property
    def display_name(self) -> str:
        return display_name(self.fields) or self.name


@dataclass
class TaggedChunk:
    """A chunk plus the payload that will be stored alongside its vector."""

    text: str
    payload: dict

    @property
    def chunk_index(self) -> int:
        return self.payload["chunk_index"]


@dataclass
class TaggedDocument:
    """All tagged chunks produced by one ingestion call."""

    document_id: str
    user_id: str
    source: SourceType
    uploaded_at: str
    name: str
    chunks: list[TaggedChunk]

    @property
    def chunk_count(self) -> int:
        return len(self.chunks)


def slugify(name: str) -> str:
    """Filesystem-safe slug: every non-alphanumeric character becomes '-'."""
    return _SLUG_PATTERN.sub("-", name)


def display_name(payload: dict) -> str | None:
    """First non-empty name field of a payload."""
    for key in NAME_FIELDS:
        value = payload.get(key)
        if value:
            return value
    return None


def build_document_id(user_id: str, name: str, now: datetime | None = None) -> str:
    """Generate a fresh document id.

    Combines the user id, the creation time in epoch milliseconds, a short
    random nonce, and the slugged source name. Re-ingesting the same source
    always yields a new id.
    """
    now = now or datetime.now(UTC)
    millis = int(now.timestamp() * 1000)
    return f"{user_id}-{millis}-{uuid4().hex[:8]}-{slugify(name)}"


def tag_chunks(
    chunks: list[Chunk],
    source: SourceMetadata,
    user_id: str,
    now: datetime | None = None,
) -> TaggedDocument:
    """Attach document identity and positional metadata to every chunk."""
    now = now or datetime.now(UTC)
    document_id = build_document_id(user_id, source.name, now)
    uploaded_at = now.isoformat()

    tagged = []
    for index, chunk in enumerate(chunks):
        payload = {
            **source.fields,
            "user_id": user_id,
            "document_id": document_id,
            "chunk_index": index,
            "source": source.source.value,
            "uploaded_at": uploaded_at,
            "start_char": chunk.start_char,
            "end_char": chunk.end_char,
            "text": chunk.text,
        }
        tagged.append(TaggedChunk(text=chunk.text, payload=payload))

    return TaggedDocument(
        document_id=document_id,
        user_id=user_id,
        source=source.source,
        uploaded_at=uploaded_at,
        name=source.display_name,
        chunks=tagged,
    )
