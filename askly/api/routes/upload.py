"""Document upload endpoints.

Each upload creates a new document for the calling user; re-uploading the
same source creates another document rather than replacing the first.
"""

import asyncio
import logging
import tempfile
from datetime import UTC, datetime

from fastapi import APIRouter, File, UploadFile
from pydantic import BaseModel, ConfigDict, Field

from askly.api.deps import AppSettings, CurrentUserId, Processor
from askly.core.exceptions import ValidationError
from askly.rag.metadata import SourceType

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/upload")

PDF_MIME_TYPE = "application/pdf"


class TextUploadRequest(BaseModel):
    """Raw text to index."""

    model_config = ConfigDict(populate_by_name=True)

    text: str | None = Field(None, description="Text content")
    text_name: str | None = Field(None, alias="textName", description="Display name")


class WebsiteUploadRequest(BaseModel):
    """A single named URL, or a batch of URLs."""

    model_config = ConfigDict(populate_by_name=True)

    url: str | None = None
    url_name: str | None = Field(None, alias="urlName")
    urls: list[str] | None = Field(None, description="Batch of URLs, named after their hostnames")


class YouTubeUploadRequest(BaseModel):
    """A single video URL, or a batch of video URLs."""

    url: str | None = None
    urls: list[str] | None = None


def _stage_upload(content: bytes) -> str:
    """Write the upload to a temporary file and return its path."""
    with tempfile.NamedTemporaryFile(suffix=".pdf", delete=False) as tmp:
        tmp.write(content)
        return tmp.name


def _indexed_at() -> str:
    return datetime.now(UTC).isoformat()


@router.post("/file")
async def upload_file(
    user_id: CurrentUserId,
    processor: Processor,
    settings: AppSettings,
    file: UploadFile = File(...),
):
    """Upload and index a PDF.

    The upload is staged in a temporary file that is removed once indexing
    finishes, whether it succeeded or not.
    """
    if file.content_type != PDF_MIME_TYPE:
        raise ValidationError("Only PDF files are supported")

    content = await file.read()
    if len(content) > settings.max_upload_bytes:
        limit_mb = settings.max_upload_bytes // (1024 * 1024)
        raise ValidationError(f"File size exceeds {limit_mb}MB limit")

    tmp_path = await asyncio.to_thread(_stage_upload, content)

    file_name = file.filename or "document.pdf"
    result = await processor.index_document(
        SourceType.PDF, {"path": tmp_path, "file_name": file_name}, user_id
    )

    return {
        "success": True,
        "message": "File uploaded and indexed successfully",
        "data": {
            **result.to_dict(),
            "fileName": file_name,
            "fileSize": len(content),
            "uploadedAt": _indexed_at(),
        },
    }


@router.post("/text")
async def upload_text(body: TextUploadRequest, user_id: CurrentUserId, processor: Processor):
    """Index pasted text."""
    result = await processor.index_document(
        SourceType.TEXT, {"text": body.text, "text_name": body.text_name}, user_id
    )
    return {
        "success": True,
        "message": "Text indexed successfully",
        "data": {**result.to_dict(), "textName": body.text_name, "indexedAt": _indexed_at()},
    }


@router.post("/website")
async def upload_website(body: WebsiteUploadRequest, user_id: CurrentUserId, processor: Processor):
    """Index one website (``url`` + ``urlName``) or a batch (``urls``)."""
    if body.url:
        result = await processor.index_document(
            SourceType.WEBSITE, {"url": body.url, "url_name": body.url_name}, user_id
        )
        return {
            "success": True,
            "message": "Website indexed successfully",
            "data": {**result.to_dict(), "url": body.url, "indexedAt": _indexed_at()},
        }

    if body.urls is not None:
        batch = await processor.index_multiple_websites(body.urls, user_id)
        return {
            "success": True,
            "message": f"Indexed {batch.indexed} of {len(body.urls)} websites",
            "data": {**batch.to_dict(), "indexedAt": _indexed_at()},
        }

    raise ValidationError("Either 'url' or 'urls' must be provided")


@router.post("/youtube")
async def upload_youtube(body: YouTubeUploadRequest, user_id: CurrentUserId, processor: Processor):
    """Index one YouTube video (``url``) or a batch (``urls``)."""
    if body.url:
        result = await processor.index_document(SourceType.YOUTUBE, {"url": body.url}, user_id)
        return {
            "success": True,
            "message": "YouTube video indexed successfully",
            "data": {**result.to_dict(), "url": body.url, "indexedAt": _indexed_at()},
        }

    if body.urls is not None:
        batch = await processor.index_multiple_youtube_videos(body.urls, user_id)
        return {
            "success": True,
            "message": f"Indexed {batch.indexed} of {len(body.urls)} videos",
            "data": {**batch.to_dict(), "indexedAt": _indexed_at()},
        }

    raise ValidationError("Either 'url' or 'urls' must be provided")
