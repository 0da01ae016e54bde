"""Error taxonomy shared by the ingestion and query pipelines.

Every error carries a stable ``category`` and an HTTP-equivalent
``status_code`` so the API layer can explain the failure without leaking
stack traces.
"""


class AsklyError(Exception):
    """Base class for all expected application errors."""

    status_code: int = 500
    category: str = "internal"

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict:
        payload = {"error": self.message, "category": self.category}
        if self.detail:
            payload["details"] = self.detail
        return payload


class ValidationError(AsklyError):
    """Missing or malformed input. Never retried."""

    status_code = 400
    category = "validation"


class ExtractionError(AsklyError):
    """Source content is unusable (empty PDF, no meaningful text, ...)."""

    status_code = 422
    category = "extraction"


class NoTranscriptError(ExtractionError):
    """The video has no caption track in any accepted language."""

    category = "no_transcript"


class FetchError(AsklyError):
    """Fetching a remote source failed."""

    status_code = 502
    category = "fetch"


class FetchTimeoutError(FetchError, TimeoutError):
    """Fetching a remote source exceeded its timeout."""

    status_code = 504
    category = "timeout"


class EmbeddingError(AsklyError):
    """Embedding provider failure (auth, rate limit, malformed input)."""

    status_code = 502
    category = "embedding"


class ModelProviderError(AsklyError):
    """Language-model provider failure."""

    status_code = 502
    category = "model_provider"


class StorageError(AsklyError):
    """Vector database unreachable or rejected a request."""

    status_code = 503
    category = "storage"


__all__ = [
    "AsklyError",
    "EmbeddingError",
    "ExtractionError",
    "FetchError",
    "FetchTimeoutError",
    "ModelProviderError",
    "NoTranscriptError",
    "StorageError",
    "ValidationError",
]
