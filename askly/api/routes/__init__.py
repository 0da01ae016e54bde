"""API route modules."""

from . import chat, debug, documents, health, upload

__all__ = ["chat", "debug", "documents", "health", "upload"]
