"""FastAPI dependency injection.

Provides common dependencies for API routes.
"""

from typing import Annotated

from fastapi import Depends

from askly.agent.orchestrator import RetrievalOrchestrator, get_orchestrator
from askly.auth.middleware import get_current_user_id
from askly.core.config import Settings, get_settings
from askly.rag.processor import DocumentProcessor, get_processor
from askly.rag.vector_store import VectorStore, get_vector_store

# Type aliases for cleaner signatures
CurrentUserId = Annotated[str, Depends(get_current_user_id)]
AppSettings = Annotated[Settings, Depends(get_settings)]
Processor = Annotated[DocumentProcessor, Depends(get_processor)]
Store = Annotated[VectorStore, Depends(get_vector_store)]
Orchestrator = Annotated[RetrievalOrchestrator, Depends(get_orchestrator)]
