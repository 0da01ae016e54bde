"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from askly.agent.runtime import shutdown_runtime
from askly.api.routes import chat, debug, documents, health, upload
from askly.auth.middleware import IdentityMiddleware
from askly.core.config import get_settings
from askly.core.exceptions import AsklyError, StorageError
from askly.core.logging import setup_logging
from askly.rag.processor import shutdown_processor
from askly.rag.vector_store import get_vector_store

logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    setup_logging(settings)
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Environment: {settings.environment}")

    # Create the shared collection before the first upload
    try:
        created = await get_vector_store().ensure_collection()
        logger.info("Vector collection created" if created else "Vector collection present")
    except StorageError as e:
        # Readiness reports Qdrant; ingestion retries the bootstrap on first write
        logger.error(f"Vector collection bootstrap failed: {e.message} ({e.detail})")

    health.set_startup_complete()
    logger.info("Startup complete - ready to accept requests")

    yield

    logger.info("Shutting down...")
    await shutdown_processor()
    await shutdown_runtime()
    logger.info("Shutdown complete")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Question answering over your own documents",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan,
)

# Identity middleware (sets request.state.user_id)
app.add_middleware(IdentityMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AsklyError)
async def askly_error_handler(request: Request, exc: AsklyError) -> JSONResponse:
    """Translate application errors to their HTTP status, without stack traces."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed ({exc.category}): {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({exc.category}): {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Health check routes (no auth required - public paths)
app.include_router(health.router, tags=["Health"])

# API routes (identity required)
app.include_router(upload.router, prefix=settings.api_prefix, tags=["Upload"])
app.include_router(documents.router, prefix=settings.api_prefix, tags=["Documents"])
app.include_router(chat.router, prefix=settings.api_prefix, tags=["Chat"])
app.include_router(debug.router, prefix=settings.api_prefix, tags=["Debug"])

# Prometheus metrics endpoint
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs" if settings.debug else None,
        "health": "/health/ready",
    }
