"""Health check endpoints for Kubernetes probes."""

from datetime import UTC, datetime

import httpx
from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from askly.api.deps import Store
from askly.core.config import get_settings

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: str
    version: str
    checks: dict | None = None


# Startup state
_startup_complete = False


def set_startup_complete():
    """Mark startup as complete."""
    global _startup_complete
    _startup_complete = True


def _now() -> str:
    return datetime.now(UTC).isoformat()


async def check_qdrant() -> tuple[bool, str]:
    """Check Qdrant connectivity."""
    settings = get_settings()
    headers = {"api-key": settings.qdrant_api_key} if settings.qdrant_api_key else None
    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(f"{settings.qdrant_url}/readyz", headers=headers, timeout=5.0)
            if response.status_code == 200:
                return True, "healthy"
            return False, f"unhealthy: status {response.status_code}"
    except httpx.HTTPError as e:
        return False, f"unhealthy: {e!s}"


async def check_langfuse() -> tuple[bool, str]:
    """Check Langfuse connectivity."""
    settings = get_settings()
    if not settings.langfuse_enabled:
        return True, "disabled"
    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(f"{settings.langfuse_host}/api/public/health", timeout=5.0)
            if response.status_code == 200:
                return True, "healthy"
            return False, f"unhealthy: status {response.status_code}"
    except httpx.HTTPError as e:
        return False, f"unhealthy: {e!s}"


@router.get("/health/live", response_model=HealthResponse)
async def liveness():
    """Kubernetes liveness probe.

    Returns 200 if the process is alive.
    """
    return HealthResponse(status="alive", timestamp=_now(), version=get_settings().app_version)


@router.get("/health/ready", response_model=HealthResponse)
async def readiness(store: Store):
    """Kubernetes readiness probe.

    Returns 200 when the vector database answers and the shared collection
    exists (startup bootstrap can fail without stopping the app). Langfuse
    is reported but never fails readiness.
    """
    checks = {}

    qdrant_ok, checks["qdrant"] = await check_qdrant()
    collection_ok = qdrant_ok and await store.collection_ready()
    checks["collection"] = "present" if collection_ok else "missing"
    _langfuse_ok, checks["langfuse"] = await check_langfuse()

    if not collection_ok:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": "unhealthy", "checks": checks},
        )

    return HealthResponse(
        status="ready", timestamp=_now(), version=get_settings().app_version, checks=checks
    )


@router.get("/health/startup", response_model=HealthResponse)
async def startup():
    """Kubernetes startup probe.

    Returns 200 once initialization is complete.
    """
    if not _startup_complete:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": "starting", "message": "Initialization in progress"},
        )

    return HealthResponse(status="started", timestamp=_now(), version=get_settings().app_version)
