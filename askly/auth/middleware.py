"""Identity middleware for FastAPI.

Authentication itself is done by an upstream identity provider; this
service trusts the user id it forwards in a request header.

Resolution order:
1. X-Dev-Bypass header (development only, requires explicit opt-in)
2. Identity header set by the upstream provider (default X-User-Id)

SECURITY NOTE: Dev bypass requires BOTH:
  - ENVIRONMENT=development
  - DEV_BYPASS_ENABLED=true
This prevents accidental bypass in misconfigured environments.
"""

import logging
from collections.abc import Callable

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from askly.core.config import get_settings

logger = logging.getLogger(__name__)

DEV_BYPASS_HEADER = "X-Dev-Bypass"

# Paths that don't require authentication
PUBLIC_PATHS = {
    "/",
    "/docs",
    "/redoc",
    "/openapi.json",
    "/health/live",
    "/health/ready",
    "/health/startup",
}


def is_public_path(path: str) -> bool:
    """Check if a path is public (no auth required)."""
    if path in PUBLIC_PATHS:
        return True

    # Mounted metrics app serves both /metrics and /metrics/
    return path.startswith("/metrics")


def _unauthorized(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"error": message, "category": "unauthorized"},
    )


class IdentityMiddleware(BaseHTTPMiddleware):
    """Resolve the calling user and store it on ``request.state.user_id``.

    Public paths skip resolution. Any other request without an identity
    is answered with 401 before it reaches a route.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        settings = get_settings()

        if is_public_path(request.url.path):
            return await call_next(request)

        # 1. Explicit dev bypass (both conditions required)
        if settings.dev_bypass_allowed and request.headers.get(DEV_BYPASS_HEADER) == "true":
            # AUDIT: Log all dev bypass usage for security review
            logger.warning(
                "DEV BYPASS ACTIVATED - request authenticated via X-Dev-Bypass header",
                extra={
                    "security_event": "dev_bypass",
                    "path": request.url.path,
                    "method": request.method,
                    "client_ip": request.client.host if request.client else "unknown",
                },
            )
            request.state.user_id = settings.dev_user_id
            return await call_next(request)

        # 2. Identity forwarded by the upstream provider
        user_id = (request.headers.get(settings.identity_header) or "").strip()
        if not user_id:
            return _unauthorized("Unauthorized")

        request.state.user_id = user_id
        return await call_next(request)


async def get_current_user_id(request: Request) -> str:
    """FastAPI dependency returning the authenticated user id.

    Usage:
        @router.get("/documents")
        async def list_documents(user_id: str = Depends(get_current_user_id)):
            ...
    """
    user_id = getattr(request.state, "user_id", None)

    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    return user_id
