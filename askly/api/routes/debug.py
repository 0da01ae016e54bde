"""Development-only identity diagnostics."""

from fastapi import APIRouter, HTTPException, Request, status

from askly.api.deps import AppSettings, CurrentUserId

router = APIRouter(prefix="/debug")


@router.get("/auth")
async def debug_auth(request: Request, user_id: CurrentUserId, settings: AppSettings):
    """Echo the resolved identity, to troubleshoot 401s behind the proxy."""
    if settings.environment != "development":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")

    return {
        "userId": user_id,
        "identityHeader": settings.identity_header,
        "identityHeaderPresent": settings.identity_header in request.headers,
        "devBypassAllowed": settings.dev_bypass_allowed,
    }
