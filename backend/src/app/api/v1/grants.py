"""Download grant endpoints."""

from fastapi import APIRouter, HTTPException, status

from app.api.deps import GrantServiceDep
from app.core.clock import as_utc
from app.schemas.grant import GrantResponse

router = APIRouter()


@router.get("/{download_token}", response_model=GrantResponse)
async def resolve_grant(download_token: str, grant_service: GrantServiceDep):
    """Resolve a download token for the external download endpoint."""
    resolution = await grant_service.resolve(download_token)
    if resolution is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "GRANT_NOT_FOUND", "message": "Download grant not found"},
        )

    return GrantResponse(
        post_id=resolution.post_id,
        public_id=resolution.public_id,
        remaining_downloads=resolution.remaining_downloads,
        expires_at=as_utc(resolution.expires_at),
        is_valid=resolution.is_valid,
    )
