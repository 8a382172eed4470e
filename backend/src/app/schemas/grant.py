"""Download grant schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class GrantResponse(BaseModel):
    """Schema for download grant resolution."""

    post_id: UUID
    public_id: str
    remaining_downloads: int
    expires_at: datetime
    is_valid: bool

    model_config = {"from_attributes": True}
