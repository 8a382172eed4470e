"""Bid schemas for request/response validation."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class BidCreate(BaseModel):
    """Schema for bid creation request.

    ``post_id`` accepts the internal UUID or the public id.
    """

    post_id: str = Field(..., min_length=1, max_length=64)
    bidder_phone: str = Field(..., min_length=1, max_length=32)
    display_name: str | None = Field(None, max_length=200)
    amount: int = Field(..., gt=0, description="Bid in minor currency units")


class BidResponse(BaseModel):
    """Schema for accepted bid response."""

    bid_id: UUID
    current_bid: int
    bid_count: int
    auction_ends_at: datetime
    extended: bool
    message: str

    model_config = {"from_attributes": True}
