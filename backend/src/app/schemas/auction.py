"""Auction schemas for status reads and sweep triggers."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class RecentBid(BaseModel):
    """One entry of the recent bids list (bidder identity is never exposed)."""

    id: UUID
    amount: int
    bidder_name: str
    is_winning: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class AuctionStatusResponse(BaseModel):
    """Schema for auction status response."""

    post_id: UUID
    public_id: str
    auction_status: str
    is_active: bool
    auction_ends_at: datetime
    time_remaining_ms: int
    current_bid: int | None
    bid_count: int
    minimum_bid: int
    is_exclusive: bool
    exclusive_buyer_name: str | None = None
    sold_at: datetime | None = None
    can_buy_public: bool
    server_time: datetime
    recent_bids: list[RecentBid]


class ActiveAuction(BaseModel):
    """One entry of the active auctions feed."""

    post_id: UUID
    public_id: str
    current_bid: int
    minimum_bid: int
    bid_count: int
    highest_bidder: str | None = None
    auction_ends_at: datetime
    time_remaining_ms: int
    created_at: datetime


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class ActiveAuctionsResponse(BaseModel):
    """Schema for the active auctions feed."""

    auctions: list[ActiveAuction]
    pagination: Pagination


class SweepRequest(BaseModel):
    """Optional body for the sweep trigger; omit post_id to sweep everything."""

    post_id: str | None = None


class SweepResponse(BaseModel):
    """Schema for sweep result counts."""

    processed: int
    sold: int
    public_sale: int
    failed: int

    model_config = {"from_attributes": True}
