"""Buyer schemas for bid history and won content."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class BuyerAuction(BaseModel):
    """One auction in a buyer's bid history."""

    post_id: UUID
    public_id: str
    current_bid: int
    my_highest_bid: int
    is_winning: bool
    bid_count: int
    auction_status: str
    auction_ends_at: datetime
    time_remaining_ms: int
    buyer_status: str
    last_bid_at: datetime


class BuyerBidStats(BaseModel):
    active_bids: int
    winning: int
    outbid: int
    won: int
    total_bid_amount: int

    model_config = {"from_attributes": True}


class BuyerBidsResponse(BaseModel):
    """Schema for buyer bid history response."""

    auctions: list[BuyerAuction]
    stats: BuyerBidStats


class WonContent(BaseModel):
    """One exclusive grant owned by a buyer."""

    grant_id: UUID
    post_id: UUID
    public_id: str
    media_ref: str | None = None
    amount_paid: int
    download_token: str
    downloads_used: int
    max_downloads: int
    won_at: datetime
    expires_at: datetime


class WonContentResponse(BaseModel):
    content: list[WonContent]
    total: int
