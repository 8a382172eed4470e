"""WebSocket event schemas for real-time auction updates."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel


class BidPlacedData(BaseModel):
    """Data payload for bid placed event."""

    post_id: str
    public_id: str
    current_bid: int
    bid_count: int
    auction_ends_at: datetime
    extended: bool
    bidder_name: str
    timestamp: datetime


class BidPlacedEvent(BaseModel):
    """Bid placed event pushed to every viewer of a post."""

    event: Literal["bid_placed"] = "bid_placed"
    data: BidPlacedData


class AuctionClosedData(BaseModel):
    """Data payload for auction closed event."""

    post_id: str
    public_id: str
    outcome: Literal["SOLD", "PUBLIC_SALE"]
    auction_status: str
    winning_bid: int | None = None
    exclusive_buyer_name: str | None = None
    reason: str | None = None
    timestamp: datetime


class AuctionClosedEvent(BaseModel):
    """Auction closed event pushed once the sweeper finalizes a post."""

    event: Literal["auction_closed"] = "auction_closed"
    data: AuctionClosedData


# Type alias for all WebSocket events
WSEvent = BidPlacedEvent | AuctionClosedEvent
