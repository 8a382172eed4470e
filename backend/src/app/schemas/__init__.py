"""Pydantic schemas for request/response validation."""

from app.schemas.auction import (
    ActiveAuction,
    ActiveAuctionsResponse,
    AuctionStatusResponse,
    Pagination,
    RecentBid,
    SweepRequest,
    SweepResponse,
)
from app.schemas.bid import BidCreate, BidResponse
from app.schemas.buyer import (
    BuyerAuction,
    BuyerBidStats,
    BuyerBidsResponse,
    WonContent,
    WonContentResponse,
)
from app.schemas.grant import GrantResponse
from app.schemas.submitter import EarningsSummaryResponse

__all__ = [
    "BidCreate",
    "BidResponse",
    "ActiveAuction",
    "ActiveAuctionsResponse",
    "AuctionStatusResponse",
    "Pagination",
    "RecentBid",
    "SweepRequest",
    "SweepResponse",
    "BuyerAuction",
    "BuyerBidStats",
    "BuyerBidsResponse",
    "WonContent",
    "WonContentResponse",
    "GrantResponse",
    "EarningsSummaryResponse",
]
