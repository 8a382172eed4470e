"""Buyer dashboard endpoints: bid history and won content."""

from typing import Literal
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from app.api.deps import AuctionServiceDep, GrantServiceDep
from app.core.clock import as_utc
from app.schemas.buyer import (
    BuyerAuction,
    BuyerBidStats,
    BuyerBidsResponse,
    WonContent,
    WonContentResponse,
)
from app.services.auction_errors import BuyerNotFoundError

router = APIRouter()


def _buyer_not_found() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={"code": "BUYER_NOT_FOUND", "message": "Buyer not found"},
    )


@router.get("/{buyer_id}/bids", response_model=BuyerBidsResponse)
async def get_buyer_bids(
    buyer_id: UUID,
    auction_service: AuctionServiceDep,
    status_filter: Literal["all", "active", "won", "outbid"] = Query("all", alias="filter"),
):
    """Get a buyer's bids, one entry per auction with the buyer's standing."""
    try:
        history = await auction_service.list_buyer_bids(buyer_id, status_filter=status_filter)
    except BuyerNotFoundError:
        raise _buyer_not_found()

    return BuyerBidsResponse(
        auctions=[
            BuyerAuction(
                post_id=entry.post_id,
                public_id=entry.public_id,
                current_bid=entry.current_bid,
                my_highest_bid=entry.my_highest_bid,
                is_winning=entry.is_winning,
                bid_count=entry.bid_count,
                auction_status=entry.auction_status,
                auction_ends_at=as_utc(entry.auction_ends_at),
                time_remaining_ms=entry.time_remaining_ms,
                buyer_status=entry.buyer_status,
                last_bid_at=as_utc(entry.last_bid_at),
            )
            for entry in history.auctions
        ],
        stats=BuyerBidStats.model_validate(history.stats),
    )


@router.get("/{buyer_id}/content", response_model=WonContentResponse)
async def get_buyer_content(buyer_id: UUID, grant_service: GrantServiceDep):
    """Get the exclusive content a buyer won and can still download."""
    try:
        grants = await grant_service.list_won_content(buyer_id)
    except BuyerNotFoundError:
        raise _buyer_not_found()

    return WonContentResponse(
        content=[
            WonContent(
                grant_id=grant.grant_id,
                post_id=grant.post_id,
                public_id=grant.public_id,
                media_ref=grant.media_ref,
                amount_paid=grant.amount_paid,
                download_token=grant.download_token,
                downloads_used=grant.downloads_used,
                max_downloads=grant.max_downloads,
                won_at=as_utc(grant.won_at),
                expires_at=as_utc(grant.expires_at),
            )
            for grant in grants
        ],
        total=len(grants),
    )
