"""Bidding API endpoints."""

import asyncio

from fastapi import APIRouter, HTTPException, status

from app.api.deps import BidServiceDep, NotifierDep
from app.core.clock import as_utc
from app.middleware.metrics import record_bid_rejection
from app.schemas.bid import BidCreate, BidResponse
from app.services.auction_errors import BidRejectedError

router = APIRouter()

# Rejection code -> HTTP status
REJECTION_STATUS = {
    "AUCTION_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "AUCTION_NOT_ACTIVE": status.HTTP_403_FORBIDDEN,
    "AUCTION_EXPIRED": status.HTTP_403_FORBIDDEN,
    "INVALID_BIDDER": status.HTTP_400_BAD_REQUEST,
    "BID_TOO_LOW": status.HTTP_400_BAD_REQUEST,
    "STALE_STATE": status.HTTP_409_CONFLICT,
}


@router.post("", response_model=BidResponse, status_code=status.HTTP_201_CREATED)
async def submit_bid(
    bid_data: BidCreate,
    bid_service: BidServiceDep,
    notifier: NotifierDep,
):
    """Place a bid on a post's exclusive rights.

    A 409 STALE_STATE response means another bid was accepted first; the
    client should refresh the minimum bid and retry.
    """
    try:
        placement = await bid_service.place_bid(
            post_ref=bid_data.post_id,
            bidder_phone=bid_data.bidder_phone,
            amount=bid_data.amount,
            display_name=bid_data.display_name,
        )
    except BidRejectedError as e:
        record_bid_rejection(e.code)
        headers = {"Retry-After": "0"} if e.code == "STALE_STATE" else None
        raise HTTPException(
            status_code=REJECTION_STATUS.get(e.code, status.HTTP_400_BAD_REQUEST),
            detail={"code": e.code, "message": e.message},
            headers=headers,
        )

    # Send WebSocket notification (non-blocking)
    asyncio.create_task(
        notifier.bid_placed(
            post_id=str(placement.post_id),
            public_id=placement.public_id,
            current_bid=placement.current_bid,
            bid_count=placement.bid_count,
            auction_ends_at=placement.auction_ends_at,
            extended=placement.extended,
            bidder_name=bid_data.display_name,
        )
    )

    message = "Bid placed successfully"
    if placement.extended:
        message += ", auction extended"

    return BidResponse(
        bid_id=placement.bid_id,
        current_bid=placement.current_bid,
        bid_count=placement.bid_count,
        auction_ends_at=as_utc(placement.auction_ends_at),
        extended=placement.extended,
        message=message,
    )
