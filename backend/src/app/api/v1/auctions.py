"""Auction status and sweep trigger endpoints."""

from typing import Literal

from fastapi import APIRouter, BackgroundTasks, HTTPException, Query, status

from app.api.deps import AuctionServiceDep, CronGuard, DbSession, NotifierDep, RedisServiceDep
from app.core.clock import as_utc
from app.core.config import settings
from app.schemas.auction import (
    ActiveAuction,
    ActiveAuctionsResponse,
    AuctionStatusResponse,
    Pagination,
    RecentBid,
    SweepRequest,
    SweepResponse,
)
from app.services.auction_errors import AuctionNotFoundError
from app.services.sweep_service import SweepService, run_sweep

router = APIRouter()


@router.post("/sweep", response_model=SweepResponse, dependencies=[CronGuard])
async def trigger_sweep(
    db: DbSession,
    redis_service: RedisServiceDep,
    notifier: NotifierDep,
    sweep_request: SweepRequest | None = None,
):
    """Finalize expired auctions (cron entry point, idempotent).

    Without a post_id every expired auction is processed; with one only
    that post is.
    """
    post_ref = sweep_request.post_id if sweep_request else None
    service = SweepService(db, redis_service=redis_service, notifier=notifier)
    try:
        report = await service.sweep(post_ref)
    except AuctionNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "AUCTION_NOT_FOUND", "message": "Auction not found"},
        )
    return SweepResponse.model_validate(report)


@router.get("/active", response_model=ActiveAuctionsResponse)
async def list_active_auctions(
    auction_service: AuctionServiceDep,
    sort_by: Literal["ending_soon", "highest_bid", "newest", "most_bids"] = "ending_soon",
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    """Feed of auctions open for bids. Read-only, expired posts are left out."""
    result = await auction_service.list_active(sort_by=sort_by, page=page, limit=limit)

    return ActiveAuctionsResponse(
        auctions=[
            ActiveAuction(
                post_id=item.post_id,
                public_id=item.public_id,
                current_bid=item.current_bid,
                minimum_bid=item.minimum_bid,
                bid_count=item.bid_count,
                highest_bidder=item.highest_bidder,
                auction_ends_at=as_utc(item.auction_ends_at),
                time_remaining_ms=item.time_remaining_ms,
                created_at=as_utc(item.created_at),
            )
            for item in result.auctions
        ],
        pagination=Pagination(
            page=result.page,
            limit=result.limit,
            total=result.total,
            total_pages=result.total_pages,
        ),
    )


@router.get("/{post_ref}", response_model=AuctionStatusResponse)
async def get_auction_status(
    post_ref: str,
    auction_service: AuctionServiceDep,
    background_tasks: BackgroundTasks,
):
    """Get auction status for a post (UUID or public id).

    Never writes. With SWEEP_ON_READ enabled an expired-but-active post
    schedules a sweep after the response is sent.
    """
    try:
        view = await auction_service.get_status(post_ref)
    except AuctionNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "AUCTION_NOT_FOUND", "message": "Auction not found"},
        )

    if view.needs_sweep and settings.SWEEP_ON_READ:
        background_tasks.add_task(run_sweep, view.post_id)

    return AuctionStatusResponse(
        post_id=view.post_id,
        public_id=view.public_id,
        auction_status=view.auction_status,
        is_active=view.is_active,
        auction_ends_at=as_utc(view.auction_ends_at),
        time_remaining_ms=view.time_remaining_ms,
        current_bid=view.current_bid,
        bid_count=view.bid_count,
        minimum_bid=view.minimum_bid,
        is_exclusive=view.is_exclusive,
        exclusive_buyer_name=view.exclusive_buyer_name,
        sold_at=as_utc(view.sold_at),
        can_buy_public=view.can_buy_public,
        server_time=as_utc(view.server_time),
        recent_bids=[
            RecentBid(
                id=bid.id,
                amount=bid.amount,
                bidder_name=bid.bidder_name,
                is_winning=bid.is_winning,
                created_at=as_utc(bid.created_at),
            )
            for bid in view.recent_bids
        ],
    )
