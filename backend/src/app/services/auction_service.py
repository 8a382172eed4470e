"""Auction service: post lifecycle and guarded state transitions.

State machine: ACTIVE -> ENDED | SOLD. Only the expiry sweeper moves a post
out of ACTIVE; every transition is a conditional UPDATE on the expected prior
state, so a writer that loses a race affects zero rows instead of
overwriting the winner's write.
"""

import math
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, utc_now
from app.core.config import settings
from app.models.bid import Bid
from app.models.buyer import BuyerAccount
from app.models.post import AuctionPost, AuctionStatus
from app.services.auction_errors import AuctionNotFoundError, BuyerNotFoundError

RECENT_BIDS_LIMIT = 10

ACTIVE_SORTS = {
    "ending_soon": AuctionPost.auction_ends_at.asc(),
    "highest_bid": AuctionPost.current_bid.desc().nulls_last(),
    "newest": AuctionPost.created_at.desc(),
    "most_bids": AuctionPost.bid_count.desc(),
}


@dataclass
class RecentBidView:
    id: UUID
    amount: int
    bidder_name: str
    is_winning: bool
    created_at: datetime


@dataclass
class AuctionStatusView:
    """Read model for an auction; building it never writes."""

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
    exclusive_buyer_name: str | None
    sold_at: datetime | None
    can_buy_public: bool
    needs_sweep: bool
    server_time: datetime
    recent_bids: list[RecentBidView] = field(default_factory=list)


@dataclass
class ActiveAuctionView:
    post_id: UUID
    public_id: str
    current_bid: int
    minimum_bid: int
    bid_count: int
    highest_bidder: str | None
    auction_ends_at: datetime
    time_remaining_ms: int
    created_at: datetime


@dataclass
class ActiveAuctionPage:
    auctions: list[ActiveAuctionView]
    page: int
    limit: int
    total: int
    total_pages: int


class BuyerStatus:
    WINNING = "winning"
    OUTBID = "outbid"
    WON = "won"
    LOST = "lost"


@dataclass
class BuyerAuctionView:
    """One auction a buyer bid on, seen from that buyer."""

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


@dataclass
class BuyerBidStats:
    active_bids: int
    winning: int
    outbid: int
    won: int
    total_bid_amount: int


@dataclass
class BuyerBidHistory:
    auctions: list[BuyerAuctionView]
    stats: BuyerBidStats


def _parse_uuid(value: str) -> UUID | None:
    try:
        return UUID(str(value))
    except ValueError:
        return None


class AuctionService:
    """Service class for auction lifecycle operations."""

    def __init__(self, db: AsyncSession, clock: Clock = utc_now):
        self.db = db
        self.clock = clock

    async def open_auction(
        self,
        public_id: str | None = None,
        owner_account_id: UUID | None = None,
        media_ref: str | None = None,
        revenue_share_enabled: bool = True,
    ) -> AuctionPost:
        """Create a post in ACTIVE state with a fresh auction window.

        Args:
            public_id: External id (generated when omitted)
            owner_account_id: Linked submitter account, None for anonymous posts
            media_ref: Opaque media reference from the content store
            revenue_share_enabled: Whether the submitter shares in the sale

        Returns:
            Created post
        """
        now = self.clock()
        post = AuctionPost(
            public_id=public_id or secrets.token_urlsafe(9),
            owner_account_id=owner_account_id,
            media_ref=media_ref,
            revenue_share_enabled=revenue_share_enabled,
            auction_status=AuctionStatus.ACTIVE,
            auction_ends_at=now + timedelta(seconds=settings.AUCTION_DURATION_SECONDS),
            current_bid=None,
            bid_count=0,
            is_exclusive=False,
            created_at=now,
        )
        self.db.add(post)
        await self.db.commit()
        return post

    async def find_post(self, post_ref: str | UUID) -> AuctionPost | None:
        """Look a post up by internal UUID or external public_id.

        Always re-reads the row so callers never act on identity-map state.
        """
        post_uuid = post_ref if isinstance(post_ref, UUID) else _parse_uuid(post_ref)
        if post_uuid is not None:
            condition = AuctionPost.id == post_uuid
        else:
            condition = AuctionPost.public_id == str(post_ref)

        result = await self.db.execute(
            select(AuctionPost)
            .where(condition)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_post(self, post_ref: str | UUID) -> AuctionPost:
        """Like find_post, but raises AuctionNotFoundError."""
        post = await self.find_post(post_ref)
        if post is None:
            raise AuctionNotFoundError(str(post_ref))
        return post

    async def get_winning_bid(self, post_id: UUID) -> Bid | None:
        result = await self.db.execute(
            select(Bid)
            .where(Bid.post_id == post_id)
            .where(Bid.is_winning.is_(True))
            .order_by(Bid.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_expired_ids(self, now: datetime, limit: int) -> list[UUID]:
        """Ids of ACTIVE posts whose deadline has passed, oldest deadline first."""
        result = await self.db.execute(
            select(AuctionPost.id)
            .where(AuctionPost.auction_status == AuctionStatus.ACTIVE)
            .where(AuctionPost.auction_ends_at < now)
            .order_by(AuctionPost.auction_ends_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    # ==================== Guarded Transitions ====================

    async def claim_expired(self, post_id: UUID, now: datetime) -> bool:
        """Claim an expired post for settlement: ACTIVE -> ENDED.

        The post lands in the public-sale state and is upgraded to SOLD only
        if settlement succeeds in the same transaction. Returns False when
        another worker claimed it first or the deadline has not passed.
        """
        result = await self.db.execute(
            update(AuctionPost)
            .where(AuctionPost.id == post_id)
            .where(AuctionPost.auction_status == AuctionStatus.ACTIVE)
            .where(AuctionPost.auction_ends_at < now)
            .values(
                auction_status=AuctionStatus.ENDED,
                is_exclusive=False,
                ended_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def mark_sold(
        self,
        post_id: UUID,
        buyer_id: UUID,
        buyer_name: str,
        now: datetime,
    ) -> bool:
        """Upgrade a post claimed in this transaction: ENDED -> SOLD."""
        result = await self.db.execute(
            update(AuctionPost)
            .where(AuctionPost.id == post_id)
            .where(AuctionPost.auction_status == AuctionStatus.ENDED)
            .where(AuctionPost.sold_at.is_(None))
            .values(
                auction_status=AuctionStatus.SOLD,
                is_exclusive=True,
                exclusive_buyer_id=buyer_id,
                exclusive_buyer_name=buyer_name,
                sold_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # ==================== Read Model ====================

    async def get_status(self, post_ref: str | UUID) -> AuctionStatusView:
        """Build the client-facing auction status.

        An ACTIVE post whose deadline passed is reported as ENDING until the
        sweeper finalizes it.

        Raises:
            AuctionNotFoundError: Unknown post reference
        """
        now = self.clock()
        post = await self.get_post(post_ref)

        result = await self.db.execute(
            select(Bid)
            .where(Bid.post_id == post.id)
            .order_by(Bid.amount.desc())
            .limit(RECENT_BIDS_LIMIT)
            .execution_options(populate_existing=True)
        )
        bids = list(result.scalars().all())

        remaining_ms = _remaining_ms(post, now)
        needs_sweep = post.auction_status == AuctionStatus.ACTIVE and remaining_ms == 0
        status = "ENDING" if needs_sweep else post.auction_status

        return AuctionStatusView(
            post_id=post.id,
            public_id=post.public_id,
            auction_status=status,
            is_active=post.auction_status == AuctionStatus.ACTIVE and not needs_sweep,
            auction_ends_at=post.auction_ends_at,
            time_remaining_ms=remaining_ms,
            current_bid=post.current_bid,
            bid_count=post.bid_count,
            minimum_bid=_minimum_bid(post),
            is_exclusive=post.is_exclusive,
            exclusive_buyer_name=post.exclusive_buyer_name,
            sold_at=post.sold_at,
            can_buy_public=post.auction_status == AuctionStatus.ENDED and not post.is_exclusive,
            needs_sweep=needs_sweep,
            server_time=now,
            recent_bids=[
                RecentBidView(
                    id=bid.id,
                    amount=bid.amount,
                    bidder_name=bid.bidder_display_name or "Anonymous Bidder",
                    is_winning=bid.is_winning,
                    created_at=bid.created_at,
                )
                for bid in bids
            ],
        )

    # ==================== Feeds ====================

    async def list_active(
        self,
        sort_by: str = "ending_soon",
        page: int = 1,
        limit: int = 20,
    ) -> ActiveAuctionPage:
        """List auctions still open for bids.

        Expired posts waiting for the sweeper are left out.

        Args:
            sort_by: One of ACTIVE_SORTS, unknown values sort by ending_soon
            page: 1-based page number
            limit: Page size

        Returns:
            ActiveAuctionPage with the page items and pagination totals
        """
        now = self.clock()
        conditions = (
            AuctionPost.auction_status == AuctionStatus.ACTIVE,
            AuctionPost.auction_ends_at > now,
        )
        order = ACTIVE_SORTS.get(sort_by, ACTIVE_SORTS["ending_soon"])

        total = (
            await self.db.execute(
                select(func.count()).select_from(AuctionPost).where(*conditions)
            )
        ).scalar_one()

        result = await self.db.execute(
            select(AuctionPost)
            .where(*conditions)
            .order_by(order, AuctionPost.auction_ends_at.asc(), AuctionPost.public_id)
            .offset((page - 1) * limit)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        posts = list(result.scalars().all())

        leaders = {}
        if posts:
            result = await self.db.execute(
                select(Bid.post_id, Bid.bidder_display_name)
                .where(Bid.post_id.in_([post.id for post in posts]))
                .where(Bid.is_winning.is_(True))
            )
            leaders = {
                post_id: name or "Anonymous Bidder" for post_id, name in result.all()
            }

        return ActiveAuctionPage(
            auctions=[
                ActiveAuctionView(
                    post_id=post.id,
                    public_id=post.public_id,
                    current_bid=post.current_bid or 0,
                    minimum_bid=_minimum_bid(post),
                    bid_count=post.bid_count,
                    highest_bidder=leaders.get(post.id),
                    auction_ends_at=post.auction_ends_at,
                    time_remaining_ms=_remaining_ms(post, now),
                    created_at=post.created_at,
                )
                for post in posts
            ],
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit) if limit else 0,
        )

    async def list_buyer_bids(
        self, buyer_id: UUID, status_filter: str = "all"
    ) -> BuyerBidHistory:
        """A buyer's bidding history, one entry per auction.

        Filters: ``all``, ``active`` (still open), ``won`` and ``outbid``.
        An expired post not yet swept keeps its winning/outbid status until
        the sweeper decides it.

        Raises:
            BuyerNotFoundError: Unknown buyer account
        """
        now = self.clock()
        phone = (
            await self.db.execute(
                select(BuyerAccount.phone_number).where(BuyerAccount.id == buyer_id)
            )
        ).scalar_one_or_none()
        if phone is None:
            raise BuyerNotFoundError(buyer_id)

        result = await self.db.execute(
            select(Bid, AuctionPost)
            .join(AuctionPost, AuctionPost.id == Bid.post_id)
            .where(Bid.bidder_identity == phone)
            .order_by(Bid.created_at.desc())
            .execution_options(populate_existing=True)
        )

        grouped: dict[UUID, tuple[AuctionPost, list[Bid]]] = {}
        for bid, post in result.all():
            grouped.setdefault(post.id, (post, []))[1].append(bid)

        auctions = []
        for post, bids in grouped.values():
            is_winning = any(bid.is_winning for bid in bids)
            auctions.append(
                BuyerAuctionView(
                    post_id=post.id,
                    public_id=post.public_id,
                    current_bid=post.current_bid or 0,
                    my_highest_bid=max(bid.amount for bid in bids),
                    is_winning=is_winning,
                    bid_count=post.bid_count,
                    auction_status=post.auction_status,
                    auction_ends_at=post.auction_ends_at,
                    time_remaining_ms=_remaining_ms(post, now),
                    buyer_status=_buyer_status(post, buyer_id, is_winning),
                    last_bid_at=max(bid.created_at for bid in bids),
                )
            )

        if status_filter == "active":
            auctions = [a for a in auctions if _is_open(a)]
        elif status_filter == "won":
            auctions = [a for a in auctions if a.buyer_status == BuyerStatus.WON]
        elif status_filter == "outbid":
            auctions = [a for a in auctions if a.buyer_status == BuyerStatus.OUTBID]

        stats = BuyerBidStats(
            active_bids=sum(1 for a in auctions if _is_open(a)),
            winning=sum(1 for a in auctions if a.buyer_status == BuyerStatus.WINNING),
            outbid=sum(1 for a in auctions if a.buyer_status == BuyerStatus.OUTBID),
            won=sum(1 for a in auctions if a.buyer_status == BuyerStatus.WON),
            total_bid_amount=sum(a.my_highest_bid for a in auctions),
        )
        return BuyerBidHistory(auctions=auctions, stats=stats)


def _minimum_bid(post: AuctionPost) -> int:
    # Local import: bid_service depends on this module
    from app.services.bid_service import minimum_bid

    return minimum_bid(post.current_bid, post.bid_count)


def _remaining_ms(post: AuctionPost, now: datetime) -> int:
    return max(0, int((post.auction_ends_at - now).total_seconds() * 1000))


def _buyer_status(post: AuctionPost, buyer_id: UUID, is_winning: bool) -> str:
    if post.auction_status == AuctionStatus.SOLD:
        return BuyerStatus.WON if post.exclusive_buyer_id == buyer_id else BuyerStatus.LOST
    if post.auction_status == AuctionStatus.ENDED:
        return BuyerStatus.LOST
    return BuyerStatus.WINNING if is_winning else BuyerStatus.OUTBID


def _is_open(view: BuyerAuctionView) -> bool:
    return view.auction_status == AuctionStatus.ACTIVE and view.time_remaining_ms > 0
