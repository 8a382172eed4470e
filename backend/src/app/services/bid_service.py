"""Bid service: validation and compare-and-swap placement of bids."""

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, utc_now
from app.core.config import settings
from app.models.bid import Bid
from app.models.post import AuctionPost, AuctionStatus
from app.services.auction_errors import BidRejectedError, StaleStateError
from app.services.auction_service import AuctionService

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D")


def minimum_bid(current_bid: int | None, bid_count: int) -> int:
    """Smallest acceptable amount: current + increment, or the starting floor."""
    if bid_count > 0 and current_bid is not None:
        return current_bid + settings.BID_INCREMENT
    return settings.STARTING_BID


def extended_deadline(
    ends_at: datetime,
    now: datetime,
    created_at: datetime,
) -> datetime:
    """Apply the anti-sniping rule to a deadline.

    A bid arriving less than ANTI_SNIPE_WINDOW_SECONDS before the deadline
    pushes it to ``now + ANTI_SNIPE_EXTENSION_SECONDS``, measured from the bid
    and not added to the old deadline. The result never moves backwards and
    never passes ``created_at + MAX_AUCTION_DURATION_SECONDS``.

    Args:
        ends_at: Current auction deadline
        now: Bid arrival time
        created_at: Post creation time

    Returns:
        The deadline to store with the bid
    """
    if ends_at - now >= timedelta(seconds=settings.ANTI_SNIPE_WINDOW_SECONDS):
        return ends_at

    ceiling = created_at + timedelta(seconds=settings.MAX_AUCTION_DURATION_SECONDS)
    candidate = min(now + timedelta(seconds=settings.ANTI_SNIPE_EXTENSION_SECONDS), ceiling)
    return max(ends_at, candidate)


def normalize_bidder_phone(phone_number: str | None) -> str | None:
    """Validate a South African phone number and format it as +27XXXXXXXXX.

    Accepts 10 digits starting with 0 or 11 digits starting with 27, with
    any punctuation. Returns None when the number is not well-formed.
    """
    if not phone_number:
        return None
    digits = _NON_DIGITS.sub("", phone_number)
    if len(digits) == 10 and digits.startswith("0"):
        return "+27" + digits[1:]
    if len(digits) == 11 and digits.startswith("27"):
        return "+" + digits
    return None


@dataclass
class BidPlacement:
    """Outcome of an accepted bid, for client display."""

    bid_id: UUID
    post_id: UUID
    public_id: str
    current_bid: int
    bid_count: int
    auction_ends_at: datetime
    extended: bool


class BidService:
    """Service class for bid placement."""

    def __init__(self, db: AsyncSession, clock: Clock = utc_now):
        self.db = db
        self.clock = clock
        self.auctions = AuctionService(db, clock)

    async def place_bid(
        self,
        post_ref: str,
        bidder_phone: str,
        amount: int,
        display_name: str | None = None,
    ) -> BidPlacement:
        """Validate and place a bid on a post's exclusive rights.

        Checks run in a fixed order, each with its own rejection code:
        post exists, auction ACTIVE, deadline not passed, bidder well-formed,
        amount >= minimum bid. No credit is reserved at bid time.

        Raises:
            BidRejectedError: Validation failed, nothing was written
            StaleStateError: Another bid or the sweeper changed the post first
        """
        now = self.clock()
        post = await self.auctions.find_post(post_ref)

        if post is None:
            raise BidRejectedError("AUCTION_NOT_FOUND", "Auction not found")
        if post.auction_status != AuctionStatus.ACTIVE:
            raise BidRejectedError("AUCTION_NOT_ACTIVE", "Auction has ended")
        if now >= post.auction_ends_at:
            raise BidRejectedError("AUCTION_EXPIRED", "Auction has expired")

        bidder = normalize_bidder_phone(bidder_phone)
        if bidder is None:
            raise BidRejectedError(
                "INVALID_BIDDER", "Valid SA phone number is required to bid"
            )

        required = minimum_bid(post.current_bid, post.bid_count)
        if amount < required:
            raise BidRejectedError(
                "BID_TOO_LOW", f"Minimum bid is {required}"
            )

        new_ends_at = extended_deadline(post.auction_ends_at, now, post.created_at)
        bid_id = await self._apply_bid(
            post_id=post.id,
            expected_bid_count=post.bid_count,
            bidder=bidder,
            display_name=display_name,
            amount=amount,
            new_ends_at=new_ends_at,
            now=now,
        )
        placement = BidPlacement(
            bid_id=bid_id,
            post_id=post.id,
            public_id=post.public_id,
            current_bid=amount,
            bid_count=post.bid_count + 1,
            auction_ends_at=new_ends_at,
            extended=new_ends_at != post.auction_ends_at,
        )

        if placement.extended:
            logger.info(
                f"Anti-snipe triggered for post {post.public_id}, "
                f"extended to {new_ends_at.isoformat()}"
            )
        logger.info(
            f"Bid accepted on post {post.public_id}: {amount} from {bidder} "
            f"(bid #{placement.bid_count})"
        )
        return placement

    async def _apply_bid(
        self,
        post_id: UUID,
        expected_bid_count: int,
        bidder: str,
        display_name: str | None,
        amount: int,
        new_ends_at: datetime,
        now: datetime,
    ) -> UUID:
        """Write the bid as one transaction guarded by the observed bid_count.

        bid_count only ever grows, so it acts as the post's version: if any
        other bid (or a sweep claim) committed since we read the post, the
        guarded UPDATE matches zero rows and nothing is written.
        """
        try:
            result = await self.db.execute(
                update(AuctionPost)
                .where(AuctionPost.id == post_id)
                .where(AuctionPost.auction_status == AuctionStatus.ACTIVE)
                .where(AuctionPost.bid_count == expected_bid_count)
                .where(AuctionPost.auction_ends_at > now)
                .values(
                    current_bid=amount,
                    bid_count=expected_bid_count + 1,
                    auction_ends_at=new_ends_at,
                )
                .execution_options(synchronize_session=False)
            )

            if result.rowcount != 1:
                await self.db.rollback()
                raise await self._classify_conflict(post_id, now)

            # Demote the previous high bid, then append the new one
            await self.db.execute(
                update(Bid)
                .where(Bid.post_id == post_id)
                .where(Bid.is_winning.is_(True))
                .values(is_winning=False)
                .execution_options(synchronize_session=False)
            )
            bid = Bid(
                id=uuid.uuid4(),
                post_id=post_id,
                bidder_identity=bidder,
                bidder_display_name=display_name,
                amount=amount,
                is_winning=True,
                created_at=now,
            )
            self.db.add(bid)
            await self.db.commit()
        except BidRejectedError:
            raise
        except Exception:
            await self.db.rollback()
            raise

        return bid.id

    async def _classify_conflict(self, post_id: UUID, now: datetime) -> BidRejectedError:
        """Explain why a guarded bid write matched no rows."""
        result = await self.db.execute(
            select(AuctionPost.auction_status, AuctionPost.auction_ends_at).where(
                AuctionPost.id == post_id
            )
        )
        row = result.first()
        if row is None:
            return BidRejectedError("AUCTION_NOT_FOUND", "Auction not found")
        if row.auction_status != AuctionStatus.ACTIVE:
            return BidRejectedError("AUCTION_NOT_ACTIVE", "Auction has ended")
        if now >= row.auction_ends_at:
            return BidRejectedError("AUCTION_EXPIRED", "Auction has expired")
        return StaleStateError()
