"""Expiry sweeper: finalizes every auction whose deadline has passed.

Safe to run from any number of callers at once. Each post is claimed with a
guarded ACTIVE -> ENDED update inside its own transaction, and settlement
runs in that same transaction, so a post is settled at most once no matter
how many sweeps race for it.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from redis.exceptions import RedisError
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, utc_now
from app.core.config import settings
from app.core.database import async_session_maker
from app.core.redis import get_redis
from app.middleware.metrics import record_auction_closed, record_sweep
from app.models.bid import Bid, PaymentStatus
from app.models.post import AuctionStatus
from app.services.auction_errors import SettlementDeclinedError
from app.services.auction_service import AuctionService
from app.services.credit_ledger import CreditLedger
from app.services.notifier import AuctionNotifier
from app.services.redis_service import RedisService
from app.services.settlement_service import SettlementService

logger = logging.getLogger(__name__)

SWEEP_LOCK_NAME = "auction_sweep"

SOLD = "SOLD"
PUBLIC_SALE = "PUBLIC_SALE"


@dataclass
class SweepReport:
    """Counts for one sweep call.

    ``processed`` is the number of posts this call finalized
    (``sold + public_sale``); ``failed`` counts posts left ACTIVE by an
    infrastructure error, to be retried by the next sweep.
    """

    processed: int = 0
    sold: int = 0
    public_sale: int = 0
    failed: int = 0


@dataclass
class ClosedAuction:
    post_id: UUID
    public_id: str
    outcome: str
    auction_status: str
    winning_bid: int | None = None
    buyer_name: str | None = None
    reason: str | None = None


class SweepService:
    """Service class for expiry processing."""

    def __init__(
        self,
        db: AsyncSession,
        redis_service: RedisService | None = None,
        notifier: AuctionNotifier | None = None,
        ledger: CreditLedger | None = None,
        clock: Clock = utc_now,
    ):
        self.db = db
        self.redis_service = redis_service
        self.notifier = notifier
        self.clock = clock
        self.auctions = AuctionService(db, clock)
        self.settlement = SettlementService(db, ledger=ledger, clock=clock)

    async def sweep(self, post_ref: str | UUID | None = None) -> SweepReport:
        """Finalize expired auctions.

        Args:
            post_ref: Process only this post (UUID or public id); None for all

        Returns:
            SweepReport for this call

        Raises:
            AuctionNotFoundError: post_ref does not resolve to a post
        """
        start_time = time.perf_counter()
        now = self.clock()

        if post_ref is not None:
            post_id = (await self.auctions.get_post(post_ref)).id
            # End the read transaction before claiming
            await self.db.commit()
            report = await self._process_batch([post_id], now)
        else:
            owner_id = await self._acquire_lock()
            if owner_id is False:
                logger.debug("Sweep already running elsewhere, skipping")
                return SweepReport()
            try:
                candidate_ids = await self.auctions.list_expired_ids(
                    now, settings.SWEEP_BATCH_SIZE
                )
                await self.db.commit()
                report = await self._process_batch(candidate_ids, now)
            finally:
                await self._release_lock(owner_id)

        record_sweep(time.perf_counter() - start_time, report.failed)
        if report.processed or report.failed:
            logger.info(
                f"Sweep finished: processed={report.processed} sold={report.sold} "
                f"public_sale={report.public_sale} failed={report.failed}"
            )
        return report

    async def _process_batch(self, post_ids: list[UUID], now: datetime) -> SweepReport:
        report = SweepReport()

        for post_id in post_ids:
            try:
                closed = await self._process_post(post_id, now)
            except Exception as e:
                logger.error(f"Error sweeping post {post_id}: {e}")
                report.failed += 1
                continue

            if closed is None:
                continue

            report.processed += 1
            if closed.outcome == SOLD:
                report.sold += 1
            else:
                report.public_sale += 1

            record_auction_closed(closed.outcome.lower(), closed.reason)
            await self._notify(closed)

        return report

    async def _process_post(self, post_id: UUID, now: datetime) -> ClosedAuction | None:
        """Claim and finalize one post in a single transaction.

        Returns None when the post is not (or no longer) claimable.
        """
        try:
            if not await self.auctions.claim_expired(post_id, now):
                await self.db.commit()
                return None

            post = await self.auctions.find_post(post_id)

            if post.bid_count == 0:
                await self.db.commit()
                logger.info(f"Post {post.public_id} ended without bids, released to public sale")
                return ClosedAuction(
                    post_id=post.id,
                    public_id=post.public_id,
                    outcome=PUBLIC_SALE,
                    auction_status=AuctionStatus.ENDED,
                )

            bid = await self.auctions.get_winning_bid(post.id)
            try:
                if bid is None:
                    raise SettlementDeclinedError(
                        SettlementDeclinedError.MISSING_WINNING_BID,
                        f"post has {post.bid_count} bids but none is winning",
                    )
                result = await self.settlement.settle(post, bid, now)
            except SettlementDeclinedError as e:
                if bid is not None:
                    await self.db.execute(
                        update(Bid)
                        .where(Bid.id == bid.id)
                        .values(payment_status=PaymentStatus.FAILED)
                        .execution_options(synchronize_session=False)
                    )
                await self.db.commit()
                logger.warning(
                    f"Exclusive sale of post {post.public_id} declined ({e}), "
                    f"released to public sale"
                )
                return ClosedAuction(
                    post_id=post.id,
                    public_id=post.public_id,
                    outcome=PUBLIC_SALE,
                    auction_status=AuctionStatus.ENDED,
                    winning_bid=bid.amount if bid is not None else None,
                    reason=e.reason,
                )

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            f"Post {post.public_id} sold for {result.amount} "
            f"(submitter {result.submitter_share}, platform {result.platform_share})"
        )
        return ClosedAuction(
            post_id=post.id,
            public_id=post.public_id,
            outcome=SOLD,
            auction_status=AuctionStatus.SOLD,
            winning_bid=result.amount,
            buyer_name=result.buyer_name,
        )

    async def _notify(self, closed: ClosedAuction) -> None:
        if self.notifier is None:
            return
        await self.notifier.auction_closed(
            post_id=str(closed.post_id),
            public_id=closed.public_id,
            outcome=closed.outcome,
            auction_status=closed.auction_status,
            winning_bid=closed.winning_bid,
            exclusive_buyer_name=closed.buyer_name,
            reason=closed.reason,
        )

    async def _acquire_lock(self) -> str | None | bool:
        """Take the sweep lock.

        Returns the owner id, None when running without a lock, or False
        when another sweep holds it.
        """
        if self.redis_service is None:
            return None
        try:
            acquired, owner_id = await self.redis_service.acquire_lock(
                SWEEP_LOCK_NAME, ttl=settings.SWEEP_LOCK_TTL_SECONDS
            )
        except RedisError as e:
            logger.warning(f"Sweep lock unavailable, sweeping without it: {e}")
            return None
        return owner_id if acquired else False

    async def _release_lock(self, owner_id: str | None) -> None:
        if owner_id is None or self.redis_service is None:
            return
        try:
            await self.redis_service.release_lock(SWEEP_LOCK_NAME, owner_id)
        except RedisError as e:
            logger.warning(f"Failed to release sweep lock: {e}")


async def run_sweep(post_ref: str | UUID | None = None) -> SweepReport:
    """Run one sweep with its own database session.

    Shared entry point for the background timer, the cron endpoint and
    sweep-on-read.
    """
    redis_service = RedisService(await get_redis())
    async with async_session_maker() as db:
        service = SweepService(
            db,
            redis_service=redis_service,
            notifier=AuctionNotifier(redis_service),
        )
        return await service.sweep(post_ref)
