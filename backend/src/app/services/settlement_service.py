"""Settlement service: charge the winner, split revenue, issue the grant."""

import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, utc_now
from app.core.config import settings
from app.models.bid import Bid, PaymentStatus
from app.models.post import AuctionPost
from app.models.won_auction import GrantStatus, WonAuction
from app.services.auction_errors import SettlementDeclinedError
from app.services.auction_service import AuctionService
from app.services.content_registry import ContentRegistry
from app.services.credit_ledger import CreditLedger
from app.services.earnings_service import credit_submitter_earning

logger = logging.getLogger(__name__)


def split_revenue(amount: int, submitter_percent: int | None = None) -> tuple[int, int]:
    """Split a winning bid between submitter and platform.

    The submitter share is floored, so any odd remainder goes to the
    platform and the two shares always sum to ``amount``.

    Returns:
        Tuple of (submitter_share, platform_share)
    """
    if submitter_percent is None:
        submitter_percent = settings.SUBMITTER_SHARE_PERCENT
    submitter_share = amount * submitter_percent // 100
    return submitter_share, amount - submitter_share


@dataclass
class SettlementResult:
    won_auction_id: UUID
    buyer_id: UUID
    amount: int
    submitter_share: int
    platform_share: int
    submitter_credited: bool
    download_token: str
    buyer_name: str


class SettlementService:
    """Settles a claimed auction for its winning bid.

    Runs inside the sweeper's transaction: the debit, grant, earning and
    bid/post updates commit or roll back together. When the ledger commits
    on its own, a failure after the debit is compensated with a refund.
    """

    def __init__(
        self,
        db: AsyncSession,
        ledger: CreditLedger | None = None,
        registry: ContentRegistry | None = None,
        clock: Clock = utc_now,
    ):
        self.db = db
        self.ledger = ledger or CreditLedger(db)
        self.registry = registry or ContentRegistry(db)
        self.clock = clock
        self.auctions = AuctionService(db, clock)

    async def settle(self, post: AuctionPost, bid: Bid, now: datetime) -> SettlementResult:
        """Charge the winning bidder and grant exclusive access.

        The post must already be claimed (ENDED) by the caller.

        Args:
            post: The claimed post
            bid: Its winning bid
            now: Settlement time

        Returns:
            SettlementResult describing the sale

        Raises:
            SettlementDeclinedError: Buyer missing or short of credit, nothing written
        """
        post_id, public_id, amount = post.id, post.public_id, bid.amount

        buyer_id = await self.ledger.find_account_id(bid.bidder_identity)
        if buyer_id is None:
            raise SettlementDeclinedError(
                SettlementDeclinedError.MISSING_BUYER_ACCOUNT,
                f"no buyer account for bid {bid.id}",
            )

        balance = await self.ledger.balance(buyer_id)
        if balance < amount:
            raise SettlementDeclinedError(
                SettlementDeclinedError.INSUFFICIENT_FUNDS,
                f"balance {balance} < bid {amount}",
            )

        debit = await self.ledger.debit(
            buyer_id,
            amount,
            reference_type="auction",
            reference_id=str(post_id),
            description=f"Exclusive rights to post {public_id}",
        )
        if not debit.ok:
            # Account changed between the lookup and the guarded debit
            reason = (
                SettlementDeclinedError.MISSING_BUYER_ACCOUNT
                if debit.error == CreditLedger.ACCOUNT_NOT_FOUND
                else SettlementDeclinedError.INSUFFICIENT_FUNDS
            )
            raise SettlementDeclinedError(reason, debit.error or "")

        try:
            return await self._complete_sale(post, bid, buyer_id, now)
        except Exception:
            if self.ledger.autocommit:
                # Debit is already committed in the ledger's own session
                await self.db.rollback()
                await self._compensate(buyer_id, amount, post_id, public_id)
            raise

    async def _compensate(
        self, buyer_id: UUID, amount: int, post_id: UUID, public_id: str
    ) -> None:
        logger.error(
            f"Settlement of post {public_id} failed after debit, "
            f"refunding {amount} to buyer {buyer_id}"
        )
        try:
            await self.ledger.refund_auction_win(buyer_id, amount, reference_id=str(post_id))
        except Exception as e:
            logger.critical(
                f"Refund of {amount} to buyer {buyer_id} for post {public_id} failed, "
                f"ledger needs manual reconciliation: {e}"
            )
            raise

    async def _complete_sale(
        self,
        post: AuctionPost,
        bid: Bid,
        buyer_id: UUID,
        now: datetime,
    ) -> SettlementResult:
        submitter_share, platform_share = split_revenue(bid.amount)

        grant = WonAuction(
            id=uuid.uuid4(),
            buyer_id=buyer_id,
            post_id=post.id,
            winning_bid=bid.amount,
            submitter_share=submitter_share,
            platform_share=platform_share,
            download_token=secrets.token_urlsafe(32),
            downloads_used=0,
            max_downloads=settings.GRANT_MAX_DOWNLOADS,
            status=GrantStatus.ACTIVE,
            expires_at=now + timedelta(days=settings.GRANT_VALIDITY_DAYS),
            created_at=now,
        )
        self.db.add(grant)
        await self.db.flush()

        submitter_credited = False
        ownership = await self.registry.lookup(post.id)
        if ownership is not None and ownership.earns_revenue and submitter_share > 0:
            await credit_submitter_earning(
                self.db,
                ownership.submitter_account_id,
                grant,
                submitter_share,
                description=f"Exclusive sale of post {post.public_id}",
            )
            submitter_credited = True

        await self.db.execute(
            update(Bid)
            .where(Bid.id == bid.id)
            .values(is_winner=True, payment_status=PaymentStatus.PAID)
            .execution_options(synchronize_session=False)
        )

        buyer_name = bid.bidder_display_name or "Anonymous Buyer"
        account = await self.ledger.get_account(buyer_id)
        if account is not None and account.organization_name:
            buyer_name = account.organization_name

        if not await self.auctions.mark_sold(post.id, buyer_id, buyer_name, now):
            raise RuntimeError(f"Post {post.id} was not claimed by this settlement")

        return SettlementResult(
            won_auction_id=grant.id,
            buyer_id=buyer_id,
            amount=bid.amount,
            submitter_share=submitter_share,
            platform_share=platform_share,
            submitter_credited=submitter_credited,
            download_token=grant.download_token,
            buyer_name=buyer_name,
        )
