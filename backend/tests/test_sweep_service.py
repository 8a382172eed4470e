"""Tests for the expiry sweeper and end-to-end settlement outcomes."""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import func, select

from app.models import (
    AuctionPost,
    AuctionStatus,
    Bid,
    BuyerAccount,
    CreditTransaction,
    CreditTransactionType,
    PaymentStatus,
    SubmitterAccount,
    SubmitterEarning,
    WonAuction,
)
from app.services.auction_errors import AuctionNotFoundError, SettlementDeclinedError
from app.services.auction_service import AuctionService
from app.services.bid_service import BidService, normalize_bidder_phone
from app.services.credit_ledger import CreditLedger
from app.services.redis_service import RedisService
from app.services.sweep_service import SWEEP_LOCK_NAME, SweepReport, SweepService

WINNER_PHONE = "0821111111"


async def _only_bid(db, post_id) -> Bid:
    result = await db.execute(
        select(Bid).where(Bid.post_id == post_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def _count(db, model, *conditions) -> int:
    result = await db.execute(select(func.count()).select_from(model).where(*conditions))
    return result.scalar_one()


class TestSweepNoBids:
    """Test auctions that end without any bid."""

    @pytest.mark.asyncio
    async def test_unbid_post_released_to_public_sale(self, db, clock, make_post):
        post = await make_post(public_id="quiet")
        post_id = post.id
        clock.set(post.auction_ends_at + timedelta(seconds=1))

        report = await SweepService(db, clock=clock).sweep()

        assert report == SweepReport(processed=1, sold=0, public_sale=1, failed=0)
        view = await AuctionService(db, clock).get_status(post_id)
        assert view.auction_status == AuctionStatus.ENDED
        assert view.is_exclusive is False
        assert view.can_buy_public is True
        assert await _count(db, WonAuction) == 0

    @pytest.mark.asyncio
    async def test_post_not_yet_expired_is_skipped(self, db, clock, make_post):
        post = await make_post()
        clock.set(post.auction_ends_at)

        report = await SweepService(db, clock=clock).sweep()

        assert report == SweepReport()
        refreshed = await AuctionService(db, clock).find_post(post.id)
        assert refreshed.auction_status == AuctionStatus.ACTIVE


class TestSweepSettlement:
    """Test exclusive sales settled by the sweeper."""

    @pytest.mark.asyncio
    async def test_winner_charged_and_granted(
        self, db, clock, make_post, make_buyer, make_submitter, reload
    ):
        submitter = await make_submitter()
        buyer = await make_buyer(
            phone_number="+27821111111", credit_balance=20000, organization_name="Daily Star"
        )
        buyer_id, submitter_id = buyer.id, submitter.id
        post = await make_post(owner_account_id=submitter_id)
        post_id = post.id
        await BidService(db, clock).place_bid(post.public_id, WINNER_PHONE, 7001)
        clock.set(post.auction_ends_at + timedelta(seconds=1))

        report = await SweepService(db, clock=clock).sweep()

        assert report == SweepReport(processed=1, sold=1, public_sale=0, failed=0)

        post = await reload(AuctionPost, post_id)
        assert post.auction_status == AuctionStatus.SOLD
        assert post.is_exclusive is True
        assert post.exclusive_buyer_id == buyer_id
        assert post.exclusive_buyer_name == "Daily Star"
        assert post.sold_at == clock.now

        buyer = await reload(BuyerAccount, buyer_id)
        assert buyer.credit_balance == 20000 - 7001
        assert buyer.total_spent == 7001
        assert buyer.auctions_won == 1

        grant = (await db.execute(select(WonAuction))).scalar_one()
        assert grant.post_id == post_id
        assert grant.buyer_id == buyer_id
        assert grant.winning_bid == 7001
        assert grant.submitter_share == 3500
        assert grant.platform_share == 3501
        assert grant.max_downloads == 99
        assert grant.expires_at == clock.now + timedelta(days=365)
        assert len(grant.download_token) >= 32

        bid = await _only_bid(db, post_id)
        assert bid.is_winner is True
        assert bid.payment_status == PaymentStatus.PAID

        earning = (await db.execute(select(SubmitterEarning))).scalar_one()
        assert earning.account_id == submitter_id
        assert earning.amount == 3500
        assert earning.gross_amount == 7001
        submitter = await reload(SubmitterAccount, submitter_id)
        assert submitter.balance == 3500
        assert submitter.total_earned == 3500

    @pytest.mark.asyncio
    async def test_anonymous_post_platform_keeps_share(self, db, clock, make_post, make_buyer):
        await make_buyer()
        post = await make_post()
        await BidService(db, clock).place_bid(post.public_id, WINNER_PHONE, 5000)
        clock.set(post.auction_ends_at + timedelta(seconds=1))

        report = await SweepService(db, clock=clock).sweep()

        assert report.sold == 1
        assert await _count(db, SubmitterEarning) == 0
        grant = (await db.execute(select(WonAuction))).scalar_one()
        assert grant.submitter_share + grant.platform_share == 5000

    @pytest.mark.asyncio
    async def test_revenue_share_disabled_credits_nobody(
        self, db, clock, make_post, make_buyer, make_submitter, reload
    ):
        submitter = await make_submitter()
        submitter_id = submitter.id
        await make_buyer()
        post = await make_post(owner_account_id=submitter_id, revenue_share_enabled=False)
        await BidService(db, clock).place_bid(post.public_id, WINNER_PHONE, 5000)
        clock.set(post.auction_ends_at + timedelta(seconds=1))

        report = await SweepService(db, clock=clock).sweep()

        assert report.sold == 1
        assert await _count(db, SubmitterEarning) == 0
        submitter = await reload(SubmitterAccount, submitter_id)
        assert submitter.balance == 0

    @pytest.mark.asyncio
    async def test_highest_bidder_wins(self, db, clock, make_post, make_buyer):
        await make_buyer(phone_number="+27821111111")
        second = await make_buyer(phone_number="+27822222222")
        second_id = second.id
        post = await make_post()
        service = BidService(db, clock)
        await service.place_bid(post.public_id, "0821111111", 5000)
        clock.advance(1)
        await service.place_bid(post.public_id, "0822222222", 5500)
        clock.set(post.auction_ends_at + timedelta(seconds=1))

        await SweepService(db, clock=clock).sweep()

        grant = (await db.execute(select(WonAuction))).scalar_one()
        assert grant.buyer_id == second_id
        assert grant.winning_bid == 5500


class TestSweepFallback:
    """Test recoverable settlement failures degrade to public sale."""

    @pytest.mark.asyncio
    async def test_insufficient_balance_falls_back(
        self, db, clock, make_post, make_buyer, reload
    ):
        buyer = await make_buyer(credit_balance=4999)
        buyer_id = buyer.id
        post = await make_post()
        post_id = post.id
        await BidService(db, clock).place_bid(post.public_id, WINNER_PHONE, 5000)
        clock.set(post.auction_ends_at + timedelta(seconds=1))

        report = await SweepService(db, clock=clock).sweep()

        assert report == SweepReport(processed=1, sold=0, public_sale=1, failed=0)
        post = await reload(AuctionPost, post_id)
        assert post.auction_status == AuctionStatus.ENDED
        assert post.is_exclusive is False
        assert post.exclusive_buyer_id is None
        assert await _count(db, WonAuction) == 0
        buyer = await reload(BuyerAccount, buyer_id)
        assert buyer.credit_balance == 4999
        assert buyer.auctions_won == 0
        assert await _count(db, CreditTransaction) == 0

        bid = await _only_bid(db, post_id)
        assert bid.is_winner is False
        assert bid.payment_status == PaymentStatus.FAILED

    @pytest.mark.asyncio
    async def test_missing_buyer_account_falls_back(self, db, clock, make_post, reload):
        post = await make_post()
        post_id = post.id
        await BidService(db, clock).place_bid(post.public_id, WINNER_PHONE, 5000)
        clock.set(post.auction_ends_at + timedelta(seconds=1))

        report = await SweepService(db, clock=clock).sweep()

        assert report.public_sale == 1
        post = await reload(AuctionPost, post_id)
        assert post.auction_status == AuctionStatus.ENDED
        assert await _count(db, WonAuction) == 0

    @pytest.mark.asyncio
    async def test_fallback_notifies_with_reason(self, db, clock, make_post):
        notifier = MagicMock()
        notifier.auction_closed = AsyncMock()
        post = await make_post(public_id="no-funds")
        await BidService(db, clock).place_bid(post.public_id, WINNER_PHONE, 5000)
        clock.set(post.auction_ends_at + timedelta(seconds=1))

        await SweepService(db, notifier=notifier, clock=clock).sweep()

        notifier.auction_closed.assert_awaited_once()
        kwargs = notifier.auction_closed.await_args.kwargs
        assert kwargs["public_id"] == "no-funds"
        assert kwargs["outcome"] == "PUBLIC_SALE"
        assert kwargs["reason"] == SettlementDeclinedError.MISSING_BUYER_ACCOUNT


class TestSweepIdempotency:
    """Test repeated and racing sweeps settle at most once."""

    @pytest.mark.asyncio
    async def test_double_sweep_settles_once(self, db, clock, make_post, make_buyer, reload):
        buyer = await make_buyer(credit_balance=50000)
        buyer_id = buyer.id
        post = await make_post()
        post_id = post.id
        await BidService(db, clock).place_bid(post.public_id, WINNER_PHONE, 8000)
        clock.set(post.auction_ends_at + timedelta(seconds=1))

        first = await SweepService(db, clock=clock).sweep()
        second = await SweepService(db, clock=clock).sweep()
        targeted = await SweepService(db, clock=clock).sweep(post_id)

        assert first.sold == 1
        assert second == SweepReport()
        assert targeted == SweepReport()
        assert await _count(db, Bid, Bid.is_winner.is_(True)) == 1
        assert await _count(db, WonAuction, WonAuction.post_id == post_id) == 1
        assert await _count(
            db, CreditTransaction, CreditTransaction.type == CreditTransactionType.AUCTION_WIN
        ) == 1
        buyer = await reload(BuyerAccount, buyer_id)
        assert buyer.credit_balance == 42000

    @pytest.mark.asyncio
    async def test_second_claim_is_noop(self, db, clock, make_post, make_buyer):
        """Two workers that both saw the post as a candidate."""
        await make_buyer()
        post = await make_post()
        post_id = post.id
        await BidService(db, clock).place_bid(post.public_id, WINNER_PHONE, 5000)
        now = clock.set(post.auction_ends_at + timedelta(seconds=1))

        worker_a = SweepService(db, clock=clock)
        worker_b = SweepService(db, clock=clock)
        closed_a = await worker_a._process_post(post_id, now)
        closed_b = await worker_b._process_post(post_id, now)

        assert closed_a is not None and closed_a.outcome == "SOLD"
        assert closed_b is None
        assert await _count(db, WonAuction) == 1

    @pytest.mark.asyncio
    async def test_unknown_post_ref_raises(self, db, clock):
        with pytest.raises(AuctionNotFoundError):
            await SweepService(db, clock=clock).sweep("missing")


class TestLateBidScenario:
    """Bid at T_end-30s, sweep before and after the extended deadline."""

    @pytest.mark.asyncio
    async def test_extension_defers_settlement(self, db, clock, make_post, make_buyer, reload):
        await make_buyer()
        post = await make_post()
        post_id = post.id
        original_end = post.auction_ends_at
        bid_time = clock.set(original_end - timedelta(seconds=30))
        placement = await BidService(db, clock).place_bid(post.public_id, WINNER_PHONE, 5000)
        assert placement.auction_ends_at == bid_time + timedelta(seconds=120)

        clock.set(original_end + timedelta(seconds=1))
        early = await SweepService(db, clock=clock).sweep()
        assert early == SweepReport()
        assert (await reload(AuctionPost, post_id)).auction_status == AuctionStatus.ACTIVE

        clock.set(placement.auction_ends_at + timedelta(seconds=1))
        late = await SweepService(db, clock=clock).sweep()

        assert late.sold == 1
        assert (await reload(AuctionPost, post_id)).auction_status == AuctionStatus.SOLD
        assert await _count(db, WonAuction, WonAuction.post_id == post_id) == 1


class TestSweepFailures:
    """Test infrastructure errors leave the post ACTIVE for the next tick."""

    @pytest.mark.asyncio
    async def test_infrastructure_error_rolls_back_claim(
        self, db, clock, make_post, make_buyer, reload
    ):
        buyer = await make_buyer()
        buyer_id = buyer.id
        post = await make_post()
        post_id = post.id
        await BidService(db, clock).place_bid(post.public_id, WINNER_PHONE, 5000)
        clock.set(post.auction_ends_at + timedelta(seconds=1))

        broken = SweepService(db, clock=clock)
        broken.settlement.settle = AsyncMock(side_effect=RuntimeError("ledger unreachable"))
        report = await broken.sweep()

        assert report == SweepReport(processed=0, sold=0, public_sale=0, failed=1)
        assert (await reload(AuctionPost, post_id)).auction_status == AuctionStatus.ACTIVE
        assert (await reload(BuyerAccount, buyer_id)).credit_balance == 100_000

        retry = await SweepService(db, clock=clock).sweep()

        assert retry.sold == 1
        assert (await reload(AuctionPost, post_id)).auction_status == AuctionStatus.SOLD

    @pytest.mark.asyncio
    async def test_one_failure_does_not_block_other_posts(self, db, clock, make_post):
        first = await make_post()
        second = await make_post()
        first_id, second_id = first.id, second.id
        clock.set(second.auction_ends_at + timedelta(seconds=1))

        service = SweepService(db, clock=clock)
        real_claim = service.auctions.claim_expired

        async def flaky_claim(post_id, now):
            if post_id == first_id:
                raise RuntimeError("storage failure")
            return await real_claim(post_id, now)

        service.auctions.claim_expired = flaky_claim
        report = await service.sweep()

        assert report.failed == 1
        assert report.public_sale == 1
        view = await AuctionService(db, clock).get_status(second_id)
        assert view.auction_status == AuctionStatus.ENDED


class TestSweepLock:
    """Test the best-effort distributed sweep lock."""

    @pytest.mark.asyncio
    async def test_lock_held_elsewhere_skips_sweep(self, db, clock, make_post, mock_redis):
        post = await make_post()
        clock.set(post.auction_ends_at + timedelta(seconds=1))
        mock_redis.set = AsyncMock(return_value=None)

        report = await SweepService(db, RedisService(mock_redis), clock=clock).sweep()

        assert report == SweepReport()
        refreshed = await AuctionService(db, clock).find_post(post.id)
        assert refreshed.auction_status == AuctionStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_lock_acquired_and_released(self, db, clock, make_post, mock_redis):
        post = await make_post()
        clock.set(post.auction_ends_at + timedelta(seconds=1))

        report = await SweepService(db, RedisService(mock_redis), clock=clock).sweep()

        assert report.public_sale == 1
        args, kwargs = mock_redis.set.call_args
        assert args[0] == f"lock:{SWEEP_LOCK_NAME}"
        assert kwargs["nx"] is True
        release_script = mock_redis.register_script.return_value
        release_script.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_redis_down_sweeps_without_lock(self, db, clock, make_post, mock_redis):
        post = await make_post()
        clock.set(post.auction_ends_at + timedelta(seconds=1))
        mock_redis.set = AsyncMock(side_effect=RedisConnectionError("down"))

        report = await SweepService(db, RedisService(mock_redis), clock=clock).sweep()

        assert report.public_sale == 1

    @pytest.mark.asyncio
    async def test_single_post_sweep_skips_lock(self, db, clock, make_post, mock_redis):
        post = await make_post()
        clock.set(post.auction_ends_at + timedelta(seconds=1))

        report = await SweepService(db, RedisService(mock_redis), clock=clock).sweep(
            post.public_id
        )

        assert report.processed == 1
        mock_redis.set.assert_not_called()


class TestExternalLedgerSettlement:
    """Test settlement against a ledger that commits in its own database."""

    @staticmethod
    async def _ledger_buyer(ledger_session_maker, credit_balance: int):
        async with ledger_session_maker() as ledger_db:
            buyer = BuyerAccount(
                phone_number=normalize_bidder_phone(WINNER_PHONE),
                credit_balance=credit_balance,
            )
            ledger_db.add(buyer)
            await ledger_db.commit()
            return buyer.id

    @staticmethod
    async def _ledger_state(ledger_session_maker, buyer_id):
        async with ledger_session_maker() as ledger_db:
            buyer = await ledger_db.get(BuyerAccount, buyer_id)
            result = await ledger_db.execute(
                select(CreditTransaction.type).where(CreditTransaction.buyer_id == buyer_id)
            )
            return buyer, sorted(result.scalars().all())

    @pytest.mark.asyncio
    async def test_sale_commits_debit_and_grant(
        self, db, clock, make_post, ledger_session_maker, reload
    ):
        buyer_id = await self._ledger_buyer(ledger_session_maker, 20000)
        post = await make_post()
        post_id = post.id
        await BidService(db, clock).place_bid(post.public_id, WINNER_PHONE, 7000)
        clock.advance(3601)

        ledger = CreditLedger(session_maker=ledger_session_maker)
        report = await SweepService(db, ledger=ledger, clock=clock).sweep()

        assert report.sold == 1
        assert (await reload(AuctionPost, post_id)).auction_status == AuctionStatus.SOLD
        assert await _count(db, WonAuction, WonAuction.post_id == post_id) == 1
        buyer, types = await self._ledger_state(ledger_session_maker, buyer_id)
        assert buyer.credit_balance == 13000
        assert buyer.auctions_won == 1
        assert types == [CreditTransactionType.AUCTION_WIN]

    @pytest.mark.asyncio
    async def test_grant_failure_refunds_committed_debit(
        self, db, clock, make_post, ledger_session_maker, reload
    ):
        buyer_id = await self._ledger_buyer(ledger_session_maker, 20000)
        post = await make_post()
        post_id = post.id
        await BidService(db, clock).place_bid(post.public_id, WINNER_PHONE, 7000)
        # A stray grant for the post makes the new grant violate UNIQUE(post_id)
        db.add(
            WonAuction(
                buyer_id=uuid4(),
                post_id=post_id,
                winning_bid=1,
                submitter_share=0,
                platform_share=1,
                download_token="stray-grant",
                downloads_used=0,
                max_downloads=99,
                expires_at=clock(),
                created_at=clock(),
            )
        )
        await db.commit()
        clock.advance(3601)

        ledger = CreditLedger(session_maker=ledger_session_maker)
        report = await SweepService(db, ledger=ledger, clock=clock).sweep()

        assert report == SweepReport(processed=0, sold=0, public_sale=0, failed=1)
        buyer, types = await self._ledger_state(ledger_session_maker, buyer_id)
        assert buyer.credit_balance == 20000
        assert buyer.total_spent == 0
        assert buyer.auctions_won == 0
        assert types == sorted(
            [CreditTransactionType.AUCTION_WIN, CreditTransactionType.REFUND]
        )

        post = await reload(AuctionPost, post_id)
        assert post.auction_status == AuctionStatus.ACTIVE
        assert post.is_exclusive is False
        assert await _count(db, WonAuction, WonAuction.download_token != "stray-grant") == 0
