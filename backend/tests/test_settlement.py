"""Tests for settlement failure semantics and the ledger saga."""

from datetime import datetime
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from app.services.auction_errors import SettlementDeclinedError
from app.services.credit_ledger import CreditLedger, DebitResult
from app.services.settlement_service import SettlementService

NOW = datetime(2026, 3, 1, 13, 0, 1)


@pytest.fixture
def mock_db() -> AsyncMock:
    db = AsyncMock()
    db.add = MagicMock()
    return db


@pytest.fixture
def mock_ledger() -> MagicMock:
    ledger = MagicMock()
    ledger.autocommit = True
    ledger.find_account_id = AsyncMock(return_value=uuid4())
    ledger.balance = AsyncMock(return_value=10000)
    ledger.debit = AsyncMock(return_value=DebitResult(ok=True, new_balance=4500))
    ledger.refund_auction_win = AsyncMock(return_value=10000)
    return ledger


@pytest.fixture
def post() -> MagicMock:
    post = MagicMock()
    post.id = uuid4()
    post.public_id = "abc123"
    return post


@pytest.fixture
def bid() -> MagicMock:
    bid = MagicMock()
    bid.id = uuid4()
    bid.amount = 5500
    bid.bidder_identity = "+27821111111"
    bid.bidder_display_name = None
    return bid


class TestSettlementDeclines:
    """Test recoverable failures raise before anything is charged."""

    @pytest.mark.asyncio
    async def test_missing_buyer(self, mock_db, mock_ledger, post, bid):
        mock_ledger.find_account_id = AsyncMock(return_value=None)
        service = SettlementService(mock_db, ledger=mock_ledger, registry=MagicMock())

        with pytest.raises(SettlementDeclinedError) as exc_info:
            await service.settle(post, bid, NOW)

        assert exc_info.value.reason == SettlementDeclinedError.MISSING_BUYER_ACCOUNT
        mock_ledger.debit.assert_not_called()

    @pytest.mark.asyncio
    async def test_balance_below_bid(self, mock_db, mock_ledger, post, bid):
        mock_ledger.balance = AsyncMock(return_value=5499)
        service = SettlementService(mock_db, ledger=mock_ledger, registry=MagicMock())

        with pytest.raises(SettlementDeclinedError) as exc_info:
            await service.settle(post, bid, NOW)

        assert exc_info.value.reason == SettlementDeclinedError.INSUFFICIENT_FUNDS
        mock_ledger.debit.assert_not_called()
        mock_db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_guarded_debit_refused(self, mock_db, mock_ledger, post, bid):
        """Balance passed the check but a concurrent debit drained it."""
        mock_ledger.debit = AsyncMock(
            return_value=DebitResult(ok=False, error="INSUFFICIENT_FUNDS")
        )
        service = SettlementService(mock_db, ledger=mock_ledger, registry=MagicMock())

        with pytest.raises(SettlementDeclinedError) as exc_info:
            await service.settle(post, bid, NOW)

        assert exc_info.value.reason == SettlementDeclinedError.INSUFFICIENT_FUNDS
        mock_db.add.assert_not_called()
        mock_ledger.refund_auction_win.assert_not_called()

    @pytest.mark.asyncio
    async def test_account_removed_before_debit(self, mock_db, mock_ledger, post, bid):
        mock_ledger.debit = AsyncMock(
            return_value=DebitResult(ok=False, error=CreditLedger.ACCOUNT_NOT_FOUND)
        )
        service = SettlementService(mock_db, ledger=mock_ledger, registry=MagicMock())

        with pytest.raises(SettlementDeclinedError) as exc_info:
            await service.settle(post, bid, NOW)

        assert exc_info.value.reason == SettlementDeclinedError.MISSING_BUYER_ACCOUNT
        mock_db.add.assert_not_called()


class TestSettlementCompensation:
    """Test the compensating refund when the ledger commits on its own."""

    @pytest.mark.asyncio
    async def test_failure_after_debit_refunds(self, mock_db, mock_ledger, post, bid):
        registry = MagicMock()
        registry.lookup = AsyncMock(side_effect=RuntimeError("registry unavailable"))
        buyer_id = uuid4()
        mock_ledger.find_account_id = AsyncMock(return_value=buyer_id)
        service = SettlementService(mock_db, ledger=mock_ledger, registry=registry)

        with pytest.raises(RuntimeError):
            await service.settle(post, bid, NOW)

        mock_ledger.debit.assert_awaited_once()
        mock_db.rollback.assert_awaited_once()
        mock_ledger.refund_auction_win.assert_awaited_once_with(
            buyer_id, 5500, reference_id=str(post.id)
        )

    @pytest.mark.asyncio
    async def test_shared_transaction_does_not_refund(self, mock_db, mock_ledger, post, bid):
        """Inside one transaction the caller's rollback undoes the debit."""
        mock_ledger.autocommit = False
        registry = MagicMock()
        registry.lookup = AsyncMock(side_effect=RuntimeError("registry unavailable"))
        service = SettlementService(mock_db, ledger=mock_ledger, registry=registry)

        with pytest.raises(RuntimeError):
            await service.settle(post, bid, NOW)

        mock_ledger.refund_auction_win.assert_not_called()

    @pytest.mark.asyncio
    async def test_rollback_happens_before_refund(self, mock_db, mock_ledger, post, bid):
        calls = []
        mock_db.rollback = AsyncMock(side_effect=lambda: calls.append("rollback"))
        mock_ledger.refund_auction_win = AsyncMock(
            side_effect=lambda *args, **kwargs: calls.append("refund")
        )
        mock_db.flush = AsyncMock(side_effect=RuntimeError("grant insert failed"))
        service = SettlementService(mock_db, ledger=mock_ledger, registry=MagicMock())

        with pytest.raises(RuntimeError):
            await service.settle(post, bid, NOW)

        assert calls == ["rollback", "refund"]

    @pytest.mark.asyncio
    async def test_failed_refund_still_raises(self, mock_db, mock_ledger, post, bid):
        mock_db.flush = AsyncMock(side_effect=RuntimeError("grant insert failed"))
        mock_ledger.refund_auction_win = AsyncMock(side_effect=ConnectionError("ledger down"))
        service = SettlementService(mock_db, ledger=mock_ledger, registry=MagicMock())

        with pytest.raises(ConnectionError):
            await service.settle(post, bid, NOW)
