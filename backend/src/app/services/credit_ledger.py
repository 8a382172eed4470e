"""Credit ledger: buyer balances with an append-only transaction journal.

Every balance change is a single guarded UPDATE, so a concurrent debit for
the same buyer on another auction can never drive the balance negative.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.buyer import BuyerAccount, CreditTransaction, CreditTransactionType
from app.services.bid_service import normalize_bidder_phone

logger = logging.getLogger(__name__)


@dataclass
class DebitResult:
    ok: bool
    new_balance: int | None = None
    error: str | None = None


class CreditLedger:
    """Debit, credit and balance operations over buyer accounts.

    Built with a session, the ledger joins the caller's transaction and only
    flushes. Built with a ``session_maker`` it behaves like an external
    ledger: every operation runs and commits in a session of its own, and
    callers must compensate on later failures.
    """

    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"

    def __init__(
        self,
        db: AsyncSession | None = None,
        session_maker: async_sessionmaker[AsyncSession] | None = None,
    ):
        if db is None and session_maker is None:
            raise ValueError("CreditLedger needs a session or a session_maker")
        self.db = db
        self.session_maker = session_maker

    @property
    def autocommit(self) -> bool:
        """True when operations commit independently of the caller."""
        return self.session_maker is not None

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        if self.session_maker is None:
            yield self.db
            await self.db.flush()
            return

        async with self.session_maker() as session:
            yield session
            await session.commit()

    async def find_account_id(self, bidder_identity: str) -> UUID | None:
        """Resolve a bidder identity (account id or phone number) to an account id."""
        try:
            condition = BuyerAccount.id == UUID(bidder_identity)
        except ValueError:
            phone = normalize_bidder_phone(bidder_identity)
            if phone is None:
                return None
            condition = BuyerAccount.phone_number == phone

        async with self._session() as session:
            result = await session.execute(select(BuyerAccount.id).where(condition))
            return result.scalar_one_or_none()

    async def get_account(self, account_id: UUID) -> BuyerAccount | None:
        async with self._session() as session:
            result = await session.execute(
                select(BuyerAccount)
                .where(BuyerAccount.id == account_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

    async def balance(self, account_id: UUID) -> int:
        """Current credit balance, 0 for unknown accounts."""
        async with self._session() as session:
            result = await session.execute(
                select(BuyerAccount.credit_balance).where(BuyerAccount.id == account_id)
            )
            return result.scalar_one_or_none() or 0

    async def debit(
        self,
        account_id: UUID,
        amount: int,
        tx_type: str = CreditTransactionType.AUCTION_WIN,
        reference_type: str | None = None,
        reference_id: str | None = None,
        description: str | None = None,
    ) -> DebitResult:
        """Atomically check the balance and take ``amount`` from it.

        An AUCTION_WIN debit also bumps ``total_spent`` and ``auctions_won``
        in the same statement.

        Args:
            account_id: Buyer account UUID
            amount: Credits to take, must be positive
            tx_type: Journal entry type
            reference_type: What the debit pays for (e.g. "auction")
            reference_id: Id of the referenced object
            description: Human-readable journal text

        Returns:
            DebitResult with the new balance, or the error code on refusal
        """
        if amount <= 0:
            raise ValueError("Debit amount must be positive")

        values = {
            "credit_balance": BuyerAccount.credit_balance - amount,
            "total_spent": BuyerAccount.total_spent + amount,
        }
        if tx_type == CreditTransactionType.AUCTION_WIN:
            values["auctions_won"] = BuyerAccount.auctions_won + 1

        async with self._session() as session:
            result = await session.execute(
                update(BuyerAccount)
                .where(BuyerAccount.id == account_id)
                .where(BuyerAccount.credit_balance >= amount)
                .values(**values)
                .returning(BuyerAccount.credit_balance)
                .execution_options(synchronize_session=False)
            )
            new_balance = result.scalar_one_or_none()

            if new_balance is None:
                exists = await session.execute(
                    select(BuyerAccount.id).where(BuyerAccount.id == account_id)
                )
                error = self.INSUFFICIENT_FUNDS if exists.first() else self.ACCOUNT_NOT_FOUND
                return DebitResult(ok=False, error=error)

            self._journal(
                session, account_id, tx_type, -amount, new_balance + amount, new_balance,
                reference_type, reference_id, description,
            )
        return DebitResult(ok=True, new_balance=new_balance)

    async def credit(
        self,
        account_id: UUID,
        amount: int,
        tx_type: str = CreditTransactionType.PURCHASE,
        reference_type: str | None = None,
        reference_id: str | None = None,
        description: str | None = None,
    ) -> int:
        """Add ``amount`` to a buyer's balance and return the new balance.

        Raises:
            ValueError: Non-positive amount or unknown account
        """
        return await self._apply_credit(
            account_id, amount, {}, tx_type, reference_type, reference_id, description
        )

    async def refund_auction_win(
        self,
        account_id: UUID,
        amount: int,
        reference_id: str | None = None,
        description: str | None = None,
    ) -> int:
        """Reverse an AUCTION_WIN debit, counters included."""
        new_balance = await self._apply_credit(
            account_id,
            amount,
            {
                "total_spent": BuyerAccount.total_spent - amount,
                "auctions_won": BuyerAccount.auctions_won - 1,
            },
            CreditTransactionType.REFUND,
            "auction",
            reference_id,
            description or "Auction settlement reversed",
        )
        logger.info(f"Refunded {amount} to buyer {account_id} (reference {reference_id})")
        return new_balance

    async def _apply_credit(
        self,
        account_id: UUID,
        amount: int,
        extra_values: dict,
        tx_type: str,
        reference_type: str | None,
        reference_id: str | None,
        description: str | None,
    ) -> int:
        if amount <= 0:
            raise ValueError("Credit amount must be positive")

        async with self._session() as session:
            result = await session.execute(
                update(BuyerAccount)
                .where(BuyerAccount.id == account_id)
                .values(credit_balance=BuyerAccount.credit_balance + amount, **extra_values)
                .returning(BuyerAccount.credit_balance)
                .execution_options(synchronize_session=False)
            )
            new_balance = result.scalar_one_or_none()
            if new_balance is None:
                raise ValueError(f"Buyer account {account_id} not found")

            self._journal(
                session, account_id, tx_type, amount, new_balance - amount, new_balance,
                reference_type, reference_id, description,
            )
        return new_balance

    @staticmethod
    def _journal(
        session: AsyncSession,
        account_id: UUID,
        tx_type: str,
        amount: int,
        balance_before: int,
        balance_after: int,
        reference_type: str | None,
        reference_id: str | None,
        description: str | None,
    ) -> None:
        session.add(
            CreditTransaction(
                buyer_id=account_id,
                type=tx_type,
                amount=amount,
                balance_before=balance_before,
                balance_after=balance_after,
                reference_type=reference_type,
                reference_id=reference_id,
                description=description,
            )
        )
