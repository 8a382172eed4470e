"""Submitter earnings: append-only earning entries and balance counters."""

from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utc_now
from app.models.submitter import EarningStatus, SubmitterAccount, SubmitterEarning
from app.models.won_auction import WonAuction


async def credit_submitter_earning(
    db: AsyncSession,
    account_id: UUID,
    won_auction: WonAuction,
    amount: int,
    description: str | None = None,
) -> SubmitterEarning:
    """Append one AVAILABLE earning for a settled auction.

    Also increments the account's running ``balance`` and ``total_earned``.
    Does not commit; runs inside the settlement transaction.

    Args:
        db: Session of the settlement transaction
        account_id: Submitter account UUID
        won_auction: The grant the earning is attributed to
        amount: Submitter share in minor units
        description: Ledger text

    Returns:
        The new earning entry
    """
    now = utc_now()
    earning = SubmitterEarning(
        account_id=account_id,
        won_auction_id=won_auction.id,
        amount=amount,
        gross_amount=won_auction.winning_bid,
        description=description,
        status=EarningStatus.AVAILABLE,
        available_at=now,
        created_at=now,
    )
    db.add(earning)

    result = await db.execute(
        update(SubmitterAccount)
        .where(SubmitterAccount.id == account_id)
        .values(
            balance=SubmitterAccount.balance + amount,
            total_earned=SubmitterAccount.total_earned + amount,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ValueError(f"Submitter account {account_id} not found")

    await db.flush()
    return earning


async def get_earnings_summary(db: AsyncSession, account_id: UUID) -> dict[str, int]:
    """Sum a submitter's earnings by status."""
    result = await db.execute(
        select(SubmitterEarning.status, func.coalesce(func.sum(SubmitterEarning.amount), 0))
        .where(SubmitterEarning.account_id == account_id)
        .group_by(SubmitterEarning.status)
    )
    totals = {status: int(total) for status, total in result.all()}

    summary = {
        "available": totals.get(EarningStatus.AVAILABLE, 0),
        "pending": totals.get(EarningStatus.PENDING, 0),
        "withdrawn": totals.get(EarningStatus.WITHDRAWN, 0),
    }
    summary["total"] = sum(summary.values())
    return summary
