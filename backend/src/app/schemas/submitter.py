"""Submitter schemas for the payout side."""

from uuid import UUID

from pydantic import BaseModel


class EarningsSummaryResponse(BaseModel):
    """Earnings of a submitter account, summed by status."""

    account_id: UUID
    available: int
    pending: int
    withdrawn: int
    total: int
