"""Submitter endpoints for the external payout system."""

from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from app.api.deps import DbSession
from app.models.submitter import SubmitterAccount
from app.schemas.submitter import EarningsSummaryResponse
from app.services.earnings_service import get_earnings_summary

router = APIRouter()


@router.get("/{account_id}/earnings", response_model=EarningsSummaryResponse)
async def get_submitter_earnings(account_id: UUID, db: DbSession):
    """Get a submitter's earnings summed by status."""
    if await db.get(SubmitterAccount, account_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "SUBMITTER_NOT_FOUND", "message": "Submitter not found"},
        )

    summary = await get_earnings_summary(db, account_id)
    return EarningsSummaryResponse(account_id=account_id, **summary)
