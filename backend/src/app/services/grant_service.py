"""Grant service: resolves and lists download grants issued at settlement."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, utc_now
from app.models.buyer import BuyerAccount
from app.models.post import AuctionPost
from app.models.won_auction import GrantStatus, WonAuction
from app.services.auction_errors import BuyerNotFoundError


@dataclass
class GrantResolution:
    post_id: UUID
    public_id: str
    remaining_downloads: int
    expires_at: datetime
    is_valid: bool


@dataclass
class WonContentView:
    grant_id: UUID
    post_id: UUID
    public_id: str
    media_ref: str | None
    amount_paid: int
    download_token: str
    downloads_used: int
    max_downloads: int
    won_at: datetime
    expires_at: datetime


class GrantService:
    """Read-only view of WonAuction grants for buyers and the download endpoint."""

    def __init__(self, db: AsyncSession, clock: Clock = utc_now):
        self.db = db
        self.clock = clock

    async def resolve(self, download_token: str) -> GrantResolution | None:
        """Resolve a download token.

        Returns None for unknown tokens. A revoked, expired or exhausted
        grant resolves with ``is_valid=False``.
        """
        result = await self.db.execute(
            select(WonAuction, AuctionPost.public_id)
            .join(AuctionPost, AuctionPost.id == WonAuction.post_id)
            .where(WonAuction.download_token == download_token)
        )
        row = result.first()
        if row is None:
            return None

        grant, public_id = row
        remaining = max(0, grant.max_downloads - grant.downloads_used)
        is_valid = (
            grant.status == GrantStatus.ACTIVE
            and self.clock() < grant.expires_at
            and remaining > 0
        )
        return GrantResolution(
            post_id=grant.post_id,
            public_id=public_id,
            remaining_downloads=remaining,
            expires_at=grant.expires_at,
            is_valid=is_valid,
        )

    async def list_won_content(self, buyer_id: UUID) -> list[WonContentView]:
        """Active, unexpired grants of a buyer, most recent win first.

        Raises:
            BuyerNotFoundError: Unknown buyer account
        """
        exists = await self.db.execute(
            select(BuyerAccount.id).where(BuyerAccount.id == buyer_id)
        )
        if exists.first() is None:
            raise BuyerNotFoundError(buyer_id)

        result = await self.db.execute(
            select(WonAuction, AuctionPost.public_id, AuctionPost.media_ref)
            .join(AuctionPost, AuctionPost.id == WonAuction.post_id)
            .where(WonAuction.buyer_id == buyer_id)
            .where(WonAuction.status == GrantStatus.ACTIVE)
            .where(WonAuction.expires_at > self.clock())
            .order_by(WonAuction.created_at.desc())
        )
        return [
            WonContentView(
                grant_id=grant.id,
                post_id=grant.post_id,
                public_id=public_id,
                media_ref=media_ref,
                amount_paid=grant.winning_bid,
                download_token=grant.download_token,
                downloads_used=grant.downloads_used,
                max_downloads=grant.max_downloads,
                won_at=grant.created_at,
                expires_at=grant.expires_at,
            )
            for grant, public_id, media_ref in result.all()
        ]
