"""Content registry: read-only post ownership lookups."""

from dataclasses import dataclass
from uuid import UUID

from cachetools import TTLCache
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.post import AuctionPost

# Ownership never changes once a post exists
OWNERSHIP_CACHE_TTL = 300
_ownership_cache: TTLCache = TTLCache(maxsize=4096, ttl=OWNERSHIP_CACHE_TTL)


@dataclass(frozen=True)
class ContentOwnership:
    post_id: UUID
    public_id: str
    submitter_account_id: UUID | None
    revenue_share_enabled: bool
    media_ref: str | None

    @property
    def earns_revenue(self) -> bool:
        """Submitter is credited only for a linked account that opted in."""
        return self.submitter_account_id is not None and self.revenue_share_enabled


class ContentRegistry:
    """Looks up who submitted a post and where its media lives."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def lookup(self, post_id: UUID) -> ContentOwnership | None:
        cached = _ownership_cache.get(post_id)
        if cached is not None:
            return cached

        result = await self.db.execute(
            select(
                AuctionPost.id,
                AuctionPost.public_id,
                AuctionPost.owner_account_id,
                AuctionPost.revenue_share_enabled,
                AuctionPost.media_ref,
            ).where(AuctionPost.id == post_id)
        )
        row = result.first()
        if row is None:
            return None

        ownership = ContentOwnership(
            post_id=row.id,
            public_id=row.public_id,
            submitter_account_id=row.owner_account_id,
            revenue_share_enabled=row.revenue_share_enabled,
            media_ref=row.media_ref,
        )
        _ownership_cache[post_id] = ownership
        return ownership


def clear_ownership_cache() -> None:
    _ownership_cache.clear()
