"""API dependencies for database, Redis and service access."""

import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.redis import get_redis
from app.services.auction_service import AuctionService
from app.services.bid_service import BidService
from app.services.grant_service import GrantService
from app.services.notifier import AuctionNotifier
from app.services.redis_service import RedisService

DbSession = Annotated[AsyncSession, Depends(get_db)]


async def get_redis_service() -> RedisService:
    """Get RedisService instance with shared Redis connection pool."""
    redis = await get_redis()
    return RedisService(redis)


async def get_notifier(
    redis_service: Annotated[RedisService, Depends(get_redis_service)],
) -> AuctionNotifier:
    return AuctionNotifier(redis_service)


async def get_bid_service(db: DbSession) -> BidService:
    return BidService(db)


async def get_auction_service(db: DbSession) -> AuctionService:
    return AuctionService(db)


async def get_grant_service(db: DbSession) -> GrantService:
    return GrantService(db)


async def require_cron_secret(
    x_cron_secret: Annotated[str | None, Header(alias="X-Cron-Secret")] = None,
) -> None:
    """Guard the sweep trigger with a shared secret when one is configured.

    Raises:
        HTTPException: Secret configured and header missing or wrong
    """
    expected = settings.CRON_SECRET
    if not expected:
        return
    if x_cron_secret is None or not secrets.compare_digest(x_cron_secret, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "INVALID_CRON_SECRET", "message": "Invalid cron secret"},
        )


# Type aliases for cleaner dependency injection
RedisServiceDep = Annotated[RedisService, Depends(get_redis_service)]
NotifierDep = Annotated[AuctionNotifier, Depends(get_notifier)]
BidServiceDep = Annotated[BidService, Depends(get_bid_service)]
AuctionServiceDep = Annotated[AuctionService, Depends(get_auction_service)]
GrantServiceDep = Annotated[GrantService, Depends(get_grant_service)]
CronGuard = Depends(require_cron_secret)
