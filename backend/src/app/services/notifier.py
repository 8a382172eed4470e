"""Auction notifier: fire-and-forget fan-out of bid and settlement events."""

import logging
from typing import Any

from app.core.clock import as_utc, utc_now
from app.schemas.ws import (
    AuctionClosedData,
    AuctionClosedEvent,
    BidPlacedData,
    BidPlacedEvent,
)
from app.services.redis_service import RedisService
from app.services.ws_manager import ConnectionManager, manager

logger = logging.getLogger(__name__)


class AuctionNotifier:
    """Publishes auction events to Redis and to local WebSocket viewers.

    Every method swallows and logs delivery failures; callers only invoke it
    after their transaction has committed.
    """

    def __init__(
        self,
        redis_service: RedisService | None = None,
        connections: ConnectionManager = manager,
    ):
        self.redis_service = redis_service
        self.connections = connections

    async def bid_placed(
        self,
        post_id: str,
        public_id: str,
        current_bid: int,
        bid_count: int,
        auction_ends_at,
        extended: bool,
        bidder_name: str | None = None,
    ) -> None:
        event = BidPlacedEvent(
            data=BidPlacedData(
                post_id=post_id,
                public_id=public_id,
                current_bid=current_bid,
                bid_count=bid_count,
                auction_ends_at=as_utc(auction_ends_at),
                extended=extended,
                bidder_name=bidder_name or "Anonymous Bidder",
                timestamp=as_utc(utc_now()),
            )
        )
        await self._dispatch(post_id, event.model_dump(mode="json"))

    async def auction_closed(
        self,
        post_id: str,
        public_id: str,
        outcome: str,
        auction_status: str,
        winning_bid: int | None = None,
        exclusive_buyer_name: str | None = None,
        reason: str | None = None,
    ) -> None:
        event = AuctionClosedEvent(
            data=AuctionClosedData(
                post_id=post_id,
                public_id=public_id,
                outcome=outcome,
                auction_status=auction_status,
                winning_bid=winning_bid,
                exclusive_buyer_name=exclusive_buyer_name,
                reason=reason,
                timestamp=as_utc(utc_now()),
            )
        )
        await self._dispatch(post_id, event.model_dump(mode="json"))

    async def _dispatch(self, post_id: str, message: dict[str, Any]) -> None:
        if self.redis_service is not None:
            try:
                await self.redis_service.publish_event(message)
            except Exception as e:
                logger.warning(f"Failed to publish {message['event']} for post {post_id}: {e}")

        try:
            await self.connections.broadcast_to_post(post_id, message)
        except Exception as e:
            logger.warning(f"Failed to broadcast {message['event']} for post {post_id}: {e}")
