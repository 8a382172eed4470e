"""WebSocket endpoint for live auction updates."""

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.core.database import async_session_maker
from app.services.auction_service import AuctionService
from app.services.ws_manager import manager

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws/{post_ref}")
async def websocket_endpoint(websocket: WebSocket, post_ref: str):
    """WebSocket endpoint for real-time auction updates.

    Connection URL: ws://host/ws/{post_ref} (post UUID or public id)

    Events pushed to client:
    - bid_placed: A bid was accepted on the post
    - auction_closed: The sweeper finalized the post

    Client can send:
    - ping: Server responds with pong (heartbeat)
    """
    async with async_session_maker() as db:
        post = await AuctionService(db).find_post(post_ref)

    if post is None:
        await websocket.close(code=4004, reason="Auction not found")
        return

    post_id = str(post.id)
    connection_id = await manager.connect(post_id, websocket)

    try:
        while True:
            data = await websocket.receive_text()

            if data == "ping":
                await websocket.send_text("pong")

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected: post={post_id}")
    except Exception as e:
        logger.error(f"WebSocket error: post={post_id}, error={e}")
    finally:
        await manager.disconnect(post_id, connection_id)
