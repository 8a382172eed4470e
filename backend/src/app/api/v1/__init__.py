"""API v1 routers."""

from app.api.v1 import auctions, bids, buyers, grants, submitters, ws

__all__ = ["auctions", "bids", "buyers", "grants", "submitters", "ws"]
