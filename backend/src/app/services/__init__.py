"""Business logic services."""

from app.services.auction_errors import (
    AuctionNotFoundError,
    BidRejectedError,
    SettlementDeclinedError,
    StaleStateError,
)
from app.services.auction_service import AuctionService
from app.services.bid_service import BidPlacement, BidService
from app.services.credit_ledger import CreditLedger, DebitResult
from app.services.redis_service import RedisService
from app.services.settlement_service import SettlementResult, SettlementService, split_revenue
from app.services.sweep_service import SweepReport, SweepService, run_sweep

__all__ = [
    "AuctionNotFoundError",
    "BidRejectedError",
    "SettlementDeclinedError",
    "StaleStateError",
    "AuctionService",
    "BidPlacement",
    "BidService",
    "CreditLedger",
    "DebitResult",
    "RedisService",
    "SettlementResult",
    "SettlementService",
    "split_revenue",
    "SweepReport",
    "SweepService",
    "run_sweep",
]
