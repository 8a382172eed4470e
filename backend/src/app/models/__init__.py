"""SQLAlchemy ORM models."""

from app.models.base import TimestampMixin
from app.models.bid import Bid, PaymentStatus
from app.models.buyer import BuyerAccount, CreditTransaction, CreditTransactionType
from app.models.post import AuctionPost, AuctionStatus
from app.models.submitter import EarningStatus, SubmitterAccount, SubmitterEarning
from app.models.won_auction import GrantStatus, WonAuction

__all__ = [
    "TimestampMixin",
    "AuctionPost",
    "AuctionStatus",
    "Bid",
    "PaymentStatus",
    "BuyerAccount",
    "CreditTransaction",
    "CreditTransactionType",
    "SubmitterAccount",
    "SubmitterEarning",
    "EarningStatus",
    "WonAuction",
    "GrantStatus",
]
