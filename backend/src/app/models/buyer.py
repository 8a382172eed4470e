"""Buyer account and credit journal models (credit ledger storage)."""

import uuid
from datetime import datetime
from typing import List

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.clock import utc_now
from app.core.database import Base
from app.models.base import TimestampMixin


class CreditTransactionType:
    PURCHASE = "PURCHASE"
    AUCTION_WIN = "AUCTION_WIN"
    REFUND = "REFUND"
    BONUS = "BONUS"
    ADMIN_ADJUST = "ADMIN_ADJUST"


class BuyerAccount(Base, TimestampMixin):
    """A media buyer holding pre-purchased credits."""

    __tablename__ = "buyer_accounts"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    phone_number: Mapped[str] = mapped_column(
        String(20),
        unique=True,
        nullable=False,
    )
    organization_name: Mapped[str | None] = mapped_column(
        String(200),
        nullable=True,
    )
    credit_balance: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    total_spent: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    auctions_won: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    # Relationships
    transactions: Mapped[List["CreditTransaction"]] = relationship(
        "CreditTransaction", back_populates="buyer"
    )

    __table_args__ = (
        CheckConstraint("credit_balance >= 0", name="chk_buyer_balance_positive"),
    )


class CreditTransaction(Base):
    """Append-only journal row for every balance change."""

    __tablename__ = "credit_transactions"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    buyer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("buyer_accounts.id"),
        nullable=False,
    )
    type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )
    # Positive for credits added, negative for credits spent
    amount: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    balance_before: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    balance_after: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    reference_type: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
    )
    reference_id: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )
    description: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=utc_now,
    )

    # Relationships
    buyer: Mapped["BuyerAccount"] = relationship("BuyerAccount", back_populates="transactions")

    __table_args__ = (
        Index("idx_credit_tx_buyer_created", "buyer_id", "created_at"),
        Index("idx_credit_tx_reference", "reference_type", "reference_id"),
    )
