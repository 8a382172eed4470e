"""Submitter account and earnings ledger models."""

import uuid
from datetime import datetime
from typing import List

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.clock import utc_now
from app.core.database import Base
from app.models.base import TimestampMixin


class EarningStatus:
    PENDING = "PENDING"
    AVAILABLE = "AVAILABLE"
    WITHDRAWN = "WITHDRAWN"


class SubmitterAccount(Base, TimestampMixin):
    """An (optionally linked) account of the person who submitted content."""

    __tablename__ = "submitter_accounts"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    display_name: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )
    balance: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    total_earned: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    # Relationships
    earnings: Mapped[List["SubmitterEarning"]] = relationship(
        "SubmitterEarning", back_populates="account"
    )

    __table_args__ = (
        CheckConstraint("balance >= 0", name="chk_submitter_balance_positive"),
    )


class SubmitterEarning(Base):
    """Immutable earning entry, one per settled auction."""

    __tablename__ = "submitter_earnings"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("submitter_accounts.id"),
        nullable=False,
    )
    won_auction_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("won_auctions.id"),
        unique=True,
        nullable=False,
    )
    amount: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    gross_amount: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    description: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=EarningStatus.AVAILABLE,
    )
    available_at: Mapped[datetime | None] = mapped_column(
        DateTime,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=utc_now,
    )

    # Relationships
    account: Mapped["SubmitterAccount"] = relationship(
        "SubmitterAccount", back_populates="earnings"
    )

    __table_args__ = (
        CheckConstraint("amount >= 0", name="chk_earning_amount_positive"),
    )
