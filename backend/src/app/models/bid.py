"""Bid model: one append-only row per accepted bid."""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base

if TYPE_CHECKING:
    from app.models.post import AuctionPost


class PaymentStatus:
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"


class Bid(Base):
    """An accepted bid on a post's exclusive rights.

    ``is_winning`` marks the current high bid (at most one per post) and
    ``is_winner`` is only ever set by settlement.
    """

    __tablename__ = "auction_bids"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    post_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("auction_posts.id"),
        nullable=False,
    )
    bidder_identity: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )
    bidder_display_name: Mapped[str | None] = mapped_column(
        String(200),
        nullable=True,
    )
    amount: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    is_winning: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    is_winner: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    payment_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
    )

    # Relationships
    post: Mapped["AuctionPost"] = relationship("AuctionPost", back_populates="bids")

    __table_args__ = (
        CheckConstraint("amount > 0", name="chk_bid_amount_positive"),
        Index("idx_bids_post_winning", "post_id", "is_winning"),
        Index("idx_bids_post_created", "post_id", "created_at"),
        Index("idx_bids_bidder", "bidder_identity"),
    )
