"""Auctionable post model: the per-content auction record."""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, List

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base

if TYPE_CHECKING:
    from app.models.bid import Bid


class AuctionStatus:
    ACTIVE = "ACTIVE"
    ENDED = "ENDED"
    SOLD = "SOLD"

    TERMINAL = (ENDED, SOLD)


class AuctionPost(Base):
    """One submitted content item and its exclusive-rights auction.

    ``auction_status`` is terminal once it leaves ACTIVE, and ``is_exclusive``
    is true exactly when the status is SOLD.
    """

    __tablename__ = "auction_posts"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    public_id: Mapped[str] = mapped_column(
        String(32),
        unique=True,
        nullable=False,
    )
    owner_account_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("submitter_accounts.id"),
        nullable=True,
    )
    media_ref: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )
    revenue_share_enabled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )
    auction_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=AuctionStatus.ACTIVE,
    )
    auction_ends_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
    )
    current_bid: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )
    bid_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    is_exclusive: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    exclusive_buyer_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("buyer_accounts.id"),
        nullable=True,
    )
    exclusive_buyer_name: Mapped[str | None] = mapped_column(
        String(200),
        nullable=True,
    )
    sold_at: Mapped[datetime | None] = mapped_column(
        DateTime,
        nullable=True,
    )
    ended_at: Mapped[datetime | None] = mapped_column(
        DateTime,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
    )

    # Relationships
    bids: Mapped[List["Bid"]] = relationship("Bid", back_populates="post")

    __table_args__ = (
        CheckConstraint("bid_count >= 0", name="chk_post_bid_count_positive"),
        CheckConstraint(
            "auction_status IN ('ACTIVE', 'ENDED', 'SOLD')",
            name="chk_post_auction_status",
        ),
        CheckConstraint(
            "is_exclusive = (auction_status = 'SOLD')",
            name="chk_post_exclusive_iff_sold",
        ),
        # Sweep candidate scan: status = ACTIVE AND auction_ends_at < now
        Index("idx_posts_status_ends_at", "auction_status", "auction_ends_at"),
    )
