"""Won auction model: the exclusive download grant issued at settlement."""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class GrantStatus:
    ACTIVE = "ACTIVE"
    REVOKED = "REVOKED"


class WonAuction(Base):
    """Exclusive download grant, created exactly once per SOLD post."""

    __tablename__ = "won_auctions"

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
    post_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("auction_posts.id"),
        unique=True,
        nullable=False,
    )
    winning_bid: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    submitter_share: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    platform_share: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    download_token: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
    )
    downloads_used: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    max_downloads: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=GrantStatus.ACTIVE,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("winning_bid > 0", name="chk_grant_winning_bid_positive"),
        CheckConstraint(
            "submitter_share + platform_share = winning_bid",
            name="chk_grant_split_sums",
        ),
        Index("idx_grants_buyer_created", "buyer_id", "created_at"),
    )
