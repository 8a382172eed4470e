"""Seed data script for development and testing.

Creates:
- BUYER_COUNT buyer accounts (phones 0820000001, 0820000002, ...) with
  BUYER_CREDITS credits each, loaded through the credit ledger
- 1 linked submitter account with revenue share enabled
- POST_COUNT active auctions, the first one owned by the submitter

Environment Variables:
    BUYER_COUNT: Number of buyer accounts (default: 20)
    BUYER_CREDITS: Starting credits per buyer in minor units (default: 100000)
    POST_COUNT: Number of active auctions (default: 3)
    RESET_DATA: Set to "true" to clear auction data before seeding (default: false)

Usage:
    uv run python -m scripts.seed_data
    RESET_DATA=true POST_COUNT=10 uv run python -m scripts.seed_data
"""

import asyncio
import os

# Configuration from environment variables
BUYER_COUNT = int(os.getenv("BUYER_COUNT", "20"))
BUYER_CREDITS = int(os.getenv("BUYER_CREDITS", "100000"))
POST_COUNT = int(os.getenv("POST_COUNT", "3"))
RESET_DATA = os.getenv("RESET_DATA", "false").lower() == "true"

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import async_session_maker, engine
from app.models import AuctionPost, BuyerAccount, CreditTransactionType, SubmitterAccount
from app.services.auction_service import AuctionService
from app.services.credit_ledger import CreditLedger
from scripts.reset_db import reset_database


def buyer_phone(index: int) -> str:
    return f"+2782{index:07d}"


async def seed_buyers(session: AsyncSession) -> list[BuyerAccount]:
    """Create buyer accounts and top them up through the ledger."""
    print("Seeding buyers...")

    result = await session.execute(select(BuyerAccount).limit(1))
    if result.scalar_one_or_none():
        print("  Buyers already exist, skipping...")
        result = await session.execute(select(BuyerAccount))
        return list(result.scalars().all())

    buyers = [
        BuyerAccount(
            phone_number=buyer_phone(i),
            organization_name=f"Newsroom {i:02d}",
            credit_balance=0,
        )
        for i in range(1, BUYER_COUNT + 1)
    ]
    session.add_all(buyers)
    await session.flush()

    ledger = CreditLedger(session)
    for buyer in buyers:
        await ledger.credit(
            buyer.id,
            BUYER_CREDITS,
            tx_type=CreditTransactionType.BONUS,
            description="Seed credits",
        )
    await session.commit()

    print(f"  Created {len(buyers)} buyers with {BUYER_CREDITS} credits each")
    return buyers


async def seed_submitter(session: AsyncSession) -> SubmitterAccount:
    print("Seeding submitter...")

    result = await session.execute(select(SubmitterAccount).limit(1))
    submitter = result.scalar_one_or_none()
    if submitter:
        print("  Submitter already exists, skipping...")
        return submitter

    submitter = SubmitterAccount(display_name="seed-submitter")
    session.add(submitter)
    await session.commit()
    print(f"  Created submitter: {submitter.id}")
    return submitter


async def seed_posts(session: AsyncSession, submitter: SubmitterAccount) -> list[AuctionPost]:
    """Open POST_COUNT fresh auctions."""
    print("Seeding auctions...")

    service = AuctionService(session)
    posts = []
    for i in range(POST_COUNT):
        post = await service.open_auction(
            owner_account_id=submitter.id if i == 0 else None,
            media_ref=f"seed/media-{i + 1}.jpg",
        )
        posts.append(post)
        print(f"  Opened auction {post.public_id} (ends {post.auction_ends_at})")
    return posts


async def main():
    """Main seed function."""
    print("=" * 60)
    print("Leak Auction - Seed Data Script")
    print("=" * 60)
    print(f"  RESET_DATA: {RESET_DATA}")
    print(f"  BUYER_COUNT: {BUYER_COUNT}")
    print(f"  POST_COUNT: {POST_COUNT}")
    print("=" * 60)

    if RESET_DATA:
        await reset_database()

    async with async_session_maker() as session:
        buyers = await seed_buyers(session)
        submitter = await seed_submitter(session)
        posts = await seed_posts(session, submitter)

    print("=" * 60)
    print("Seed data complete!")
    print(f"  Buyers: {len(buyers)} (first phone: {buyer_phone(1)})")
    print(f"  Active auctions: {', '.join(p.public_id for p in posts)}")
    print("=" * 60)
    print("")
    print("Place a bid with:")
    print("  curl -X POST http://localhost:8000/api/v1/bids \\")
    print("    -H 'Content-Type: application/json' \\")
    print(f"    -d '{{\"post_id\": \"{posts[0].public_id if posts else '<post>'}\", "
          f"\"bidder_phone\": \"0820000001\", \"amount\": 5000}}'")
    print("=" * 60)

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
