"""
Demo data seed script.

Creates owners of every type, promo codes, customers, orders and
redemptions so the dashboard, snapshot job and anomaly job have
something to work with.

Usage:
    python -m promolens.scripts.seed_demo_data
    python -m promolens.scripts.seed_demo_data --dry-run (to preview without saving)

Environment variables:
    DATABASE_URL: PostgreSQL connection string (required)
"""

import argparse
import logging
import random
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from promolens.database.session import get_db_session_sync
from promolens.models.promo import (
    CodeRedemption, Customer, Order, Owner, OwnerType, PromoCode,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

OWNER_CHANNELS = {
    OwnerType.INFLUENCER: ["Instagram", "TikTok", "YouTube", "Twitter"],
    OwnerType.REP: ["Direct", "Email", "Phone", "LinkedIn"],
    OwnerType.CAMPAIGN: ["Holiday", "Product Launch", "Seasonal", "Partnership"],
    OwnerType.PARTNER: ["Affiliate", "Marketplace"],
}

OWNER_COUNTS = {
    OwnerType.INFLUENCER: 10,
    OwnerType.REP: 8,
    OwnerType.CAMPAIGN: 7,
    OwnerType.PARTNER: 3,
}

FIRST_NAMES = ["Ava", "Liam", "Maya", "Noah", "Zoe", "Ethan", "Iris", "Omar", "Lena", "Kai"]
LAST_NAMES = ["Patel", "Garcia", "Kim", "Nguyen", "Smith", "Okafor", "Rossi", "Cohen", "Silva"]
CAMPAIGNS = ["Spring Launch", "Black Friday", "Back to School", "Summer Sale", None]


@dataclass
class SeedCounts:
    owners: int = 0
    codes: int = 0
    customers: int = 0
    orders: int = 0
    redemptions: int = 0


def _money(low: float, high: float, rng: random.Random) -> Decimal:
    return Decimal(str(round(rng.uniform(low, high), 2)))


def seed_demo_data(
    session: Session,
    dry_run: bool = False,
    customers: int = 200,
    codes: int = 60,
    orders: int = 800,
    days: int = 60,
    seed: Optional[int] = 42,
) -> SeedCounts:
    """
    Insert a reproducible demo dataset.

    Roughly 70% of orders redeem a code. A customer's first order
    anchors first_order_at, so early orders count as new-customer orders.
    """
    rng = random.Random(seed)
    now = datetime.now(timezone.utc)
    counts = SeedCounts()

    owners: List[Owner] = []
    for owner_type, n in OWNER_COUNTS.items():
        for i in range(n):
            name = f"{rng.choice(FIRST_NAMES)} {rng.choice(LAST_NAMES)}"
            if owner_type == OwnerType.CAMPAIGN:
                name = f"{rng.choice(OWNER_CHANNELS[owner_type])} Campaign {i + 1}"
            owners.append(Owner(
                type=owner_type.value,
                name=name,
                email=None if owner_type == OwnerType.CAMPAIGN else f"{owner_type.value.lower()}{i}@example.com",
                channel=rng.choice(OWNER_CHANNELS[owner_type]),
            ))
    counts.owners = len(owners)

    promo_codes: List[PromoCode] = []
    for i in range(codes):
        owner = rng.choice(owners)
        promo_codes.append(PromoCode(
            code=f"{owner.name.split()[0].upper()}{i:03d}",
            owner=owner,
            issued_at=now - timedelta(days=rng.randint(days, days + 120)),
            channel=owner.channel or "Direct",
            campaign=rng.choice(CAMPAIGNS),
            budget=_money(100, 2000, rng) if rng.random() < 0.3 else None,
            is_active=rng.random() < 0.85,
        ))
    counts.codes = len(promo_codes)

    customer_rows: List[Customer] = []
    for i in range(customers):
        first, last = rng.choice(FIRST_NAMES), rng.choice(LAST_NAMES)
        customer_rows.append(Customer(
            email=f"{first.lower()}.{last.lower()}{i}@example.com",
            first_name=first,
            last_name=last,
            first_order_at=now - timedelta(days=rng.randint(0, days), hours=rng.randint(0, 23)),
            lifetime_value=Decimal("0"),
        ))
    counts.customers = len(customer_rows)

    order_rows: List[Order] = []
    redemption_rows: List[CodeRedemption] = []
    for i in range(orders):
        customer = rng.choice(customer_rows)
        # Orders land at or after the customer's first order
        created_at = min(
            customer.first_order_at + timedelta(hours=rng.choice([0, 2, 12, 48, 24 * 7, 24 * 30])),
            now,
        )
        subtotal = _money(20, 400, rng)
        code = rng.choice(promo_codes) if rng.random() < 0.7 else None
        discount = (subtotal * Decimal("0.15")).quantize(Decimal("0.01")) if code else Decimal("0")

        order = Order(
            external_id=f"seed_{i}",
            customer=customer,
            total=subtotal - discount,
            discount_value=discount,
            coupon=code.code if code else None,
            channel=code.channel if code else "Direct",
            owner_id=None,
            created_at=created_at,
        )
        if code is not None:
            redemption_rows.append(CodeRedemption(code=code, order=order, created_at=created_at))
        customer.lifetime_value += subtotal
        order_rows.append(order)

    counts.orders = len(order_rows)
    counts.redemptions = len(redemption_rows)

    if dry_run:
        logger.info("Dry run: nothing written", extra=vars(counts))
        return counts

    session.add_all(owners)
    session.add_all(promo_codes)
    session.add_all(customer_rows)
    session.add_all(order_rows)
    session.add_all(redemption_rows)
    session.flush()

    # Owner ids exist only after flush
    for redemption in redemption_rows:
        redemption.order.owner_id = redemption.code.owner_id

    session.commit()
    logger.info("Demo data seeded", extra=vars(counts))
    return counts


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(description="Seed PromoLens demo data")
    parser.add_argument("--dry-run", action="store_true", help="Preview counts without saving")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    args = parser.parse_args(argv)

    try:
        for session in get_db_session_sync():
            counts = seed_demo_data(session, dry_run=args.dry_run, seed=args.seed)
            logger.info(
                f"Owners: {counts.owners}, codes: {counts.codes}, customers: {counts.customers}, "
                f"orders: {counts.orders}, redemptions: {counts.redemptions}"
            )
    except (RuntimeError, SQLAlchemyError) as e:
        logger.error(f"Seeding failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
