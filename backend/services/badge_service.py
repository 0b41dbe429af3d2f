"""
Seller badge scoring.

Tiers are checked from highest to lowest and the first match wins:

    diamond  100+ listed, or 50+ sold, or rating >= 4.8 over 50+ reviews
    gold      50+ listed, or 30+ sold, or rating >= 4.5 over 20+ reviews
              on an account at least 90 days old
    silver    25+ listed, or 15+ sold
    bronze    10+ listed, or 5+ sold

contact_count is accepted with the other stats but does not affect the tier.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from domain.enums import SellerBadge
from utils.clock import to_naive_utc, utcnow

GOLD_MIN_ACCOUNT_AGE_DAYS = 90


@dataclass(frozen=True)
class SellerStats:
    items_listed: int = 0
    items_sold: int = 0
    contact_count: int = 0
    rating: float = 0.0
    rating_count: int = 0
    created_at: Optional[datetime] = None


def account_age_days(created_at: Optional[datetime], now: Optional[datetime] = None) -> float:
    if created_at is None:
        return 0.0
    return (to_naive_utc(now or utcnow()) - to_naive_utc(created_at)).total_seconds() / 86400


def seller_badge(stats: SellerStats, now: Optional[datetime] = None) -> Optional[SellerBadge]:
    days_active = account_age_days(stats.created_at, now)

    if (
        stats.items_listed >= 100
        or stats.items_sold >= 50
        or (stats.rating >= 4.8 and stats.rating_count >= 50)
    ):
        return SellerBadge.DIAMOND

    if (
        stats.items_listed >= 50
        or stats.items_sold >= 30
        or (stats.rating >= 4.5 and stats.rating_count >= 20 and days_active >= GOLD_MIN_ACCOUNT_AGE_DAYS)
    ):
        return SellerBadge.GOLD

    if stats.items_listed >= 25 or stats.items_sold >= 15:
        return SellerBadge.SILVER

    if stats.items_listed >= 10 or stats.items_sold >= 5:
        return SellerBadge.BRONZE

    return None
