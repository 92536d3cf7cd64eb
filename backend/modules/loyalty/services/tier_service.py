# backend/modules/loyalty/services/tier_service.py

from typing import Optional

from ..models.loyalty_models import LoyaltyTier
from ..schemas.loyalty_schemas import TierThresholds

# Highest first; the first threshold met wins
_TIER_ORDER = (LoyaltyTier.PLATINUM, LoyaltyTier.GOLD, LoyaltyTier.SILVER)


def calculate_tier(lifetime_earned: int, thresholds: Optional[TierThresholds]) -> LoyaltyTier:
    """
    Tier for a lifetime points total.

    Tiers without a configured threshold are skipped; anything below every
    configured threshold is bronze.
    """
    if thresholds is None:
        return LoyaltyTier.BRONZE

    for tier in _TIER_ORDER:
        threshold = getattr(thresholds, tier.value)
        if threshold is not None and lifetime_earned >= threshold:
            return tier
    return LoyaltyTier.BRONZE
