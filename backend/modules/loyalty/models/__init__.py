from .loyalty_models import (
    LoyaltySettings,
    LoyaltyAccount,
    LoyaltyTransaction,
    LoyaltyTier,
    LoyaltyTransactionType,
)

__all__ = [
    "LoyaltySettings",
    "LoyaltyAccount",
    "LoyaltyTransaction",
    "LoyaltyTier",
    "LoyaltyTransactionType",
]
