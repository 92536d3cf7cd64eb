# backend/modules/loyalty/schemas/loyalty_schemas.py

"""
Schemas for the loyalty points ledger and per-business program settings.
"""

import math
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)


# ========== Settings ==========

class TierThresholds(BaseModel):
    """Lifetime points needed for each tier above bronze"""
    silver: Optional[int] = Field(None, gt=0)
    gold: Optional[int] = Field(None, gt=0)
    platinum: Optional[int] = Field(None, gt=0)

    @model_validator(mode="after")
    def check_increasing(self):
        present = [
            (name, value)
            for name, value in (("silver", self.silver), ("gold", self.gold),
                                ("platinum", self.platinum))
            if value is not None
        ]
        for (low_name, low), (high_name, high) in zip(present, present[1:]):
            if high <= low:
                raise ValueError(
                    f"{high_name} threshold ({high}) must be greater than "
                    f"{low_name} threshold ({low})"
                )
        return self

    def as_dict(self) -> Dict[str, int]:
        return self.model_dump(exclude_none=True)


class ResolvedLoyaltySettings(BaseModel):
    """Effective program configuration for one business"""
    business_id: int
    is_enabled: bool = False
    program_name: str = "Rewards Program"
    points_per_dollar: int = 1
    minimum_spend: Optional[Decimal] = None
    tier_thresholds: TierThresholds = Field(default_factory=TierThresholds)

    def points_for(self, amount_spent: Decimal) -> int:
        """Whole points earned for a spend; fractions are dropped"""
        return int(math.floor(Decimal(str(amount_spent)) * self.points_per_dollar))


class LoyaltySettingsUpdate(BaseModel):
    is_enabled: bool
    program_name: str = Field("Rewards Program", min_length=1, max_length=100)
    points_per_dollar: int = Field(1, ge=1)
    minimum_spend: Optional[Decimal] = Field(None, ge=0)
    tier_thresholds: Optional[TierThresholds] = None


class LoyaltySettingsOut(BaseModel):
    id: int
    business_id: int
    is_enabled: bool
    program_name: str
    points_per_dollar: int
    minimum_spend: Optional[Decimal]
    tier_thresholds: Optional[TierThresholds]
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


# ========== Points ==========

class PointsRedemption(BaseModel):
    points: int = Field(..., gt=0)
    order_id: Optional[int] = None
    description: Optional[str] = Field(None, max_length=500)


class PointsAdjustment(BaseModel):
    """Signed manual correction"""
    points: int
    description: Optional[str] = Field(None, max_length=500)

    @field_validator("points")
    @classmethod
    def non_zero(cls, v):
        if v == 0:
            raise ValueError("Adjustment must change the balance")
        return v


class LoyaltyTransactionOut(BaseModel):
    id: int
    loyalty_account_id: int
    transaction_type: str
    points: int
    balance_after: int
    order_id: Optional[int]
    description: Optional[str]
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class LoyaltyAccountOut(BaseModel):
    id: int
    customer_id: int
    business_id: int
    points_balance: int
    lifetime_earned: int
    lifetime_redeemed: int
    tier: str
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class LoyaltyAccountDetail(BaseModel):
    account: LoyaltyAccountOut
    recent_transactions: List[LoyaltyTransactionOut] = []


# ========== Results ==========

class AwardOutcome(str, Enum):
    AWARDED = "awarded"
    ALREADY_AWARDED = "already_awarded"
    NOT_ELIGIBLE = "not_eligible"


class AwardResult(BaseModel):
    outcome: AwardOutcome
    points: int = 0
    reason: Optional[str] = None
    transaction_id: Optional[int] = None
    account_id: Optional[int] = None

    @property
    def awarded(self) -> bool:
        return self.outcome == AwardOutcome.AWARDED


class ReconciliationReport(BaseModel):
    account_id: int
    points_balance: int
    replayed_balance: int
    lifetime_earned: int
    replayed_lifetime_earned: int
    lifetime_redeemed: int
    replayed_lifetime_redeemed: int
    transaction_count: int
    balance_after_mismatches: int = 0

    @computed_field
    @property
    def is_consistent(self) -> bool:
        return (
            self.points_balance == self.replayed_balance
            and self.lifetime_earned == self.replayed_lifetime_earned
            and self.lifetime_redeemed == self.replayed_lifetime_redeemed
            and self.balance_after_mismatches == 0
        )
