# backend/modules/loyalty/services/settings_resolver.py

import logging
from decimal import Decimal
from typing import Tuple

from sqlalchemy.orm import Session

from core.config import settings as app_settings
from core.error_handling import NotFoundError
from ..models.loyalty_models import LoyaltySettings
from ..schemas.loyalty_schemas import (
    LoyaltySettingsUpdate,
    ResolvedLoyaltySettings,
    TierThresholds,
)

logger = logging.getLogger(__name__)


class LoyaltySettingsResolver:
    """Loads and validates a business's loyalty program configuration"""

    def __init__(self, db: Session):
        self.db = db

    def resolve(self, business_id: int) -> ResolvedLoyaltySettings:
        """Effective settings; a business without a row has loyalty disabled"""
        row = self._load(business_id)
        if row is None:
            return ResolvedLoyaltySettings(
                business_id=business_id,
                is_enabled=False,
                tier_thresholds=self.default_thresholds(),
            )
        return self.to_resolved(row)

    def get(self, business_id: int) -> LoyaltySettings:
        row = self._load(business_id)
        if row is None:
            raise NotFoundError("LoyaltySettings", business_id)
        return row

    def upsert(
        self, business_id: int, update: LoyaltySettingsUpdate, commit: bool = True
    ) -> LoyaltySettings:
        """Create or replace the business's program configuration"""
        row = self._load(business_id)
        if row is None:
            row = LoyaltySettings(business_id=business_id)
            self.db.add(row)

        row.is_enabled = update.is_enabled
        row.program_name = update.program_name
        row.points_per_dollar = update.points_per_dollar
        row.minimum_spend = update.minimum_spend
        row.tier_thresholds = (
            update.tier_thresholds.as_dict() if update.tier_thresholds else None
        )

        if commit:
            self.db.commit()
            self.db.refresh(row)
        else:
            self.db.flush()

        logger.info(
            f"Loyalty settings for business {business_id} saved "
            f"(enabled={row.is_enabled}, points_per_dollar={row.points_per_dollar})"
        )
        return row

    @staticmethod
    def is_eligible(
        resolved: ResolvedLoyaltySettings, amount_spent: Decimal
    ) -> Tuple[bool, str]:
        """Whether a spend earns points, with the reason when it does not"""
        if not resolved.is_enabled:
            return False, "loyalty program disabled"
        if resolved.minimum_spend is not None and amount_spent < resolved.minimum_spend:
            return False, f"below minimum spend of {resolved.minimum_spend}"
        if resolved.points_for(amount_spent) <= 0:
            return False, "no points earned for this amount"
        return True, "eligible"

    @staticmethod
    def default_thresholds() -> TierThresholds:
        return TierThresholds(**app_settings.default_tier_thresholds)

    @classmethod
    def to_resolved(cls, row: LoyaltySettings) -> ResolvedLoyaltySettings:
        thresholds = (
            TierThresholds(**row.tier_thresholds)
            if row.tier_thresholds is not None
            else cls.default_thresholds()
        )
        return ResolvedLoyaltySettings(
            business_id=row.business_id,
            is_enabled=row.is_enabled,
            program_name=row.program_name,
            points_per_dollar=row.points_per_dollar,
            minimum_spend=row.minimum_spend,
            tier_thresholds=thresholds,
        )

    def _load(self, business_id: int):
        return (
            self.db.query(LoyaltySettings)
            .filter(LoyaltySettings.business_id == business_id)
            .first()
        )
