# backend/modules/loyalty/models/loyalty_models.py

"""
Loyalty program models
"""

from enum import Enum

from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    ForeignKey,
    DateTime,
    Numeric,
    JSON,
    Text,
    Index,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from core.database import Base
from core.mixins import TimestampMixin


class LoyaltyTier(str, Enum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"


class LoyaltyTransactionType(str, Enum):
    EARNED = "earned"
    REDEEMED = "redeemed"
    ADJUSTED = "adjusted"
    EXPIRED = "expired"


class LoyaltySettings(Base, TimestampMixin):
    """Per-business loyalty program configuration"""
    __tablename__ = "loyalty_settings"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, nullable=False, unique=True, index=True)
    is_enabled = Column(Boolean, nullable=False, default=False)
    program_name = Column(String(100), nullable=False, default="Rewards Program")
    points_per_dollar = Column(Integer, nullable=False, default=1)
    minimum_spend = Column(Numeric(10, 2), nullable=True)
    # {"silver": 500, "gold": 1000, "platinum": 2500}
    tier_thresholds = Column(JSON, nullable=True)

    def __repr__(self):
        return f"<LoyaltySettings(business_id={self.business_id}, enabled={self.is_enabled})>"


class LoyaltyAccount(Base, TimestampMixin):
    """Points balance for one customer at one business"""
    __tablename__ = "loyalty_accounts"
    __table_args__ = (
        UniqueConstraint("customer_id", "business_id",
                         name="uq_loyalty_accounts_customer_business"),
    )

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="CASCADE"),
                         nullable=False, index=True)
    business_id = Column(Integer, nullable=False, index=True)
    points_balance = Column(Integer, nullable=False, default=0)
    lifetime_earned = Column(Integer, nullable=False, default=0)
    lifetime_redeemed = Column(Integer, nullable=False, default=0)
    tier = Column(String(20), nullable=False, default=LoyaltyTier.BRONZE.value)
    version = Column(Integer, nullable=False)

    transactions = relationship(
        "LoyaltyTransaction",
        back_populates="account",
        order_by="LoyaltyTransaction.id",
        lazy="dynamic",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return (
            f"<LoyaltyAccount(id={self.id}, customer_id={self.customer_id}, "
            f"balance={self.points_balance}, tier='{self.tier}')>"
        )


class LoyaltyTransaction(Base):
    """Append-only ledger entry; never updated once written"""
    __tablename__ = "loyalty_transactions"
    __table_args__ = (
        # At most one earned entry per order per account
        Index(
            "uq_loyalty_transactions_earned_order",
            "loyalty_account_id",
            "order_id",
            unique=True,
            postgresql_where=text("transaction_type = 'earned'"),
            sqlite_where=text("transaction_type = 'earned'"),
        ),
        Index("ix_loyalty_transactions_account_created",
              "loyalty_account_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    loyalty_account_id = Column(
        Integer, ForeignKey("loyalty_accounts.id", ondelete="CASCADE"),
        nullable=False
    )
    business_id = Column(Integer, nullable=False, index=True)
    transaction_type = Column(String(20), nullable=False)
    points = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True, index=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=func.now(), nullable=False)

    account = relationship("LoyaltyAccount", back_populates="transactions")

    def __repr__(self):
        return (
            f"<LoyaltyTransaction(id={self.id}, type='{self.transaction_type}', "
            f"points={self.points}, balance_after={self.balance_after})>"
        )
