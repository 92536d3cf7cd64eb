# backend/modules/customers/models/customer_models.py

from sqlalchemy import (Column, Integer, String, ForeignKey, DateTime,
                        Numeric, Text, Index, UniqueConstraint)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func, text
from core.database import Base
from core.mixins import TimestampMixin
from enum import Enum


class CustomerSource(str, Enum):
    """Where a customer record came from"""
    POS = "pos"
    RESERVATION = "reservation"
    ORDER = "order"
    MANUAL = "manual"
    IMPORT = "import"


class CustomerActivityType(str, Enum):
    ORDER = "order"
    RESERVATION = "reservation"
    VISIT = "visit"
    LOYALTY_EARNED = "loyalty_earned"
    LOYALTY_REDEEMED = "loyalty_redeemed"
    LOYALTY_ADJUSTED = "loyalty_adjusted"


class Customer(Base, TimestampMixin):
    """Business-scoped customer profile with denormalized visit stats"""
    __tablename__ = "customers"
    __table_args__ = (
        UniqueConstraint("business_id", "email", name="uq_customers_business_email"),
        Index("ix_customers_business_phone", "business_id", "phone"),
        Index(
            "uq_customers_business_phone_no_email",
            "business_id",
            "phone",
            unique=True,
            postgresql_where=text("email IS NULL"),
            sqlite_where=text("email IS NULL"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, nullable=False, index=True)

    # Basic Information
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False, default="")
    email = Column(String(255), nullable=True)
    phone = Column(String(32), nullable=True)
    source = Column(String(20), nullable=False, default=CustomerSource.POS.value)
    internal_notes = Column(Text, nullable=True)

    # Denormalized stats, maintained by the aggregate updater
    total_visits = Column(Integer, nullable=False, default=0)
    total_spent = Column(Numeric(10, 2), nullable=False, default=0)
    average_spend = Column(Numeric(10, 2), nullable=False, default=0)
    last_visit_at = Column(DateTime, nullable=True)
    version = Column(Integer, nullable=False)

    activities = relationship("CustomerActivity", back_populates="customer",
                              lazy="dynamic", cascade="all, delete-orphan")

    __mapper_args__ = {"version_id_col": version}

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self):
        return f"<Customer(id={self.id}, name='{self.full_name}')>"


class CustomerActivity(Base):
    """Timeline of customer events (orders, loyalty changes)"""
    __tablename__ = "customer_activities"
    __table_args__ = (
        Index("ix_customer_activities_customer_created", "customer_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="CASCADE"),
                         nullable=False)
    business_id = Column(Integer, nullable=False, index=True)
    activity_type = Column(String(30), nullable=False)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True)
    amount = Column(Numeric(10, 2), nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=func.now(), nullable=False)

    customer = relationship("Customer", back_populates="activities")
