# backend/modules/orders/models/order_models.py

from sqlalchemy import (Column, Integer, String, ForeignKey, DateTime, Date,
                        Numeric, Text, JSON, Index, UniqueConstraint)
from sqlalchemy.orm import relationship
from core.database import Base
from core.mixins import TimestampMixin
from ..enums.order_enums import (
    OrderStatus, OrderPaymentStatus, OrderSource, STATUS_TIMESTAMP_FIELDS
)


class Order(Base, TimestampMixin):
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("business_id", "order_number",
                         name="uq_orders_business_order_number"),
        Index("ix_orders_business_status", "business_id", "status"),
        Index("ix_orders_business_created", "business_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, nullable=False, index=True)
    order_number = Column(String(32), nullable=False)
    order_type = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False,
                    default=OrderStatus.PENDING.value)
    source = Column(String(20), nullable=False, default=OrderSource.POS.value)

    # Customer snapshot; customer_id is linked on completion if not given
    customer_id = Column(Integer, ForeignKey("customers.id"),
                         nullable=True, index=True)
    customer_name = Column(String(200), nullable=False)
    customer_email = Column(String(255), nullable=True)
    customer_phone = Column(String(32), nullable=True)

    # Pricing
    subtotal = Column(Numeric(10, 2), nullable=False)
    tax_amount = Column(Numeric(10, 2), nullable=False, default=0)
    tip_amount = Column(Numeric(10, 2), nullable=False, default=0)
    delivery_fee = Column(Numeric(10, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    total_amount = Column(Numeric(10, 2), nullable=False)

    # Payment
    payment_status = Column(String(20), nullable=False,
                            default=OrderPaymentStatus.PENDING.value)
    payment_method = Column(String(50), nullable=True)
    payment_reference = Column(String(100), nullable=True)
    paid_at = Column(DateTime, nullable=True)

    # Status timestamps
    confirmed_at = Column(DateTime, nullable=True)
    preparing_at = Column(DateTime, nullable=True)
    ready_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    delivery_address = Column(Text, nullable=True)
    special_instructions = Column(Text, nullable=True)

    order_items = relationship("OrderItem", back_populates="order",
                               cascade="all, delete-orphan",
                               order_by="OrderItem.id")

    @property
    def status_timestamps(self):
        """Timestamps already stamped, keyed by status"""
        return {
            status: getattr(self, field)
            for status, field in STATUS_TIMESTAMP_FIELDS.items()
            if getattr(self, field) is not None
        }

    def __repr__(self):
        return f"<Order(id={self.id}, number='{self.order_number}', status='{self.status}')>"


class OrderItem(Base, TimestampMixin):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"),
                      nullable=False, index=True)
    # Snapshot of the menu item at order time
    menu_item_id = Column(Integer, nullable=True, index=True)
    item_name = Column(String(200), nullable=False)
    item_price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False)
    modifiers = Column(JSON, nullable=True)
    modifiers_total = Column(Numeric(10, 2), nullable=False, default=0)
    total_price = Column(Numeric(10, 2), nullable=False)
    special_requests = Column(Text, nullable=True)

    order = relationship("Order", back_populates="order_items")


class OrderNumberCounter(Base):
    """Per-business, per-day sequence backing human-readable order numbers"""
    __tablename__ = "order_number_counters"

    business_id = Column(Integer, primary_key=True)
    order_date = Column(Date, primary_key=True)
    last_value = Column(Integer, nullable=False, default=0)
