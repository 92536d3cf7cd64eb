# backend/modules/orders/schemas/order_schemas.py

from typing import Dict, List, Optional
from datetime import date, datetime
from decimal import Decimal
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict

from ..enums.order_enums import (
    OrderStatus, OrderType, OrderPaymentStatus, OrderSource
)


class OrderItemModifier(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    price_adjustment: Decimal = Decimal("0.00")


class OrderItemCreate(BaseModel):
    """Cart line, already priced from the menu at checkout"""
    menu_item_id: Optional[int] = None
    item_name: str = Field(..., min_length=1, max_length=200)
    item_price: Decimal = Field(..., ge=0)
    quantity: int = Field(..., gt=0)
    modifiers: Optional[List[OrderItemModifier]] = None
    special_requests: Optional[str] = None


class OrderCreate(BaseModel):
    order_type: OrderType
    customer_name: str = Field(..., min_length=1, max_length=200)
    customer_email: Optional[str] = Field(None, max_length=255)
    customer_phone: Optional[str] = Field(None, max_length=32)
    customer_id: Optional[int] = None
    items: List[OrderItemCreate] = Field(..., min_length=1)
    tip_amount: Decimal = Field(Decimal("0.00"), ge=0)
    discount_amount: Decimal = Field(Decimal("0.00"), ge=0)
    delivery_address: Optional[str] = None
    payment_method: Optional[str] = Field(None, max_length=50)
    special_instructions: Optional[str] = None
    source: OrderSource = OrderSource.POS

    @field_validator("customer_email")
    @classmethod
    def normalize_email(cls, v):
        if v is None:
            return v
        v = v.strip().lower()
        return v or None

    @model_validator(mode="after")
    def require_delivery_address(self):
        if self.order_type == OrderType.DELIVERY and not self.delivery_address:
            raise ValueError("delivery_address is required for delivery orders")
        return self


class OrderStatusUpdate(BaseModel):
    # Kept as a plain string so unknown statuses reach the state machine
    status: str
    cancellation_reason: Optional[str] = None


class PaymentStatusUpdate(BaseModel):
    payment_status: OrderPaymentStatus
    payment_method: Optional[str] = Field(None, max_length=50)
    payment_reference: Optional[str] = Field(None, max_length=100)


class OrderItemOut(BaseModel):
    id: int
    menu_item_id: Optional[int]
    item_name: str
    item_price: Decimal
    quantity: int
    modifiers: Optional[List[OrderItemModifier]] = None
    modifiers_total: Decimal
    total_price: Decimal
    special_requests: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    id: int
    business_id: int
    order_number: str
    order_type: OrderType
    status: OrderStatus
    source: OrderSource
    customer_id: Optional[int]
    customer_name: str
    customer_email: Optional[str]
    customer_phone: Optional[str]
    subtotal: Decimal
    tax_amount: Decimal
    tip_amount: Decimal
    delivery_fee: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    payment_status: OrderPaymentStatus
    payment_method: Optional[str]
    payment_reference: Optional[str]
    paid_at: Optional[datetime]
    confirmed_at: Optional[datetime]
    preparing_at: Optional[datetime]
    ready_at: Optional[datetime]
    completed_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    cancellation_reason: Optional[str]
    delivery_address: Optional[str] = None
    special_instructions: Optional[str]
    created_at: datetime
    updated_at: datetime
    order_items: List[OrderItemOut] = []
    model_config = ConfigDict(from_attributes=True)


class OrderListResponse(BaseModel):
    items: List[OrderOut]
    total: int
    limit: int
    offset: int
    has_more: bool


class OrderStatsSummary(BaseModel):
    """Order counts and completed revenue, optionally for a single day"""
    business_id: int
    day: Optional[date] = None
    total_orders: int
    status_counts: Dict[str, int]
    completed_orders: int
    total_revenue: Decimal
    average_order_value: Decimal
