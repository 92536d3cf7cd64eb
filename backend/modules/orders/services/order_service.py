# backend/modules/orders/services/order_service.py

import logging
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from core.config import settings
from core.database_retry import run_with_retry
from core.error_handling import APIValidationError, NotFoundError
from modules.customers.models.customer_models import Customer
from ..enums.order_enums import OrderPaymentStatus, OrderStatus, OrderType
from ..models.order_models import Order, OrderItem
from ..schemas.order_schemas import OrderCreate, OrderStatsSummary, PaymentStatusUpdate
from ..utils.money import ZERO, average, calculate_totals, line_total, to_money
from .order_number_service import OrderNumberAllocator

logger = logging.getLogger(__name__)


class OrderService:
    """Order intake, payment status updates and reads"""

    def __init__(self, db: Session):
        self.db = db

    def create_order(self, business_id: int, order_data: OrderCreate) -> Order:
        """
        Price a cart and persist it as a pending order.

        Items are snapshotted as sent; later menu edits never touch a placed
        order. The order number is allocated inside the same transaction as
        the insert, so a failed insert consumes no number.
        """
        if not order_data.items:
            raise APIValidationError("Order must contain at least one item")

        lines = []
        for item in order_data.items:
            modifiers = [m.model_dump(mode="json") for m in item.modifiers or []]
            modifiers_total = sum(
                (to_money(m.price_adjustment) for m in item.modifiers or []), ZERO
            )
            lines.append(
                (item, modifiers, modifiers_total,
                 line_total(item.item_price, modifiers_total, item.quantity))
            )

        delivery_fee = (
            settings.delivery_fee if order_data.order_type == OrderType.DELIVERY else ZERO
        )
        totals = calculate_totals(
            [total for _, _, _, total in lines],
            settings.order_tax_rate,
            tip=order_data.tip_amount,
            delivery_fee=delivery_fee,
            discount=order_data.discount_amount,
        )

        def persist() -> Order:
            # Counter first: it is the only contended row
            order_number = OrderNumberAllocator(self.db).allocate(business_id)

            if order_data.customer_id is not None:
                self._check_customer(business_id, order_data.customer_id)

            order = Order(
                business_id=business_id,
                order_number=order_number,
                order_type=order_data.order_type.value,
                status=OrderStatus.PENDING.value,
                source=order_data.source.value,
                customer_id=order_data.customer_id,
                customer_name=order_data.customer_name,
                customer_email=order_data.customer_email,
                customer_phone=order_data.customer_phone,
                subtotal=totals.subtotal,
                tax_amount=totals.tax_amount,
                tip_amount=totals.tip_amount,
                delivery_fee=totals.delivery_fee,
                discount_amount=totals.discount_amount,
                total_amount=totals.total_amount,
                payment_status=OrderPaymentStatus.PENDING.value,
                payment_method=order_data.payment_method,
                delivery_address=order_data.delivery_address,
                special_instructions=order_data.special_instructions,
            )
            for item, modifiers, modifiers_total, total in lines:
                order.order_items.append(
                    OrderItem(
                        menu_item_id=item.menu_item_id,
                        item_name=item.item_name,
                        item_price=to_money(item.item_price),
                        quantity=item.quantity,
                        modifiers=modifiers or None,
                        modifiers_total=to_money(modifiers_total),
                        total_price=total,
                        special_requests=item.special_requests,
                    )
                )
            self.db.add(order)
            self.db.commit()
            self.db.refresh(order)
            return order

        order = run_with_retry(persist, db=self.db)
        logger.info(
            f"Created order {order.order_number} for business {business_id} "
            f"(total={order.total_amount})"
        )
        return order

    def get_order(self, order_id: int, business_id: Optional[int] = None) -> Order:
        query = (
            self.db.query(Order)
            .options(selectinload(Order.order_items))
            .filter(Order.id == order_id)
        )
        if business_id is not None:
            query = query.filter(Order.business_id == business_id)
        order = query.first()
        if not order:
            raise NotFoundError("Order", order_id)
        return order

    def list_orders(
        self,
        business_id: int,
        status: Optional[OrderStatus] = None,
        order_type: Optional[OrderType] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Order], int]:
        query = self.db.query(Order).filter(Order.business_id == business_id)
        if status is not None:
            query = query.filter(Order.status == status.value)
        if order_type is not None:
            query = query.filter(Order.order_type == order_type.value)

        total = query.count()
        orders = (
            query.options(selectinload(Order.order_items))
            .order_by(Order.created_at.desc(), Order.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return orders, total

    def get_stats(self, business_id: int, day: Optional[date] = None) -> OrderStatsSummary:
        """Counts by status plus revenue from completed orders"""
        filters = [Order.business_id == business_id]
        if day is not None:
            start = datetime.combine(day, time.min)
            filters += [Order.created_at >= start, Order.created_at < start + timedelta(days=1)]

        status_counts = {s.value: 0 for s in OrderStatus}
        rows = (
            self.db.query(Order.status, func.count(Order.id))
            .filter(*filters)
            .group_by(Order.status)
            .all()
        )
        for status, count in rows:
            status_counts[status] = count

        revenue = (
            self.db.query(func.coalesce(func.sum(Order.total_amount), 0))
            .filter(*filters, Order.status == OrderStatus.COMPLETED.value)
            .scalar()
        )
        completed = status_counts[OrderStatus.COMPLETED.value]
        total_revenue = to_money(revenue)

        return OrderStatsSummary(
            business_id=business_id,
            day=day,
            total_orders=sum(status_counts.values()),
            status_counts=status_counts,
            completed_orders=completed,
            total_revenue=total_revenue,
            average_order_value=average(total_revenue, completed),
        )

    def update_payment_status(
        self, order_id: int, update: PaymentStatusUpdate, business_id: Optional[int] = None
    ) -> Order:
        order = self.get_order(order_id, business_id)
        order.payment_status = update.payment_status.value
        if update.payment_method is not None:
            order.payment_method = update.payment_method
        if update.payment_reference is not None:
            order.payment_reference = update.payment_reference
        if update.payment_status == OrderPaymentStatus.PAID and order.paid_at is None:
            order.paid_at = datetime.utcnow()

        self.db.commit()
        self.db.refresh(order)
        logger.info(
            f"Order {order.order_number} payment status set to {order.payment_status}"
        )
        return order

    def _check_customer(self, business_id: int, customer_id: int) -> None:
        exists = (
            self.db.query(Customer.id)
            .filter(Customer.id == customer_id, Customer.business_id == business_id)
            .first()
        )
        if exists is None:
            raise NotFoundError("Customer", customer_id)
