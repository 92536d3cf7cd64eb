# backend/modules/orders/services/order_lifecycle_service.py

"""
Order status state machine.

Orders move forward through ``pending -> confirmed -> preparing -> ready ->
completed`` (steps may be skipped) or to ``cancelled`` from any non-terminal
status. The status write is a compare-and-swap on the status that was read,
and everything a completion triggers (customer resolution, loyalty award,
customer aggregates) commits in the same transaction as that write.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from sqlalchemy import update
from sqlalchemy.orm import Session

from core.config import settings
from core.database_retry import run_with_retry
from core.error_handling import (
    APIValidationError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
)
from modules.customers.models.customer_models import Customer
from modules.customers.services.customer_aggregate_service import CustomerAggregateService
from modules.customers.services.customer_service import CustomerService
from modules.loyalty.schemas.loyalty_schemas import AwardResult
from modules.loyalty.services.loyalty_ledger import LoyaltyLedger
from modules.loyalty.services.settings_resolver import LoyaltySettingsResolver
from ..enums.order_enums import (
    FULFILLMENT_SEQUENCE,
    STATUS_TIMESTAMP_FIELDS,
    TERMINAL_STATUSES,
    OrderStatus,
)
from ..models.order_models import Order

logger = logging.getLogger(__name__)


@dataclass
class TransitionResult:
    order: Order
    previous_status: OrderStatus
    changed: bool
    award: Optional[AwardResult] = None
    customer_id: Optional[int] = None


class OrderLifecycleService:
    def __init__(self, db: Session):
        self.db = db

    def transition(
        self,
        order_id: int,
        target_status: Union[OrderStatus, str],
        cancellation_reason: Optional[str] = None,
        business_id: Optional[int] = None,
    ) -> TransitionResult:
        """
        Move an order to ``target_status``.

        Requesting the status the order already has is a successful no-op
        (``changed`` is False), so repeated completion requests never award
        points twice. Lost races are retried from a fresh read.
        """
        target = self.parse_status(target_status)
        return run_with_retry(
            self._transition,
            order_id,
            target,
            cancellation_reason,
            business_id,
            db=self.db,
        )

    @staticmethod
    def parse_status(value: Union[OrderStatus, str]) -> OrderStatus:
        try:
            return OrderStatus(value)
        except ValueError:
            raise APIValidationError(
                f"Unknown order status: {value}",
                {"status": value, "allowed": [s.value for s in OrderStatus]},
            )

    @staticmethod
    def validate_transition(current: OrderStatus, target: OrderStatus) -> None:
        if current in TERMINAL_STATUSES:
            raise InvalidTransitionError(current.value, target.value)
        if target == OrderStatus.CANCELLED:
            return
        if FULFILLMENT_SEQUENCE.index(target) < FULFILLMENT_SEQUENCE.index(current):
            raise InvalidTransitionError(current.value, target.value)

    def _transition(
        self,
        order_id: int,
        target: OrderStatus,
        cancellation_reason: Optional[str],
        business_id: Optional[int],
    ) -> TransitionResult:
        for attempt in range(settings.status_cas_max_attempts):
            order = self._load_order(order_id, business_id)
            current = OrderStatus(order.status)

            if current == target:
                self.db.rollback()
                return TransitionResult(order=order, previous_status=current, changed=False)

            try:
                self.validate_transition(current, target)
            except InvalidTransitionError:
                logger.warning(
                    f"Rejected transition of order {order_id} from {current.value} "
                    f"to {target.value}"
                )
                raise

            if self._compare_and_swap(order, current, target, cancellation_reason):
                break

            logger.warning(
                f"Order {order_id} changed status concurrently "
                f"(attempt {attempt + 1}/{settings.status_cas_max_attempts})"
            )
            self.db.rollback()
        else:
            raise ConflictError(
                "Order status changed concurrently",
                {"order_id": order_id, "target_status": target.value},
            )

        self.db.refresh(order)
        result = TransitionResult(order=order, previous_status=current, changed=True)

        if target == OrderStatus.COMPLETED:
            self._complete(order, result)

        self.db.commit()
        self.db.refresh(order)
        logger.info(
            f"Order {order.order_number} moved from {current.value} to {target.value}"
        )
        return result

    def _load_order(self, order_id: int, business_id: Optional[int]) -> Order:
        query = self.db.query(Order).filter(Order.id == order_id)
        if business_id is not None:
            query = query.filter(Order.business_id == business_id)
        order = query.populate_existing().with_for_update().first()
        if not order:
            raise NotFoundError("Order", order_id)
        return order

    def _compare_and_swap(
        self,
        order: Order,
        current: OrderStatus,
        target: OrderStatus,
        cancellation_reason: Optional[str],
    ) -> bool:
        stamp = self._next_timestamp(order)
        values = {"status": target.value, "updated_at": stamp}

        field = STATUS_TIMESTAMP_FIELDS.get(target)
        if field and getattr(order, field) is None:
            values[field] = stamp
        if target == OrderStatus.CANCELLED and cancellation_reason:
            values["cancellation_reason"] = cancellation_reason

        result = self.db.execute(
            update(Order)
            .where(Order.id == order.id, Order.status == current.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def _next_timestamp(order: Order) -> datetime:
        """Now, but never earlier than a stamp the order already carries"""
        stamps = [ts for ts in order.status_timestamps.values()]
        if order.created_at is not None:
            stamps.append(order.created_at)
        now = datetime.utcnow()
        return max([now] + stamps)

    def _complete(self, order: Order, result: TransitionResult) -> None:
        customer = self._resolve_customer(order)
        if customer is None:
            logger.info(
                f"Order {order.order_number} has no customer identity, "
                f"skipping loyalty and customer stats"
            )
            return

        if order.customer_id != customer.id:
            order.customer_id = customer.id
        result.customer_id = customer.id

        resolved = LoyaltySettingsResolver(self.db).resolve(order.business_id)
        result.award = LoyaltyLedger(self.db).award(
            customer.id,
            order.business_id,
            order.id,
            order.total_amount,
            resolved,
            commit=False,
        )
        CustomerAggregateService(self.db).apply(
            customer.id, order.total_amount, order_id=order.id
        )

    def _resolve_customer(self, order: Order) -> Optional[Customer]:
        customers = CustomerService(self.db)
        if order.customer_id is not None:
            return customers.get_customer(order.customer_id)
        return customers.find_or_create_for_order(
            order.business_id,
            order.customer_name,
            email=order.customer_email,
            phone=order.customer_phone,
        )
