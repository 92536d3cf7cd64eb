# backend/modules/customers/services/customer_aggregate_service.py

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from core.error_handling import NotFoundError
from modules.orders.utils.money import average, to_money
from ..models.customer_models import Customer, CustomerActivity, CustomerActivityType

logger = logging.getLogger(__name__)


class CustomerAggregateService:
    """Keeps a customer's visit count and spend figures in step with completed orders"""

    def __init__(self, db: Session):
        self.db = db

    def apply(
        self,
        customer_id: int,
        amount_spent: Decimal,
        order_id: Optional[int] = None,
        commit: bool = False,
    ) -> Customer:
        """
        Count one visit worth ``amount_spent``.

        Only the order completion path calls this, once per order, inside the
        transaction that marks the order completed.
        """
        customer = (
            self.db.query(Customer)
            .filter(Customer.id == customer_id)
            .populate_existing()
            .with_for_update()
            .first()
        )
        if customer is None:
            raise NotFoundError("Customer", customer_id)

        amount = to_money(amount_spent)
        customer.total_visits = (customer.total_visits or 0) + 1
        customer.total_spent = to_money(customer.total_spent) + amount
        customer.average_spend = average(customer.total_spent, customer.total_visits)
        customer.last_visit_at = datetime.utcnow()

        self.db.add(
            CustomerActivity(
                customer_id=customer.id,
                business_id=customer.business_id,
                activity_type=CustomerActivityType.ORDER.value,
                order_id=order_id,
                amount=amount,
                description=f"Order completed ({amount:.2f})",
            )
        )

        if commit:
            self.db.commit()
        else:
            self.db.flush()

        logger.info(
            f"Customer {customer_id} aggregates updated: visits={customer.total_visits}, "
            f"spent={customer.total_spent}"
        )
        return customer
