# backend/modules/orders/services/order_number_service.py

import logging
from datetime import date
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.config import settings
from core.error_handling import ConflictError
from ..models.order_models import OrderNumberCounter

logger = logging.getLogger(__name__)


class OrderNumberAllocator:
    """
    Hands out ``YYYYMMDD-NNNN`` order numbers, one sequence per business per day.

    The counter row is bumped with a single ``UPDATE ... SET last_value =
    last_value + 1`` and read back inside the same transaction, so two
    concurrent allocations can never observe the same value. Numbers are only
    consumed when the surrounding transaction commits; a rolled back order
    releases nothing to anyone else and the next caller simply gets the next
    value.
    """

    def __init__(self, db: Session):
        self.db = db

    def allocate(self, business_id: int, order_date: Optional[date] = None) -> str:
        """Reserve the next order number for ``business_id`` on ``order_date``"""
        order_date = order_date or date.today()
        sequence = self._increment(business_id, order_date)
        return self.format_number(order_date, sequence)

    @staticmethod
    def format_number(order_date: date, sequence: int) -> str:
        prefix = order_date.strftime(settings.order_number_date_format)
        return f"{prefix}-{sequence:0{settings.order_number_width}d}"

    def _increment(self, business_id: int, order_date: date) -> int:
        if self._bump(business_id, order_date):
            return self._read(business_id, order_date)

        # First order of the day: create the counter under a savepoint so a
        # concurrent creator only costs us a retry of the update
        try:
            with self.db.begin_nested():
                self.db.add(
                    OrderNumberCounter(
                        business_id=business_id, order_date=order_date, last_value=1
                    )
                )
            logger.info(f"Started order sequence for business {business_id} on {order_date}")
            return 1
        except IntegrityError:
            logger.warning(
                f"Counter for business {business_id} on {order_date} created concurrently"
            )

        if self._bump(business_id, order_date):
            return self._read(business_id, order_date)

        raise ConflictError(
            "Could not allocate order number",
            {"business_id": business_id, "order_date": order_date.isoformat()},
        )

    def _bump(self, business_id: int, order_date: date) -> bool:
        result = self.db.execute(
            update(OrderNumberCounter)
            .where(
                OrderNumberCounter.business_id == business_id,
                OrderNumberCounter.order_date == order_date,
            )
            .values(last_value=OrderNumberCounter.last_value + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _read(self, business_id: int, order_date: date) -> int:
        return self.db.execute(
            select(OrderNumberCounter.last_value).where(
                OrderNumberCounter.business_id == business_id,
                OrderNumberCounter.order_date == order_date,
            )
        ).scalar_one()
