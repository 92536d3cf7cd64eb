# backend/modules/customers/services/customer_service.py

from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from typing import List, Optional, Tuple
import logging

from core.error_handling import ConflictError, NotFoundError
from ..models.customer_models import (
    Customer, CustomerActivity, CustomerActivityType, CustomerSource
)


logger = logging.getLogger(__name__)


class CustomerService:
    """Customer lookup and the order-driven find-or-create path"""

    def __init__(self, db: Session):
        self.db = db

    def get_customer(self, customer_id: int, business_id: Optional[int] = None) -> Customer:
        query = self.db.query(Customer).filter(Customer.id == customer_id)
        if business_id is not None:
            query = query.filter(Customer.business_id == business_id)
        customer = query.first()
        if not customer:
            raise NotFoundError("Customer", customer_id)
        return customer

    def list_activities(
        self,
        customer_id: int,
        business_id: int,
        activity_type: Optional[CustomerActivityType] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[CustomerActivity], int]:
        """Customer timeline, newest first"""
        self.get_customer(customer_id, business_id)

        query = self.db.query(CustomerActivity).filter(
            CustomerActivity.customer_id == customer_id
        )
        if activity_type is not None:
            query = query.filter(CustomerActivity.activity_type == activity_type.value)

        total = query.count()
        activities = (
            query.order_by(CustomerActivity.created_at.desc(), CustomerActivity.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return activities, total

    def get_customer_by_email(self, business_id: int, email: str) -> Optional[Customer]:
        return self.db.query(Customer).filter(
            Customer.business_id == business_id,
            Customer.email == email.strip().lower()
        ).first()

    def get_customer_by_phone(self, business_id: int, phone: str) -> Optional[Customer]:
        return self.db.query(Customer).filter(
            Customer.business_id == business_id,
            Customer.phone == phone.strip()
        ).order_by(Customer.id).first()

    def find_or_create_for_order(
        self,
        business_id: int,
        customer_name: Optional[str],
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> Optional[Customer]:
        """
        Match an order's customer by email, then phone, within the business.

        Creates a customer with source ``order`` when nothing matches. Returns
        None when the order carries no email or phone to identify anyone by.
        Never commits; the row is flushed inside the caller's transaction.
        """
        email = email.strip().lower() if email and email.strip() else None
        phone = phone.strip() if phone and phone.strip() else None
        if not email and not phone:
            return None

        customer = None
        if email:
            customer = self.get_customer_by_email(business_id, email)
        if not customer and phone:
            customer = self.get_customer_by_phone(business_id, phone)
        if customer:
            return customer

        first_name, last_name = self.split_name(customer_name)
        try:
            with self.db.begin_nested():
                customer = Customer(
                    business_id=business_id,
                    first_name=first_name,
                    last_name=last_name,
                    email=email,
                    phone=phone,
                    source=CustomerSource.ORDER.value,
                    total_visits=0,
                    total_spent=0,
                    average_spend=0,
                )
                self.db.add(customer)
            logger.info(f"Created customer {customer.id} for business {business_id} from order")
            return customer
        except IntegrityError:
            logger.warning(
                f"Customer {email or phone} for business {business_id} created concurrently"
            )

        if email:
            customer = self.get_customer_by_email(business_id, email)
        else:
            customer = self.get_customer_by_phone(business_id, phone)
        if not customer:
            raise ConflictError(
                "Could not create customer for order",
                {"business_id": business_id, "email": email, "phone": phone},
            )
        return customer

    @staticmethod
    def split_name(full_name: Optional[str]) -> Tuple[str, str]:
        parts = (full_name or "").split()
        if not parts:
            return "Guest", ""
        return parts[0], " ".join(parts[1:])
