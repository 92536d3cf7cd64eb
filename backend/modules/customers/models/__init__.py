# backend/modules/customers/models/__init__.py

from .customer_models import (
    Customer,
    CustomerActivity,
    CustomerActivityType,
    CustomerSource,
)

__all__ = [
    "Customer",
    "CustomerActivity",
    "CustomerActivityType",
    "CustomerSource",
]
