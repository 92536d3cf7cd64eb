# backend/modules/customers/schemas/customer_schemas.py

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from ..models.customer_models import CustomerActivityType


class CustomerActivityOut(BaseModel):
    id: int
    customer_id: int
    business_id: int
    activity_type: CustomerActivityType
    order_id: Optional[int]
    amount: Optional[Decimal]
    description: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CustomerActivityListResponse(BaseModel):
    items: List[CustomerActivityOut]
    total: int
    limit: int
    offset: int
    has_more: bool
