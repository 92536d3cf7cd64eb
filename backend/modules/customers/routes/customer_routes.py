# backend/modules/customers/routes/customer_routes.py

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from core.database import get_db
from core.error_handling import handle_api_errors
from ..models.customer_models import CustomerActivityType
from ..schemas.customer_schemas import CustomerActivityListResponse, CustomerActivityOut
from ..services.customer_service import CustomerService

router = APIRouter(
    prefix="/api/v1/businesses/{business_id}/customers", tags=["Customers"]
)


@router.get("/{customer_id}/activities", response_model=CustomerActivityListResponse)
@handle_api_errors
def list_customer_activities(
    business_id: int,
    customer_id: int,
    activity_type: Optional[CustomerActivityType] = Query(None, description="Filter by activity type"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """Customer timeline (orders and loyalty changes), newest first"""
    activities, total = CustomerService(db).list_activities(
        customer_id, business_id, activity_type=activity_type, limit=limit, offset=offset
    )
    return CustomerActivityListResponse(
        items=[CustomerActivityOut.model_validate(a) for a in activities],
        total=total,
        limit=limit,
        offset=offset,
        has_more=offset + len(activities) < total,
    )
