# backend/modules/orders/routes/order_routes.py

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from datetime import date
from core.database import get_db
from core.error_handling import handle_api_errors
from ..enums.order_enums import OrderStatus, OrderType
from ..schemas.order_schemas import (
    OrderCreate, OrderOut, OrderListResponse, OrderStatsSummary,
    OrderStatusUpdate, PaymentStatusUpdate
)
from ..services.order_service import OrderService
from ..services.order_lifecycle_service import OrderLifecycleService

router = APIRouter(prefix="/api/v1/businesses/{business_id}/orders", tags=["Orders"])


@router.post("", response_model=OrderOut, status_code=status.HTTP_201_CREATED)
@handle_api_errors
def create_order(
    business_id: int,
    order_data: OrderCreate,
    db: Session = Depends(get_db)
):
    """
    Place a new order from a priced cart.

    Totals are computed server-side (tax, delivery fee for delivery orders,
    tip and discount) and the order starts out **pending**.
    """
    return OrderService(db).create_order(business_id, order_data)


@router.get("", response_model=OrderListResponse)
@handle_api_errors
def list_orders(
    business_id: int,
    status: Optional[OrderStatus] = Query(None, description="Filter by order status"),
    order_type: Optional[OrderType] = Query(None, description="Filter by order type"),
    limit: int = Query(50, ge=1, le=500, description="Number of orders to return"),
    offset: int = Query(0, ge=0, description="Number of orders to skip"),
    db: Session = Depends(get_db)
):
    orders, total = OrderService(db).list_orders(
        business_id, status=status, order_type=order_type,
        limit=limit, offset=offset
    )
    return OrderListResponse(
        items=[OrderOut.model_validate(o) for o in orders],
        total=total,
        limit=limit,
        offset=offset,
        has_more=offset + len(orders) < total,
    )


@router.get("/stats/summary", response_model=OrderStatsSummary)
@handle_api_errors
def get_order_stats(
    business_id: int,
    day: Optional[date] = Query(None, alias="date", description="Only orders placed on this day"),
    db: Session = Depends(get_db)
):
    """Order counts by status, completed revenue and average order value"""
    return OrderService(db).get_stats(business_id, day)


@router.get("/{order_id}", response_model=OrderOut)
@handle_api_errors
def get_order(business_id: int, order_id: int, db: Session = Depends(get_db)):
    return OrderService(db).get_order(order_id, business_id)


@router.put("/{order_id}/status", response_model=OrderOut)
@handle_api_errors
def update_order_status(
    business_id: int,
    order_id: int,
    status_update: OrderStatusUpdate,
    db: Session = Depends(get_db)
):
    """
    Move an order through its lifecycle.

    Repeating the current status succeeds without side effects. Completing
    an order awards loyalty points and updates customer stats exactly once.
    """
    result = OrderLifecycleService(db).transition(
        order_id,
        status_update.status,
        cancellation_reason=status_update.cancellation_reason,
        business_id=business_id,
    )
    return OrderService(db).get_order(result.order.id, business_id)


@router.put("/{order_id}/payment", response_model=OrderOut)
@handle_api_errors
def update_payment_status(
    business_id: int,
    order_id: int,
    payment_update: PaymentStatusUpdate,
    db: Session = Depends(get_db)
):
    return OrderService(db).update_payment_status(order_id, payment_update, business_id)
