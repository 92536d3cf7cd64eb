# backend/modules/loyalty/routes/loyalty_routes.py

"""
Routes for customer loyalty accounts and program settings.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from core.database import get_db
from core.error_handling import handle_api_errors, NotFoundError
from modules.customers.services.customer_service import CustomerService

from ..services.loyalty_ledger import LoyaltyLedger
from ..services.settings_resolver import LoyaltySettingsResolver
from ..schemas.loyalty_schemas import (
    # Settings
    LoyaltySettingsOut,
    LoyaltySettingsUpdate,
    # Accounts
    LoyaltyAccountDetail,
    LoyaltyAccountOut,
    LoyaltyTransactionOut,
    PointsAdjustment,
    PointsRedemption,
    ReconciliationReport,
)

router = APIRouter(prefix="/api/v1/businesses/{business_id}", tags=["Loyalty"])


# ========== Customer Loyalty ==========


@router.get("/customers/{customer_id}/loyalty", response_model=LoyaltyAccountDetail)
@handle_api_errors
def get_customer_loyalty(
    business_id: int,
    customer_id: int,
    limit: Optional[int] = Query(None, ge=1, le=100, description="Recent transactions to include"),
    db: Session = Depends(get_db),
):
    """Get a customer's points balance and tier, opening the account on first use"""
    CustomerService(db).get_customer(customer_id, business_id)
    account, recent = LoyaltyLedger(db).get_account(customer_id, business_id, limit=limit)
    return LoyaltyAccountDetail(
        account=LoyaltyAccountOut.model_validate(account),
        recent_transactions=[LoyaltyTransactionOut.model_validate(t) for t in recent],
    )


@router.post("/customers/{customer_id}/loyalty/redeem", response_model=LoyaltyAccountOut)
@handle_api_errors
def redeem_points(
    business_id: int,
    customer_id: int,
    redemption: PointsRedemption,
    db: Session = Depends(get_db),
):
    CustomerService(db).get_customer(customer_id, business_id)
    return LoyaltyLedger(db).redeem(
        customer_id,
        business_id,
        redemption.points,
        order_id=redemption.order_id,
        description=redemption.description,
    )


@router.post("/customers/{customer_id}/loyalty/adjust", response_model=LoyaltyAccountOut)
@handle_api_errors
def adjust_points(
    business_id: int,
    customer_id: int,
    adjustment: PointsAdjustment,
    db: Session = Depends(get_db),
):
    """Manually add or remove points"""
    CustomerService(db).get_customer(customer_id, business_id)
    return LoyaltyLedger(db).adjust(
        customer_id, business_id, adjustment.points, description=adjustment.description
    )


@router.get("/customers/{customer_id}/loyalty/reconcile", response_model=ReconciliationReport)
@handle_api_errors
def reconcile_loyalty_account(
    business_id: int,
    customer_id: int,
    db: Session = Depends(get_db),
):
    """Replay the ledger and compare it with the stored balance and totals"""
    ledger = LoyaltyLedger(db)
    account = ledger.find_account(customer_id, business_id)
    if account is None:
        raise NotFoundError("LoyaltyAccount", f"customer {customer_id}")
    return ledger.reconcile(account.id)


# ========== Program Settings ==========


@router.get("/loyalty/settings", response_model=LoyaltySettingsOut)
@handle_api_errors
def get_loyalty_settings(business_id: int, db: Session = Depends(get_db)):
    return LoyaltySettingsResolver(db).get(business_id)


@router.put("/loyalty/settings", response_model=LoyaltySettingsOut)
@handle_api_errors
def update_loyalty_settings(
    business_id: int,
    settings_update: LoyaltySettingsUpdate,
    db: Session = Depends(get_db),
):
    return LoyaltySettingsResolver(db).upsert(business_id, settings_update)
