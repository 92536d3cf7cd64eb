# backend/modules/loyalty/services/loyalty_ledger.py

"""
Append-only points ledger.

Every balance change is a single read-modify-write on the account row: the
account is locked (``SELECT ... FOR UPDATE`` where the database supports it)
and carries an optimistic ``version`` column, and the ledger entry is flushed
together with the new balance. A failure at any point rolls back both, so the
balance can always be rebuilt by replaying the account's transactions.
"""

import logging
from decimal import Decimal
from typing import Callable, List, Optional, Tuple, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.config import settings as app_settings
from core.database_retry import run_with_retry
from core.error_handling import (
    APIValidationError,
    ConflictError,
    InsufficientPointsError,
    NotFoundError,
)
from modules.customers.models.customer_models import (
    CustomerActivity,
    CustomerActivityType,
)
from modules.orders.models.order_models import Order
from ..models.loyalty_models import (
    LoyaltyAccount,
    LoyaltyTier,
    LoyaltyTransaction,
    LoyaltyTransactionType,
)
from ..schemas.loyalty_schemas import (
    AwardOutcome,
    AwardResult,
    ReconciliationReport,
    ResolvedLoyaltySettings,
    TierThresholds,
)
from .settings_resolver import LoyaltySettingsResolver
from .tier_service import calculate_tier

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LoyaltyLedger:
    """Awards, redeems and adjusts loyalty points for one business's customers"""

    def __init__(self, db: Session):
        self.db = db

    # ========== Mutations ==========

    def award(
        self,
        customer_id: int,
        business_id: int,
        order_id: int,
        amount_spent: Decimal,
        settings: ResolvedLoyaltySettings,
        commit: bool = True,
    ) -> AwardResult:
        """
        Award points for a completed order, at most once per order.

        Returns NOT_ELIGIBLE (with a reason) when the program is off, the
        spend is under the minimum or rounds to zero points, and
        ALREADY_AWARDED when the order has an earned entry already.
        """
        eligible, reason = LoyaltySettingsResolver.is_eligible(settings, amount_spent)
        if not eligible:
            logger.info(f"Order {order_id} not eligible for loyalty points: {reason}")
            return AwardResult(outcome=AwardOutcome.NOT_ELIGIBLE, reason=reason)

        return self._execute(
            lambda: self._award(customer_id, business_id, order_id, amount_spent, settings),
            commit,
        )

    def redeem(
        self,
        customer_id: int,
        business_id: int,
        points: int,
        order_id: Optional[int] = None,
        description: Optional[str] = None,
        commit: bool = True,
    ) -> LoyaltyAccount:
        if points <= 0:
            raise APIValidationError(
                "Points to redeem must be positive", {"points": points}
            )
        return self._execute(
            lambda: self._redeem(customer_id, business_id, points, order_id, description),
            commit,
        )

    def adjust(
        self,
        customer_id: int,
        business_id: int,
        points: int,
        description: Optional[str] = None,
        commit: bool = True,
    ) -> LoyaltyAccount:
        """Signed manual correction; never drives the balance below zero"""
        if points == 0:
            raise APIValidationError(
                "Adjustment must change the balance", {"points": points}
            )
        return self._execute(
            lambda: self._adjust(customer_id, business_id, points, description),
            commit,
        )

    # ========== Reads ==========

    def get_account(
        self, customer_id: int, business_id: int, limit: Optional[int] = None
    ) -> Tuple[LoyaltyAccount, List[LoyaltyTransaction]]:
        """Account (created on first access) and its most recent transactions"""
        limit = app_settings.loyalty_recent_transactions_limit if limit is None else limit

        def load():
            account = self._get_or_create_account(customer_id, business_id, lock=False)
            self.db.commit()
            return account

        account = run_with_retry(load, db=self.db)
        recent = (
            self.db.query(LoyaltyTransaction)
            .filter(LoyaltyTransaction.loyalty_account_id == account.id)
            .order_by(LoyaltyTransaction.created_at.desc(), LoyaltyTransaction.id.desc())
            .limit(limit)
            .all()
        )
        return account, recent

    def get_account_by_id(self, account_id: int) -> LoyaltyAccount:
        account = self.db.get(LoyaltyAccount, account_id)
        if account is None:
            raise NotFoundError("LoyaltyAccount", account_id)
        return account

    def find_account(self, customer_id: int, business_id: int) -> Optional[LoyaltyAccount]:
        return (
            self.db.query(LoyaltyAccount)
            .filter(
                LoyaltyAccount.customer_id == customer_id,
                LoyaltyAccount.business_id == business_id,
            )
            .first()
        )

    def reconcile(self, account_id: int) -> ReconciliationReport:
        """Replay the transaction log and compare it against the stored totals"""
        account = self.get_account_by_id(account_id)
        transactions = (
            self.db.query(LoyaltyTransaction)
            .filter(LoyaltyTransaction.loyalty_account_id == account_id)
            .order_by(LoyaltyTransaction.id)
            .all()
        )

        balance = earned = redeemed = mismatches = 0
        for txn in transactions:
            balance += txn.points
            if txn.balance_after != balance:
                mismatches += 1
            if txn.transaction_type == LoyaltyTransactionType.EARNED.value:
                earned += txn.points
            elif txn.transaction_type == LoyaltyTransactionType.ADJUSTED.value:
                if txn.points > 0:
                    earned += txn.points
            elif txn.transaction_type == LoyaltyTransactionType.REDEEMED.value:
                redeemed += -txn.points

        report = ReconciliationReport(
            account_id=account.id,
            points_balance=account.points_balance,
            replayed_balance=balance,
            lifetime_earned=account.lifetime_earned,
            replayed_lifetime_earned=earned,
            lifetime_redeemed=account.lifetime_redeemed,
            replayed_lifetime_redeemed=redeemed,
            transaction_count=len(transactions),
            balance_after_mismatches=mismatches,
        )
        if not report.is_consistent:
            logger.error(f"Loyalty account {account_id} does not reconcile: {report}")
        return report

    # ========== Internals ==========

    def _execute(self, work: Callable[[], T], commit: bool) -> T:
        """Run ``work`` as its own retried transaction, or inside the caller's"""
        if not commit:
            return work()

        def unit():
            result = work()
            self.db.commit()
            return result

        return run_with_retry(unit, db=self.db)

    def _award(
        self,
        customer_id: int,
        business_id: int,
        order_id: int,
        amount_spent: Decimal,
        settings: ResolvedLoyaltySettings,
    ) -> AwardResult:
        account = self._get_or_create_account(customer_id, business_id)

        existing = (
            self.db.query(LoyaltyTransaction)
            .filter(
                LoyaltyTransaction.loyalty_account_id == account.id,
                LoyaltyTransaction.order_id == order_id,
                LoyaltyTransaction.transaction_type == LoyaltyTransactionType.EARNED.value,
            )
            .first()
        )
        if existing is not None:
            logger.info(f"Order {order_id} already awarded {existing.points} points")
            return AwardResult(
                outcome=AwardOutcome.ALREADY_AWARDED,
                points=existing.points,
                transaction_id=existing.id,
                account_id=account.id,
            )

        points = settings.points_for(amount_spent)
        account.points_balance += points
        account.lifetime_earned += points
        self._update_tier(account, settings.tier_thresholds)

        txn = self._append(
            account,
            LoyaltyTransactionType.EARNED,
            points,
            order_id=order_id,
            description=f"Earned from order ({Decimal(str(amount_spent)):.2f})",
        )
        self._log_activity(
            account, CustomerActivityType.LOYALTY_EARNED, points, order_id,
            f"Earned {points} points",
        )

        try:
            self.db.flush()
        except IntegrityError as e:
            # A concurrent award for the same order got in first
            raise ConflictError(
                "Order already being awarded", {"order_id": order_id}
            ) from e

        logger.info(
            f"Awarded {points} points to customer {customer_id} for order {order_id} "
            f"(balance={account.points_balance}, tier={account.tier})"
        )
        return AwardResult(
            outcome=AwardOutcome.AWARDED,
            points=points,
            transaction_id=txn.id,
            account_id=account.id,
        )

    def _redeem(
        self,
        customer_id: int,
        business_id: int,
        points: int,
        order_id: Optional[int],
        description: Optional[str],
    ) -> LoyaltyAccount:
        if order_id is not None:
            self._check_order(order_id, business_id)

        account = self._get_or_create_account(customer_id, business_id)
        if points > account.points_balance:
            raise InsufficientPointsError(account.points_balance, points)

        account.points_balance -= points
        account.lifetime_redeemed += points

        self._append(
            account,
            LoyaltyTransactionType.REDEEMED,
            -points,
            order_id=order_id,
            description=description or f"Redeemed {points} points",
        )
        self._log_activity(
            account, CustomerActivityType.LOYALTY_REDEEMED, points, order_id,
            description or f"Redeemed {points} points",
        )
        self.db.flush()

        logger.info(
            f"Redeemed {points} points for customer {customer_id} "
            f"(balance={account.points_balance})"
        )
        return account

    def _adjust(
        self,
        customer_id: int,
        business_id: int,
        points: int,
        description: Optional[str],
    ) -> LoyaltyAccount:
        account = self._get_or_create_account(customer_id, business_id)
        if account.points_balance + points < 0:
            raise InsufficientPointsError(account.points_balance, -points)

        account.points_balance += points
        if points > 0:
            account.lifetime_earned += points
            thresholds = LoyaltySettingsResolver(self.db).resolve(business_id).tier_thresholds
            self._update_tier(account, thresholds)

        self._append(
            account,
            LoyaltyTransactionType.ADJUSTED,
            points,
            description=description or "Manual adjustment",
        )
        self._log_activity(
            account, CustomerActivityType.LOYALTY_ADJUSTED, points, None,
            description or "Manual adjustment",
        )
        self.db.flush()

        logger.info(
            f"Adjusted customer {customer_id} by {points} points "
            f"(balance={account.points_balance})"
        )
        return account

    def _check_order(self, order_id: int, business_id: int):
        exists = (
            self.db.query(Order.id)
            .filter(Order.id == order_id, Order.business_id == business_id)
            .first()
        )
        if exists is None:
            raise NotFoundError("Order", order_id)

    def _get_or_create_account(
        self, customer_id: int, business_id: int, lock: bool = True
    ) -> LoyaltyAccount:
        account = self._load_account(customer_id, business_id, lock)
        if account is not None:
            return account

        try:
            with self.db.begin_nested():
                account = LoyaltyAccount(
                    customer_id=customer_id,
                    business_id=business_id,
                    points_balance=0,
                    lifetime_earned=0,
                    lifetime_redeemed=0,
                    tier=LoyaltyTier.BRONZE.value,
                )
                self.db.add(account)
            logger.info(
                f"Opened loyalty account for customer {customer_id} "
                f"at business {business_id}"
            )
            return account
        except IntegrityError:
            logger.warning(
                f"Loyalty account for customer {customer_id} created concurrently"
            )

        account = self._load_account(customer_id, business_id, lock)
        if account is None:
            raise ConflictError(
                "Could not open loyalty account",
                {"customer_id": customer_id, "business_id": business_id},
            )
        return account

    def _load_account(
        self, customer_id: int, business_id: int, lock: bool
    ) -> Optional[LoyaltyAccount]:
        query = (
            self.db.query(LoyaltyAccount)
            .filter(
                LoyaltyAccount.customer_id == customer_id,
                LoyaltyAccount.business_id == business_id,
            )
            .populate_existing()
        )
        if lock:
            query = query.with_for_update()
        return query.first()

    def _append(
        self,
        account: LoyaltyAccount,
        transaction_type: LoyaltyTransactionType,
        points: int,
        order_id: Optional[int] = None,
        description: Optional[str] = None,
    ) -> LoyaltyTransaction:
        txn = LoyaltyTransaction(
            loyalty_account_id=account.id,
            business_id=account.business_id,
            transaction_type=transaction_type.value,
            points=points,
            balance_after=account.points_balance,
            order_id=order_id,
            description=description,
        )
        self.db.add(txn)
        return txn

    def _log_activity(
        self,
        account: LoyaltyAccount,
        activity_type: CustomerActivityType,
        points: int,
        order_id: Optional[int],
        description: str,
    ):
        self.db.add(
            CustomerActivity(
                customer_id=account.customer_id,
                business_id=account.business_id,
                activity_type=activity_type.value,
                order_id=order_id,
                amount=Decimal(points),
                description=description,
            )
        )

    @staticmethod
    def _update_tier(account: LoyaltyAccount, thresholds: Optional[TierThresholds]):
        new_tier = calculate_tier(account.lifetime_earned, thresholds)
        if new_tier.value != account.tier:
            logger.info(
                f"Loyalty account {account.id} moved from {account.tier} to {new_tier.value}"
            )
            account.tier = new_tier.value
