# backend/tests/modules/loyalty/test_loyalty_ledger.py

"""
Tests for the loyalty points ledger.
"""

import threading
from decimal import Decimal

import pytest

from core.error_handling import APIValidationError, InsufficientPointsError, NotFoundError
from modules.customers.models.customer_models import CustomerActivity
from modules.loyalty.models.loyalty_models import LoyaltyAccount, LoyaltyTransaction
from modules.loyalty.schemas.loyalty_schemas import (
    AwardOutcome,
    ResolvedLoyaltySettings,
    TierThresholds,
)
from modules.loyalty.services.loyalty_ledger import LoyaltyLedger


def program(**overrides):
    data = dict(
        business_id=1,
        is_enabled=True,
        points_per_dollar=1,
        minimum_spend=Decimal("10.00"),
        tier_thresholds=TierThresholds(silver=500, gold=1000, platinum=2500),
    )
    data.update(overrides)
    return ResolvedLoyaltySettings(**data)


@pytest.fixture
def customer(make_customer):
    return make_customer()


@pytest.fixture
def funded(db_session, customer, make_order):
    """Scenario A: 25 points earned on a $25.00 order"""
    order = make_order(customer_id=customer.id, total=Decimal("25.00"))
    LoyaltyLedger(db_session).award(customer.id, 1, order.id, Decimal("25.00"), program())
    return customer


@pytest.mark.integration
class TestAward:

    def test_award_creates_account_and_entry(self, db_session, customer, make_order):
        order = make_order(customer_id=customer.id)

        result = LoyaltyLedger(db_session).award(
            customer.id, 1, order.id, Decimal("25.00"), program()
        )

        assert result.outcome == AwardOutcome.AWARDED
        assert result.points == 25
        account = db_session.get(LoyaltyAccount, result.account_id)
        assert account.points_balance == 25
        assert account.lifetime_earned == 25
        assert account.tier == "bronze"
        txn = db_session.get(LoyaltyTransaction, result.transaction_id)
        assert txn.balance_after == 25
        assert txn.business_id == 1

    def test_points_are_floored(self, db_session, customer, make_order):
        order = make_order(customer_id=customer.id, total=Decimal("19.99"))

        result = LoyaltyLedger(db_session).award(
            customer.id, 1, order.id, Decimal("19.99"), program(points_per_dollar=3)
        )

        assert result.points == 59

    def test_second_award_for_same_order_is_already_awarded(self, db_session, customer, make_order):
        order = make_order(customer_id=customer.id)
        ledger = LoyaltyLedger(db_session)

        first = ledger.award(customer.id, 1, order.id, Decimal("25.00"), program())
        second = ledger.award(customer.id, 1, order.id, Decimal("25.00"), program())

        assert second.outcome == AwardOutcome.ALREADY_AWARDED
        assert second.transaction_id == first.transaction_id
        assert db_session.query(LoyaltyTransaction).count() == 1
        account, _ = ledger.get_account(customer.id, 1)
        assert account.points_balance == 25

    @pytest.mark.parametrize("settings,amount,reason", [
        (dict(is_enabled=False), "50.00", "disabled"),
        (dict(minimum_spend=Decimal("10.00")), "9.99", "minimum spend"),
        (dict(minimum_spend=None), "0.50", "no points"),
    ])
    def test_not_eligible(self, db_session, customer, make_order, settings, amount, reason):
        order = make_order(customer_id=customer.id, total=Decimal(amount))

        result = LoyaltyLedger(db_session).award(
            customer.id, 1, order.id, Decimal(amount), program(**settings)
        )

        assert result.outcome == AwardOutcome.NOT_ELIGIBLE
        assert reason in result.reason
        assert db_session.query(LoyaltyTransaction).count() == 0

    def test_tier_upgrade(self, db_session, customer, make_order):
        order = make_order(customer_id=customer.id, total=Decimal("600.00"))

        result = LoyaltyLedger(db_session).award(
            customer.id, 1, order.id, Decimal("600.00"), program()
        )

        assert db_session.get(LoyaltyAccount, result.account_id).tier == "silver"

    def test_concurrent_awards_for_one_order(self, session_factory, customer, make_order):
        customer_id = customer.id
        order_id = make_order(customer_id=customer_id).id
        workers = 4
        barrier = threading.Barrier(workers)
        outcomes, errors = [], []
        lock = threading.Lock()

        def award():
            db = session_factory()
            try:
                barrier.wait()
                result = LoyaltyLedger(db).award(
                    customer_id, 1, order_id, Decimal("25.00"), program()
                )
                with lock:
                    outcomes.append(result.outcome)
            except Exception as e:  # collected and asserted below
                with lock:
                    errors.append(e)
            finally:
                db.close()

        threads = [threading.Thread(target=award) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert outcomes.count(AwardOutcome.AWARDED) == 1
        assert outcomes.count(AwardOutcome.ALREADY_AWARDED) == workers - 1

        check = session_factory()
        try:
            assert check.query(LoyaltyTransaction).count() == 1
            assert check.query(LoyaltyAccount).one().points_balance == 25
        finally:
            check.close()


@pytest.mark.integration
class TestRedeem:

    def test_scenario_b_redeem(self, db_session, funded):
        account = LoyaltyLedger(db_session).redeem(funded.id, 1, 10)

        assert account.points_balance == 15
        assert account.lifetime_redeemed == 10
        assert account.lifetime_earned == 25
        assert account.tier == "bronze"

        txn = (
            db_session.query(LoyaltyTransaction)
            .filter(LoyaltyTransaction.transaction_type == "redeemed")
            .one()
        )
        assert txn.points == -10
        assert txn.balance_after == 15

    def test_scenario_c_insufficient_points(self, db_session, funded):
        ledger = LoyaltyLedger(db_session)
        ledger.redeem(funded.id, 1, 10)

        with pytest.raises(InsufficientPointsError) as exc_info:
            ledger.redeem(funded.id, 1, 20)

        assert exc_info.value.status_code == 400
        assert exc_info.value.error_code == "INSUFFICIENT_POINTS"
        account, _ = ledger.get_account(funded.id, 1)
        assert account.points_balance == 15
        assert db_session.query(LoyaltyTransaction).count() == 2

    def test_non_positive_points_rejected(self, db_session, funded):
        with pytest.raises(APIValidationError):
            LoyaltyLedger(db_session).redeem(funded.id, 1, 0)

    def test_redeem_against_unknown_order(self, db_session, funded):
        ledger = LoyaltyLedger(db_session)

        with pytest.raises(NotFoundError):
            ledger.redeem(funded.id, 1, 5, order_id=424242)

        account, _ = ledger.get_account(funded.id, 1)
        assert account.points_balance == 25

    def test_redeem_against_other_business_order(self, db_session, funded, make_order):
        order = make_order(business_id=2, customer_email="elsewhere@example.com")

        with pytest.raises(NotFoundError):
            LoyaltyLedger(db_session).redeem(funded.id, 1, 5, order_id=order.id)

    def test_redeem_against_own_order(self, db_session, funded, make_order):
        order = make_order(customer_id=funded.id)

        LoyaltyLedger(db_session).redeem(funded.id, 1, 5, order_id=order.id)

        txn = (
            db_session.query(LoyaltyTransaction)
            .filter(LoyaltyTransaction.transaction_type == "redeemed")
            .one()
        )
        assert txn.order_id == order.id

    def test_redemption_logs_activity(self, db_session, funded):
        LoyaltyLedger(db_session).redeem(funded.id, 1, 5, description="Free drink")

        activity = (
            db_session.query(CustomerActivity)
            .filter(CustomerActivity.activity_type == "loyalty_redeemed")
            .one()
        )
        assert activity.description == "Free drink"

    def test_concurrent_redemptions_never_overdraw(self, session_factory, funded):
        customer_id = funded.id
        workers = 5
        barrier = threading.Barrier(workers)
        succeeded, rejected, errors = [], [], []
        lock = threading.Lock()

        def redeem():
            db = session_factory()
            try:
                barrier.wait()
                LoyaltyLedger(db).redeem(customer_id, 1, 10)
                with lock:
                    succeeded.append(True)
            except InsufficientPointsError:
                with lock:
                    rejected.append(True)
            except Exception as e:  # collected and asserted below
                with lock:
                    errors.append(e)
            finally:
                db.close()

        threads = [threading.Thread(target=redeem) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(succeeded) == 2
        assert len(rejected) == 3

        check = session_factory()
        try:
            account = check.query(LoyaltyAccount).one()
            assert account.points_balance == 5
            assert LoyaltyLedger(check).reconcile(account.id).is_consistent
        finally:
            check.close()


@pytest.mark.integration
class TestAdjust:

    def test_positive_adjustment_counts_as_earned(self, db_session, funded):
        account = LoyaltyLedger(db_session).adjust(funded.id, 1, 500, "Goodwill")

        assert account.points_balance == 525
        assert account.lifetime_earned == 525
        assert account.tier == "silver"

    def test_negative_adjustment(self, db_session, funded):
        account = LoyaltyLedger(db_session).adjust(funded.id, 1, -5)

        assert account.points_balance == 20
        assert account.lifetime_earned == 25
        assert account.lifetime_redeemed == 0
        txn = (
            db_session.query(LoyaltyTransaction)
            .filter(LoyaltyTransaction.transaction_type == "adjusted")
            .one()
        )
        assert txn.description == "Manual adjustment"

    def test_adjustment_cannot_go_negative(self, db_session, funded):
        with pytest.raises(InsufficientPointsError):
            LoyaltyLedger(db_session).adjust(funded.id, 1, -26)

        account, _ = LoyaltyLedger(db_session).get_account(funded.id, 1)
        assert account.points_balance == 25

    def test_zero_adjustment_is_invalid(self, db_session, funded):
        with pytest.raises(APIValidationError):
            LoyaltyLedger(db_session).adjust(funded.id, 1, 0)


@pytest.mark.integration
class TestAccountReads:

    def test_get_account_creates_lazily(self, db_session, customer):
        account, recent = LoyaltyLedger(db_session).get_account(customer.id, 1)

        assert account.points_balance == 0
        assert account.tier == "bronze"
        assert recent == []
        assert db_session.query(LoyaltyAccount).count() == 1

    def test_recent_transactions_newest_first_and_limited(self, db_session, funded):
        ledger = LoyaltyLedger(db_session)
        for _ in range(3):
            ledger.adjust(funded.id, 1, 1)

        _, recent = ledger.get_account(funded.id, 1, limit=2)

        assert len(recent) == 2
        assert recent[0].id > recent[1].id
        assert recent[0].balance_after == 28

    def test_reconcile_after_mixed_activity(self, db_session, funded):
        ledger = LoyaltyLedger(db_session)
        ledger.redeem(funded.id, 1, 10)
        ledger.adjust(funded.id, 1, 7)
        account = ledger.adjust(funded.id, 1, -2)

        report = ledger.reconcile(account.id)

        assert report.is_consistent
        assert report.replayed_balance == 20
        assert report.replayed_lifetime_earned == 32
        assert report.replayed_lifetime_redeemed == 10
        assert report.transaction_count == 4
        assert report.balance_after_mismatches == 0

    def test_reconcile_detects_tampering(self, db_session, funded):
        ledger = LoyaltyLedger(db_session)
        account, _ = ledger.get_account(funded.id, 1)
        account.points_balance = 999
        db_session.commit()

        assert ledger.reconcile(account.id).is_consistent is False

    def test_reconcile_detects_wrong_balance_snapshot(self, db_session, funded):
        ledger = LoyaltyLedger(db_session)
        ledger.redeem(funded.id, 1, 5)
        account, _ = ledger.get_account(funded.id, 1)
        first = (
            db_session.query(LoyaltyTransaction)
            .filter(LoyaltyTransaction.loyalty_account_id == account.id)
            .order_by(LoyaltyTransaction.id)
            .first()
        )
        first.balance_after = 999
        db_session.commit()

        report = ledger.reconcile(account.id)

        assert report.replayed_balance == account.points_balance
        assert report.balance_after_mismatches == 1
        assert report.is_consistent is False

    def test_reconcile_missing_account(self, db_session):
        with pytest.raises(NotFoundError):
            LoyaltyLedger(db_session).reconcile(31337)
