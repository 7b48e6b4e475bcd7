"""
Unit tests for tenant, subscription, invoice and account state transitions
"""

from datetime import datetime, timedelta
from decimal import Decimal
import uuid

import pytest

from tenant_hub.models.invoice import Invoice, InvoiceStatus
from tenant_hub.models.plan import PlanName
from tenant_hub.models.subscription import BillingCycle, Subscription, SubscriptionStatus
from tenant_hub.models.tenant import Tenant, TenantStatus
from tenant_hub.models.user import User


def make_tenant(status=TenantStatus.ACTIVE):
    return Tenant(
        id=uuid.uuid4(),
        organization_id=uuid.uuid4(),
        name="Acme",
        domain="acme.example.com",
        plan=PlanName.BASIC,
        status=status,
    )


def make_subscription(status=SubscriptionStatus.ACTIVE):
    organization_id = uuid.uuid4()
    return Subscription(
        id=uuid.uuid4(),
        organization_id=organization_id,
        current_for_organization_id=organization_id,
        plan=PlanName.PROFESSIONAL,
        billing_cycle=BillingCycle.MONTHLY,
        currency="USD",
        price=Decimal("99.00"),
        status=status,
        next_billing_date=datetime.utcnow() + timedelta(days=30),
        version=1,
    )


def make_invoice(status=InvoiceStatus.PENDING):
    now = datetime.utcnow()
    return Invoice(
        id=uuid.uuid4(),
        subscription_id=uuid.uuid4(),
        organization_id=uuid.uuid4(),
        subtotal=Decimal("99.00"),
        tax=Decimal("7.92"),
        total=Decimal("106.92"),
        currency="USD",
        status=status,
        period_start=now,
        period_end=now + timedelta(days=30),
        due_date=now + timedelta(days=7),
    )


class TestTenantStateMachine:

    def test_suspend_records_reason(self):
        tenant = make_tenant()

        tenant.transition_to_suspended("Payment overdue")

        assert tenant.status == TenantStatus.SUSPENDED
        assert tenant.suspension_reason == "Payment overdue"
        assert tenant.suspended_at is not None

    def test_reactivate_from_suspended(self):
        tenant = make_tenant()
        tenant.transition_to_suspended(None)

        tenant.transition_to_active()

        assert tenant.status == TenantStatus.ACTIVE
        assert tenant.reactivated_at is not None

    def test_cannot_reactivate_active_tenant(self):
        tenant = make_tenant()

        assert tenant.can_reactivate() is False
        with pytest.raises(ValueError):
            tenant.transition_to_active()


class TestSubscriptionStateMachine:

    def test_cancel_releases_current_slot(self):
        subscription = make_subscription()

        subscription.transition_to_cancelled("Too expensive")

        assert subscription.status == SubscriptionStatus.CANCELLED
        assert subscription.current_for_organization_id is None
        assert subscription.cancelled_at is not None
        assert subscription.version == 2

    def test_cancelled_is_terminal(self):
        subscription = make_subscription()
        subscription.transition_to_cancelled(None)

        assert subscription.can_modify() is False
        with pytest.raises(ValueError):
            subscription.transition_to_cancelled(None)

    def test_trial_window(self):
        subscription = make_subscription()
        assert subscription.is_in_trial() is False

        subscription.trial_ends_at = datetime.utcnow() + timedelta(days=3)
        assert subscription.is_in_trial() is True
        assert subscription.is_in_trial(now=datetime.utcnow() + timedelta(days=4)) is False

    def test_touch_bumps_version(self):
        subscription = make_subscription()

        subscription.touch()

        assert subscription.version == 2
        assert subscription.updated_at is not None


class TestInvoiceStateMachine:

    def test_pay_pending_invoice(self):
        invoice = make_invoice()

        invoice.transition_to_paid("card", "txn_1")

        assert invoice.status == InvoiceStatus.PAID
        assert invoice.transaction_id == "txn_1"
        assert invoice.paid_at is not None

    def test_failed_invoice_accepts_retry(self):
        invoice = make_invoice()
        invoice.transition_to_failed("card", "Declined")

        assert invoice.can_pay() is True
        invoice.transition_to_paid("card", "txn_2")
        assert invoice.status == InvoiceStatus.PAID
        assert invoice.failure_reason is None

    def test_paid_invoice_is_final(self):
        invoice = make_invoice(status=InvoiceStatus.PAID)

        assert invoice.can_pay() is False
        with pytest.raises(ValueError):
            invoice.transition_to_paid("card", "txn_3")
        with pytest.raises(ValueError):
            invoice.transition_to_failed("card", "Declined")


class TestAccountLockout:

    def make_user(self):
        return User(
            id=uuid.uuid4(),
            email="lock@example.com",
            password_hash="x",
            first_name="Lock",
            last_name="Out",
            failed_login_attempts=0,
        )

    def test_locks_after_max_attempts(self):
        user = self.make_user()

        for _ in range(4):
            user.register_failed_login(max_attempts=5, lock_minutes=30)
        assert user.is_locked() is False

        user.register_failed_login(max_attempts=5, lock_minutes=30)

        assert user.is_locked() is True
        assert user.failed_login_attempts == 0

    def test_lock_expires(self):
        user = self.make_user()
        user.locked_until = datetime.utcnow() + timedelta(minutes=30)

        assert user.is_locked(now=datetime.utcnow() + timedelta(minutes=31)) is False

    def test_successful_login_clears_state(self):
        user = self.make_user()
        user.register_failed_login(max_attempts=5, lock_minutes=30)

        user.register_successful_login()

        assert user.failed_login_attempts == 0
        assert user.locked_until is None
        assert user.last_login_at is not None
