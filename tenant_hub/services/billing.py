"""
Subscription and billing ledger
Subscriptions, invoices, payments and usage metering for organizations
"""

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from calendar import monthrange
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Tuple
import re
import uuid

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select
import structlog

from tenant_hub.core.config import get_settings
from tenant_hub.core.exceptions import ConflictError, NotFoundError, ValidationError
from tenant_hub.models.invoice import Invoice, InvoiceStatus
from tenant_hub.models.organization import Organization
from tenant_hub.models.plan import PlanName
from tenant_hub.models.subscription import BillingCycle, Subscription, SubscriptionStatus
from tenant_hub.models.usage import UsageRecord
from tenant_hub.schemas.billing import PaymentRequest, SubscriptionCreate, SubscriptionUpdate
from tenant_hub.services import plans
from tenant_hub.services.payments import ChargeResult, PaymentGateway

logger = structlog.get_logger(__name__)
settings = get_settings()

CENTS = Decimal("0.01")
PERIOD_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

_payment_executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="payment")


def add_months(value: datetime, months: int) -> datetime:
    """Calendar month arithmetic, clamping to the last day of the target month"""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def cycle_months(cycle: BillingCycle) -> int:
    return 12 if cycle == BillingCycle.YEARLY else 1


def billing_period(moment: Optional[datetime] = None) -> str:
    """Usage period key (YYYY-MM)"""
    return (moment or datetime.utcnow()).strftime("%Y-%m")


def resolve_period(period: Optional[str]) -> str:
    """'current' (or nothing) means this month; otherwise an explicit YYYY-MM"""
    if period is None or period == "current":
        return billing_period()
    if not PERIOD_PATTERN.match(period):
        raise ValidationError("period must be 'current' or YYYY-MM")
    return period


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


class BillingService:
    """Billing operations bound to one database session and payment gateway"""

    def __init__(self, session: Session, gateway: Optional[PaymentGateway] = None):
        self.session = session
        self.gateway = gateway

    # Subscriptions

    def get_organization(self, organization_id: uuid.UUID) -> Organization:
        organization = self.session.get(Organization, organization_id)
        if organization is None:
            raise NotFoundError("Organization not found")
        return organization

    def create_subscription(self, organization_id: uuid.UUID, data: SubscriptionCreate) -> Subscription:
        """Start a subscription for an organization that has no current one"""
        self.get_organization(organization_id)

        if self._current_subscription(organization_id) is not None:
            raise ConflictError("Organization already has an active subscription")

        plan = plans.get_plan(data.plan)
        now = datetime.utcnow()
        trial_ends_at = now + timedelta(days=data.trial_period) if data.trial_period > 0 else None

        subscription = Subscription(
            organization_id=organization_id,
            current_for_organization_id=organization_id,
            plan=data.plan,
            billing_cycle=data.billing_cycle,
            currency=data.currency,
            price=plan.price_for(data.billing_cycle),
            status=SubscriptionStatus.ACTIVE,
            features=list(plan.features),
            limits=dict(plan.limits),
            trial_period_days=data.trial_period,
            trial_ends_at=trial_ends_at,
            start_date=now,
            next_billing_date=trial_ends_at or add_months(now, cycle_months(data.billing_cycle)),
        )
        self.session.add(subscription)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise ConflictError("Organization already has an active subscription")

        self.session.refresh(subscription)
        logger.info(
            "subscription_created",
            subscription_id=str(subscription.id),
            organization_id=str(organization_id),
            plan=subscription.plan.value,
            billing_cycle=subscription.billing_cycle.value,
        )
        return subscription

    def get_subscription(self, subscription_id: uuid.UUID) -> Subscription:
        subscription = self.session.get(Subscription, subscription_id)
        if subscription is None:
            raise NotFoundError("Subscription not found")
        return subscription

    def _current_subscription(self, organization_id: uuid.UUID) -> Optional[Subscription]:
        return self.session.exec(
            select(Subscription).where(Subscription.current_for_organization_id == organization_id)
        ).first()

    def get_subscription_by_organization(self, organization_id: uuid.UUID) -> Subscription:
        subscription = self._current_subscription(organization_id)
        if subscription is None:
            raise NotFoundError("Subscription not found")
        return subscription

    def update_subscription(self, subscription: Subscription, changes: SubscriptionUpdate) -> Subscription:
        """Change plan, cycle or status; cancelled subscriptions cannot be modified"""
        if not subscription.can_modify():
            raise ConflictError("Cancelled subscriptions cannot be modified")

        data = changes.model_dump(exclude_unset=True)
        if data.get("status") == SubscriptionStatus.CANCELLED:
            return self.cancel_subscription(subscription, data.get("cancellation_reason"))

        plan_changed = data.get("plan") is not None and data["plan"] != subscription.plan
        cycle_changed = data.get("billing_cycle") is not None and data["billing_cycle"] != subscription.billing_cycle

        if plan_changed:
            subscription.plan = data["plan"]
        if cycle_changed:
            subscription.billing_cycle = data["billing_cycle"]
        if plan_changed or cycle_changed:
            plan = plans.get_plan(subscription.plan)
            subscription.price = plan.price_for(subscription.billing_cycle)
            subscription.features = list(plan.features)
            subscription.limits = dict(plan.limits)
        if cycle_changed and not subscription.is_in_trial():
            subscription.next_billing_date = add_months(datetime.utcnow(), cycle_months(subscription.billing_cycle))
        if data.get("status") is not None:
            subscription.status = data["status"]

        subscription.touch()
        self.session.add(subscription)
        self.session.commit()
        self.session.refresh(subscription)
        logger.info("subscription_updated", subscription_id=str(subscription.id), fields=sorted(data))
        return subscription

    def cancel_subscription(self, subscription: Subscription, reason: Optional[str]) -> Subscription:
        try:
            subscription.transition_to_cancelled(reason)
        except ValueError as e:
            raise ConflictError(str(e))

        self.session.add(subscription)
        self.session.commit()
        self.session.refresh(subscription)
        logger.info("subscription_cancelled", subscription_id=str(subscription.id), reason=reason)
        return subscription

    # Invoices

    def create_invoice(self, subscription_id: uuid.UUID) -> Invoice:
        """Invoice the subscription's current billing period at catalog price plus tax"""
        subscription = self.get_subscription(subscription_id)
        if subscription.is_cancelled():
            raise ConflictError("Cannot invoice a cancelled subscription")

        subtotal = _money(subscription.price)
        tax = _money(subtotal * Decimal(str(settings.INVOICE_TAX_RATE)))
        now = datetime.utcnow()
        period_end = subscription.next_billing_date
        period_start = add_months(period_end, -cycle_months(subscription.billing_cycle))

        invoice = Invoice(
            subscription_id=subscription.id,
            organization_id=subscription.organization_id,
            line_items=[{
                "description": f"{subscription.plan.value} plan - {subscription.billing_cycle.value}",
                "quantity": 1,
                "unitPrice": float(subtotal),
                "amount": float(subtotal),
            }],
            subtotal=subtotal,
            tax=tax,
            total=subtotal + tax,
            currency=subscription.currency,
            status=InvoiceStatus.PENDING,
            period_start=period_start,
            period_end=period_end,
            due_date=now + timedelta(days=settings.INVOICE_DUE_DAYS),
        )
        self.session.add(invoice)
        self.session.commit()
        self.session.refresh(invoice)
        logger.info(
            "invoice_created",
            invoice_id=str(invoice.id),
            subscription_id=str(subscription.id),
            total=str(invoice.total),
        )
        return invoice

    def get_invoice(self, invoice_id: uuid.UUID, for_update: bool = False) -> Invoice:
        statement = select(Invoice).where(Invoice.id == invoice_id)
        if for_update:
            statement = statement.with_for_update()
        invoice = self.session.exec(statement).first()
        if invoice is None:
            raise NotFoundError("Invoice not found")
        return invoice

    def _charge(self, invoice: Invoice, payment_method: str) -> ChargeResult:
        """Call the gateway with a deadline; timeouts and gateway errors become declines"""
        future = _payment_executor.submit(
            self.gateway.charge,
            Decimal(invoice.total),
            invoice.currency,
            payment_method,
            str(invoice.id),
        )
        try:
            return future.result(timeout=settings.PAYMENT_TIMEOUT_SECONDS)
        except FutureTimeoutError:
            future.cancel()
            logger.warning("payment_timeout", invoice_id=str(invoice.id), timeout=settings.PAYMENT_TIMEOUT_SECONDS)
            return ChargeResult(success=False, error="Payment processor timed out")
        except Exception:
            logger.exception("payment_gateway_error", invoice_id=str(invoice.id))
            return ChargeResult(success=False, error="Payment processor error")

    def process_payment(self, invoice: Invoice, request: PaymentRequest) -> dict:
        """
        Attempt to pay an invoice.

        A declined or timed-out charge is an expected business outcome: the
        invoice moves to failed and the result reports success=False.
        """
        if not invoice.can_pay():
            raise ConflictError("Invoice is already paid")
        if request.amount is not None and _money(request.amount) != _money(invoice.total):
            raise ValidationError("Payment amount does not match invoice total")
        if request.currency is not None and request.currency != invoice.currency:
            raise ValidationError("Payment currency does not match invoice currency")

        result = self._charge(invoice, request.payment_method)

        if result.success:
            invoice.transition_to_paid(request.payment_method, result.transaction_id)
            subscription = self.session.get(Subscription, invoice.subscription_id)
            if subscription is not None and not subscription.is_cancelled():
                subscription.next_billing_date = add_months(
                    subscription.next_billing_date, cycle_months(subscription.billing_cycle)
                )
                subscription.touch()
                self.session.add(subscription)
        else:
            invoice.transition_to_failed(request.payment_method, result.error or "Payment failed")

        self.session.add(invoice)
        self.session.commit()
        self.session.refresh(invoice)
        logger.info(
            "payment_processed",
            invoice_id=str(invoice.id),
            success=result.success,
            status=invoice.status.value,
        )
        return {
            "success": result.success,
            "invoice_id": invoice.id,
            "status": invoice.status,
            "amount": invoice.total,
            "currency": invoice.currency,
            "payment_method": request.payment_method,
            "transaction_id": result.transaction_id,
            "error": result.error,
        }

    def get_invoices(
        self,
        organization_id: uuid.UUID,
        status: Optional[InvoiceStatus] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[Invoice], int]:
        statement = select(Invoice).where(Invoice.organization_id == organization_id)
        if status is not None:
            statement = statement.where(Invoice.status == status)
        if start_date is not None:
            statement = statement.where(Invoice.created_at >= start_date)
        if end_date is not None:
            statement = statement.where(Invoice.created_at <= end_date)

        total = self.session.exec(select(func.count()).select_from(statement.subquery())).one()
        invoices = self.session.exec(
            statement.order_by(Invoice.created_at.desc()).offset((page - 1) * limit).limit(limit)
        ).all()
        return list(invoices), total

    # Usage

    def track_usage(self, organization_id: uuid.UUID, metric: str, value: float) -> UsageRecord:
        """Append a usage sample; limits are only evaluated when reading stats"""
        self.get_organization(organization_id)
        now = datetime.utcnow()
        record = UsageRecord(
            organization_id=organization_id,
            metric=metric,
            value=value,
            billing_period=billing_period(now),
            recorded_at=now,
        )
        self.session.add(record)
        self.session.commit()
        self.session.refresh(record)
        logger.debug("usage_tracked", organization_id=str(organization_id), metric=metric, value=value)
        return record

    def _plan_limits(self, organization_id: uuid.UUID) -> Tuple[PlanName, dict]:
        subscription = self._current_subscription(organization_id)
        if subscription is not None:
            return subscription.plan, dict(subscription.limits)
        return PlanName.BASIC, dict(plans.get_plan(PlanName.BASIC).limits)

    def get_usage_stats(self, organization_id: uuid.UUID, period: Optional[str] = "current") -> dict:
        """Aggregate usage samples per metric and compare them with the plan limits"""
        self.get_organization(organization_id)
        period_key = resolve_period(period)
        plan, limits = self._plan_limits(organization_id)

        rows = self.session.exec(
            select(UsageRecord.metric, func.sum(UsageRecord.value), func.count(UsageRecord.id))
            .where(
                UsageRecord.organization_id == organization_id,
                UsageRecord.billing_period == period_key,
            )
            .group_by(UsageRecord.metric)
        ).all()

        metrics = {}
        for metric, total, count in rows:
            total = float(total or 0)
            entry = {
                "total": total,
                "count": count,
                "average": total / count if count else 0.0,
            }
            limit_key = plans.METRIC_LIMITS.get(metric)
            if limit_key is not None:
                limit = limits.get(limit_key, plans.UNLIMITED)
                entry["limit"] = limit
                entry["remaining"] = None if limit == plans.UNLIMITED else max(limit - total, 0)
                entry["exceeded"] = not plans.is_within_limit(limit, total)
            metrics[metric] = entry

        return {
            "organizationId": organization_id,
            "period": period_key,
            "plan": plan.value,
            "metrics": metrics,
        }

    def get_billing_summary(self, organization_id: uuid.UUID) -> dict:
        self.get_organization(organization_id)
        subscription = self._current_subscription(organization_id)
        recent, total_invoices = self.get_invoices(organization_id, page=1, limit=5)
        total_paid = self.session.exec(
            select(func.coalesce(func.sum(Invoice.total), 0)).where(
                Invoice.organization_id == organization_id,
                Invoice.status == InvoiceStatus.PAID,
            )
        ).one()

        return {
            "organizationId": organization_id,
            "hasActiveSubscription": subscription is not None and subscription.status == SubscriptionStatus.ACTIVE,
            "subscription": subscription,
            "recentInvoices": recent,
            "usageStats": self.get_usage_stats(organization_id, "current"),
            "totalInvoices": total_invoices,
            "totalPaid": float(_money(total_paid)),
        }
