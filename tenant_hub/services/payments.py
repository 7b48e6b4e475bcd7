"""
Payment gateway abstraction
The simulated gateway stands in for an external processor in development and tests
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional
import random
import uuid

import structlog

from tenant_hub.core.config import get_settings

logger = structlog.get_logger(__name__)
settings = get_settings()


@dataclass
class ChargeResult:
    """Outcome reported by a payment processor"""
    success: bool
    transaction_id: Optional[str] = None
    error: Optional[str] = None


class PaymentGateway:
    """Interface for payment processors"""

    name = "base"

    def charge(self, amount: Decimal, currency: str, payment_method: str, reference: str) -> ChargeResult:
        raise NotImplementedError


class SimulatedPaymentGateway(PaymentGateway):
    """Approves a configurable share of charges at random"""

    name = "simulated"

    def __init__(self, success_rate: Optional[float] = None, rng: Optional[random.Random] = None):
        self.success_rate = settings.PAYMENT_SIMULATED_SUCCESS_RATE if success_rate is None else success_rate
        self.rng = rng or random.Random()

    def charge(self, amount: Decimal, currency: str, payment_method: str, reference: str) -> ChargeResult:
        if self.rng.random() < self.success_rate:
            transaction_id = f"txn_{uuid.uuid4().hex[:16]}"
            logger.info("simulated_charge_approved", reference=reference, amount=str(amount), currency=currency)
            return ChargeResult(success=True, transaction_id=transaction_id)

        logger.info("simulated_charge_declined", reference=reference, amount=str(amount), currency=currency)
        return ChargeResult(success=False, error="Payment declined")


_gateway = SimulatedPaymentGateway()


def get_payment_gateway() -> PaymentGateway:
    """Dependency returning the configured payment gateway"""
    return _gateway
