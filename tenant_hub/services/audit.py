"""
Audit logger
Appends audit events in a dedicated session after the business transaction commits
"""

from typing import Any, Dict, Optional
import uuid

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session
import structlog

from tenant_hub.core.database import engine
from tenant_hub.models.audit import AuditEvent, RiskLevel

logger = structlog.get_logger(__name__)

HIGH_RISK_ACTIONS = {
    "user_deleted",
    "organization_deleted",
    "tenant_deleted",
    "tenant_suspended",
    "password_changed",
    "password_reset_completed",
    "permissions_changed",
    "billing_updated",
    "subscription_cancelled",
    "security_policy_changed",
}

MEDIUM_RISK_ACTIONS = {
    "user_created",
    "user_updated",
    "organization_created",
    "organization_updated",
    "organization_member_added",
    "organization_member_removed",
    "tenant_created",
    "tenant_updated",
    "tenant_reactivated",
    "subscription_created",
    "subscription_updated",
    "payment_processed",
}


def risk_level_for(action: str) -> RiskLevel:
    """Classify an action by the damage its misuse could cause"""
    if action in HIGH_RISK_ACTIONS:
        return RiskLevel.HIGH
    if action in MEDIUM_RISK_ACTIONS:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


class AuditLogger:
    """
    Fire-and-forget audit writer.

    Each event is written in its own session so a failed audit write can
    neither roll back nor fail the operation that triggered it.
    """

    def __init__(self, bind=None):
        self.bind = bind or engine

    def log_event(
        self,
        action: str,
        tenant_id: Optional[uuid.UUID] = None,
        user_id: Optional[uuid.UUID] = None,
        details: Optional[Dict[str, Any]] = None,
        request: Optional[Request] = None,
    ) -> Optional[AuditEvent]:
        """Append an audit event; failures are logged, never raised"""
        try:
            event = AuditEvent(
                action=action,
                tenant_id=tenant_id,
                user_id=user_id,
                details=jsonable_encoder(details or {}),
                risk_level=risk_level_for(action),
                request_id=getattr(request.state, "request_id", None) if request else None,
                ip_address=request.client.host if request and request.client else None,
            )
            with Session(self.bind) as session:
                session.add(event)
                session.commit()
                session.refresh(event)
        except (SQLAlchemyError, TypeError, ValueError) as exc:
            logger.error("audit_write_failed", action=action, error=str(exc))
            return None

        logger.info(
            "audit_event",
                action=action,
            tenant_id=str(tenant_id) if tenant_id else None,
            user_id=str(user_id) if user_id else None,
            risk_level=event.risk_level.value,
        )
        return event


_audit_logger = AuditLogger()


def get_audit_logger() -> AuditLogger:
    """Dependency returning the process-wide audit logger"""
    return _audit_logger
