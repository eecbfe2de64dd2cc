"""
Audit Recorder — append-only event writer and trail reader.

Writes are best-effort: the domain mutation has already been committed by
the caller, the audit row is committed separately, and any persistence
failure is logged and rolled back instead of propagating.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from supplierflow.models import db
from supplierflow.models.audit import OUTCOME_DENIED, OUTCOME_SUCCESS, AuditLog

logger = logging.getLogger(__name__)


def record_event(
    ctx,
    action: str,
    *,
    submission_id: str | None = None,
    resource: str | None = None,
    previous_status: str | None = None,
    new_status: str | None = None,
    required_role: str | None = None,
    outcome: str = OUTCOME_SUCCESS,
    details: dict | None = None,
) -> AuditLog | None:
    """Append one audit row and commit it.

    ``ctx`` may be None for system-initiated events. Returns the stored row,
    or None if the write failed.
    """
    log = AuditLog(
        submission_id=submission_id,
        resource=resource or submission_id,
        action=action,
        actor=ctx.email if ctx is not None else "system",
        actor_roles=sorted(r.value for r in ctx.roles) if ctx is not None else [],
        required_role=required_role,
        outcome=outcome,
        previous_status=previous_status,
        new_status=new_status,
        details=details or {},
        ip_address=ctx.ip_address if ctx is not None else None,
        user_agent=(ctx.user_agent or "")[:255] if ctx is not None else None,
        request_id=ctx.request_id if ctx is not None else None,
    )
    try:
        db.session.add(log)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.error(
            "Audit write failed action=%s resource=%s",
            action,
            resource or submission_id,
            exc_info=True,
            extra={"event_type": "audit_failure", "submission_id": submission_id},
        )
        return None

    logger.info(
        "Audit %s actor=%s resource=%s outcome=%s",
        action,
        log.actor,
        log.resource,
        outcome,
        extra={"event_type": "audit", "submission_id": submission_id, "actor": log.actor},
    )
    return log


def record_denial(ctx, resource: str, *, required_role: str | None = None, reason: str = "not_permitted",
                  submission_id: str | None = None) -> AuditLog | None:
    """Log an ACCESS_DENIED event. The reason stays in the trail, never in responses."""
    return record_event(
        ctx,
        "ACCESS_DENIED",
        submission_id=submission_id,
        resource=resource,
        required_role=required_role,
        outcome=OUTCOME_DENIED,
        details={"reason": reason},
    )


def get_audit_trail(submission_id: str) -> list[dict]:
    """Return all events for a submission, oldest first."""
    rows = db.session.execute(
        select(AuditLog)
        .where(AuditLog.submission_id == submission_id)
        .order_by(AuditLog.timestamp.asc(), AuditLog.id.asc())
    ).scalars().all()
    return [r.to_dict() for r in rows]
