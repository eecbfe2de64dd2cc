"""
Authorization Evaluator — who may see and who may review a submission.

Two layers:
  - pure predicates (``can_access``, ``can_review``) with no side effects,
    shared by the server and by the advisory client guard payload
  - enforcing wrappers (``authorize_*``) that audit the denial and raise
    ``AccessDenied``

``can_access`` is first-match-wins:
    1. admin
    2. owner (requester email, case-insensitive)
    3. supplier contact (case-insensitive)
    4. holds the role of any stage derived from status / current_stage
    5. deny

Everything not explicitly allowed is denied.
"""

from __future__ import annotations

import logging

from supplierflow.core.exceptions import AccessDenied
from supplierflow.services import audit_service
from supplierflow.services.role_registry import parse_role
from supplierflow.services.stage_model import (
    REVIEW_STAGES,
    STAGE_ROLES,
    decisions_for,
    derive_access_stages,
    role_for_stage,
)

logger = logging.getLogger(__name__)


def _same_email(a: str | None, b: str | None) -> bool:
    if not a or not b:
        return False
    return a.strip().lower() == b.strip().lower()


def is_owner(ctx, submission) -> bool:
    return _same_email(ctx.email, submission.requester_email)


def is_supplier_contact(ctx, submission) -> bool:
    return _same_email(ctx.email, submission.supplier_contact_email)


def can_access(ctx, submission) -> bool:
    """May ``ctx`` read this submission?"""
    if ctx is None or submission is None:
        return False
    if ctx.is_admin:
        return True
    if is_owner(ctx, submission) or is_supplier_contact(ctx, submission):
        return True
    for stage in derive_access_stages(submission.status, submission.current_stage):
        if ctx.has_role(STAGE_ROLES[stage]):
            return True
    return False


def can_review(ctx, submission, stage) -> bool:
    """May ``ctx`` act as the reviewer for ``stage`` on this submission?

    Holding the stage role is not enough on its own; the submission must
    also be visible to the reviewer.
    """
    if ctx is None or submission is None:
        return False
    if ctx.is_admin:
        return True
    role = role_for_stage(stage)
    if role is None:
        return False
    return ctx.has_role(role) and can_access(ctx, submission)


# ── Enforcing wrappers ───────────────────────────────────────────────────────


def authorize_access(ctx, submission, action: str = "read") -> None:
    if can_access(ctx, submission):
        return
    _deny(ctx, submission.submission_id, submission_id=submission.submission_id,
          reason=f"{action}:not_permitted")


def authorize_review(ctx, submission, stage) -> None:
    if can_review(ctx, submission, stage):
        return
    role = role_for_stage(stage)
    _deny(
        ctx,
        submission.submission_id,
        submission_id=submission.submission_id,
        required_role=role.value if role else None,
        reason="review:not_permitted",
    )


def authorize_role(ctx, role, resource: str) -> None:
    """Role-only check for resources that are not a single submission (queues)."""
    resolved = parse_role(role)
    if resolved is not None and ctx.has_role(resolved):
        return
    _deny(ctx, resource, required_role=resolved.value if resolved else None)


def deny(ctx, submission, reason: str, required_role: str | None = None) -> None:
    """Audit and raise a denial that no predicate above covers (e.g. conflict of interest)."""
    _deny(ctx, submission.submission_id, submission_id=submission.submission_id,
          required_role=required_role, reason=reason)


def _deny(ctx, resource, *, submission_id=None, required_role=None, reason="not_permitted"):
    logger.warning(
        "Access denied actor=%s resource=%s required_role=%s reason=%s",
        ctx.email if ctx else None,
        resource,
        required_role,
        reason,
        extra={"event_type": "access_denied", "submission_id": submission_id},
    )
    audit_service.record_denial(
        ctx, resource, required_role=required_role, reason=reason, submission_id=submission_id,
    )
    raise AccessDenied(ctx.email if ctx else None, resource, required_role=required_role, reason=reason)


# ── Client guard ─────────────────────────────────────────────────────────────


def describe_permissions(ctx, submission) -> dict:
    """Advisory permissions payload; the server re-checks every action."""
    owner = is_owner(ctx, submission)
    review = {}
    for stage in REVIEW_STAGES:
        allowed = can_review(ctx, submission, stage) and not owner and not submission.is_rejected
        review[stage.value] = {
            "canReview": allowed,
            "decisions": sorted(decisions_for(stage)) if allowed else [],
        }
    return {
        "submissionId": submission.submission_id,
        "canAccess": can_access(ctx, submission),
        "isOwner": owner,
        "isSupplierContact": is_supplier_contact(ctx, submission),
        "isAdmin": ctx.is_admin,
        "stages": review,
    }
