"""
Submission State Store — the only writer of submission workflow state.

Rules:
  - every public function takes the request context explicitly
  - status, stage, review and exchange writes are committed only here
  - status and current_stage change together, inside one commit
  - the audit event is written after the domain commit (best-effort)
  - a rejected submission never transitions again

Usage:
    from supplierflow.services import submission_service as svc

    sid = svc.create(ctx, {"companyName": "Acme Ltd"})
    svc.record_review(reviewer_ctx, sid, "pbp", "approved", {"comments": "ok"})
"""

from __future__ import annotations

import logging
import secrets
import string
import uuid
from datetime import UTC, datetime

from flask import current_app
from sqlalchemy import func, or_, select

from supplierflow.core.exceptions import ConflictError, NotFoundError, TransitionError, ValidationError
from supplierflow.models import db
from supplierflow.models.submission import ContractExchange, Submission
from supplierflow.services import audit_service
from supplierflow.services.authorization import (
    authorize_access,
    authorize_review,
    authorize_role,
    can_access,
    deny,
    is_owner,
    is_supplier_contact,
)
from supplierflow.services.role_registry import Role
from supplierflow.services.stage_model import (
    CONTRACT_EXCHANGE_TYPES,
    INITIAL_STAGE,
    INITIAL_STATUS,
    REJECTED,
    REVIEW_FIELDS,
    STAGE_ROLES,
    TERMINAL_STAGES,
    Stage,
    label_for_status,
    next_transition,
    parse_stage,
)
from supplierflow.utils.validation import (
    clean_create_fields,
    clean_update_fields,
    validate_exchange_message,
    validate_review_payload,
)

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.digits + string.ascii_uppercase
_ID_SUFFIX_LENGTH = 5
_ID_MAX_ATTEMPTS = 5


def _utcnow() -> datetime:
    return datetime.now(UTC)


def generate_submission_id(year: int | None = None) -> str:
    """Return ``SUP-<year>-<5 chars>`` drawn from a CSPRNG."""
    year = year or _utcnow().year
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(_ID_SUFFIX_LENGTH))
    return f"SUP-{year}-{suffix}"


def load_submission(submission_id: str) -> Submission:
    sub = db.session.execute(
        select(Submission).where(Submission.submission_id == submission_id)
    ).scalar_one_or_none()
    if sub is None:
        raise NotFoundError(resource="Submission", resource_id=submission_id)
    return sub


def _check_version(sub: Submission, expected_version) -> None:
    if expected_version is None:
        return
    try:
        expected = int(expected_version)
    except (TypeError, ValueError):
        raise ValidationError("Invalid input data", details={"expectedVersion": "must be an integer"})
    if expected != sub.version:
        raise ConflictError("Submission", sub.submission_id, expected, sub.version)


def _touch(sub: Submission, now: datetime) -> None:
    sub.updated_at = now
    sub.version = (sub.version or 0) + 1


# ── Reads ────────────────────────────────────────────────────────────────────


def get_by_id(ctx, submission_id: str) -> Submission:
    """Load a submission the caller may see.

    Raises:
        NotFoundError: No such submission.
        AccessDenied: The caller fails the access predicate (audited).
    """
    sub = load_submission(submission_id)
    authorize_access(ctx, sub, "read")
    return sub


def list_accessible(ctx) -> list[Submission]:
    """All submissions visible to ``ctx``, newest first."""
    query = select(Submission).order_by(Submission.created_at.desc())
    reviewer_roles = set(STAGE_ROLES.values())
    if not ctx.is_admin and not (ctx.roles & reviewer_roles):
        email = ctx.email.lower()
        query = query.where(
            or_(
                func.lower(Submission.requester_email) == email,
                func.lower(Submission.supplier_contact_email) == email,
            )
        )
    rows = db.session.execute(query).scalars().all()
    return [sub for sub in rows if can_access(ctx, sub)]


# ── Create / update ──────────────────────────────────────────────────────────


def create(ctx, data: dict) -> str:
    """Create a submission at pbp / pending_review and return its id.

    ``requester_email`` is ``data["nhsEmail"]`` when given, else the
    caller's email. It never changes afterwards.
    """
    if current_app.config.get("REQUIRE_REQUESTER_ROLE"):
        authorize_role(ctx, Role.REQUESTER, "submissions:create")

    columns, nhs_email = clean_create_fields(data)
    requester_email = nhs_email or ctx.email

    submission_id = None
    for _ in range(_ID_MAX_ATTEMPTS):
        candidate = generate_submission_id()
        exists = db.session.execute(
            select(Submission.id).where(Submission.submission_id == candidate)
        ).first()
        if not exists:
            submission_id = candidate
            break
    if submission_id is None:
        raise RuntimeError("Could not allocate a unique submission id")

    now = _utcnow()
    sub = Submission(
        submission_id=submission_id,
        status=INITIAL_STATUS,
        current_stage=INITIAL_STAGE.value,
        status_label=label_for_status(INITIAL_STATUS),
        requester_email=requester_email,
        created_by=ctx.email,
        created_at=now,
        updated_at=now,
        version=1,
        **columns,
    )
    if sub.form_data is None:
        sub.form_data = {}
    db.session.add(sub)
    db.session.commit()

    logger.info(
        "Submission created %s by %s",
        submission_id,
        ctx.email,
        extra={"submission_id": submission_id, "actor": ctx.email},
    )
    audit_service.record_event(
        ctx,
        "SUBMISSION_CREATED",
        submission_id=submission_id,
        new_status=INITIAL_STATUS,
        details={"companyName": sub.company_name},
    )
    return submission_id


def update(ctx, submission_id: str, fields: dict, expected_version=None) -> Submission:
    """Apply allow-listed field changes.

    Unknown keys, including ``status`` and ``currentStage``, are ignored.
    Only changed column names reach the audit trail, never their values.
    """
    sub = load_submission(submission_id)
    authorize_access(ctx, sub, "update")
    if sub.is_rejected:
        raise TransitionError(submission_id, None, "update", sub.current_stage, "submission_rejected")
    _check_version(sub, expected_version)

    columns = clean_update_fields(fields)
    changed = sorted(col for col, value in columns.items() if getattr(sub, col) != value)
    # The supplier contact grants access; only the owner or an admin may reassign it.
    if "supplier_contact_email" in changed and not (is_owner(ctx, sub) or ctx.is_admin):
        deny(ctx, sub, "contact_reassignment_not_permitted")
    for col in changed:
        setattr(sub, col, columns[col])

    _touch(sub, _utcnow())
    db.session.commit()

    audit_service.record_event(
        ctx,
        "SUBMISSION_UPDATED",
        submission_id=submission_id,
        previous_status=sub.status,
        new_status=sub.status,
        details={"changedFields": changed},
    )
    return sub


# ── Reviews ──────────────────────────────────────────────────────────────────


def _reviewer_role_label(ctx, stage: Stage) -> str:
    if ctx.is_admin:
        return Role.ADMIN.value
    role = STAGE_ROLES.get(stage)
    return role.value if role else "unknown"


def _append_exchange(sub: Submission, ctx, exchange_type: str, sender_role: str,
                     message: str, attachments: list | None, now: datetime) -> ContractExchange:
    exchange = ContractExchange(
        id=f"EXC-{uuid.uuid4().hex[:16]}",
        sequence=len(sub.exchanges) + 1,
        exchange_type=exchange_type,
        sender_role=sender_role,
        sender_email=ctx.email,
        sender_name=ctx.identity.display_name,
        message=message,
        attachments=list(attachments or []),
        created_at=now,
    )
    sub.exchanges.append(exchange)
    db.session.add(exchange)
    return exchange


def record_review(ctx, submission_id: str, stage, decision: str, payload: dict | None = None,
                  expected_version=None) -> Submission:
    """Apply a reviewer decision and advance the workflow.

    Check order: terminal state, reviewer authorization, self-review,
    stage match, decision validity, payload.

    Raises:
        NotFoundError, TransitionError, AccessDenied, ValidationError, ConflictError
    """
    sub = load_submission(submission_id)
    decision = (decision or "").strip().lower()
    stage_value = stage.value if isinstance(stage, Stage) else stage

    if sub.is_rejected:
        raise TransitionError(submission_id, stage_value, decision, sub.current_stage, "submission_rejected")
    if parse_stage(sub.current_stage) in TERMINAL_STAGES:
        raise TransitionError(submission_id, stage_value, decision, sub.current_stage, "submission_completed")

    authorize_review(ctx, sub, stage)

    resolved = parse_stage(stage)
    if is_owner(ctx, sub):
        role = STAGE_ROLES.get(resolved)
        deny(ctx, sub, "conflict_of_interest", required_role=role.value if role else None)

    if resolved is None or resolved != parse_stage(sub.current_stage):
        raise TransitionError(submission_id, stage_value, decision, sub.current_stage, "stage_mismatch")

    transition = next_transition(resolved, decision)
    if transition is None:
        raise TransitionError(submission_id, resolved.value, decision, sub.current_stage, "unknown_decision")

    payload = validate_review_payload(dict(payload or {}))
    payload.pop("expectedVersion", None)
    rejection_reason = (payload.get("rejectionReason") or payload.get("comments") or "").strip()
    if decision == REJECTED and not rejection_reason:
        raise ValidationError("Invalid review payload", details={"rejectionReason": "A reason is required to reject"})

    _check_version(sub, expected_version)

    now = _utcnow()
    previous_status = sub.status
    reviewer_role = _reviewer_role_label(ctx, resolved)
    review = {
        **payload,
        "decision": decision,
        "reviewedBy": ctx.email,
        "reviewerName": ctx.identity.display_name,
        "reviewerRole": reviewer_role,
        "reviewedAt": now.isoformat(),
    }

    field = REVIEW_FIELDS[resolved]
    if resolved is Stage.CONTRACT:
        merged = dict(sub.contract_drafter or {})
        merged.pop("exchanges", None)
        review.pop("attachments", None)
        review.pop("message", None)
        merged.update(review)
        if decision == "sent":
            merged["sentAt"] = now.isoformat()
        review = merged
    setattr(sub, field, review)

    if decision == REJECTED:
        sub.rejection = {
            "rejectedBy": ctx.email,
            "rejectedByRole": reviewer_role,
            "rejectionReason": rejection_reason,
            "rejectionDate": now.isoformat(),
            "supplierName": sub.company_name,
        }

    sub.status = transition.status
    sub.current_stage = transition.stage.value
    sub.status_label = label_for_status(transition.status)
    if transition.stage in TERMINAL_STAGES:
        sub.completed_at = now

    if resolved is Stage.CONTRACT and decision in CONTRACT_EXCHANGE_TYPES:
        _append_exchange(
            sub,
            ctx,
            CONTRACT_EXCHANGE_TYPES[decision],
            "contract_drafter",
            payload.get("message") or payload.get("comments") or label_for_status(transition.status),
            payload.get("attachments"),
            now,
        )

    _touch(sub, now)
    db.session.commit()

    action = f"{resolved.value.upper()}_REVIEW_{decision.upper()}"
    logger.info(
        "Review %s on %s: %s -> %s/%s",
        action,
        submission_id,
        previous_status,
        sub.current_stage,
        sub.status,
        extra={"submission_id": submission_id, "actor": ctx.email, "event_type": "review"},
    )
    audit_service.record_event(
        ctx,
        action,
        submission_id=submission_id,
        previous_status=previous_status,
        new_status=sub.status,
        details={"stage": resolved.value, "decision": decision},
    )
    return sub


# ── Contract negotiation ─────────────────────────────────────────────────────

_EXCHANGE_TYPE_BY_SENDER = {
    "contract_drafter": "drafter_message",
    "requester": "requester_response",
    "supplier": "supplier_response",
}


def post_exchange(ctx, submission_id: str, message, attachments=None, expected_version=None) -> ContractExchange:
    """Append one message to the contract negotiation thread."""
    sub = load_submission(submission_id)
    authorize_access(ctx, sub, "exchange")

    if ctx.has_role(Role.CONTRACT):
        sender_role = "contract_drafter"
    elif is_owner(ctx, sub):
        sender_role = "requester"
    elif is_supplier_contact(ctx, sub):
        sender_role = "supplier"
    else:
        deny(ctx, sub, "exchange:not_a_participant", required_role=Role.CONTRACT.value)

    if sub.is_rejected:
        raise TransitionError(submission_id, Stage.CONTRACT.value, "exchange", sub.current_stage, "submission_rejected")
    if parse_stage(sub.current_stage) is not Stage.CONTRACT:
        raise TransitionError(submission_id, Stage.CONTRACT.value, "exchange", sub.current_stage, "stage_mismatch")

    message, attachments = validate_exchange_message(message, attachments)
    _check_version(sub, expected_version)

    now = _utcnow()
    exchange = _append_exchange(
        sub, ctx, _EXCHANGE_TYPE_BY_SENDER[sender_role], sender_role, message, attachments, now,
    )
    _touch(sub, now)
    db.session.commit()

    audit_service.record_event(
        ctx,
        "CONTRACT_EXCHANGE_POSTED",
        submission_id=submission_id,
        previous_status=sub.status,
        new_status=sub.status,
        details={"exchangeId": exchange.id, "senderRole": sender_role, "sequence": exchange.sequence},
    )
    return exchange
