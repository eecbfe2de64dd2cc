"""
Supplier Onboarding Workflow
Audit domain model.

Models:
    - AuditLog: immutable, append-only audit trail for submission lifecycle
      events and access denials.
"""

from datetime import UTC, datetime

from sqlalchemy import event

from supplierflow.models import db

# ── Constants ────────────────────────────────────────────────────────────────

OUTCOME_SUCCESS = "success"
OUTCOME_DENIED = "denied"
OUTCOME_REJECTED = "rejected"

AUDIT_ACTIONS = {
    "SUBMISSION_CREATED",
    "SUBMISSION_UPDATED",
    "SUBMISSION_VIEWED",
    "CONTRACT_EXCHANGE_POSTED",
    "DOCUMENT_UPLOADED",
    "DOCUMENT_DELETED",
    "DOCUMENT_REJECTED_MALWARE",
    "DUPLICATE_CHECK",
    "COMPANY_VERIFIED",
    "ACCESS_DENIED",
    # Review actions are generated as <STAGE>_REVIEW_<DECISION>,
    # e.g. PBP_REVIEW_APPROVED, OPW_REVIEW_INSIDE_IR35.
}


class AuditLog(db.Model):
    """
    Immutable audit trail for every lifecycle event and denial.

    One row per action. ``details`` carries changed-field names, review
    decisions, or the denial reason; never full document contents.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_submission", "submission_id"),
        db.Index("idx_audit_actor", "actor"),
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)

    # Plain string, not an FK: denials are logged for ids that may not exist.
    submission_id = db.Column(db.String(20), nullable=True)
    resource = db.Column(
        db.String(100), nullable=True,
        comment="submission id or logical resource, e.g. queue:opw",
    )

    action = db.Column(
        db.String(60), nullable=False,
        comment="SUBMISSION_CREATED | PBP_REVIEW_APPROVED | ACCESS_DENIED | …",
    )
    actor = db.Column(db.String(255), nullable=False, default="system")
    actor_roles = db.Column(db.JSON, nullable=True)
    required_role = db.Column(db.String(30), nullable=True)
    outcome = db.Column(db.String(20), nullable=False, default=OUTCOME_SUCCESS)

    previous_status = db.Column(db.String(50), nullable=True)
    new_status = db.Column(db.String(50), nullable=True)
    details = db.Column(db.JSON, nullable=True)

    ip_address = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    request_id = db.Column(db.String(64), nullable=True)

    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(UTC),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "submissionId": self.submission_id,
            "resource": self.resource,
            "action": self.action,
            "actor": self.actor,
            "actorRoles": self.actor_roles or [],
            "requiredRole": self.required_role,
            "outcome": self.outcome,
            "previousStatus": self.previous_status,
            "newStatus": self.new_status,
            "details": self.details or {},
            "ipAddress": self.ip_address,
            "userAgent": self.user_agent,
            "requestId": self.request_id,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} by {self.actor} on {self.resource}>"


@event.listens_for(AuditLog, "before_update")
def _audit_is_immutable(mapper, connection, target):
    raise RuntimeError(f"AuditLog {target.id} is append-only and cannot be modified")


@event.listens_for(AuditLog, "before_delete")
def _audit_is_undeletable(mapper, connection, target):
    raise RuntimeError(f"AuditLog {target.id} is append-only and cannot be deleted")
