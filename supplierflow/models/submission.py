"""
Supplier Onboarding Workflow
Submission domain models.

Models:
    - Submission: aggregate root; workflow position, review payloads, flags.
    - ContractExchange: append-only contract negotiation thread.
    - SubmissionDocument: document metadata keyed by (submission, type).

Only services/submission_service.py (and the document / duplicate services
for their own columns) write these tables.
"""

from datetime import UTC, datetime

from sqlalchemy import event

from supplierflow.models import db


def _utcnow():
    return datetime.now(UTC)


def _iso(value):
    return value.isoformat() if value else None


class Submission(db.Model):
    """
    One supplier-onboarding request.

    ``status`` and ``current_stage`` are only ever written together, by a
    transition from the stage model. ``rejection`` present means terminal.
    """

    __tablename__ = "submissions"
    __table_args__ = (
        db.Index("idx_submission_stage_status", "current_stage", "status"),
        db.Index("idx_submission_created", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    submission_id = db.Column(
        db.String(20), unique=True, nullable=False, index=True,
        comment="SUP-YYYY-XXXXX, random suffix",
    )

    # Workflow position
    status = db.Column(db.String(50), nullable=False, default="pending_review")
    current_stage = db.Column(db.String(30), nullable=False, default="pbp")
    status_label = db.Column(db.String(120), nullable=True)

    # Ownership
    requester_email = db.Column(db.String(255), nullable=False, index=True)
    supplier_contact_email = db.Column(db.String(255), nullable=True, index=True)
    created_by = db.Column(db.String(255), nullable=False)

    # Requester details
    requester_first_name = db.Column(db.String(100))
    requester_last_name = db.Column(db.String(100))
    requester_job_title = db.Column(db.String(100))
    requester_department = db.Column(db.String(100))
    requester_phone = db.Column(db.String(50))

    # Supplier details
    company_name = db.Column(db.String(255))
    crn = db.Column(db.String(20))
    vat_number = db.Column(db.String(20))
    contract_value = db.Column(db.Numeric(14, 2))
    form_data = db.Column(db.JSON, default=dict)

    # Per-stage review payloads
    pbp_review = db.Column(db.JSON, nullable=True)
    procurement_review = db.Column(db.JSON, nullable=True)
    opw_review = db.Column(db.JSON, nullable=True)
    contract_drafter = db.Column(db.JSON, nullable=True)
    ap_review = db.Column(db.JSON, nullable=True)

    # Flags
    is_duplicate_flagged = db.Column(db.Boolean, nullable=False, default=False)
    duplicate_matches = db.Column(db.JSON, nullable=True)
    company_verified = db.Column(db.Boolean, nullable=True, comment="NULL = registry unavailable / not checked")
    rejection = db.Column(db.JSON, nullable=True)

    version = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    exchanges = db.relationship(
        "ContractExchange",
        back_populates="submission",
        order_by="ContractExchange.sequence",
        lazy="select",
    )
    documents = db.relationship(
        "SubmissionDocument",
        back_populates="submission",
        order_by="SubmissionDocument.uploaded_at",
        lazy="select",
    )

    @property
    def is_rejected(self) -> bool:
        return bool(self.rejection)

    def to_summary(self) -> dict:
        return {
            "submissionId": self.submission_id,
            "status": self.status,
            "statusLabel": self.status_label,
            "currentStage": self.current_stage,
            "companyName": self.company_name,
            "requesterFirstName": self.requester_first_name,
            "requesterLastName": self.requester_last_name,
            "requesterEmail": self.requester_email,
            "isDuplicateFlagged": self.is_duplicate_flagged,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }

    def to_dict(self) -> dict:
        data = self.to_summary()
        contract = dict(self.contract_drafter or {})
        contract["exchanges"] = [e.to_dict() for e in self.exchanges]
        data.update({
            "supplierContactEmail": self.supplier_contact_email,
            "createdBy": self.created_by,
            "requesterJobTitle": self.requester_job_title,
            "requesterDepartment": self.requester_department,
            "requesterPhone": self.requester_phone,
            "crn": self.crn,
            "vatNumber": self.vat_number,
            "contractValue": str(self.contract_value) if self.contract_value is not None else None,
            "formData": self.form_data or {},
            "pbpReview": self.pbp_review,
            "procurementReview": self.procurement_review,
            "opwReview": self.opw_review,
            "contractDrafter": contract,
            "apReview": self.ap_review,
            "duplicateMatches": self.duplicate_matches or [],
            "companyVerified": self.company_verified,
            "rejection": self.rejection,
            "version": self.version,
            "completedAt": _iso(self.completed_at),
        })
        return data

    def __repr__(self):
        return f"<Submission {self.submission_id} {self.current_stage}/{self.status}>"


class ContractExchange(db.Model):
    """
    One message in the contract negotiation thread.

    Append-only: rows are never edited, reordered, or deleted. ``sequence``
    is the 1-based position within the submission's thread.
    """

    __tablename__ = "contract_exchanges"
    __table_args__ = (
        db.UniqueConstraint("submission_pk", "sequence", name="uq_exchange_sequence"),
    )

    id = db.Column(db.String(40), primary_key=True, comment="EXC-<hex>")
    submission_pk = db.Column(
        db.Integer,
        db.ForeignKey("submissions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sequence = db.Column(db.Integer, nullable=False)
    exchange_type = db.Column(db.String(40), nullable=False)
    sender_role = db.Column(
        db.String(30), nullable=False,
        comment="contract_drafter | requester | supplier | admin",
    )
    sender_email = db.Column(db.String(255), nullable=False)
    sender_name = db.Column(db.String(255), nullable=True)
    message = db.Column(db.Text, nullable=False)
    attachments = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    submission = db.relationship("Submission", back_populates="exchanges")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sequence": self.sequence,
            "type": self.exchange_type,
            "senderRole": self.sender_role,
            "fromEmail": self.sender_email,
            "fromName": self.sender_name,
            "message": self.message,
            "attachments": self.attachments or [],
            "timestamp": _iso(self.created_at),
        }


@event.listens_for(ContractExchange, "before_update")
def _exchange_is_immutable(mapper, connection, target):
    raise RuntimeError(f"ContractExchange {target.id} is append-only and cannot be modified")


@event.listens_for(ContractExchange, "before_delete")
def _exchange_is_undeletable(mapper, connection, target):
    raise RuntimeError(f"ContractExchange {target.id} is append-only and cannot be deleted")


class SubmissionDocument(db.Model):
    """
    Document metadata (never bytes). Sensitivity and ticketing-sync
    eligibility are derived from ``document_type`` by document_service.
    """

    __tablename__ = "submission_documents"
    __table_args__ = (
        db.UniqueConstraint("submission_pk", "document_type", name="uq_document_per_type"),
    )

    id = db.Column(db.Integer, primary_key=True)
    submission_pk = db.Column(
        db.Integer,
        db.ForeignKey("submissions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    document_type = db.Column(db.String(50), nullable=False)
    file_name = db.Column(db.String(255), nullable=False)
    storage_path = db.Column(db.String(500), nullable=False)
    library = db.Column(db.String(100), nullable=False)
    is_sensitive = db.Column(db.Boolean, nullable=False, default=False)
    allow_ticketing_sync = db.Column(db.Boolean, nullable=False, default=False)
    uploaded_by = db.Column(db.String(255), nullable=False)
    uploaded_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    submission = db.relationship("Submission", back_populates="documents")

    def to_dict(self) -> dict:
        return {
            "documentId": self.id,
            "submissionId": self.submission.submission_id if self.submission else None,
            "documentType": self.document_type,
            "fileName": self.file_name,
            "storagePath": self.storage_path,
            "library": self.library,
            "isSensitive": self.is_sensitive,
            "allowTicketingSync": self.allow_ticketing_sync,
            "uploadedBy": self.uploaded_by,
            "uploadedAt": _iso(self.uploaded_at),
        }
