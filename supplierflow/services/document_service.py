"""
Document Service — document type governance and metadata.

Sensitivity and ticketing-sync eligibility are properties of the document
type alone; callers cannot override them. Sensitive types are never
eligible for ticketing sync. Unknown types are rejected.

One document per (submission, type): re-uploading a type replaces the
stored bytes and metadata. Every upload passes the virus scanner before
it reaches the store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from supplierflow.core.exceptions import NotFoundError, TransitionError, ValidationError
from supplierflow.integrations.document_store import get_document_store
from supplierflow.integrations.virus_scanner import ScanError, get_virus_scanner
from supplierflow.models import db
from supplierflow.models.audit import OUTCOME_REJECTED
from supplierflow.models.submission import SubmissionDocument
from supplierflow.services import audit_service
from supplierflow.services.authorization import authorize_access
from supplierflow.services.stage_model import TERMINAL_STAGES, parse_stage
from supplierflow.services.submission_service import load_submission
from supplierflow.utils.validation import validate_file

logger = logging.getLogger(__name__)

SENSITIVE_LIBRARY = "SensitiveDocuments"
STANDARD_LIBRARY = "SupplierDocuments"


@dataclass(frozen=True)
class DocumentType:
    id: str
    label: str
    is_sensitive: bool

    @property
    def allow_ticketing_sync(self) -> bool:
        return not self.is_sensitive

    @property
    def library(self) -> str:
        return SENSITIVE_LIBRARY if self.is_sensitive else STANDARD_LIBRARY

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "isSensitive": self.is_sensitive,
            "allowTicketingSync": self.allow_ticketing_sync,
            "library": self.library,
        }


DOCUMENT_TYPES: dict[str, DocumentType] = {
    t.id: t
    for t in (
        # Identity documents
        DocumentType("passport", "Passport", True),
        DocumentType("driving_licence", "Driving Licence", True),
        DocumentType("identity_document", "Identity Document", True),
        DocumentType("cest_form", "CEST Form (IR35)", True),
        # Business documents
        DocumentType("vat_certificate", "VAT Certificate", False),
        DocumentType("company_registration", "Company Registration", False),
        DocumentType("insurance_certificate", "Insurance Certificate", False),
        DocumentType("bank_letter", "Bank Confirmation Letter", False),
        DocumentType("signed_contract", "Signed Contract", False),
        DocumentType("purchase_order", "Purchase Order", False),
        DocumentType("quote", "Quote/Estimate", False),
        DocumentType("letterhead", "Letterhead with Bank Details", False),
        DocumentType("procurement_approval", "Procurement Approval", False),
        DocumentType("other", "Other Document", False),
    )
}


def get_document_type(document_type: str | None) -> DocumentType | None:
    return DOCUMENT_TYPES.get((document_type or "").strip().lower())


def is_sensitive(document_type: str | None) -> bool:
    dt = get_document_type(document_type)
    return dt.is_sensitive if dt else False


def can_sync_to_ticketing(document_type: str | None) -> bool:
    dt = get_document_type(document_type)
    return dt.allow_ticketing_sync if dt else False


def list_document_types() -> list[dict]:
    return [t.to_dict() for t in DOCUMENT_TYPES.values()]


# ── Metadata operations ──────────────────────────────────────────────────────


def _require_open(sub, action: str) -> None:
    """Rejected and completed submissions keep their documents as filed."""
    if sub.is_rejected:
        raise TransitionError(sub.submission_id, None, action, sub.current_stage, "submission_rejected")
    if parse_stage(sub.current_stage) in TERMINAL_STAGES:
        raise TransitionError(sub.submission_id, None, action, sub.current_stage, "submission_completed")


def _scan(ctx, sub, dt: DocumentType, data: bytes, file_name: str) -> None:
    try:
        result = get_virus_scanner().scan(data, file_name)
    except ScanError:
        raise ValidationError("Invalid input data",
                              details={"file": "File could not be scanned; upload rejected"}) from None
    if result.clean:
        return
    audit_service.record_event(
        ctx,
        "DOCUMENT_REJECTED_MALWARE",
        submission_id=sub.submission_id,
        outcome=OUTCOME_REJECTED,
        details={"documentType": dt.id, "fileName": file_name},
    )
    raise ValidationError("Invalid input data", details={"file": "File failed antivirus scan"})


def upload_document(ctx, submission_id: str, document_type: str, data: bytes,
                    file_name: str, mime_type: str | None) -> SubmissionDocument:
    """Scan and store a document, then upsert its metadata row.

    Replaced bytes are removed from the store once the new row is committed;
    if the commit fails the freshly written bytes are removed instead.
    """
    sub = load_submission(submission_id)
    authorize_access(ctx, sub, "upload_document")
    _require_open(sub, "upload_document")

    dt = get_document_type(document_type)
    if dt is None:
        raise ValidationError("Invalid input data", details={"documentType": "Unknown document type"})
    if not file_name:
        raise ValidationError("Invalid input data", details={"file": "No file provided"})
    validate_file(data, mime_type)
    _scan(ctx, sub, dt, data, file_name)

    store = get_document_store()
    storage_path = store.store(submission_id, dt.id, data, file_name, dt.library)

    doc = db.session.execute(
        select(SubmissionDocument).where(
            SubmissionDocument.submission_pk == sub.id,
            SubmissionDocument.document_type == dt.id,
        )
    ).scalar_one_or_none()
    replaced = doc is not None
    previous_path = doc.storage_path if doc is not None else None
    if doc is None:
        doc = SubmissionDocument(submission=sub, document_type=dt.id)
        db.session.add(doc)

    doc.file_name = file_name
    doc.storage_path = storage_path
    doc.library = dt.library
    doc.is_sensitive = dt.is_sensitive
    doc.allow_ticketing_sync = dt.allow_ticketing_sync
    doc.uploaded_by = ctx.email
    doc.uploaded_at = datetime.now(UTC)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        if storage_path != previous_path:
            store.delete(storage_path)
        raise

    if previous_path and previous_path != storage_path:
        store.delete(previous_path)

    audit_service.record_event(
        ctx,
        "DOCUMENT_UPLOADED",
        submission_id=submission_id,
        details={
            "documentId": doc.id,
            "documentType": dt.id,
            "fileName": file_name,
            "isSensitive": dt.is_sensitive,
            "replaced": replaced,
        },
    )
    return doc


def list_documents(ctx, submission_id: str, ticketing_only: bool = False) -> list[dict]:
    sub = load_submission(submission_id)
    authorize_access(ctx, sub, "list_documents")
    query = select(SubmissionDocument).where(SubmissionDocument.submission_pk == sub.id)
    if ticketing_only:
        query = query.where(
            SubmissionDocument.allow_ticketing_sync.is_(True),
            SubmissionDocument.is_sensitive.is_(False),
        )
    rows = db.session.execute(query.order_by(SubmissionDocument.uploaded_at.desc())).scalars().all()
    return [d.to_dict() for d in rows]


def delete_document(ctx, document_id: int) -> None:
    doc = db.session.get(SubmissionDocument, document_id)
    if doc is None:
        raise NotFoundError(resource="Document", resource_id=document_id)
    sub = doc.submission
    authorize_access(ctx, sub, "delete_document")
    _require_open(sub, "delete_document")

    storage_path = doc.storage_path
    document_type = doc.document_type
    db.session.delete(doc)
    db.session.commit()
    get_document_store().delete(storage_path)

    audit_service.record_event(
        ctx,
        "DOCUMENT_DELETED",
        submission_id=sub.submission_id,
        details={"documentId": document_id, "documentType": document_type},
    )
