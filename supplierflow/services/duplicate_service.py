"""
Duplicate Check Service — is this supplier already on file?

Matches existing submissions by CRN, VAT number, or normalised company
name (case, punctuation and legal suffixes ignored). Flagging a submission
is independent of its workflow stage and never changes status.
"""

from __future__ import annotations

import logging
import re

from sqlalchemy import select

from supplierflow.core.exceptions import ValidationError
from supplierflow.models import db
from supplierflow.models.submission import Submission
from supplierflow.services import audit_service
from supplierflow.services.authorization import authorize_access
from supplierflow.services.submission_service import load_submission

logger = logging.getLogger(__name__)

_LEGAL_SUFFIXES = ("limited", "ltd", "plc", "llp", "lp", "inc", "co")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9 ]+")


def normalize_company_name(name: str | None) -> str:
    words = _NON_ALNUM_RE.sub(" ", (name or "").lower()).split()
    while words and words[-1] in _LEGAL_SUFFIXES:
        words.pop()
    return " ".join(words)


def _normalize_vat(vat: str | None) -> str:
    return (vat or "").replace(" ", "").upper().removeprefix("GB")


def find_duplicates(company_name: str | None, vat_number: str | None = None, crn: str | None = None,
                    exclude_submission_id: str | None = None) -> list[dict]:
    """Return one match per existing submission, strongest match type first."""
    name_key = normalize_company_name(company_name)
    vat_key = _normalize_vat(vat_number)
    crn_key = (crn or "").strip()
    if not (name_key or vat_key or crn_key):
        return []

    rows = db.session.execute(
        select(Submission).order_by(Submission.created_at.asc())
    ).scalars().all()

    matches = []
    for sub in rows:
        if exclude_submission_id and sub.submission_id == exclude_submission_id:
            continue
        if crn_key and sub.crn == crn_key:
            match_type = "crn"
        elif vat_key and _normalize_vat(sub.vat_number) == vat_key:
            match_type = "vat"
        elif name_key and normalize_company_name(sub.company_name) == name_key:
            match_type = "name"
        else:
            continue
        matches.append({
            "vendorReference": sub.submission_id,
            "companyName": sub.company_name,
            "crn": sub.crn,
            "vatNumber": sub.vat_number,
            "matchType": match_type,
        })
    return matches


def check_vendor(company_name: str | None, vat_number: str | None = None, crn: str | None = None) -> dict:
    if not (company_name or "").strip():
        raise ValidationError("Invalid input data", details={"companyName": "companyName is required"})
    matches = find_duplicates(company_name, vat_number, crn)
    return {"isDuplicate": bool(matches), "matches": matches}


def flag_duplicates(ctx, submission_id: str) -> dict:
    """Run the duplicate search for a submission and store the outcome."""
    sub = load_submission(submission_id)
    authorize_access(ctx, sub, "duplicate_check")

    matches = find_duplicates(sub.company_name, sub.vat_number, sub.crn, exclude_submission_id=submission_id)
    sub.is_duplicate_flagged = bool(matches)
    sub.duplicate_matches = matches
    sub.version = (sub.version or 0) + 1
    db.session.commit()

    if matches:
        logger.info("Submission %s flagged as possible duplicate (%d matches)", submission_id, len(matches),
                    extra={"submission_id": submission_id})
    audit_service.record_event(
        ctx,
        "DUPLICATE_CHECK",
        submission_id=submission_id,
        details={"isDuplicate": bool(matches), "matchCount": len(matches)},
    )
    return {"isDuplicate": bool(matches), "matches": matches}
