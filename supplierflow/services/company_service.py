"""
Company verification against the company registry.

``company_verified`` is tri-state: True (found), False (registry says no
such company), None (registry unavailable or not yet checked).
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from supplierflow.core.exceptions import ValidationError
from supplierflow.integrations.company_registry import RegistryResult, get_company_registry
from supplierflow.models import db
from supplierflow.services import audit_service
from supplierflow.services.authorization import authorize_access
from supplierflow.services.submission_service import load_submission
from supplierflow.utils.validation import CRN_RE

logger = logging.getLogger(__name__)


def lookup_company(crn: str) -> RegistryResult:
    crn = (crn or "").strip()
    if not CRN_RE.match(crn):
        raise ValidationError("Invalid input data", details={"crn": "CRN must be 8 digits"})
    return get_company_registry().lookup(crn)


def verify_company(ctx, submission_id: str) -> RegistryResult:
    sub = load_submission(submission_id)
    authorize_access(ctx, sub, "verify_company")
    if not sub.crn:
        raise ValidationError("Invalid input data", details={"crn": "Submission has no CRN"})

    result = lookup_company(sub.crn)
    sub.company_verified = result.verified
    sub.updated_at = datetime.now(UTC)
    sub.version = (sub.version or 0) + 1
    db.session.commit()

    audit_service.record_event(
        ctx,
        "COMPANY_VERIFIED",
        submission_id=submission_id,
        details={"crn": sub.crn, "result": result.status},
    )
    return result
