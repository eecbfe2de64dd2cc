"""Input validation for submission and document payloads.

Each validator returns cleaned values keyed by model column and raises
``ValidationError`` with a per-field ``details`` dict on the first pass
that finds problems. Unrecognised keys are dropped, never reported.

    from supplierflow.utils.validation import clean_update_fields

    columns = clean_update_fields(request.get_json())
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation

from email_validator import EmailNotValidError, validate_email

from supplierflow.core.exceptions import ValidationError

CRN_RE = re.compile(r"^[0-9]{8}$")
VAT_RE = re.compile(r"^(GB)?[0-9]{9,12}$")
PHONE_RE = re.compile(r"^[+]?[0-9 ()-]{7,15}$")
NAME_RE = re.compile(r"^[^\W\d_]+(?:[\s\-'][^\W\d_]+)*$")
SUBMISSION_ID_RE = re.compile(r"^SUP-\d{4}-[0-9A-Z]{5}$")

MAX_COMMENT_LENGTH = 5000
MAX_MESSAGE_LENGTH = 5000

# camelCase request key → Submission column. status/current_stage/version
# and the review columns are deliberately absent.
UPDATABLE_FIELDS = {
    "firstName": "requester_first_name",
    "lastName": "requester_last_name",
    "jobTitle": "requester_job_title",
    "department": "requester_department",
    "phoneNumber": "requester_phone",
    "requesterPhone": "requester_phone",
    "companyName": "company_name",
    "supplierContactEmail": "supplier_contact_email",
    "crn": "crn",
    "vatNumber": "vat_number",
    "contractValue": "contract_value",
    "formData": "form_data",
}

_MAX_LENGTHS = {
    "requester_first_name": 50,
    "requester_last_name": 50,
    "requester_job_title": 100,
    "requester_department": 100,
    "company_name": 255,
}


def normalize_email(value: str) -> str:
    """Return the normalised address or raise EmailNotValidError."""
    return validate_email(value, check_deliverability=False).normalized


def _clean_value(column: str, value, errors: dict, key: str):
    if value is None:
        return None

    if column == "form_data":
        if not isinstance(value, dict):
            errors[key] = "formData must be an object"
        return value

    if column == "contract_value":
        try:
            amount = Decimal(str(value))
        except (InvalidOperation, ValueError):
            errors[key] = "Contract value must be a valid decimal number"
            return None
        if not amount.is_finite() or amount < 0:
            errors[key] = "Contract value must be a valid decimal number"
            return None
        return amount

    if not isinstance(value, str):
        errors[key] = f"{key} must be a string"
        return None
    value = value.strip()

    if column == "supplier_contact_email":
        if not value:
            return None
        try:
            return normalize_email(value)
        except EmailNotValidError as e:
            errors[key] = f"Invalid email: {e}"
            return None
    if column == "crn" and value and not CRN_RE.match(value):
        errors[key] = "CRN must be 8 digits"
    elif column == "vat_number" and value and not VAT_RE.match(value.replace(" ", "").upper()):
        errors[key] = "Invalid VAT number format"
    elif column == "requester_phone" and value and not PHONE_RE.match(value):
        errors[key] = "Invalid UK phone number"
    elif column in ("requester_first_name", "requester_last_name") and value and not NAME_RE.match(value):
        errors[key] = f"{key} contains invalid characters"

    if column == "vat_number":
        value = value.replace(" ", "").upper()
    limit = _MAX_LENGTHS.get(column)
    if limit and len(value) > limit:
        errors[key] = f"{key} must not exceed {limit} characters"
    return value


def clean_update_fields(data: dict | None) -> dict:
    """Map an update payload through the allow-list and validate it."""
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid input data", details={"body": "Expected a JSON object"})
    errors: dict = {}
    cleaned: dict = {}
    for key, column in UPDATABLE_FIELDS.items():
        if key in data:
            cleaned[column] = _clean_value(column, data[key], errors, key)
    if errors:
        raise ValidationError("Invalid input data", details=errors)
    return cleaned


def clean_create_fields(data: dict | None) -> tuple[dict, str | None]:
    """Validate a create payload.

    Returns ``(columns, requester_email)``; the email is None when the
    payload has no ``nhsEmail`` and the caller's identity should be used.
    """
    data = data or {}
    cleaned = clean_update_fields(data)
    requester_email = None
    raw = data.get("nhsEmail")
    if raw:
        if not isinstance(raw, str):
            raise ValidationError("Invalid input data", details={"nhsEmail": "nhsEmail must be a string"})
        try:
            requester_email = normalize_email(raw.strip())
        except EmailNotValidError as e:
            raise ValidationError("Invalid input data", details={"nhsEmail": f"Invalid email: {e}"})
    return cleaned, requester_email


def validate_review_payload(payload: dict) -> dict:
    errors = {}
    for key in ("comments", "rationale", "rejectionReason"):
        value = payload.get(key)
        if value is not None and not isinstance(value, str):
            errors[key] = f"{key} must be a string"
        elif value and len(value) > MAX_COMMENT_LENGTH:
            errors[key] = f"{key} must not exceed {MAX_COMMENT_LENGTH} characters"
    if errors:
        raise ValidationError("Invalid review payload", details=errors)
    return payload


def validate_exchange_message(message, attachments) -> tuple[str, list]:
    errors = {}
    if not isinstance(message, str) or not message.strip():
        errors["message"] = "message is required"
    elif len(message) > MAX_MESSAGE_LENGTH:
        errors["message"] = f"message must not exceed {MAX_MESSAGE_LENGTH} characters"
    if attachments is None:
        attachments = []
    elif not isinstance(attachments, list):
        errors["attachments"] = "attachments must be a list"
    if errors:
        raise ValidationError("Invalid exchange message", details=errors)
    return message.strip(), attachments


# ── File signatures ──────────────────────────────────────────────────────────

FILE_SIGNATURES = {
    "pdf": (b"%PDF",),
    "jpeg": (b"\xff\xd8\xff\xe0", b"\xff\xd8\xff\xe1", b"\xff\xd8\xff\xe2"),
    "png": (b"\x89PNG\r\n\x1a\n",),
    "doc": (b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1",),
    "docx": (b"PK\x03\x04", b"PK\x05\x06", b"PK\x07\x08"),
}

MIME_TO_SIGNATURE = {
    "application/pdf": "pdf",
    "image/jpeg": "jpeg",
    "image/png": "png",
    "application/msword": "doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
}

MAX_FILE_SIZE = 10 * 1024 * 1024


def sniff_file_type(data: bytes) -> str | None:
    for kind, signatures in FILE_SIGNATURES.items():
        if any(data.startswith(sig) for sig in signatures):
            return kind
    return None


def validate_file(data: bytes, declared_mime: str | None, max_size: int = MAX_FILE_SIZE) -> str:
    """Check size and magic number against the declared MIME type."""
    if not data:
        raise ValidationError("Invalid file", details={"file": "Empty file"})
    if len(data) > max_size:
        raise ValidationError(
            "Invalid file",
            details={"file": f"File exceeds maximum allowed size ({max_size // (1024 * 1024)}MB)"},
        )
    expected = MIME_TO_SIGNATURE.get((declared_mime or "").split(";")[0].strip().lower())
    if expected is None:
        raise ValidationError("Invalid file", details={"file": f"Unsupported MIME type: {declared_mime}"})
    actual = sniff_file_type(data)
    if actual != expected:
        raise ValidationError(
            "Invalid file",
            details={"file": f"File type mismatch: declared as {declared_mime} but appears to be {actual or 'unknown'}"},
        )
    return actual
