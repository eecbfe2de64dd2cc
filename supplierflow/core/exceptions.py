"""
Platform-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes and neutral caller-facing messages.

Usage:
    from supplierflow.core.exceptions import AccessDenied, NotFoundError

    raise NotFoundError(resource="Submission", resource_id="SUP-2024-7QX2A")
    raise ValidationError("Invalid input data", details={"crn": "CRN must be 8 digits"})
"""


class Unauthenticated(Exception):
    """Raised when no verifiable identity is attached to the request.

    Maps to HTTP 401. Never downgraded to anonymous access.
    """

    def __init__(self, reason: str = "Authentication required") -> None:
        self.reason = reason
        super().__init__(reason)


class AccessDenied(Exception):
    """Raised when an identity fails the access or review predicate.

    The required role and reason are kept for logs and the audit trail only;
    the HTTP response is a generic denial so the caller cannot learn which
    role would have sufficed.

    Args:
        actor: Email of the acting identity.
        resource: Submission id or logical resource name (e.g. "queue:opw").
        required_role: Role value the action needed, if any.
        reason: Short machine-readable reason ("not_permitted", "conflict_of_interest").
    """

    def __init__(
        self,
        actor: str | None,
        resource: str | None,
        required_role: str | None = None,
        reason: str = "not_permitted",
    ) -> None:
        self.actor = actor
        self.resource = resource
        self.required_role = required_role
        self.reason = reason
        msg = f"{actor} denied on {resource}"
        if required_role:
            msg += f" (requires {required_role})"
        msg += f": {reason}"
        super().__init__(msg)


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Submission", "Document").
        resource_id: The key that was looked up. Included in logs and as the
                     support reference in responses.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is malformed or carries a disallowed value.

    Maps to HTTP 400. ``details`` is a per-field breakdown and is safe to
    return to the caller (it describes input shape, not stored data).
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class TransitionError(Exception):
    """Raised when a review decision cannot be applied to a submission.

    Covers terminal (rejected/completed) submissions, a stage the submission
    is not currently at, and decisions unknown to the stage's transition
    table. Fatal to the request; never retried.
    """

    def __init__(
        self,
        submission_id: str,
        stage: str | None,
        decision: str | None,
        current_stage: str | None,
        reason: str,
    ) -> None:
        self.submission_id = submission_id
        self.stage = stage
        self.decision = decision
        self.current_stage = current_stage
        self.reason = reason
        super().__init__(
            f"Cannot apply '{decision}' at stage '{stage}' to {submission_id} "
            f"(current_stage={current_stage}): {reason}"
        )


class ConflictError(Exception):
    """Raised when a write was based on a stale version of the record.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, resource_id: str, expected: int, actual: int) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{resource} {resource_id} changed concurrently "
            f"(expected version {expected}, found {actual})"
        )
