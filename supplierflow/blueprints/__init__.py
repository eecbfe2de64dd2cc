"""
Supplier Onboarding Workflow
Blueprint registry and shared blueprint helpers.
"""

import logging

from flask import current_app, request
from sqlalchemy.exc import SQLAlchemyError

from supplierflow.core.exceptions import (
    AccessDenied,
    ConflictError,
    NotFoundError,
    TransitionError,
    Unauthenticated,
    ValidationError,
)
from supplierflow.utils.errors import E, api_error

logger = logging.getLogger(__name__)

GENERIC_DENIAL = "You do not have permission to perform this action"


def paginate_list(items, default_limit=200, max_limit=1000):
    """Apply limit/offset pagination to an already-filtered list.

    Query params:
        limit  — max items (default 200, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (items_page, total_count)
    """
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return items[offset:offset + limit], len(items)


def register_error_handlers(bp):
    """Map the exception hierarchy onto JSON error responses for ``bp``."""

    @bp.errorhandler(Unauthenticated)
    def _handle_unauthenticated(error: Unauthenticated):
        return api_error(E.UNAUTHENTICATED, error.reason)

    @bp.errorhandler(AccessDenied)
    def _handle_denied(error: AccessDenied):
        return api_error(E.FORBIDDEN, GENERIC_DENIAL, reference=error.resource)

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        reference = str(error.resource_id) if error.resource_id is not None else None
        if current_app.config.get("CONCEAL_NOT_FOUND"):
            return api_error(E.FORBIDDEN, GENERIC_DENIAL, reference=reference)
        return api_error(E.NOT_FOUND, f"{error.resource} not found", reference=reference)

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_INVALID, str(error), details=error.details)

    @bp.errorhandler(TransitionError)
    def _handle_transition(error: TransitionError):
        return api_error(
            E.CONFLICT_STATE,
            "This action is not available for the submission in its current state",
            details={"reason": error.reason, "currentStage": error.current_stage},
            reference=error.submission_id,
        )

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(
            E.CONFLICT_VERSION,
            "The submission was changed by someone else; reload and try again",
            details={"currentVersion": error.actual},
            reference=error.resource_id,
        )

    @bp.errorhandler(SQLAlchemyError)
    def _handle_database(error: SQLAlchemyError):
        from supplierflow.models import db

        db.session.rollback()
        logger.exception("Database error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.DATABASE, "A storage error occurred; please retry")

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        from werkzeug.exceptions import HTTPException

        if isinstance(error, HTTPException):
            return error
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")
