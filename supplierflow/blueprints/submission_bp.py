"""
Supplier Onboarding Workflow
Submission, review and audit blueprint.

Endpoints:
    GET  /api/v1/session                              — caller identity, roles, rule table
    POST /api/v1/submissions                          — create submission
    GET  /api/v1/submissions                          — submissions visible to the caller
    GET  /api/v1/submissions/<id>                     — single submission
    PUT  /api/v1/submissions/<id>                     — update allow-listed fields
    GET  /api/v1/submissions/<id>/permissions         — advisory client guard payload
    POST /api/v1/submissions/<id>/exchanges           — contract negotiation message
    POST /api/v1/submissions/<id>/duplicate-check     — flag possible duplicates
    POST /api/v1/submissions/<id>/verify-company      — company registry verification
    POST /api/v1/reviews/<stage>/<id>                 — record review decision
    GET  /api/v1/reviews/<stage>/queue                — stage work queue
    GET  /api/v1/vendors/check                        — duplicate vendor search
    GET  /api/v1/companies-house/<crn>                — registry lookup proxy
    GET  /api/v1/audit/<id>                           — audit trail

Service layer owns all business logic and commits.
"""

import logging

from flask import Blueprint, jsonify, request

from supplierflow.blueprints import paginate_list, register_error_handlers
from supplierflow.core.exceptions import ValidationError
from supplierflow.middleware.identity_auth import current_context, require_identity
from supplierflow.services import (
    audit_service,
    company_service,
    duplicate_service,
    submission_service,
    work_queue,
)
from supplierflow.services.authorization import authorize_access, describe_permissions
from supplierflow.services.stage_model import INITIAL_STAGE, INITIAL_STATUS, parse_stage, rules_table
from supplierflow.utils.errors import E, api_error

logger = logging.getLogger(__name__)

submission_bp = Blueprint("submission", __name__, url_prefix="/api/v1")
register_error_handlers(submission_bp)


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid input data", details={"body": "Expected a JSON object"})
    return data


# ── Session ──────────────────────────────────────────────────────────────────


@submission_bp.route("/session", methods=["GET"])
@require_identity
def session_info():
    """Identity, derived roles and the shared rule table for the client guard."""
    ctx = current_context()
    return jsonify({
        "user": ctx.identity.to_dict(),
        "roles": sorted(r.value for r in ctx.roles),
        "isAdmin": ctx.is_admin,
        "rules": {
            "roleGroups": ctx.registry.to_dict(),
            **rules_table(),
        },
    })


# ── Submissions ──────────────────────────────────────────────────────────────


@submission_bp.route("/submissions", methods=["POST"])
@require_identity
def create_submission():
    ctx = current_context()
    submission_id = submission_service.create(ctx, _json_body())
    return jsonify({
        "submissionId": submission_id,
        "status": INITIAL_STATUS,
        "currentStage": INITIAL_STAGE.value,
    }), 201


@submission_bp.route("/submissions", methods=["GET"])
@require_identity
def list_submissions():
    """
    Submissions the caller may see, newest first.

    Query params:
        stage   — filter by current_stage (aliases such as "ap" accepted)
        limit   — max items (default 200)
        offset  — starting position
    """
    ctx = current_context()
    items = submission_service.list_accessible(ctx)
    raw_stage = request.args.get("stage")
    if raw_stage:
        stage = parse_stage(raw_stage)
        if stage is None:
            raise ValidationError("Invalid input data", details={"stage": "Unknown stage"})
        items = [s for s in items if parse_stage(s.current_stage) == stage]
    page, total = paginate_list(items)
    return jsonify({"items": [s.to_summary() for s in page], "total": total})


@submission_bp.route("/submissions/<submission_id>", methods=["GET"])
@require_identity
def get_submission(submission_id):
    ctx = current_context()
    sub = submission_service.get_by_id(ctx, submission_id)
    return jsonify(sub.to_dict())


@submission_bp.route("/submissions/<submission_id>", methods=["PUT"])
@require_identity
def update_submission(submission_id):
    ctx = current_context()
    data = _json_body()
    sub = submission_service.update(ctx, submission_id, data, expected_version=data.get("expectedVersion"))
    return jsonify(sub.to_dict())


@submission_bp.route("/submissions/<submission_id>/permissions", methods=["GET"])
@require_identity
def get_permissions(submission_id):
    ctx = current_context()
    sub = submission_service.get_by_id(ctx, submission_id)
    return jsonify(describe_permissions(ctx, sub))


@submission_bp.route("/submissions/<submission_id>/exchanges", methods=["POST"])
@require_identity
def post_exchange(submission_id):
    """Body: {message, attachments?, expectedVersion?}"""
    ctx = current_context()
    data = _json_body()
    exchange = submission_service.post_exchange(
        ctx,
        submission_id,
        data.get("message"),
        data.get("attachments"),
        expected_version=data.get("expectedVersion"),
    )
    return jsonify(exchange.to_dict()), 201


@submission_bp.route("/submissions/<submission_id>/duplicate-check", methods=["POST"])
@require_identity
def duplicate_check(submission_id):
    ctx = current_context()
    return jsonify(duplicate_service.flag_duplicates(ctx, submission_id))


@submission_bp.route("/submissions/<submission_id>/verify-company", methods=["POST"])
@require_identity
def verify_company(submission_id):
    ctx = current_context()
    result = company_service.verify_company(ctx, submission_id)
    return jsonify(result.to_dict())


# ── Reviews ──────────────────────────────────────────────────────────────────


@submission_bp.route("/reviews/<stage>/<submission_id>", methods=["POST"])
@require_identity
def record_review(stage, submission_id):
    """
    Record a reviewer decision.

    Body: {decision, comments?, rejectionReason?, expectedVersion?, ...stage extras}
    """
    ctx = current_context()
    data = _json_body()
    decision = data.pop("decision", None)
    if not decision or not isinstance(decision, str):
        raise ValidationError("Invalid input data", details={"decision": "decision is required"})
    expected_version = data.pop("expectedVersion", None)
    sub = submission_service.record_review(
        ctx, submission_id, stage, decision, data, expected_version=expected_version,
    )
    return jsonify({
        "success": True,
        "submissionId": sub.submission_id,
        "status": sub.status,
        "statusLabel": sub.status_label,
        "currentStage": sub.current_stage,
        "version": sub.version,
    })


@submission_bp.route("/reviews/<stage>/queue", methods=["GET"])
@require_identity
def review_queue(stage):
    ctx = current_context()
    items = work_queue.queue_for(ctx, stage)
    return jsonify({"stage": stage, "items": items, "total": len(items)})


# ── Vendor / company utilities ───────────────────────────────────────────────


@submission_bp.route("/vendors/check", methods=["GET"])
@require_identity
def vendor_check():
    """Query params: companyName (required), vatNumber, crn"""
    return jsonify(duplicate_service.check_vendor(
        request.args.get("companyName"),
        request.args.get("vatNumber"),
        request.args.get("crn"),
    ))


@submission_bp.route("/companies-house/<crn>", methods=["GET"])
@require_identity
def companies_house_lookup(crn):
    result = company_service.lookup_company(crn)
    if result.status == "not_found":
        return api_error(E.NOT_FOUND, "Company not found", reference=crn)
    if result.status == "unavailable":
        logger.warning("Company registry unavailable for crn=%s", crn)
        return api_error(E.UPSTREAM_UNAVAILABLE, "Company registry unavailable", reference=crn)
    return jsonify(result.to_dict())


# ── Audit ────────────────────────────────────────────────────────────────────


@submission_bp.route("/audit/<submission_id>", methods=["GET"])
@require_identity
def audit_trail(submission_id):
    ctx = current_context()
    sub = submission_service.load_submission(submission_id)
    authorize_access(ctx, sub, "audit")
    return jsonify(audit_service.get_audit_trail(submission_id))
