"""
Supplier Onboarding Workflow
Document metadata blueprint.

Endpoints:
    POST   /api/v1/documents/<submission_id>                     — upload (multipart: file, documentType)
    GET    /api/v1/documents/<submission_id>                     — list documents
    GET    /api/v1/documents/<submission_id>/ticketing-eligible  — non-sensitive documents only
    DELETE /api/v1/documents/item/<document_id>                  — delete a document
    GET    /api/v1/document-types                                — governance table
"""

from flask import Blueprint, jsonify, request

from supplierflow.blueprints import register_error_handlers
from supplierflow.core.exceptions import ValidationError
from supplierflow.middleware.identity_auth import current_context, require_identity
from supplierflow.services import document_service

document_bp = Blueprint("document", __name__, url_prefix="/api/v1")
register_error_handlers(document_bp)


@document_bp.route("/documents/<submission_id>", methods=["POST"])
@require_identity
def upload_document(submission_id):
    ctx = current_context()
    upload = request.files.get("file")
    if upload is None:
        raise ValidationError("Invalid input data", details={"file": "No file provided"})
    document_type = request.form.get("documentType")
    if not document_type:
        raise ValidationError("Invalid input data", details={"documentType": "Document type required"})

    doc = document_service.upload_document(
        ctx,
        submission_id,
        document_type,
        upload.read(),
        upload.filename,
        upload.mimetype,
    )
    return jsonify(doc.to_dict()), 201


@document_bp.route("/documents/<submission_id>", methods=["GET"])
@require_identity
def list_documents(submission_id):
    ctx = current_context()
    return jsonify(document_service.list_documents(ctx, submission_id))


@document_bp.route("/documents/<submission_id>/ticketing-eligible", methods=["GET"])
@require_identity
def list_ticketing_documents(submission_id):
    ctx = current_context()
    return jsonify(document_service.list_documents(ctx, submission_id, ticketing_only=True))


@document_bp.route("/documents/item/<int:document_id>", methods=["DELETE"])
@require_identity
def delete_document(document_id):
    ctx = current_context()
    document_service.delete_document(ctx, document_id)
    return "", 204


@document_bp.route("/document-types", methods=["GET"])
@require_identity
def document_types():
    return jsonify(document_service.list_document_types())
