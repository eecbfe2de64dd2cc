"""supplier_onboarding_tables

Creates the onboarding workflow tables:
  - submissions            — one row per supplier onboarding request
  - contract_exchanges     — append-only negotiation thread at the contract stage
  - submission_documents   — one stored document per (submission, document type)
  - audit_logs             — append-only audit trail (successes and denials)

Tables created conditionally (IF NOT EXISTS semantics) to support idempotent
execution against databases that already received these tables via db.create_all()
in a development environment.

Revision ID: a1c4e7f20b31
Revises:
Create Date: 2026-10-17 09:12:44.318205
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = 'a1c4e7f20b31'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Submission ────────────────────────────────────────────────────────
    if "submissions" not in existing:
        op.create_table(
            "submissions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column(
                "submission_id", sa.String(length=20), nullable=False,
                comment="SUP-YYYY-XXXXX, random suffix",
            ),
            sa.Column("status", sa.String(length=50), nullable=False),
            sa.Column("current_stage", sa.String(length=30), nullable=False),
            sa.Column("status_label", sa.String(length=120), nullable=True),
            sa.Column("requester_email", sa.String(length=255), nullable=False),
            sa.Column("supplier_contact_email", sa.String(length=255), nullable=True),
            sa.Column("created_by", sa.String(length=255), nullable=False),
            sa.Column("requester_first_name", sa.String(length=100), nullable=True),
            sa.Column("requester_last_name", sa.String(length=100), nullable=True),
            sa.Column("requester_job_title", sa.String(length=100), nullable=True),
            sa.Column("requester_department", sa.String(length=100), nullable=True),
            sa.Column("requester_phone", sa.String(length=50), nullable=True),
            sa.Column("company_name", sa.String(length=255), nullable=True),
            sa.Column("crn", sa.String(length=20), nullable=True),
            sa.Column("vat_number", sa.String(length=20), nullable=True),
            sa.Column("contract_value", sa.Numeric(14, 2), nullable=True),
            sa.Column("form_data", sa.JSON(), nullable=True),
            sa.Column("pbp_review", sa.JSON(), nullable=True),
            sa.Column("procurement_review", sa.JSON(), nullable=True),
            sa.Column("opw_review", sa.JSON(), nullable=True),
            sa.Column("contract_drafter", sa.JSON(), nullable=True),
            sa.Column("ap_review", sa.JSON(), nullable=True),
            sa.Column("is_duplicate_flagged", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("duplicate_matches", sa.JSON(), nullable=True),
            sa.Column(
                "company_verified", sa.Boolean(), nullable=True,
                comment="NULL = registry unavailable / not checked",
            ),
            sa.Column("rejection", sa.JSON(), nullable=True),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_submissions_submission_id", "submissions", ["submission_id"], unique=True)
        op.create_index("ix_submissions_requester_email", "submissions", ["requester_email"])
        op.create_index("ix_submissions_supplier_contact_email", "submissions", ["supplier_contact_email"])
        op.create_index("idx_submission_stage_status", "submissions", ["current_stage", "status"])
        op.create_index("idx_submission_created", "submissions", ["created_at"])

    # ── ContractExchange ──────────────────────────────────────────────────
    if "contract_exchanges" not in existing:
        op.create_table(
            "contract_exchanges",
            sa.Column("id", sa.String(length=40), nullable=False, comment="EXC-<hex>"),
            sa.Column("submission_pk", sa.Integer(), nullable=False),
            sa.Column("sequence", sa.Integer(), nullable=False),
            sa.Column("exchange_type", sa.String(length=40), nullable=False),
            sa.Column(
                "sender_role", sa.String(length=30), nullable=False,
                comment="contract_drafter | requester | supplier | admin",
            ),
            sa.Column("sender_email", sa.String(length=255), nullable=False),
            sa.Column("sender_name", sa.String(length=255), nullable=True),
            sa.Column("message", sa.Text(), nullable=False),
            sa.Column("attachments", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["submission_pk"], ["submissions.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("submission_pk", "sequence", name="uq_exchange_sequence"),
        )
        op.create_index("ix_contract_exchanges_submission_pk", "contract_exchanges", ["submission_pk"])

    # ── SubmissionDocument ────────────────────────────────────────────────
    if "submission_documents" not in existing:
        op.create_table(
            "submission_documents",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("submission_pk", sa.Integer(), nullable=False),
            sa.Column("document_type", sa.String(length=50), nullable=False),
            sa.Column("file_name", sa.String(length=255), nullable=False),
            sa.Column("storage_path", sa.String(length=500), nullable=False),
            sa.Column("library", sa.String(length=100), nullable=False),
            sa.Column("is_sensitive", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("allow_ticketing_sync", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("uploaded_by", sa.String(length=255), nullable=False),
            sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["submission_pk"], ["submissions.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("submission_pk", "document_type", name="uq_document_per_type"),
        )
        op.create_index("ix_submission_documents_submission_pk", "submission_documents", ["submission_pk"])

    # ── AuditLog ──────────────────────────────────────────────────────────
    if "audit_logs" not in existing:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("submission_id", sa.String(length=20), nullable=True),
            sa.Column(
                "resource", sa.String(length=100), nullable=True,
                comment="submission id or logical resource, e.g. queue:opw",
            ),
            sa.Column("action", sa.String(length=60), nullable=False),
            sa.Column("actor", sa.String(length=255), nullable=False, server_default="system"),
            sa.Column("actor_roles", sa.JSON(), nullable=True),
            sa.Column("required_role", sa.String(length=30), nullable=True),
            sa.Column("outcome", sa.String(length=20), nullable=False, server_default="success"),
            sa.Column("previous_status", sa.String(length=50), nullable=True),
            sa.Column("new_status", sa.String(length=50), nullable=True),
            sa.Column("details", sa.JSON(), nullable=True),
            sa.Column("ip_address", sa.String(length=64), nullable=True),
            sa.Column("user_agent", sa.String(length=255), nullable=True),
            sa.Column("request_id", sa.String(length=64), nullable=True),
            sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_audit_submission", "audit_logs", ["submission_id"])
        op.create_index("idx_audit_actor", "audit_logs", ["actor"])
        op.create_index("idx_audit_action", "audit_logs", ["action"])
        op.create_index("idx_audit_ts", "audit_logs", ["timestamp"])


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    if "audit_logs" in existing:
        for name in ("idx_audit_ts", "idx_audit_action", "idx_audit_actor", "idx_audit_submission"):
            op.drop_index(name, table_name="audit_logs")
        op.drop_table("audit_logs")

    if "submission_documents" in existing:
        op.drop_index("ix_submission_documents_submission_pk", table_name="submission_documents")
        op.drop_table("submission_documents")

    if "contract_exchanges" in existing:
        op.drop_index("ix_contract_exchanges_submission_pk", table_name="contract_exchanges")
        op.drop_table("contract_exchanges")

    if "submissions" in existing:
        for name in (
            "idx_submission_created",
            "idx_submission_stage_status",
            "ix_submissions_supplier_contact_email",
            "ix_submissions_requester_email",
            "ix_submissions_submission_id",
        ):
            op.drop_index(name, table_name="submissions")
        op.drop_table("submissions")
