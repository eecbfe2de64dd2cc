"""
Audit Recorder tests.

Covers:
  - events carry actor, roles, request metadata, status change
  - trail ordering
  - audit rows are immutable
  - a failing audit write never undoes the domain change
"""

from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from supplierflow.models import db
from supplierflow.models.audit import AuditLog
from supplierflow.services import audit_service
from supplierflow.services import submission_service as svc


class TestRecordEvent:
    def test_fields(self, pbp):
        log = audit_service.record_event(
            pbp, "PBP_REVIEW_APPROVED",
            submission_id="SUP-2026-AAAAA",
            previous_status="pending_review",
            new_status="pbp_approved",
        )
        assert log is not None
        assert log.actor == pbp.email
        assert log.actor_roles == ["pbp"]
        assert log.resource == "SUP-2026-AAAAA"
        assert log.ip_address == "127.0.0.1"
        assert log.request_id == "test-req"
        assert log.outcome == "success"

        data = log.to_dict()
        assert data["previousStatus"] == "pending_review"
        assert data["newStatus"] == "pbp_approved"

    def test_system_event(self):
        log = audit_service.record_event(None, "SUBMISSION_UPDATED", submission_id="SUP-2026-AAAAA")
        assert log.actor == "system"

    def test_denial(self, outsider):
        log = audit_service.record_denial(outsider, "queue:opw", required_role="opw")
        assert log.action == "ACCESS_DENIED"
        assert log.outcome == "denied"
        assert log.details == {"reason": "not_permitted"}


class TestTrail:
    def test_ordered_history(self, new_submission, pbp, procurement, requester):
        sid = new_submission()
        svc.record_review(pbp, sid, "pbp", "approved")
        svc.record_review(procurement, sid, "procurement", "approved")

        actions = [e["action"] for e in audit_service.get_audit_trail(sid)]
        assert actions == ["SUBMISSION_CREATED", "PBP_REVIEW_APPROVED", "PROCUREMENT_REVIEW_APPROVED"]

    def test_other_submissions_excluded(self, new_submission):
        first = new_submission()
        new_submission()
        assert len(audit_service.get_audit_trail(first)) == 1


class TestImmutability:
    def test_update_blocked(self, pbp):
        log = audit_service.record_event(pbp, "SUBMISSION_UPDATED", submission_id="SUP-2026-AAAAA")
        log.action = "SUBMISSION_CREATED"
        with pytest.raises(RuntimeError):
            db.session.commit()
        db.session.rollback()

    def test_delete_blocked(self, pbp):
        log = audit_service.record_event(pbp, "SUBMISSION_UPDATED", submission_id="SUP-2026-AAAAA")
        db.session.delete(log)
        with pytest.raises(RuntimeError):
            db.session.commit()
        db.session.rollback()


class TestBestEffort:
    def test_failed_audit_keeps_domain_change(self, new_submission, pbp):
        sid = new_submission()
        original_add = db.session.add

        def _add(obj, *args, **kwargs):
            if isinstance(obj, AuditLog):
                raise OperationalError("INSERT INTO audit_logs", {}, Exception("audit store down"))
            return original_add(obj, *args, **kwargs)

        with patch.object(db.session, "add", side_effect=_add):
            sub = svc.record_review(pbp, sid, "pbp", "approved")

        assert sub.current_stage == "procurement"
        assert svc.load_submission(sid).status == "pbp_approved"
        assert AuditLog.query.filter_by(action="PBP_REVIEW_APPROVED").count() == 0
