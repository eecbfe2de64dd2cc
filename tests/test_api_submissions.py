"""
Submission API tests — HTTP status mapping, generic denials, review flow.
"""

import re

import pytest

from conftest import REQUESTER_EMAIL, SUPPLIER_EMAIL

PBP = ("pat.pbp@nhs.net", "pbp")
PROCUREMENT = ("paul.procurement@nhs.net", "procurement")
OPW = ("olive.opw@nhs.net", "opw")
CONTRACT = ("cara.contract@nhs.net", "contract")
ADMIN = ("ada.admin@nhs.net", "admin")
REQUESTER = (REQUESTER_EMAIL, "requester")


@pytest.fixture()
def api(client, auth_headers):
    """Small helper: api.post(actor, url, json) etc."""

    class _Api:
        def get(self, actor, url):
            return client.get(url, headers=auth_headers(*actor))

        def post(self, actor, url, json=None):
            return client.post(url, json=json or {}, headers=auth_headers(*actor))

        def put(self, actor, url, json=None):
            return client.put(url, json=json or {}, headers=auth_headers(*actor))

    return _Api()


@pytest.fixture()
def created(api):
    res = api.post(REQUESTER, "/api/v1/submissions", {
        "firstName": "Sarah",
        "lastName": "Johnson",
        "companyName": "Acme Supplies Ltd",
        "supplierContactEmail": SUPPLIER_EMAIL,
        "crn": "01234567",
    })
    assert res.status_code == 201
    return res.get_json()["submissionId"]


class TestCreateAndRead:
    def test_create(self, api):
        res = api.post(REQUESTER, "/api/v1/submissions", {"companyName": "Acme Ltd"})
        assert res.status_code == 201
        body = res.get_json()
        assert re.match(r"^SUP-\d{4}-[0-9A-Z]{5}$", body["submissionId"])
        assert body["status"] == "pending_review"
        assert body["currentStage"] == "pbp"

    def test_create_validation(self, api):
        res = api.post(REQUESTER, "/api/v1/submissions", {"crn": "ABC"})
        assert res.status_code == 400
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_INVALID"
        assert "crn" in body["details"]

    def test_get(self, api, created):
        res = api.get(REQUESTER, f"/api/v1/submissions/{created}")
        assert res.status_code == 200
        body = res.get_json()
        assert body["submissionId"] == created
        assert body["requesterEmail"] == REQUESTER_EMAIL
        assert body["contractDrafter"] == {"exchanges": []}
        assert body["version"] == 1

    def test_generic_denial(self, api, created):
        res = api.get(("nobody@nhs.net",), f"/api/v1/submissions/{created}")
        assert res.status_code == 403
        body = res.get_json()
        assert body["code"] == "ERR_FORBIDDEN"
        assert body["reference"] == created
        assert "pbp" not in body["error"].lower()
        assert "role" not in body["error"].lower()

    def test_not_found(self, api):
        res = api.get(ADMIN, "/api/v1/submissions/SUP-2026-NONE0")
        assert res.status_code == 404
        assert res.get_json()["reference"] == "SUP-2026-NONE0"

    def test_not_found_concealed(self, app, api):
        app.config["CONCEAL_NOT_FOUND"] = True
        try:
            res = api.get(ADMIN, "/api/v1/submissions/SUP-2026-NONE0")
            assert res.status_code == 403
        finally:
            app.config["CONCEAL_NOT_FOUND"] = False

    def test_list(self, api, created):
        res = api.get(REQUESTER, "/api/v1/submissions")
        assert res.get_json()["total"] == 1
        res = api.get(("nobody@nhs.net",), "/api/v1/submissions")
        assert res.get_json() == {"items": [], "total": 0}

    def test_list_stage_filter_accepts_aliases(self, api, created):
        api.post(PBP, f"/api/v1/reviews/pbp/{created}", {"decision": "approved"})
        api.post(PROCUREMENT, f"/api/v1/reviews/procurement/{created}", {"decision": "approved_standard"})

        res = api.get(ADMIN, "/api/v1/submissions?stage=ap")
        assert res.status_code == 200
        assert [s["submissionId"] for s in res.get_json()["items"]] == [created]
        assert api.get(ADMIN, "/api/v1/submissions?stage=AP_CONTROL").get_json()["total"] == 1
        assert api.get(ADMIN, "/api/v1/submissions?stage=pbp").get_json()["total"] == 0

    def test_list_unknown_stage(self, api, created):
        res = api.get(ADMIN, "/api/v1/submissions?stage=legal")
        assert res.status_code == 400
        assert "stage" in res.get_json()["details"]

    def test_reviewer_cannot_reassign_supplier_contact(self, api, created):
        res = api.put(PBP, f"/api/v1/submissions/{created}", {"supplierContactEmail": "pat.pbp@nhs.net"})
        assert res.status_code == 403
        body = api.get(REQUESTER, f"/api/v1/submissions/{created}").get_json()
        assert body["supplierContactEmail"] == SUPPLIER_EMAIL

    def test_update(self, api, created):
        res = api.put(REQUESTER, f"/api/v1/submissions/{created}", {
            "department": "Estates",
            "currentStage": "ap_control",
            "expectedVersion": 1,
        })
        assert res.status_code == 200
        body = res.get_json()
        assert body["requesterDepartment"] == "Estates"
        assert body["currentStage"] == "pbp"
        assert body["version"] == 2

    def test_update_stale_version(self, api, created):
        api.put(REQUESTER, f"/api/v1/submissions/{created}", {"department": "Estates"})
        res = api.put(REQUESTER, f"/api/v1/submissions/{created}", {"department": "HR", "expectedVersion": 1})
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_VERSION"

    def test_security_headers(self, api, created):
        res = api.get(REQUESTER, f"/api/v1/submissions/{created}")
        assert res.headers["X-Content-Type-Options"] == "nosniff"
        assert res.headers["Cache-Control"] == "no-store"
        assert res.headers["X-Request-ID"]


class TestReviewFlow:
    def test_scenario_pbp_then_wrong_role(self, api, created):
        res = api.post(PBP, f"/api/v1/reviews/pbp/{created}", {"decision": "approved", "comments": "ok"})
        assert res.status_code == 200
        body = res.get_json()
        assert body["currentStage"] == "procurement"
        assert body["status"] == "pbp_approved"
        assert body["statusLabel"] == "Approved by PBP, awaiting Procurement"

        res = api.post(PBP, f"/api/v1/reviews/procurement/{created}", {"decision": "approved"})
        assert res.status_code == 403

    def test_decision_required(self, api, created):
        res = api.post(PBP, f"/api/v1/reviews/pbp/{created}", {})
        assert res.status_code == 400

    def test_stage_mismatch_is_conflict(self, api, created):
        res = api.post(ADMIN, f"/api/v1/reviews/opw/{created}", {"decision": "approved"})
        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == "ERR_CONFLICT_STATE"
        assert body["details"]["currentStage"] == "pbp"

    def test_rejected_then_locked(self, api, created):
        res = api.post(PBP, f"/api/v1/reviews/pbp/{created}",
                       {"decision": "rejected", "rejectionReason": "Supplier already onboarded"})
        assert res.get_json()["status"] == "rejected"

        res = api.post(ADMIN, f"/api/v1/reviews/pbp/{created}", {"decision": "approved"})
        assert res.status_code == 409

        body = api.get(REQUESTER, f"/api/v1/submissions/{created}").get_json()
        assert body["rejection"]["rejectionReason"] == "Supplier already onboarded"

    def test_queue(self, api, created):
        res = api.get(PBP, "/api/v1/reviews/pbp/queue")
        assert res.status_code == 200
        body = res.get_json()
        assert body["total"] == 1
        assert body["items"][0]["submissionId"] == created

        assert api.get(OPW, "/api/v1/reviews/pbp/queue").status_code == 403

    def test_permissions_endpoint(self, api, created):
        body = api.get(PBP, f"/api/v1/submissions/{created}/permissions").get_json()
        assert body["stages"]["pbp"]["canReview"] is True
        body = api.get(REQUESTER, f"/api/v1/submissions/{created}/permissions").get_json()
        assert body["isOwner"] is True
        assert body["stages"]["pbp"]["canReview"] is False

    def test_contract_exchange_and_supplier_view(self, api, created):
        api.post(PBP, f"/api/v1/reviews/pbp/{created}", {"decision": "approved"})
        api.post(PROCUREMENT, f"/api/v1/reviews/procurement/{created}", {"decision": "approved"})
        api.post(OPW, f"/api/v1/reviews/opw/{created}", {"decision": "outside_ir35"})

        res = api.post(CONTRACT, f"/api/v1/submissions/{created}/exchanges", {"message": "Draft attached"})
        assert res.status_code == 201
        assert res.get_json()["senderRole"] == "contract_drafter"

        supplier = (SUPPLIER_EMAIL,)
        res = api.post(supplier, f"/api/v1/submissions/{created}/exchanges", {"message": "Looks good"})
        assert res.status_code == 201

        body = api.get(supplier, f"/api/v1/submissions/{created}").get_json()
        assert body["currentStage"] == "contract"
        assert [e["message"] for e in body["contractDrafter"]["exchanges"]] == ["Draft attached", "Looks good"]


class TestAuditAndUtilities:
    def test_audit_trail(self, api, created):
        api.post(PBP, f"/api/v1/reviews/pbp/{created}", {"decision": "approved"})
        res = api.get(REQUESTER, f"/api/v1/audit/{created}")
        assert res.status_code == 200
        assert [e["action"] for e in res.get_json()] == ["SUBMISSION_CREATED", "PBP_REVIEW_APPROVED"]

    def test_audit_trail_requires_access(self, api, created):
        assert api.get(("nobody@nhs.net",), f"/api/v1/audit/{created}").status_code == 403

    def test_vendor_check(self, api, created):
        res = api.get(REQUESTER, "/api/v1/vendors/check?companyName=ACME%20SUPPLIES%20LIMITED")
        assert res.status_code == 200
        assert res.get_json()["isDuplicate"] is True

    def test_vendor_check_requires_name(self, api):
        assert api.get(REQUESTER, "/api/v1/vendors/check").status_code == 400

    def test_duplicate_check(self, api, created):
        res = api.post(REQUESTER, f"/api/v1/submissions/{created}/duplicate-check")
        assert res.status_code == 200
        assert res.get_json() == {"isDuplicate": False, "matches": []}

    def test_unknown_api_route(self, client):
        res = client.get("/api/v1/does-not-exist")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"
