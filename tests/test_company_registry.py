"""
Company registry gateway and verification tests.

The gateway is exercised with a mocked requests.Session; no network calls.
"""

from unittest.mock import MagicMock

import pytest
import requests

from supplierflow.core.exceptions import ValidationError
from supplierflow.integrations.company_registry import (
    NOT_FOUND,
    UNAVAILABLE,
    VERIFIED,
    CompanyRegistryGateway,
)
from supplierflow.models.audit import AuditLog
from supplierflow.services import company_service
from supplierflow.services import submission_service as svc

COMPANY_BODY = {
    "company_name": "ACME SUPPLIES LTD",
    "company_number": "01234567",
    "company_status": "active",
    "type": "ltd",
    "date_of_creation": "2001-04-01",
    "registered_office_address": {"address_line_1": "1 High Street", "postal_code": "LS1 1AA"},
}


def _response(status_code, body=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = body or {}
    return resp


def _gateway(*responses):
    session = MagicMock()
    session.get.side_effect = list(responses)
    return CompanyRegistryGateway("https://registry.test/", "key", session=session, retry_backoff=(0,)), session


class TestGateway:
    def test_verified(self):
        gw, session = _gateway(_response(200, COMPANY_BODY))
        result = gw.lookup("01234567")

        assert result.status == VERIFIED
        assert result.verified is True
        assert result.company["companyName"] == "ACME SUPPLIES LTD"
        assert result.company["registeredOfficeAddress"]["postalCode"] == "LS1 1AA"
        session.get.assert_called_once_with(
            "https://registry.test/company/01234567", auth=("key", ""), timeout=10,
        )

    def test_not_found_is_final(self):
        gw, session = _gateway(_response(404))
        result = gw.lookup("01234567")
        assert result.status == NOT_FOUND
        assert result.verified is False
        assert session.get.call_count == 1

    def test_server_error_retried_then_unavailable(self):
        gw, session = _gateway(_response(502), _response(503))
        result = gw.lookup("01234567")
        assert result.status == UNAVAILABLE
        assert result.verified is None
        assert result.status_code == 503
        assert session.get.call_count == 2

    def test_retry_recovers(self):
        gw, _ = _gateway(requests.ConnectionError("reset"), _response(200, COMPANY_BODY))
        assert gw.lookup("01234567").status == VERIFIED

    def test_client_error_not_retried(self):
        gw, session = _gateway(_response(401))
        result = gw.lookup("01234567")
        assert result.status == UNAVAILABLE
        assert session.get.call_count == 1

    def test_not_configured(self):
        gw = CompanyRegistryGateway(None, None)
        assert gw.configured is False
        assert gw.lookup("01234567").status == UNAVAILABLE


class TestVerifyCompany:
    @pytest.fixture()
    def registry_session(self, app):
        """Swap a mocked session into the app's gateway for one test."""
        gateway = app.extensions["company_registry"]
        original_session, original_backoff = gateway._session, gateway.retry_backoff
        session = MagicMock()
        gateway._session = session
        gateway.retry_backoff = (0,)
        yield session
        gateway._session = original_session
        gateway.retry_backoff = original_backoff

    def test_lookup_validates_crn(self):
        with pytest.raises(ValidationError):
            company_service.lookup_company("12AB")

    @pytest.mark.parametrize("responses, expected", [
        ([_response(200, COMPANY_BODY)], True),
        ([_response(404)], False),
        ([_response(500), _response(500)], None),
    ])
    def test_sets_tri_state_flag(self, new_submission, requester, registry_session, responses, expected):
        registry_session.get.side_effect = responses
        sid = new_submission()

        company_service.verify_company(requester, sid)
        sub = svc.load_submission(sid)
        assert sub.company_verified is expected
        assert sub.status == "pending_review"
        assert AuditLog.query.filter_by(action="COMPANY_VERIFIED").count() == 1

    def test_submission_without_crn(self, new_submission, requester):
        sid = new_submission(crn=None)
        with pytest.raises(ValidationError):
            company_service.verify_company(requester, sid)

    def test_lookup_endpoint(self, client, registry_session, auth_headers):
        registry_session.get.side_effect = [_response(404)]
        res = client.get("/api/v1/companies-house/01234567", headers=auth_headers("a@nhs.net"))
        assert res.status_code == 404
        assert res.get_json()["reference"] == "01234567"

    def test_lookup_endpoint_unavailable(self, client, registry_session, auth_headers):
        registry_session.get.side_effect = [_response(503), _response(503)]
        res = client.get("/api/v1/companies-house/01234567", headers=auth_headers("a@nhs.net"))
        assert res.status_code == 503
        assert "503" not in res.get_json()["error"]
