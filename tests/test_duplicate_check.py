"""
Duplicate supplier detection tests.
"""

import pytest

from supplierflow.core.exceptions import AccessDenied, ValidationError
from supplierflow.models.audit import AuditLog
from supplierflow.services import duplicate_service as dup
from supplierflow.services import submission_service as svc


class TestNormalizeCompanyName:
    @pytest.mark.parametrize("raw, expected", [
        ("Acme Supplies Ltd", "acme supplies"),
        ("ACME SUPPLIES LIMITED", "acme supplies"),
        ("Acme Supplies Ltd.", "acme supplies"),
        ("Acme & Sons Co Ltd", "acme sons"),
        ("", ""),
        (None, ""),
    ])
    def test_normalize(self, raw, expected):
        assert dup.normalize_company_name(raw) == expected


class TestFindDuplicates:
    def test_match_by_crn_first(self, new_submission):
        sid = new_submission(companyName="Different Name plc", vatNumber="GB999999999")
        matches = dup.find_duplicates("Unrelated", "GB111111111", "01234567")
        assert matches == [{
            "vendorReference": sid,
            "companyName": "Different Name plc",
            "crn": "01234567",
            "vatNumber": "GB999999999",
            "matchType": "crn",
        }]

    def test_match_by_vat_ignores_prefix_and_spaces(self, new_submission):
        new_submission(crn="87654321", vatNumber="GB 123 456 789")
        matches = dup.find_duplicates("Other", "123456789", None)
        assert [m["matchType"] for m in matches] == ["vat"]

    def test_match_by_name(self, new_submission):
        new_submission(crn="87654321", vatNumber="GB555555555")
        matches = dup.find_duplicates("acme supplies limited")
        assert [m["matchType"] for m in matches] == ["name"]

    def test_no_inputs(self, new_submission):
        new_submission()
        assert dup.find_duplicates(None, None, None) == []

    def test_check_vendor_requires_name(self):
        with pytest.raises(ValidationError):
            dup.check_vendor("  ")

    def test_check_vendor(self, new_submission):
        new_submission()
        result = dup.check_vendor("Acme Supplies")
        assert result["isDuplicate"] is True


class TestFlagDuplicates:
    def test_flags_without_touching_workflow(self, new_submission, requester):
        first = new_submission()
        second = new_submission()

        result = dup.flag_duplicates(requester, second)
        assert result["isDuplicate"] is True
        assert [m["vendorReference"] for m in result["matches"]] == [first]

        sub = svc.load_submission(second)
        assert sub.is_duplicate_flagged is True
        assert (sub.status, sub.current_stage) == ("pending_review", "pbp")
        assert AuditLog.query.filter_by(action="DUPLICATE_CHECK").count() == 1

    def test_unique_submission_not_flagged(self, new_submission, requester):
        sid = new_submission()
        assert dup.flag_duplicates(requester, sid) == {"isDuplicate": False, "matches": []}
        assert svc.load_submission(sid).is_duplicate_flagged is False

    def test_outsider_denied(self, new_submission, outsider):
        sid = new_submission()
        with pytest.raises(AccessDenied):
            dup.flag_duplicates(outsider, sid)
