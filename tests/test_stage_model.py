"""
Stage Model tests — stage parsing, vocabularies, transitions, access derivation.
"""

import pytest

from supplierflow.services.role_registry import Role
from supplierflow.services.stage_model import (
    REJECTED,
    STATUS_VOCABULARY,
    Stage,
    decisions_for,
    derive_access_stages,
    label_for_status,
    next_transition,
    parse_stage,
    role_for_stage,
    rules_table,
    status_vocabulary_for,
)


class TestParseStage:
    @pytest.mark.parametrize("raw, expected", [
        ("pbp", Stage.PBP),
        ("OPW", Stage.OPW),
        ("ap", Stage.AP_CONTROL),
        ("ap_control", Stage.AP_CONTROL),
    ])
    def test_known(self, raw, expected):
        assert parse_stage(raw) is expected

    def test_unknown(self):
        assert parse_stage("legal") is None
        assert parse_stage(None) is None


class TestRoleAndVocabulary:
    def test_stage_roles(self):
        assert role_for_stage("pbp") is Role.PBP
        assert role_for_stage("ap") is Role.AP_CONTROL
        assert role_for_stage("completed") is None
        assert role_for_stage("legal") is None

    def test_vocabulary(self):
        assert "pending_review" in status_vocabulary_for("pbp")
        assert "contract_negotiating" in status_vocabulary_for("contract")
        assert status_vocabulary_for("legal") == frozenset()
        assert status_vocabulary_for("completed") == frozenset()

    def test_vocabularies_are_disjoint(self):
        seen = set()
        for vocabulary in STATUS_VOCABULARY.values():
            assert not (seen & vocabulary)
            seen |= vocabulary


class TestTransitions:
    @pytest.mark.parametrize("stage, decision, status, next_stage", [
        ("pbp", "approved", "pbp_approved", Stage.PROCUREMENT),
        ("pbp", "info_required", "info_required", Stage.PBP),
        ("procurement", "approved", "procurement_approved_opw", Stage.OPW),
        ("procurement", "approved_standard", "pending_ap_control", Stage.AP_CONTROL),
        ("opw", "outside_ir35", "pending_contract", Stage.CONTRACT),
        ("opw", "inside_ir35", "completed_payroll", Stage.COMPLETED),
        ("contract", "sent", "contract_sent", Stage.CONTRACT),
        ("contract", "approved", "contract_approved", Stage.AP_CONTROL),
        ("ap_control", "approved", "completed", Stage.COMPLETED),
    ])
    def test_table(self, stage, decision, status, next_stage):
        transition = next_transition(stage, decision)
        assert transition.status == status
        assert transition.stage is next_stage

    def test_reject_keeps_stage(self):
        transition = next_transition("opw", REJECTED)
        assert transition.status == REJECTED
        assert transition.stage is Stage.OPW

    def test_unknown_decision(self):
        assert next_transition("pbp", "approved_standard") is None
        assert next_transition("legal", "approved") is None
        assert next_transition("completed", "approved") is None

    def test_decisions_include_reject(self):
        assert decisions_for("pbp") == frozenset({"approved", "info_required", REJECTED})
        assert decisions_for("completed") == frozenset()

    def test_every_transition_status_is_known_to_next_stage(self):
        for stage in (Stage.PBP, Stage.PROCUREMENT, Stage.OPW, Stage.CONTRACT, Stage.AP_CONTROL):
            for decision in decisions_for(stage) - {REJECTED}:
                transition = next_transition(stage, decision)
                if transition.stage is Stage.COMPLETED:
                    continue
                assert transition.status in STATUS_VOCABULARY[transition.stage]


class TestDeriveAccessStages:
    def test_from_vocabulary(self):
        assert derive_access_stages("pending_review", None) == {Stage.PBP}

    def test_from_marker(self):
        assert Stage.OPW in derive_access_stages("awaiting_ir35_panel", None)

    def test_from_current_stage(self):
        assert derive_access_stages(None, "opw") == {Stage.OPW}

    def test_both_signals_union(self):
        stages = derive_access_stages("pending_ap_control", "procurement")
        assert stages == {Stage.AP_CONTROL, Stage.PROCUREMENT}

    def test_approved_does_not_match_ap_control(self):
        stages = derive_access_stages("approved", None)
        assert Stage.AP_CONTROL not in stages
        assert Stage.PROCUREMENT in stages

    def test_terminal(self):
        assert derive_access_stages("completed", "completed") == frozenset()
        assert derive_access_stages(REJECTED, None) == frozenset()


class TestLabels:
    def test_known_and_fallback(self):
        assert label_for_status("pending_review") == "Awaiting PBP review"
        assert label_for_status("something_new") == "Something new"
        assert label_for_status(None) == ""

    def test_rules_table_shape(self):
        table = rules_table()
        assert table["stageRoles"]["opw"] == "opw"
        assert table["aliases"] == {"ap": "ap_control"}
        assert REJECTED in table["decisions"]["pbp"]
