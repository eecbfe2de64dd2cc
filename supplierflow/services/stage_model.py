"""
Stage Model — workflow stages, status vocabulary, and transitions.

Table-driven: adding a stage means extending the tables below; the
authorization evaluator and work-queue resolver never change.

Tables:
    STAGE_ROLES          stage → Role required to review it
    STATUS_VOCABULARY    stage → status codes that mean "awaiting this stage"
    STATUS_MARKERS       stage → substrings that tie a legacy status to a stage
    TRANSITIONS          (stage, decision) → Transition(status, stage)
    REVIEW_FIELDS        stage → Submission column holding the review payload

Unknown stages resolve to no role and an empty vocabulary, which makes
review checks deny and queues come back empty (fail-closed).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from supplierflow.services.role_registry import Role


class Stage(str, enum.Enum):
    PBP = "pbp"
    PROCUREMENT = "procurement"
    OPW = "opw"
    CONTRACT = "contract"
    AP_CONTROL = "ap_control"
    # Terminal marker for fully completed submissions; reviewed by nobody.
    COMPLETED = "completed"


STAGE_ALIASES = {"ap": Stage.AP_CONTROL}

REVIEW_STAGES = (
    Stage.PBP,
    Stage.PROCUREMENT,
    Stage.OPW,
    Stage.CONTRACT,
    Stage.AP_CONTROL,
)

TERMINAL_STAGES = frozenset({Stage.COMPLETED})

REJECTED = "rejected"
INITIAL_STATUS = "pending_review"
INITIAL_STAGE = Stage.PBP


STAGE_ROLES: dict[Stage, Role] = {
    Stage.PBP: Role.PBP,
    Stage.PROCUREMENT: Role.PROCUREMENT,
    Stage.OPW: Role.OPW,
    Stage.CONTRACT: Role.CONTRACT,
    Stage.AP_CONTROL: Role.AP_CONTROL,
}

STATUS_VOCABULARY: dict[Stage, frozenset[str]] = {
    Stage.PBP: frozenset({"pending_review", "pending_pbp_review", "info_required"}),
    Stage.PROCUREMENT: frozenset({
        "approved",
        "pending_procurement_review",
        "pbp_approved",
        "procurement_info_required",
    }),
    Stage.OPW: frozenset({"pending_opw_review", "procurement_approved_opw"}),
    Stage.CONTRACT: frozenset({
        "pending_contract",
        "opw_complete",
        "contract_sent",
        "contract_negotiating",
    }),
    Stage.AP_CONTROL: frozenset({
        "pending_ap_control",
        "contract_uploaded",
        "contract_approved",
        "ap_control_info_required",
    }),
}

# Legacy integrations sometimes wrote only `status`; these substrings map such
# records back to a stage. Bare "ap" is deliberately absent ("approved").
STATUS_MARKERS: dict[Stage, tuple[str, ...]] = {
    Stage.PBP: ("pbp",),
    Stage.PROCUREMENT: ("procurement",),
    Stage.OPW: ("opw", "ir35"),
    Stage.CONTRACT: ("contract",),
    Stage.AP_CONTROL: ("ap_control",),
}

REVIEW_FIELDS: dict[Stage, str] = {
    Stage.PBP: "pbp_review",
    Stage.PROCUREMENT: "procurement_review",
    Stage.OPW: "opw_review",
    Stage.CONTRACT: "contract_drafter",
    Stage.AP_CONTROL: "ap_review",
}


@dataclass(frozen=True)
class Transition:
    status: str
    stage: Stage


TRANSITIONS: dict[tuple[Stage, str], Transition] = {
    (Stage.PBP, "approved"): Transition("pbp_approved", Stage.PROCUREMENT),
    (Stage.PBP, "info_required"): Transition("info_required", Stage.PBP),

    (Stage.PROCUREMENT, "approved"): Transition("procurement_approved_opw", Stage.OPW),
    (Stage.PROCUREMENT, "approved_standard"): Transition("pending_ap_control", Stage.AP_CONTROL),
    (Stage.PROCUREMENT, "info_required"): Transition("procurement_info_required", Stage.PROCUREMENT),

    # OPW branches on the IR35 determination.
    (Stage.OPW, "outside_ir35"): Transition("pending_contract", Stage.CONTRACT),
    (Stage.OPW, "approved"): Transition("opw_complete", Stage.CONTRACT),
    (Stage.OPW, "approved_no_contract"): Transition("pending_ap_control", Stage.AP_CONTROL),
    (Stage.OPW, "inside_ir35"): Transition("completed_payroll", Stage.COMPLETED),

    (Stage.CONTRACT, "sent"): Transition("contract_sent", Stage.CONTRACT),
    (Stage.CONTRACT, "changes_requested"): Transition("contract_negotiating", Stage.CONTRACT),
    (Stage.CONTRACT, "approved"): Transition("contract_approved", Stage.AP_CONTROL),

    (Stage.AP_CONTROL, "approved"): Transition("completed", Stage.COMPLETED),
    (Stage.AP_CONTROL, "info_required"): Transition("ap_control_info_required", Stage.AP_CONTROL),
}

# Contract-stage decisions that are also negotiation messages.
CONTRACT_EXCHANGE_TYPES: dict[str, str] = {
    "sent": "contract_request",
    "changes_requested": "changes_requested",
    "approved": "contract_approved",
    REJECTED: "contract_rejected",
}

STATUS_LABELS: dict[str, str] = {
    "pending_review": "Awaiting PBP review",
    "pending_pbp_review": "Awaiting PBP review",
    "info_required": "More information requested by PBP",
    "approved": "Approved by PBP",
    "pbp_approved": "Approved by PBP, awaiting Procurement",
    "pending_procurement_review": "Awaiting Procurement review",
    "procurement_info_required": "More information requested by Procurement",
    "procurement_approved_opw": "Approved by Procurement, awaiting OPW panel",
    "pending_opw_review": "Awaiting OPW panel",
    "pending_contract": "Outside IR35, awaiting contract",
    "opw_complete": "OPW complete, awaiting contract",
    "contract_sent": "Agreement sent to supplier",
    "contract_negotiating": "Contract under negotiation",
    "contract_approved": "Contract approved, awaiting AP Control",
    "contract_uploaded": "Contract uploaded, awaiting AP Control",
    "pending_ap_control": "Awaiting AP Control",
    "ap_control_info_required": "More information requested by AP Control",
    "completed": "Completed",
    "completed_payroll": "Inside IR35, routed to payroll",
    REJECTED: "Rejected",
}


def parse_stage(value) -> Stage | None:
    """Resolve a stage name (case-insensitive, legacy aliases allowed)."""
    if isinstance(value, Stage):
        return value
    if not value:
        return None
    key = str(value).strip().lower()
    if key in STAGE_ALIASES:
        return STAGE_ALIASES[key]
    try:
        return Stage(key)
    except ValueError:
        return None


def role_for_stage(stage) -> Role | None:
    resolved = parse_stage(stage)
    if resolved is None:
        return None
    return STAGE_ROLES.get(resolved)


def status_vocabulary_for(stage) -> frozenset[str]:
    resolved = parse_stage(stage)
    if resolved is None:
        return frozenset()
    return STATUS_VOCABULARY.get(resolved, frozenset())


def decisions_for(stage) -> frozenset[str]:
    resolved = parse_stage(stage)
    if resolved not in STAGE_ROLES:
        return frozenset()
    return frozenset({d for (s, d) in TRANSITIONS if s == resolved} | {REJECTED})


def next_transition(stage, decision: str) -> Transition | None:
    """Return where (stage, decision) leads, or None if the table has no row.

    A rejection keeps the submission at the stage it was rejected from.
    """
    resolved = parse_stage(stage)
    if resolved not in STAGE_ROLES:
        return None
    if decision == REJECTED:
        return Transition(REJECTED, resolved)
    return TRANSITIONS.get((resolved, decision))


def derive_access_stages(status: str | None, current_stage: str | None) -> frozenset[Stage]:
    """Stages whose reviewers may see a submission in this position.

    Either signal is enough: a status in the stage's vocabulary or containing
    one of its markers, or `current_stage` naming the stage.
    """
    status_key = (status or "").strip().lower()
    stages = set()
    for stage in REVIEW_STAGES:
        if status_key and (
            status_key in STATUS_VOCABULARY[stage]
            or any(marker in status_key for marker in STATUS_MARKERS[stage])
        ):
            stages.add(stage)
    parsed = parse_stage(current_stage)
    if parsed in STAGE_ROLES:
        stages.add(parsed)
    return frozenset(stages)


def label_for_status(status: str | None) -> str:
    if not status:
        return ""
    return STATUS_LABELS.get(status, status.replace("_", " ").capitalize())


def rules_table() -> dict:
    """Serialisable copy of the stage tables for the advisory client guard."""
    return {
        "stages": [s.value for s in REVIEW_STAGES],
        "aliases": {alias: stage.value for alias, stage in STAGE_ALIASES.items()},
        "stageRoles": {s.value: r.value for s, r in STAGE_ROLES.items()},
        "statusVocabulary": {s.value: sorted(v) for s, v in STATUS_VOCABULARY.items()},
        "statusMarkers": {s.value: list(m) for s, m in STATUS_MARKERS.items()},
        "decisions": {s.value: sorted(decisions_for(s)) for s in REVIEW_STAGES},
    }
