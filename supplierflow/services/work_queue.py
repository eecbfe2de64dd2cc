"""
Work Queue Resolver — what is waiting for a given review stage.

A submission is queued for a stage only when both signals agree: its status
is in the stage's vocabulary and current_stage names the stage. Results are
FIFO by creation time.
"""

from __future__ import annotations

from sqlalchemy import select

from supplierflow.models import db
from supplierflow.models.submission import Submission
from supplierflow.services.authorization import authorize_role
from supplierflow.services.stage_model import parse_stage, role_for_stage, status_vocabulary_for


def queue_for(ctx, stage) -> list[dict]:
    """Return summaries of submissions awaiting ``stage``.

    Non-admins need the stage role (audited denial otherwise). An unknown
    stage yields an empty list for admins and a denial for everyone else.
    """
    resolved = parse_stage(stage)
    stage_name = resolved.value if resolved else str(stage)
    role = role_for_stage(resolved)

    if not ctx.is_admin:
        authorize_role(ctx, role, f"queue:{stage_name}")

    vocabulary = status_vocabulary_for(resolved)
    if not vocabulary:
        return []

    rows = db.session.execute(
        select(Submission)
        .where(
            Submission.status.in_(sorted(vocabulary)),
            Submission.current_stage == resolved.value,
        )
        .order_by(Submission.created_at.asc(), Submission.id.asc())
    ).scalars().all()
    return [sub.to_summary() for sub in rows]
