"""
Execution state machine.

    todo | scheduled -> in_progress -> completed -> reviewed

The move into in_progress happens on the first recorded response (see
services.findings); this module handles the explicit transitions and the
score computed on completion.
"""
import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import AuthorizationContext, require_manager
from app.errors import AuthorizationError, ValidationError
from app.middleware.change_log import record_change
from app.models.execution import AuditExecution, AuditResponse
from app.services.scheduler import get_execution

logger = logging.getLogger(__name__)


def transition(execution: AuditExecution, target: str) -> None:
    if not execution.can_transition_to(target):
        allowed = execution.TRANSITIONS.get(execution.status, [])
        raise ValidationError(
            f"Cannot transition from '{execution.status}' to '{target}'. Allowed: {allowed}"
        )
    execution.status = target


def compute_score(snapshot: list[dict], responses: list[AuditResponse]) -> tuple[float, float]:
    """Return (total_score, max_possible_score) over the answered, scorable items.

    Score items add their score out of max_score; yes/no items add 1 per "yes"
    out of 1. Text and photo items do not count.
    """
    by_item = {r.item_id: r for r in responses}
    total = 0.0
    maximum = 0.0
    for item in snapshot:
        response = by_item.get(item["id"])
        if response is None:
            continue
        if item["type"] == "score" and item.get("max_score"):
            total += response.score or 0.0
            maximum += float(item["max_score"])
        elif item["type"] == "yes_no":
            total += 1.0 if response.value == "yes" else 0.0
            maximum += 1.0
    return round(total, 2), round(maximum, 2)


async def load_responses(s: AsyncSession, execution_id: int) -> list[AuditResponse]:
    q = select(AuditResponse).where(AuditResponse.execution_id == execution_id).order_by(AuditResponse.item_id)
    return list((await s.execute(q)).scalars().all())


def missing_required(snapshot: list[dict], responses: list[AuditResponse]) -> list[str]:
    answered = {r.item_id for r in responses}
    return [
        item["question"]
        for item in sorted(snapshot, key=lambda i: i["order"])
        if item.get("is_required", True) and item["id"] not in answered
    ]


async def complete_execution(
    s: AsyncSession,
    ctx: AuthorizationContext,
    execution_id: int,
    now: datetime | None = None,
) -> AuditExecution:
    execution = await get_execution(s, ctx, execution_id, for_update=True)
    if execution.inspector_id != ctx.user_id and not ctx.is_manager:
        raise AuthorizationError("Only the assigned inspector or a manager may complete this audit")
    transition(execution, "completed")

    responses = await load_responses(s, execution.id)
    missing = missing_required(execution.items_snapshot or [], responses)
    if missing:
        raise ValidationError(f"Required items have no response: {'; '.join(missing)}")

    execution.total_score, execution.max_possible_score = compute_score(execution.items_snapshot or [], responses)
    execution.completed_date = now or datetime.utcnow()
    await s.commit()
    logger.info(
        "Audit %s completed with score %s/%s",
        execution.id, execution.total_score, execution.max_possible_score,
    )
    return execution


async def review_execution(
    s: AsyncSession,
    ctx: AuthorizationContext,
    execution_id: int,
    notes: str | None = None,
    now: datetime | None = None,
) -> AuditExecution:
    require_manager(ctx, "audit reviews")
    execution = await get_execution(s, ctx, execution_id, for_update=True)
    transition(execution, "reviewed")
    execution.reviewed_at = now or datetime.utcnow()
    execution.reviewed_by = ctx.user_id
    if notes:
        execution.notes = f"{execution.notes}\n{notes}" if execution.notes else notes
    await record_change(
        s, ctx, module="audits", action="review",
        entity_type="audit_executions", entity_id=execution.id,
        changes={"status": ("completed", "reviewed")},
    )
    await s.commit()
    logger.info("Audit %s reviewed by user %s", execution.id, ctx.user_id)
    return execution
