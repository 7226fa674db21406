"""
Corrective action tracker.

    assigned -> in_progress -> completed -> verified
                               completed -> archived

An action either remedies a non-conformity or stands alone; both are the same
entity with an optional finding reference.
"""
import logging
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import AuthorizationContext, require_manager
from app.errors import ConflictError, NotFoundError, ValidationError
from app.models.corrective_action import (
    ACTION_PRIORITIES,
    ACTION_STATUSES,
    CLOSED_ACTION_STATUSES,
    CorrectiveAction,
)
from app.models.execution import AuditExecution
from app.models.finding import NonConformity
from app.schemas.corrective_action import ActionCreate, ActionUpdate
from app.services import lifecycle
from app.services.directory import get_restaurant, get_user
from app.services.notifications import Notifier, notify

logger = logging.getLogger(__name__)

_EDIT_FIELDS = ("action_description", "assigned_to", "due_date", "priority", "notes")


def _restrict_viewer(q, ctx: AuthorizationContext):
    if ctx.role == "viewer" and ctx.restaurant_id is not None:
        q = q.where(CorrectiveAction.restaurant_id == ctx.restaurant_id)
    return q


def _check_priority(priority: str) -> str:
    if priority not in ACTION_PRIORITIES:
        raise ValidationError(f"Unknown priority '{priority}'. Allowed: {list(ACTION_PRIORITIES)}")
    return priority


async def _finding_in_tenant(s: AsyncSession, ctx: AuthorizationContext, nc_id: int) -> tuple[NonConformity, int]:
    row = (await s.execute(
        select(NonConformity, AuditExecution.restaurant_id)
        .join(AuditExecution, AuditExecution.id == NonConformity.execution_id)
        .where(NonConformity.id == nc_id, AuditExecution.tenant_id == ctx.tenant_id)
    )).first()
    if not row:
        raise NotFoundError(f"Non-conformity {nc_id} not found")
    return row[0], row[1]


async def get_action(
    s: AsyncSession,
    ctx: AuthorizationContext,
    action_id: int,
    *,
    for_update: bool = False,
) -> CorrectiveAction:
    q = select(CorrectiveAction).where(
        CorrectiveAction.id == action_id,
        CorrectiveAction.tenant_id == ctx.tenant_id,
    )
    q = _restrict_viewer(q, ctx)
    if for_update:
        q = q.with_for_update()
    action = (await s.execute(q)).scalar_one_or_none()
    if not action:
        raise NotFoundError(f"Corrective action {action_id} not found")
    return action


async def create_action(
    s: AsyncSession,
    ctx: AuthorizationContext,
    data: ActionCreate,
    notifier: Notifier,
    now: datetime | None = None,
) -> CorrectiveAction:
    require_manager(ctx, "corrective action assignment")
    now = now or datetime.utcnow()

    assignee = await get_user(s, ctx, data.assigned_to, must_be_active=True)
    priority = _check_priority(data.priority or "normal")

    nc = None
    restaurant_id = data.restaurant_id
    if data.non_conformity_id is not None:
        nc, nc_restaurant_id = await _finding_in_tenant(s, ctx, data.non_conformity_id)
        if restaurant_id is None:
            restaurant_id = nc_restaurant_id
        elif restaurant_id != nc_restaurant_id:
            raise ValidationError("restaurant_id does not match the restaurant of the non-conformity")
    if restaurant_id is not None:
        await get_restaurant(s, ctx, restaurant_id)

    due_date = data.due_date or lifecycle.default_due_date(priority, now)
    if due_date.date() < now.date():
        raise ValidationError("due_date must not be before today")

    action = CorrectiveAction(
        tenant_id=ctx.tenant_id,
        restaurant_id=restaurant_id,
        non_conformity_id=nc.id if nc else None,
        action_description=data.action_description.strip(),
        assigned_to=assignee.id,
        created_by=ctx.user_id,
        priority=priority,
        due_date=due_date,
        status="assigned",
        notes=data.notes,
    )
    s.add(action)
    if nc is not None and nc.status == "open":
        nc.status = "in_progress"
    await s.commit()
    logger.info(
        "Corrective action %s assigned to user %s (priority %s, due %s)",
        action.id, assignee.id, priority, due_date.date().isoformat(),
    )

    await notify(notifier, "action.assigned", assignee.id, {
        "action_id": action.id,
        "description": action.action_description,
        "priority": action.priority,
        "due_date": action.due_date.isoformat(),
    })
    return action


def change_status(
    ctx: AuthorizationContext,
    action: CorrectiveAction,
    new_status: str,
    notes: str | None = None,
    completion_date: datetime | None = None,
    now: datetime | None = None,
) -> None:
    """Apply one forward transition and stamp its completion or verification fields."""
    if new_status not in ACTION_STATUSES:
        raise ValidationError(f"Unknown status '{new_status}'. Allowed: {list(ACTION_STATUSES)}")
    if not action.can_transition_to(new_status):
        allowed = action.TRANSITIONS.get(action.status, [])
        raise ValidationError(
            f"Cannot transition from '{action.status}' to '{new_status}'. Allowed: {allowed}"
        )
    now = now or datetime.utcnow()
    old_status = action.status
    action.status = new_status
    if new_status == "completed":
        action.completion_date = completion_date or now
        if notes is not None:
            action.completion_notes = notes
    elif new_status == "verified":
        action.verified_by = ctx.user_id
        action.verification_date = now
        if notes is not None:
            action.verification_notes = notes
    logger.info("Corrective action %s: %s -> %s", action.id, old_status, new_status)


async def update_action(
    s: AsyncSession,
    ctx: AuthorizationContext,
    action_id: int,
    data: ActionUpdate,
    now: datetime | None = None,
) -> CorrectiveAction:
    require_manager(ctx, "corrective action updates")
    action = await get_action(s, ctx, action_id, for_update=True)
    changes = data.model_dump(exclude_unset=True)

    edits = {k: changes[k] for k in _EDIT_FIELDS if k in changes}
    if edits:
        if not action.is_editable:
            raise ConflictError(f"Corrective action {action.id} is {action.status} and can no longer be edited")
        if edits.get("action_description") is not None:
            action.action_description = edits["action_description"].strip()
        if edits.get("assigned_to") is not None:
            assignee = await get_user(s, ctx, edits["assigned_to"], must_be_active=True)
            action.assigned_to = assignee.id
        if edits.get("due_date") is not None:
            action.due_date = edits["due_date"]
        if edits.get("priority") is not None:
            action.priority = _check_priority(edits["priority"])
        if "notes" in edits:
            action.notes = edits["notes"]

    new_status = changes.get("status")
    if new_status is not None and new_status != action.status:
        notes = data.verification_notes if new_status == "verified" else data.completion_notes
        change_status(ctx, action, new_status, notes, data.completion_date, now)
    else:
        # notes may be amended without a transition
        if "completion_notes" in changes:
            action.completion_notes = data.completion_notes
        if "verification_notes" in changes:
            action.verification_notes = data.verification_notes

    await s.commit()
    return action


async def archive_action(s: AsyncSession, ctx: AuthorizationContext, action_id: int) -> CorrectiveAction:
    require_manager(ctx, "corrective action archival")
    action = await get_action(s, ctx, action_id, for_update=True)
    if action.status != "completed":
        raise ConflictError(f"Only completed actions can be archived (status is '{action.status}')")
    change_status(ctx, action, "archived")
    await s.commit()
    return action


async def list_actions(
    s: AsyncSession,
    ctx: AuthorizationContext,
    status: str | None = None,
    assigned_to: int | None = None,
    restaurant_id: int | None = None,
    non_conformity_id: int | None = None,
    overdue_only: bool = False,
    include_archived: bool = False,
    now: datetime | None = None,
) -> list[CorrectiveAction]:
    now = now or datetime.utcnow()
    q = _restrict_viewer(
        select(CorrectiveAction).where(CorrectiveAction.tenant_id == ctx.tenant_id), ctx,
    )
    if status:
        q = q.where(CorrectiveAction.status == status)
    elif not include_archived:
        q = q.where(CorrectiveAction.status != "archived")
    if assigned_to is not None:
        q = q.where(CorrectiveAction.assigned_to == assigned_to)
    if restaurant_id is not None:
        q = q.where(CorrectiveAction.restaurant_id == restaurant_id)
    if non_conformity_id is not None:
        q = q.where(CorrectiveAction.non_conformity_id == non_conformity_id)
    if overdue_only:
        q = q.where(
            CorrectiveAction.due_date < now,
            CorrectiveAction.status.notin_(CLOSED_ACTION_STATUSES),
        )
    q = q.order_by(CorrectiveAction.due_date.asc(), CorrectiveAction.id.asc())
    return list((await s.execute(q)).scalars().all())


async def action_stats(s: AsyncSession, ctx: AuthorizationContext, now: datetime | None = None) -> dict:
    now = now or datetime.utcnow()
    q = _restrict_viewer(
        select(CorrectiveAction.status, CorrectiveAction.priority, func.count())
        .where(CorrectiveAction.tenant_id == ctx.tenant_id)
        .group_by(CorrectiveAction.status, CorrectiveAction.priority),
        ctx,
    )
    by_status = {st: 0 for st in ACTION_STATUSES}
    by_priority = {p: 0 for p in ACTION_PRIORITIES}
    total = 0
    for status, priority, cnt in (await s.execute(q)).all():
        by_status[status] = by_status.get(status, 0) + cnt
        by_priority[priority] = by_priority.get(priority, 0) + cnt
        total += cnt

    overdue = (await s.execute(_restrict_viewer(
        select(func.count()).select_from(CorrectiveAction).where(
            CorrectiveAction.tenant_id == ctx.tenant_id,
            CorrectiveAction.due_date < now,
            CorrectiveAction.status.notin_(CLOSED_ACTION_STATUSES),
        ),
        ctx,
    ))).scalar() or 0
    return {"total": total, "by_status": by_status, "by_priority": by_priority, "overdue": overdue}
