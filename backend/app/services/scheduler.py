"""
Execution scheduler: plan an audit of a restaurant against a template and
read executions back with their derived, time-dependent fields.
"""
import logging
from collections import defaultdict
from datetime import datetime

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import AuthorizationContext, require_manager
from app.config import settings
from app.errors import NotFoundError, ValidationError
from app.models.execution import ACTIVE_STATUSES, EXECUTION_STATUSES, AuditExecution
from app.schemas.execution import ExecutionCreate
from app.services import lifecycle
from app.services.directory import get_restaurant, get_user
from app.services.notifications import Notifier, notify
from app.services.templates import get_template, load_items

logger = logging.getLogger(__name__)


def _restrict_viewer(q, ctx: AuthorizationContext):
    if ctx.role == "viewer" and ctx.restaurant_id is not None:
        q = q.where(AuditExecution.restaurant_id == ctx.restaurant_id)
    return q


async def schedule_execution(
    s: AsyncSession,
    ctx: AuthorizationContext,
    data: ExecutionCreate,
    notifier: Notifier,
    now: datetime | None = None,
) -> AuditExecution:
    require_manager(ctx, "audit scheduling")
    now = now or datetime.utcnow()

    template = await get_template(s, ctx, data.template_id)
    if not template.is_active:
        raise ValidationError(f"Audit template {template.id} is not active")
    restaurant = await get_restaurant(s, ctx, data.restaurant_id)
    inspector = await get_user(s, ctx, data.inspector_id, must_be_active=True)

    if data.scheduled_date.date() < now.date():
        raise ValidationError("scheduled_date must not be before today")

    items = (await load_items(s, [template.id]))[template.id]
    execution = AuditExecution(
        template_id=template.id,
        restaurant_id=restaurant.id,
        inspector_id=inspector.id,
        tenant_id=restaurant.tenant_id,
        scheduled_date=data.scheduled_date,
        status=lifecycle.initial_status(data.scheduled_date, now),
        notes=data.notes,
        items_snapshot=[item.snapshot() for item in items],
        assigned_by=ctx.user_id,
    )
    s.add(execution)
    await s.commit()
    logger.info(
        "Audit %s scheduled: template %s at restaurant %s for inspector %s on %s (%s)",
        execution.id, template.id, restaurant.id, inspector.id,
        execution.scheduled_date.isoformat(), execution.status,
    )

    await notify(notifier, "audit.scheduled", inspector.id, {
        "execution_id": execution.id,
        "template_name": template.name,
        "restaurant_name": restaurant.name,
        "scheduled_date": execution.scheduled_date.isoformat(),
    })
    return execution


async def get_execution(
    s: AsyncSession,
    ctx: AuthorizationContext,
    execution_id: int,
    *,
    for_update: bool = False,
) -> AuditExecution:
    q = select(AuditExecution).where(
        AuditExecution.id == execution_id,
        AuditExecution.tenant_id == ctx.tenant_id,
    )
    q = _restrict_viewer(q, ctx)
    if for_update:
        q = q.with_for_update()
    execution = (await s.execute(q)).scalar_one_or_none()
    if not execution:
        raise NotFoundError(f"Audit execution {execution_id} not found")
    return execution


async def list_executions(
    s: AsyncSession,
    ctx: AuthorizationContext,
    status: str | None = None,
    restaurant_id: int | None = None,
    inspector_id: int | None = None,
    now: datetime | None = None,
) -> list[AuditExecution]:
    """Tenant executions, filtered on their effective status."""
    now = now or datetime.utcnow()
    q = _restrict_viewer(select(AuditExecution).where(AuditExecution.tenant_id == ctx.tenant_id), ctx)
    if status:
        if status not in EXECUTION_STATUSES:
            raise ValidationError(f"Unknown status '{status}'. Allowed: {list(EXECUTION_STATUSES)}")
        if status == "todo":
            q = q.where(or_(
                AuditExecution.status == "todo",
                and_(AuditExecution.status == "scheduled", AuditExecution.scheduled_date <= now),
            ))
        elif status == "scheduled":
            q = q.where(AuditExecution.status == "scheduled", AuditExecution.scheduled_date > now)
        else:
            q = q.where(AuditExecution.status == status)
    if restaurant_id is not None:
        q = q.where(AuditExecution.restaurant_id == restaurant_id)
    if inspector_id is not None:
        q = q.where(AuditExecution.inspector_id == inspector_id)
    q = q.order_by(AuditExecution.scheduled_date.asc(), AuditExecution.id.asc())
    return list((await s.execute(q)).scalars().all())


async def planning(
    s: AsyncSession,
    ctx: AuthorizationContext,
    now: datetime | None = None,
) -> dict[str, list[AuditExecution]]:
    """Active executions split into today / overdue / upcoming / future."""
    now = now or datetime.utcnow()
    q = _restrict_viewer(
        select(AuditExecution).where(
            AuditExecution.tenant_id == ctx.tenant_id,
            AuditExecution.status.in_(ACTIVE_STATUSES),
        ),
        ctx,
    ).order_by(AuditExecution.scheduled_date.asc(), AuditExecution.id.asc())

    groups: dict[str, list[AuditExecution]] = defaultdict(list)
    for execution in (await s.execute(q)).scalars().all():
        group = lifecycle.planning_group(
            execution.status, execution.scheduled_date, now, settings.PLANNING_UPCOMING_DAYS,
        )
        if group:
            groups[group].append(execution)
    return {name: groups.get(name, []) for name in lifecycle.PLANNING_GROUPS}
