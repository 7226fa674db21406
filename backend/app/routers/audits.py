"""
Audit executions — /audits
Scheduling, planning, responses and the execution lifecycle.
"""
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import AuthorizationContext, get_auth_context
from app.database import get_session
from app.models.execution import AuditExecution
from app.models.template import AuditTemplate
from app.routers.non_conformities import non_conformity_outs
from app.schemas.common import Envelope, ListEnvelope
from app.schemas.execution import (
    ExecutionCreate,
    ExecutionDetailOut,
    ExecutionOut,
    PlanningOut,
    ResponseIn,
    ResponseOut,
    ResponseResultOut,
    ReviewRequest,
    SnapshotItemOut,
)
from app.services import executions as state_machine
from app.services import findings, lifecycle, scheduler
from app.services.directory import restaurant_names, user_labels
from app.services.notifications import Notifier, get_notifier

router = APIRouter(prefix="/audits", tags=["Audits"])


# ── helpers ──

async def _execution_outs(
    s: AsyncSession,
    ctx: AuthorizationContext,
    executions: list[AuditExecution],
    now: datetime,
) -> list[ExecutionOut]:
    """Build ExecutionOut list with batch lookups instead of N+1."""
    if not executions:
        return []
    template_ids = {e.template_id for e in executions}
    templates = {
        t.id: t for t in (await s.execute(
            select(AuditTemplate).where(AuditTemplate.id.in_(template_ids))
        )).scalars().all()
    }
    restaurants = await restaurant_names(s, {e.restaurant_id for e in executions})
    inspectors = await user_labels(s, {e.inspector_id for e in executions})

    outs = []
    for e in executions:
        t = templates.get(e.template_id)
        outs.append(ExecutionOut(
            id=e.id, template_id=e.template_id,
            template_name=t.name if t else None,
            template_category=t.category if t else None,
            restaurant_id=e.restaurant_id, restaurant_name=restaurants.get(e.restaurant_id),
            inspector_id=e.inspector_id, inspector_name=inspectors.get(e.inspector_id),
            tenant_id=e.tenant_id, scheduled_date=e.scheduled_date,
            status=e.status,
            effective_status=lifecycle.effective_status(e.status, e.scheduled_date, now),
            is_overdue=lifecycle.execution_is_overdue(e.status, e.scheduled_date, now),
            allowed_actions=lifecycle.allowed_actions(e.status, e.inspector_id, ctx),
            notes=e.notes, started_at=e.started_at, completed_date=e.completed_date,
            reviewed_at=e.reviewed_at, reviewed_by=e.reviewed_by,
            total_score=e.total_score, max_possible_score=e.max_possible_score,
            assigned_by=e.assigned_by, created_at=e.created_at, updated_at=e.updated_at,
        ))
    return outs


async def _execution_detail(s: AsyncSession, ctx: AuthorizationContext, e: AuditExecution) -> ExecutionDetailOut:
    now = datetime.utcnow()
    base = (await _execution_outs(s, ctx, [e], now))[0]
    responses = await state_machine.load_responses(s, e.id)
    nc_rows = await findings.list_non_conformities(s, ctx, execution_id=e.id)
    return ExecutionDetailOut(
        **base.model_dump(),
        items=[SnapshotItemOut(**i) for i in sorted(e.items_snapshot or [], key=lambda i: i["order"])],
        responses=[ResponseOut.model_validate(r) for r in responses],
        non_conformities=await non_conformity_outs(s, nc_rows),
    )


# ═══════════════════ LIST / PLANNING ═══════════════════

@router.get("", response_model=ListEnvelope[ExecutionOut], summary="List audit executions")
async def list_executions(
    status: str | None = Query(None, description="todo / scheduled / in_progress / completed / reviewed"),
    restaurant_id: int | None = Query(None),
    inspector_id: int | None = Query(None),
    ctx: AuthorizationContext = Depends(get_auth_context),
    s: AsyncSession = Depends(get_session),
):
    now = datetime.utcnow()
    executions = await scheduler.list_executions(
        s, ctx, status=status, restaurant_id=restaurant_id, inspector_id=inspector_id, now=now,
    )
    return {"data": await _execution_outs(s, ctx, executions, now)}


@router.get("/planning", response_model=Envelope[PlanningOut], summary="Planning groups of active audits")
async def planning(
    ctx: AuthorizationContext = Depends(get_auth_context),
    s: AsyncSession = Depends(get_session),
):
    now = datetime.utcnow()
    groups = await scheduler.planning(s, ctx, now=now)
    return {"data": PlanningOut(**{
        name: await _execution_outs(s, ctx, rows, now) for name, rows in groups.items()
    })}


# ═══════════════════ SCHEDULE / GET ═══════════════════

@router.post("", response_model=Envelope[ExecutionDetailOut], status_code=201, summary="Schedule an audit")
async def schedule_execution(
    body: ExecutionCreate,
    ctx: AuthorizationContext = Depends(get_auth_context),
    s: AsyncSession = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    execution = await scheduler.schedule_execution(s, ctx, body, notifier)
    return {"data": await _execution_detail(s, ctx, execution)}


@router.get("/{execution_id}", response_model=Envelope[ExecutionDetailOut], summary="Get an audit execution")
async def get_execution(
    execution_id: int,
    ctx: AuthorizationContext = Depends(get_auth_context),
    s: AsyncSession = Depends(get_session),
):
    execution = await scheduler.get_execution(s, ctx, execution_id)
    return {"data": await _execution_detail(s, ctx, execution)}


# ═══════════════════ LIFECYCLE ═══════════════════

@router.post("/{execution_id}/responses", response_model=Envelope[ResponseResultOut], summary="Record a response")
async def record_response(
    execution_id: int,
    body: ResponseIn,
    ctx: AuthorizationContext = Depends(get_auth_context),
    s: AsyncSession = Depends(get_session),
):
    execution, response, nc = await findings.record_response(s, ctx, execution_id, body)
    nc_out = None
    if nc is not None:
        nc_out = (await non_conformity_outs(s, [(nc, execution.restaurant_id)]))[0]
    return {"data": ResponseResultOut(
        response=ResponseOut.model_validate(response),
        execution_status=execution.status,
        non_conformity=nc_out,
    )}


@router.post("/{execution_id}/complete", response_model=Envelope[ExecutionDetailOut], summary="Complete an audit")
async def complete_execution(
    execution_id: int,
    ctx: AuthorizationContext = Depends(get_auth_context),
    s: AsyncSession = Depends(get_session),
):
    execution = await state_machine.complete_execution(s, ctx, execution_id)
    return {"data": await _execution_detail(s, ctx, execution)}


@router.post("/{execution_id}/review", response_model=Envelope[ExecutionDetailOut], summary="Review a completed audit")
async def review_execution(
    execution_id: int,
    body: ReviewRequest | None = None,
    ctx: AuthorizationContext = Depends(get_auth_context),
    s: AsyncSession = Depends(get_session),
):
    notes = body.notes if body else None
    execution = await state_machine.review_execution(s, ctx, execution_id, notes=notes)
    return {"data": await _execution_detail(s, ctx, execution)}
