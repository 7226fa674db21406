"""
Corrective actions — /corrective-actions
Remediation tasks, standalone or raised against a non-conformity.
"""
import io
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import AuthorizationContext, get_auth_context
from app.database import get_session
from app.models.corrective_action import CorrectiveAction
from app.schemas.common import Envelope, ListEnvelope
from app.schemas.corrective_action import ActionCreate, ActionOut, ActionStats, ActionUpdate
from app.services import corrective_actions as tracker
from app.services import lifecycle
from app.services.directory import restaurant_names, user_labels
from app.services.notifications import Notifier, get_notifier

router = APIRouter(prefix="/corrective-actions", tags=["Corrective actions"])


# ── helpers ──

async def _action_outs(s: AsyncSession, actions: list[CorrectiveAction], now: datetime) -> list[ActionOut]:
    if not actions:
        return []
    restaurants = await restaurant_names(s, {a.restaurant_id for a in actions})
    users = await user_labels(s, {a.assigned_to for a in actions})
    return [
        ActionOut(
            id=a.id, tenant_id=a.tenant_id,
            restaurant_id=a.restaurant_id, restaurant_name=restaurants.get(a.restaurant_id),
            non_conformity_id=a.non_conformity_id,
            action_description=a.action_description,
            assigned_to=a.assigned_to, assigned_to_name=users.get(a.assigned_to),
            created_by=a.created_by, priority=a.priority, due_date=a.due_date,
            status=a.status,
            is_overdue=lifecycle.action_is_overdue(a.status, a.due_date, now),
            notes=a.notes, completion_date=a.completion_date,
            completion_notes=a.completion_notes, verification_notes=a.verification_notes,
            verified_by=a.verified_by, verification_date=a.verification_date,
            created_at=a.created_at, updated_at=a.updated_at,
        )
        for a in actions
    ]


async def _one(s: AsyncSession, action: CorrectiveAction) -> dict:
    return {"data": (await _action_outs(s, [action], datetime.utcnow()))[0]}


# ═══════════════════ LIST / STATS ═══════════════════

@router.get("", response_model=ListEnvelope[ActionOut], summary="List corrective actions")
async def list_actions(
    status: str | None = Query(None),
    assigned_to: int | None = Query(None),
    restaurant_id: int | None = Query(None),
    non_conformity_id: int | None = Query(None),
    overdue_only: bool = Query(False),
    include_archived: bool = Query(False),
    ctx: AuthorizationContext = Depends(get_auth_context),
    s: AsyncSession = Depends(get_session),
):
    now = datetime.utcnow()
    actions = await tracker.list_actions(
        s, ctx, status=status, assigned_to=assigned_to, restaurant_id=restaurant_id,
        non_conformity_id=non_conformity_id, overdue_only=overdue_only,
        include_archived=include_archived, now=now,
    )
    return {"data": await _action_outs(s, actions, now)}


@router.get("/stats", response_model=Envelope[ActionStats], summary="Corrective action counters")
async def action_stats(
    ctx: AuthorizationContext = Depends(get_auth_context),
    s: AsyncSession = Depends(get_session),
):
    return {"data": await tracker.action_stats(s, ctx)}


# ═══════════════════ EXPORT XLSX ═══════════════════

@router.get("/export", summary="Export corrective actions to Excel")
async def export_actions_xlsx(
    include_archived: bool = Query(False),
    ctx: AuthorizationContext = Depends(get_auth_context),
    s: AsyncSession = Depends(get_session),
):
    import openpyxl
    from openpyxl.styles import Alignment, Font, PatternFill

    now = datetime.utcnow()
    actions = await tracker.list_actions(s, ctx, include_archived=include_archived, now=now)
    outs = await _action_outs(s, actions, now)

    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Corrective actions"
    headers = ["ID", "Description", "Restaurant", "Assigned to", "Priority", "Status",
               "Due date", "Overdue", "Completed", "Verified", "Non-conformity", "Notes"]
    header_fill = PatternFill(start_color="1F4E79", end_color="1F4E79", fill_type="solid")
    header_font = Font(color="FFFFFF", bold=True, size=10)
    for ci, h in enumerate(headers, 1):
        cell = ws.cell(row=1, column=ci, value=h)
        cell.fill = header_fill
        cell.font = header_font
        cell.alignment = Alignment(horizontal="center")

    for ri, a in enumerate(outs, 2):
        ws.cell(row=ri, column=1, value=f"CA-{a.id}")
        ws.cell(row=ri, column=2, value=a.action_description)
        ws.cell(row=ri, column=3, value=a.restaurant_name or "")
        ws.cell(row=ri, column=4, value=a.assigned_to_name or "")
        ws.cell(row=ri, column=5, value=a.priority)
        ws.cell(row=ri, column=6, value=a.status)
        ws.cell(row=ri, column=7, value=a.due_date.strftime("%Y-%m-%d"))
        ws.cell(row=ri, column=8, value="YES" if a.is_overdue else "NO")
        ws.cell(row=ri, column=9, value=a.completion_date.strftime("%Y-%m-%d") if a.completion_date else "")
        ws.cell(row=ri, column=10, value=a.verification_date.strftime("%Y-%m-%d") if a.verification_date else "")
        ws.cell(row=ri, column=11, value=f"NC-{a.non_conformity_id}" if a.non_conformity_id else "")
        ws.cell(row=ri, column=12, value=a.notes or "")

    # Auto-width
    for col in ws.columns:
        max_len = max((len(str(cell.value or "")) for cell in col), default=10)
        ws.column_dimensions[col[0].column_letter].width = min(max_len + 2, 50)

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)

    filename = f"corrective_actions_{now.strftime('%Y%m%d_%H%M')}.xlsx"
    return StreamingResponse(
        buf,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


# ═══════════════════ CRUD ═══════════════════

@router.post("", response_model=Envelope[ActionOut], status_code=201, summary="Assign a corrective action")
async def create_action(
    body: ActionCreate,
    ctx: AuthorizationContext = Depends(get_auth_context),
    s: AsyncSession = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    return await _one(s, await tracker.create_action(s, ctx, body, notifier))


@router.get("/{action_id}", response_model=Envelope[ActionOut], summary="Get a corrective action")
async def get_action(
    action_id: int,
    ctx: AuthorizationContext = Depends(get_auth_context),
    s: AsyncSession = Depends(get_session),
):
    return await _one(s, await tracker.get_action(s, ctx, action_id))


@router.put("/{action_id}", response_model=Envelope[ActionOut], summary="Edit a corrective action or change its status")
async def update_action(
    action_id: int,
    body: ActionUpdate,
    ctx: AuthorizationContext = Depends(get_auth_context),
    s: AsyncSession = Depends(get_session),
):
    return await _one(s, await tracker.update_action(s, ctx, action_id, body))


@router.put("/{action_id}/archive", response_model=Envelope[ActionOut], summary="Archive a completed action")
async def archive_action(
    action_id: int,
    ctx: AuthorizationContext = Depends(get_auth_context),
    s: AsyncSession = Depends(get_session),
):
    return await _one(s, await tracker.archive_action(s, ctx, action_id))
