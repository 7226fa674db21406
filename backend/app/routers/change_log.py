"""
Change trail viewer — /change-log
Read-only access to the tenant's change log.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import AuthorizationContext, get_auth_context, require_manager
from app.database import get_session
from app.models.change_log import ChangeLog
from app.schemas.change_log import ChangeLogOut, ChangeLogPage

router = APIRouter(prefix="/change-log", tags=["Change log"])


@router.get("", response_model=ChangeLogPage, summary="Browse the change log")
async def list_change_log(
    module: str | None = Query(None, description="templates / audits / findings / corrective_actions / archives"),
    entity_type: str | None = Query(None),
    entity_id: int | None = Query(None),
    action: str | None = Query(None, description="create / update / delete / review / archive"),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    ctx: AuthorizationContext = Depends(get_auth_context),
    s: AsyncSession = Depends(get_session),
):
    require_manager(ctx, "change log access")

    conds = [ChangeLog.tenant_id == ctx.tenant_id]
    if module:
        conds.append(ChangeLog.module == module)
    if entity_type:
        conds.append(ChangeLog.entity_type == entity_type)
    if entity_id is not None:
        conds.append(ChangeLog.entity_id == entity_id)
    if action:
        conds.append(ChangeLog.action == action)

    total = (await s.execute(select(func.count()).select_from(ChangeLog).where(*conds))).scalar() or 0

    q = (select(ChangeLog)
         .where(*conds)
         .order_by(ChangeLog.created_at.desc(), ChangeLog.id.desc())
         .offset((page - 1) * per_page)
         .limit(per_page))
    rows = (await s.execute(q)).scalars().all()

    return ChangeLogPage(
        items=[ChangeLogOut.model_validate(r) for r in rows],
        total=total,
        page=page,
        per_page=per_page,
    )
