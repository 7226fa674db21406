"""
Template catalog — /audit-templates
Audit templates and their ordered checklist items.
"""
from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import AuthorizationContext, get_auth_context
from app.database import get_session
from app.models.template import AuditItem, AuditTemplate
from app.schemas.common import Envelope, ListEnvelope
from app.schemas.template import AuditItemOut, TemplateCreate, TemplateOut, TemplateUpdate
from app.services import templates as catalog

router = APIRouter(prefix="/audit-templates", tags=["Audit templates"])


def _template_out(t: AuditTemplate, items: list[AuditItem]) -> TemplateOut:
    return TemplateOut(
        id=t.id, name=t.name, category=t.category, description=t.description,
        frequency=t.frequency, estimated_duration=t.estimated_duration,
        is_active=t.is_active, tenant_id=t.tenant_id, created_by=t.created_by,
        item_count=len(items),
        items=[AuditItemOut.model_validate(i) for i in items],
        created_at=t.created_at, updated_at=t.updated_at,
    )


async def _one(s: AsyncSession, t: AuditTemplate) -> dict:
    items = (await catalog.load_items(s, [t.id]))[t.id]
    return {"data": _template_out(t, items)}


@router.get("", response_model=ListEnvelope[TemplateOut], summary="List audit templates")
async def list_templates(
    category: str | None = Query(None),
    include_inactive: bool = Query(False),
    ctx: AuthorizationContext = Depends(get_auth_context),
    s: AsyncSession = Depends(get_session),
):
    templates = await catalog.list_templates(s, ctx, category=category, include_inactive=include_inactive)
    items = await catalog.load_items(s, [t.id for t in templates])
    return {"data": [_template_out(t, items[t.id]) for t in templates]}


@router.get("/{template_id}", response_model=Envelope[TemplateOut], summary="Get an audit template")
async def get_template(
    template_id: int,
    ctx: AuthorizationContext = Depends(get_auth_context),
    s: AsyncSession = Depends(get_session),
):
    return await _one(s, await catalog.get_template(s, ctx, template_id))


@router.post("", response_model=Envelope[TemplateOut], status_code=201, summary="Create an audit template")
async def create_template(
    body: TemplateCreate,
    ctx: AuthorizationContext = Depends(get_auth_context),
    s: AsyncSession = Depends(get_session),
):
    return await _one(s, await catalog.create_template(s, ctx, body))


@router.patch("/{template_id}", response_model=Envelope[TemplateOut], summary="Update an audit template")
async def update_template(
    template_id: int,
    body: TemplateUpdate,
    ctx: AuthorizationContext = Depends(get_auth_context),
    s: AsyncSession = Depends(get_session),
):
    return await _one(s, await catalog.update_template(s, ctx, template_id, body))


@router.delete("/{template_id}", status_code=204, summary="Delete an unused audit template")
async def delete_template(
    template_id: int,
    ctx: AuthorizationContext = Depends(get_auth_context),
    s: AsyncSession = Depends(get_session),
):
    await catalog.delete_template(s, ctx, template_id)
    return Response(status_code=204)
