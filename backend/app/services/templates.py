"""
Template catalog: audit templates and their ordered checklist items.

Templates are shared by every tenant unless TEMPLATES_TENANT_SCOPED is set,
in which case reads and writes only see the caller's tenant.
"""
import logging

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import AuthorizationContext, require_manager
from app.config import settings
from app.errors import ConflictError, NotFoundError, ValidationError
from app.middleware.change_log import record_change
from app.models.archive import AuditArchive
from app.models.execution import AuditExecution
from app.models.template import ITEM_TYPES, TEMPLATE_CATEGORIES, TEMPLATE_FREQUENCIES, AuditItem, AuditTemplate
from app.schemas.template import AuditItemIn, TemplateCreate, TemplateUpdate

logger = logging.getLogger(__name__)


# ── validation ──

def _check_name(name: str) -> str:
    name = (name or "").strip()
    if not 2 <= len(name) <= 100:
        raise ValidationError("Template name must be between 2 and 100 characters")
    return name


def _check_category(category: str) -> str:
    if category not in TEMPLATE_CATEGORIES:
        raise ValidationError(f"Unknown category '{category}'. Allowed: {list(TEMPLATE_CATEGORIES)}")
    return category


def _check_frequency(frequency: str) -> str:
    if frequency not in TEMPLATE_FREQUENCIES:
        raise ValidationError(f"Unknown frequency '{frequency}'. Allowed: {list(TEMPLATE_FREQUENCIES)}")
    return frequency


def build_items(template_id: int | None, items: list[AuditItemIn]) -> list[AuditItem]:
    """Validate submitted items and number them 1..N in submission order."""
    if not items:
        raise ValidationError("A template needs at least one item")
    built = []
    for position, item in enumerate(items, 1):
        question = (item.question or "").strip()
        if not question:
            raise ValidationError(f"Item {position}: question must not be blank")
        if item.type not in ITEM_TYPES:
            raise ValidationError(f"Item {position}: unknown type '{item.type}'. Allowed: {list(ITEM_TYPES)}")
        max_score = None
        if item.type == "score":
            if item.max_score is None or item.max_score <= 0:
                raise ValidationError(f"Item {position}: score items need a positive max_score")
            max_score = item.max_score
        built.append(AuditItem(
            template_id=template_id,
            question=question,
            type=item.type,
            is_required=item.is_required,
            is_critical=item.is_critical,
            order=position,
            max_score=max_score,
            help_text=item.help_text,
        ))
    return built


# ── reads ──

def _scoped(q, ctx: AuthorizationContext):
    if settings.TEMPLATES_TENANT_SCOPED:
        q = q.where(AuditTemplate.tenant_id == ctx.tenant_id)
    return q


async def get_template(s: AsyncSession, ctx: AuthorizationContext, template_id: int) -> AuditTemplate:
    template = await s.get(AuditTemplate, template_id)
    if not template:
        raise NotFoundError(f"Audit template {template_id} not found")
    if settings.TEMPLATES_TENANT_SCOPED and template.tenant_id != ctx.tenant_id:
        raise NotFoundError(f"Audit template {template_id} not found")
    return template


async def load_items(s: AsyncSession, template_ids: list[int]) -> dict[int, list[AuditItem]]:
    """Items grouped by template id, each list in checklist order."""
    grouped: dict[int, list[AuditItem]] = {tid: [] for tid in template_ids}
    if not template_ids:
        return grouped
    q = (select(AuditItem)
         .where(AuditItem.template_id.in_(template_ids))
         .order_by(AuditItem.template_id, AuditItem.order))
    for item in (await s.execute(q)).scalars().all():
        grouped[item.template_id].append(item)
    return grouped


async def list_templates(
    s: AsyncSession,
    ctx: AuthorizationContext,
    category: str | None = None,
    include_inactive: bool = False,
) -> list[AuditTemplate]:
    q = _scoped(select(AuditTemplate), ctx)
    if category:
        q = q.where(AuditTemplate.category == category)
    if not include_inactive:
        q = q.where(AuditTemplate.is_active.is_(True))
    q = q.order_by(AuditTemplate.category, AuditTemplate.name)
    return list((await s.execute(q)).scalars().all())


# ── writes ──

async def create_template(s: AsyncSession, ctx: AuthorizationContext, data: TemplateCreate) -> AuditTemplate:
    require_manager(ctx, "template changes")
    template = AuditTemplate(
        name=_check_name(data.name),
        category=_check_category(data.category),
        description=data.description,
        frequency=_check_frequency(data.frequency),
        estimated_duration=data.estimated_duration,
        is_active=True,
        tenant_id=ctx.tenant_id,
        created_by=ctx.user_id,
    )
    items = build_items(None, data.items)
    s.add(template)
    await s.flush()
    for item in items:
        item.template_id = template.id
    s.add_all(items)
    await s.commit()
    logger.info("Audit template %s '%s' created with %d items", template.id, template.name, len(items))
    return template


async def update_template(
    s: AsyncSession,
    ctx: AuthorizationContext,
    template_id: int,
    data: TemplateUpdate,
) -> AuditTemplate:
    require_manager(ctx, "template changes")
    template = await get_template(s, ctx, template_id)
    changes = data.model_dump(exclude_unset=True)
    new_items = changes.pop("items", None)

    if "name" in changes:
        changes["name"] = _check_name(changes["name"])
    if "category" in changes:
        changes["category"] = _check_category(changes["category"])
    if "frequency" in changes:
        changes["frequency"] = _check_frequency(changes["frequency"] or "on_demand")
    if changes.get("is_active") is None:
        changes.pop("is_active", None)

    for k, v in changes.items():
        setattr(template, k, v)

    if new_items is not None:
        items = build_items(template.id, data.items)
        old_count = (await s.execute(
            select(func.count()).select_from(AuditItem).where(AuditItem.template_id == template.id)
        )).scalar() or 0
        await s.execute(delete(AuditItem).where(AuditItem.template_id == template.id))
        s.add_all(items)
        await record_change(
            s, ctx, module="templates", action="update",
            entity_type="audit_templates", entity_id=template.id,
            changes={"items": (f"{old_count} items", f"{len(items)} items")},
        )

    await s.commit()
    await s.refresh(template)
    logger.info("Audit template %s updated", template.id)
    return template


async def delete_template(s: AsyncSession, ctx: AuthorizationContext, template_id: int) -> None:
    require_manager(ctx, "template changes")
    template = await get_template(s, ctx, template_id)

    executions = (await s.execute(
        select(func.count()).select_from(AuditExecution).where(AuditExecution.template_id == template.id)
    )).scalar() or 0
    archives = (await s.execute(
        select(func.count()).select_from(AuditArchive).where(AuditArchive.template_id == template.id)
    )).scalar() or 0
    if executions or archives:
        raise ConflictError(
            f"Template {template.id} is referenced by {executions} execution(s) "
            f"and {archives} archive(s); deactivate it instead"
        )

    await s.execute(delete(AuditItem).where(AuditItem.template_id == template.id))
    await s.delete(template)
    await s.commit()
    logger.info("Audit template %s deleted", template_id)
