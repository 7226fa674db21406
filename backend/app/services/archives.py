"""
Archive service.

Archiving turns a completed or reviewed execution into one immutable,
denormalised AuditArchive row and removes the live execution, its responses
and its non-conformities. Corrective actions survive, detached from the
finding they remedied. The whole move commits once.
"""
import logging
import math
from datetime import datetime

from sqlalchemy import asc, delete, desc, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import AuthorizationContext, require_manager
from app.config import settings
from app.errors import ConflictError, DomainError, NotFoundError, ValidationError
from app.middleware.change_log import record_change
from app.models.archive import ARCHIVE_STATUSES, AuditArchive
from app.models.corrective_action import CorrectiveAction
from app.models.directory import Restaurant, User
from app.models.execution import CLOSEABLE_STATUSES, AuditExecution, AuditResponse
from app.models.finding import NonConformity
from app.models.template import AuditTemplate
from app.schemas.archive import ArchiveFilters
from app.services.scheduler import get_execution

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "archived_at": AuditArchive.archived_at,
    "completed_date": AuditArchive.completed_date,
    "total_score": AuditArchive.total_score,
    "restaurant_name": AuditArchive.restaurant_name,
}


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


# ── flatteners ──

def _response_data(snapshot: list[dict], responses: list[AuditResponse]) -> list[dict]:
    items = {item["id"]: item for item in snapshot}
    rows = []
    for r in responses:
        item = items.get(r.item_id, {})
        rows.append({
            "id": r.id,
            "item_id": r.item_id,
            "question": item.get("question"),
            "type": item.get("type"),
            "order": item.get("order"),
            "value": r.value,
            "score": r.score,
            "max_score": item.get("max_score"),
            "notes": r.notes,
            "photo_url": r.photo_url,
            "created_at": _iso(r.created_at),
        })
    rows.sort(key=lambda row: (row["order"] is None, row["order"] or 0))
    return rows


def _nc_data(ncs: list[NonConformity]) -> list[dict]:
    return [{
        "id": nc.id,
        "item_id": nc.item_id,
        "severity": nc.severity,
        "description": nc.description,
        "evidence": nc.evidence,
        "status": nc.status,
        "identified_date": _iso(nc.identified_date),
        "resolution_notes": nc.resolution_notes,
        "resolution_date": _iso(nc.resolution_date),
    } for nc in ncs]


def _action_data(actions: list[CorrectiveAction]) -> list[dict]:
    return [{
        "id": a.id,
        "non_conformity_id": a.non_conformity_id,
        "action_description": a.action_description,
        "assigned_to": a.assigned_to,
        "priority": a.priority,
        "due_date": _iso(a.due_date),
        "status": a.status,
        "completion_date": _iso(a.completion_date),
        "verification_date": _iso(a.verification_date),
    } for a in actions]


# ── archiving ──

async def _already_archived(s: AsyncSession, ctx: AuthorizationContext, execution_id: int) -> bool:
    found = (await s.execute(
        select(AuditArchive.id).where(
            AuditArchive.original_execution_id == execution_id,
            AuditArchive.tenant_id == ctx.tenant_id,
        )
    )).scalar_one_or_none()
    return found is not None


async def _archive(
    s: AsyncSession,
    ctx: AuthorizationContext,
    execution_id: int,
    now: datetime,
) -> AuditArchive:
    if await _already_archived(s, ctx, execution_id):
        raise ConflictError(f"Audit execution {execution_id} is already archived")
    execution = await get_execution(s, ctx, execution_id, for_update=True)
    if execution.status not in CLOSEABLE_STATUSES:
        raise ConflictError(
            f"Only completed or reviewed audits can be archived (status is '{execution.status}')"
        )

    template = await s.get(AuditTemplate, execution.template_id)
    restaurant = await s.get(Restaurant, execution.restaurant_id)
    inspector = await s.get(User, execution.inspector_id)

    responses = list((await s.execute(
        select(AuditResponse).where(AuditResponse.execution_id == execution.id)
    )).scalars().all())
    ncs = list((await s.execute(
        select(NonConformity).where(NonConformity.execution_id == execution.id).order_by(NonConformity.id)
    )).scalars().all())
    nc_ids = [nc.id for nc in ncs]
    actions = []
    if nc_ids:
        actions = list((await s.execute(
            select(CorrectiveAction).where(CorrectiveAction.non_conformity_id.in_(nc_ids)).order_by(CorrectiveAction.id)
        )).scalars().all())

    archive = AuditArchive(
        original_execution_id=execution.id,
        template_id=execution.template_id,
        restaurant_id=execution.restaurant_id,
        inspector_id=execution.inspector_id,
        tenant_id=execution.tenant_id,
        scheduled_date=execution.scheduled_date,
        completed_date=execution.completed_date,
        total_score=execution.total_score,
        max_possible_score=execution.max_possible_score,
        notes=execution.notes,
        status="archived",
        archived_by=ctx.user_id,
        archived_at=now,
        template_name=template.name if template else f"Template #{execution.template_id}",
        template_category=template.category if template else "unknown",
        restaurant_name=restaurant.name if restaurant else f"Restaurant #{execution.restaurant_id}",
        inspector_name=inspector.label if inspector else f"User #{execution.inspector_id}",
        responses_data=_response_data(execution.items_snapshot or [], responses),
        non_conformities_data=_nc_data(ncs),
        corrective_actions_data=_action_data(actions),
    )
    s.add(archive)

    # Actions outlive the findings they remedied
    if nc_ids:
        await s.execute(
            update(CorrectiveAction)
            .where(CorrectiveAction.non_conformity_id.in_(nc_ids))
            .values(non_conformity_id=None)
            .execution_options(synchronize_session="fetch")
        )
        await s.execute(delete(NonConformity).where(NonConformity.id.in_(nc_ids)))
    await s.execute(delete(AuditResponse).where(AuditResponse.execution_id == execution.id))
    await s.delete(execution)

    await s.flush()
    await record_change(
        s, ctx, module="archives", action="archive",
        entity_type="audit_executions", entity_id=execution_id,
        changes={
            "archive_id": (None, archive.id),
            "responses": (len(responses), None),
            "non_conformities": (len(ncs), None),
        },
    )
    return archive


async def archive_execution(
    s: AsyncSession,
    ctx: AuthorizationContext,
    execution_id: int,
    now: datetime | None = None,
) -> AuditArchive:
    require_manager(ctx, "audit archival")
    archive = await _archive(s, ctx, execution_id, now or datetime.utcnow())
    await s.commit()
    logger.info("Audit %s archived as archive %s", execution_id, archive.id)
    return archive


async def auto_archive(
    s: AsyncSession,
    ctx: AuthorizationContext,
    now: datetime | None = None,
) -> list[int]:
    """Archive every closeable execution of the tenant, one transaction each; returns the archive ids."""
    require_manager(ctx, "audit archival")
    now = now or datetime.utcnow()
    ids = list((await s.execute(
        select(AuditExecution.id).where(
            AuditExecution.tenant_id == ctx.tenant_id,
            AuditExecution.status.in_(CLOSEABLE_STATUSES),
        ).order_by(AuditExecution.id)
    )).scalars().all())

    archived = []
    for execution_id in ids:
        try:
            archive = await _archive(s, ctx, execution_id, now)
            await s.commit()
        except DomainError as exc:
            await s.rollback()
            logger.warning("Auto-archive skipped audit %s: %s", execution_id, exc.message)
            continue
        except SQLAlchemyError:
            await s.rollback()
            logger.exception("Auto-archive skipped audit %s after a database error", execution_id)
            continue
        archived.append(archive.id)
    logger.info("Auto-archive archived %d of %d audits for tenant %s", len(archived), len(ids), ctx.tenant_id)
    return archived


# ── reads ──

async def get_archive(s: AsyncSession, ctx: AuthorizationContext, archive_id: int) -> AuditArchive:
    archive = await s.get(AuditArchive, archive_id)
    if not archive or archive.tenant_id != ctx.tenant_id:
        raise NotFoundError(f"Audit archive {archive_id} not found")
    if ctx.role == "viewer" and ctx.restaurant_id is not None and archive.restaurant_id != ctx.restaurant_id:
        raise NotFoundError(f"Audit archive {archive_id} not found")
    return archive


async def delete_archive(s: AsyncSession, ctx: AuthorizationContext, archive_id: int) -> None:
    """Soft delete: the row stays but drops out of the default listing."""
    require_manager(ctx, "archive deletion")
    archive = await get_archive(s, ctx, archive_id)
    if archive.status == "deleted":
        raise NotFoundError(f"Audit archive {archive_id} not found")
    archive.status = "deleted"
    await s.commit()
    logger.info("Audit archive %s soft-deleted", archive_id)


async def list_archives(
    s: AsyncSession,
    ctx: AuthorizationContext,
    filters: ArchiveFilters,
) -> tuple[list[AuditArchive], dict]:
    if filters.status not in ARCHIVE_STATUSES:
        raise ValidationError(f"Unknown status '{filters.status}'. Allowed: {list(ARCHIVE_STATUSES)}")
    if filters.sort_by not in SORT_COLUMNS:
        raise ValidationError(f"Cannot sort by '{filters.sort_by}'. Allowed: {list(SORT_COLUMNS)}")
    if filters.sort_order.lower() not in ("asc", "desc"):
        raise ValidationError("sort_order must be 'asc' or 'desc'")

    conds = [AuditArchive.tenant_id == ctx.tenant_id, AuditArchive.status == filters.status]
    if ctx.role == "viewer" and ctx.restaurant_id is not None:
        conds.append(AuditArchive.restaurant_id == ctx.restaurant_id)
    if filters.category:
        conds.append(AuditArchive.template_category == filters.category)
    if filters.restaurant_name:
        conds.append(func.lower(AuditArchive.restaurant_name)
                     .contains(filters.restaurant_name.lower(), autoescape=True))
    if filters.inspector_name:
        conds.append(func.lower(AuditArchive.inspector_name)
                     .contains(filters.inspector_name.lower(), autoescape=True))
    if filters.date_from is not None:
        conds.append(AuditArchive.completed_date >= filters.date_from)
    if filters.date_to is not None:
        conds.append(AuditArchive.completed_date <= filters.date_to)
    if filters.min_score is not None:
        conds.append(AuditArchive.total_score >= filters.min_score)
    if filters.max_score is not None:
        conds.append(AuditArchive.total_score <= filters.max_score)

    total = (await s.execute(select(func.count()).select_from(AuditArchive).where(*conds))).scalar() or 0
    limit = filters.limit or settings.ARCHIVE_PAGE_SIZE
    order = desc if filters.sort_order.lower() == "desc" else asc
    q = (select(AuditArchive)
         .where(*conds)
         .order_by(order(SORT_COLUMNS[filters.sort_by]), order(AuditArchive.id))
         .offset((filters.page - 1) * limit)
         .limit(limit))
    rows = list((await s.execute(q)).scalars().all())
    pagination = {
        "total": total,
        "page": filters.page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if total else 0,
    }
    return rows, pagination


async def archive_stats(s: AsyncSession, ctx: AuthorizationContext) -> dict:
    conds = [AuditArchive.tenant_id == ctx.tenant_id, AuditArchive.status == "archived"]
    total, average = (await s.execute(
        select(func.count(), func.avg(AuditArchive.total_score)).where(*conds)
    )).one()
    categories = (await s.execute(
        select(AuditArchive.template_category, func.count())
        .where(*conds)
        .group_by(AuditArchive.template_category)
        .order_by(func.count().desc(), AuditArchive.template_category)
    )).all()
    return {
        "total_archives": total or 0,
        "average_score": round(float(average), 2) if average is not None else 0.0,
        "categories": [{"category": c, "count": n} for c, n in categories],
    }
