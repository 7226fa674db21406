"""
Finding recorder.

Records inspector answers against an execution's item snapshot and derives
non-conformities from failing answers in the same transaction.
"""
import logging
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import AuthorizationContext, require_manager
from app.config import settings
from app.errors import AuthorizationError, NotFoundError, ValidationError
from app.models.corrective_action import CorrectiveAction
from app.models.execution import CLOSEABLE_STATUSES, AuditExecution, AuditResponse
from app.models.finding import NC_STATUSES, SEVERITIES, NonConformity
from app.schemas.execution import ResponseIn
from app.schemas.finding import NonConformityUpdate
from app.services.scheduler import get_execution

logger = logging.getLogger(__name__)

_YES = {"yes", "true", "1", "y"}
_NO = {"no", "false", "0", "n"}


# ── answer normalisation ──

def normalize_answer(item: dict, data: ResponseIn) -> tuple[str, float | None, str | None]:
    """Check an answer against its item type and return (value, score, photo_url)."""
    kind = item["type"]
    raw = data.value

    if kind == "yes_no":
        if isinstance(raw, bool):
            return ("yes" if raw else "no"), None, data.photo_url
        text = str(raw).strip().lower() if raw is not None else ""
        if text in _YES:
            return "yes", None, data.photo_url
        if text in _NO:
            return "no", None, data.photo_url
        raise ValidationError(f"Item {item['id']} expects a yes/no answer")

    if kind == "score":
        candidate = data.score if data.score is not None else raw
        if candidate is None or isinstance(candidate, bool):
            raise ValidationError(f"Item {item['id']} expects a numeric score")
        try:
            score = float(candidate)
        except (TypeError, ValueError):
            raise ValidationError(f"Item {item['id']} expects a numeric score")
        max_score = item.get("max_score") or 0
        if not 0 <= score <= max_score:
            raise ValidationError(f"Item {item['id']} score must be between 0 and {max_score}")
        return f"{score:g}", score, data.photo_url

    if kind == "text":
        if not isinstance(raw, str) or not raw.strip():
            raise ValidationError(f"Item {item['id']} expects a non-empty text answer")
        return raw.strip(), None, data.photo_url

    # photo
    ref = data.photo_url or (raw if isinstance(raw, str) else None)
    if not ref or not ref.strip():
        raise ValidationError(f"Item {item['id']} expects a photo reference")
    return ref.strip(), None, ref.strip()


def is_failing(item: dict, value: str, score: float | None, threshold: float) -> bool:
    if item["type"] == "yes_no":
        return bool(item.get("is_critical")) and value == "no"
    if item["type"] == "score" and score is not None and item.get("max_score"):
        return score / item["max_score"] < threshold
    return False


# ── recording ──

async def record_response(
    s: AsyncSession,
    ctx: AuthorizationContext,
    execution_id: int,
    data: ResponseIn,
    now: datetime | None = None,
) -> tuple[AuditExecution, AuditResponse, NonConformity | None]:
    now = now or datetime.utcnow()
    execution = await get_execution(s, ctx, execution_id, for_update=True)
    if execution.status in CLOSEABLE_STATUSES:
        raise ValidationError(f"Cannot record responses on a {execution.status} audit")
    if execution.inspector_id != ctx.user_id and not ctx.is_manager:
        raise AuthorizationError("Only the assigned inspector or a manager may record responses")

    item = execution.snapshot_item(data.item_id)
    if item is None:
        raise ValidationError(f"Item {data.item_id} is not part of audit {execution.id}")
    value, score, photo_url = normalize_answer(item, data)

    response = (await s.execute(
        select(AuditResponse).where(
            AuditResponse.execution_id == execution.id,
            AuditResponse.item_id == item["id"],
        )
    )).scalar_one_or_none()
    if response is None:
        response = AuditResponse(execution_id=execution.id, item_id=item["id"])
        s.add(response)
    response.value = value
    response.score = score
    response.notes = data.notes
    response.photo_url = photo_url

    if execution.status in ("todo", "scheduled"):
        execution.status = "in_progress"
        execution.started_at = now
        logger.info("Audit %s started by user %s", execution.id, ctx.user_id)

    await s.flush()
    nc = await _apply_finding_policy(s, execution, item, response, now)
    await s.commit()
    return execution, response, nc


async def _apply_finding_policy(
    s: AsyncSession,
    execution: AuditExecution,
    item: dict,
    response: AuditResponse,
    now: datetime,
) -> NonConformity | None:
    existing = (await s.execute(
        select(NonConformity).where(
            NonConformity.execution_id == execution.id,
            NonConformity.item_id == item["id"],
        )
    )).scalar_one_or_none()

    if is_failing(item, response.value, response.score, settings.NC_SCORE_THRESHOLD):
        if existing:
            existing.response_id = response.id
            if response.notes:
                existing.evidence = response.notes
            return existing
        nc = NonConformity(
            execution_id=execution.id,
            item_id=item["id"],
            response_id=response.id,
            severity="critical" if item.get("is_critical") else settings.NC_DEFAULT_SEVERITY,
            description=f"{item['question']} (answer: {response.value})",
            evidence=response.notes,
            status="open",
            identified_date=now,
        )
        s.add(nc)
        await s.flush()
        logger.info(
            "Non-conformity %s raised on audit %s item %s (%s)",
            nc.id, execution.id, item["id"], nc.severity,
        )
        return nc

    if existing and existing.status == "open":
        linked = (await s.execute(
            select(func.count()).select_from(CorrectiveAction)
            .where(CorrectiveAction.non_conformity_id == existing.id)
        )).scalar() or 0
        if not linked:
            await s.delete(existing)
            logger.info("Non-conformity %s withdrawn after a passing answer", existing.id)
            return None
    return existing


# ── non-conformity management ──

def _nc_query(ctx: AuthorizationContext):
    q = (select(NonConformity, AuditExecution.restaurant_id)
         .join(AuditExecution, AuditExecution.id == NonConformity.execution_id)
         .where(AuditExecution.tenant_id == ctx.tenant_id))
    if ctx.role == "viewer" and ctx.restaurant_id is not None:
        q = q.where(AuditExecution.restaurant_id == ctx.restaurant_id)
    return q


async def list_non_conformities(
    s: AsyncSession,
    ctx: AuthorizationContext,
    status: str | None = None,
    severity: str | None = None,
    restaurant_id: int | None = None,
    execution_id: int | None = None,
) -> list[tuple[NonConformity, int]]:
    q = _nc_query(ctx)
    if status:
        q = q.where(NonConformity.status == status)
    if severity:
        q = q.where(NonConformity.severity == severity)
    if restaurant_id is not None:
        q = q.where(AuditExecution.restaurant_id == restaurant_id)
    if execution_id is not None:
        q = q.where(NonConformity.execution_id == execution_id)
    q = q.order_by(NonConformity.identified_date.desc(), NonConformity.id.desc())
    return [(nc, rid) for nc, rid in (await s.execute(q)).all()]


async def get_non_conformity(
    s: AsyncSession,
    ctx: AuthorizationContext,
    nc_id: int,
) -> tuple[NonConformity, int]:
    row = (await s.execute(_nc_query(ctx).where(NonConformity.id == nc_id))).first()
    if not row:
        raise NotFoundError(f"Non-conformity {nc_id} not found")
    return row[0], row[1]


async def update_non_conformity(
    s: AsyncSession,
    ctx: AuthorizationContext,
    nc_id: int,
    data: NonConformityUpdate,
    now: datetime | None = None,
) -> tuple[NonConformity, int]:
    require_manager(ctx, "non-conformity updates")
    nc, restaurant_id = await get_non_conformity(s, ctx, nc_id)
    changes = data.model_dump(exclude_unset=True)

    severity = changes.pop("severity", None)
    if severity is not None:
        if severity not in SEVERITIES:
            raise ValidationError(f"Unknown severity '{severity}'. Allowed: {list(SEVERITIES)}")
        nc.severity = severity

    if changes.get("description") is not None:
        nc.description = changes["description"]
    if "resolution_notes" in changes:
        nc.resolution_notes = changes["resolution_notes"]

    new_status = changes.get("status")
    if new_status is not None and new_status != nc.status:
        if new_status not in NC_STATUSES:
            raise ValidationError(f"Unknown status '{new_status}'. Allowed: {list(NC_STATUSES)}")
        if not nc.can_transition_to(new_status):
            allowed = nc.TRANSITIONS.get(nc.status, [])
            raise ValidationError(
                f"Cannot transition from '{nc.status}' to '{new_status}'. Allowed: {allowed}"
            )
        nc.status = new_status
        if new_status == "resolved" and nc.resolution_date is None:
            nc.resolution_date = now or datetime.utcnow()
        logger.info("Non-conformity %s moved to %s", nc.id, new_status)

    await s.commit()
    return nc, restaurant_id


async def non_conformity_stats(s: AsyncSession, ctx: AuthorizationContext) -> dict:
    base = (select(NonConformity.status, NonConformity.severity, func.count())
            .join(AuditExecution, AuditExecution.id == NonConformity.execution_id)
            .where(AuditExecution.tenant_id == ctx.tenant_id)
            .group_by(NonConformity.status, NonConformity.severity))
    if ctx.role == "viewer" and ctx.restaurant_id is not None:
        base = base.where(AuditExecution.restaurant_id == ctx.restaurant_id)

    by_status = {st: 0 for st in NC_STATUSES}
    by_severity = {sv: 0 for sv in SEVERITIES}
    total = 0
    for status, severity, cnt in (await s.execute(base)).all():
        by_status[status] = by_status.get(status, 0) + cnt
        by_severity[severity] = by_severity.get(severity, 0) + cnt
        total += cnt
    return {
        "total": total,
        "by_status": by_status,
        "by_severity": by_severity,
        "critical": by_severity.get("critical", 0),
    }
