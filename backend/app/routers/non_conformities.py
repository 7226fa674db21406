"""
Non-conformities — /non-conformities
Findings raised from failing audit answers.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import AuthorizationContext, get_auth_context
from app.database import get_session
from app.models.corrective_action import CorrectiveAction
from app.models.finding import NonConformity
from app.schemas.common import Envelope, ListEnvelope
from app.schemas.finding import NonConformityOut, NonConformityStats, NonConformityUpdate
from app.services import findings
from app.services.directory import restaurant_names

router = APIRouter(prefix="/non-conformities", tags=["Non-conformities"])


async def non_conformity_outs(
    s: AsyncSession,
    rows: list[tuple[NonConformity, int]],
) -> list[NonConformityOut]:
    """Build outputs with batch queries for restaurant names and action counts."""
    if not rows:
        return []
    nc_ids = [nc.id for nc, _ in rows]
    counts = dict((await s.execute(
        select(CorrectiveAction.non_conformity_id, func.count())
        .where(CorrectiveAction.non_conformity_id.in_(nc_ids))
        .group_by(CorrectiveAction.non_conformity_id)
    )).all())
    names = await restaurant_names(s, {rid for _, rid in rows})
    return [
        NonConformityOut(
            id=nc.id, execution_id=nc.execution_id, item_id=nc.item_id,
            response_id=nc.response_id, severity=nc.severity,
            description=nc.description, evidence=nc.evidence, status=nc.status,
            identified_date=nc.identified_date,
            resolution_notes=nc.resolution_notes, resolution_date=nc.resolution_date,
            restaurant_id=rid, restaurant_name=names.get(rid),
            action_count=counts.get(nc.id, 0),
            created_at=nc.created_at, updated_at=nc.updated_at,
        )
        for nc, rid in rows
    ]


@router.get("", response_model=ListEnvelope[NonConformityOut], summary="List non-conformities")
async def list_non_conformities(
    status: str | None = Query(None),
    severity: str | None = Query(None),
    restaurant_id: int | None = Query(None),
    execution_id: int | None = Query(None),
    ctx: AuthorizationContext = Depends(get_auth_context),
    s: AsyncSession = Depends(get_session),
):
    rows = await findings.list_non_conformities(
        s, ctx, status=status, severity=severity,
        restaurant_id=restaurant_id, execution_id=execution_id,
    )
    return {"data": await non_conformity_outs(s, rows)}


@router.get("/stats", response_model=Envelope[NonConformityStats], summary="Non-conformity counters")
async def non_conformity_stats(
    ctx: AuthorizationContext = Depends(get_auth_context),
    s: AsyncSession = Depends(get_session),
):
    return {"data": await findings.non_conformity_stats(s, ctx)}


@router.get("/{nc_id}", response_model=Envelope[NonConformityOut], summary="Get a non-conformity")
async def get_non_conformity(
    nc_id: int,
    ctx: AuthorizationContext = Depends(get_auth_context),
    s: AsyncSession = Depends(get_session),
):
    row = await findings.get_non_conformity(s, ctx, nc_id)
    return {"data": (await non_conformity_outs(s, [row]))[0]}


@router.patch("/{nc_id}", response_model=Envelope[NonConformityOut], summary="Update a non-conformity")
async def update_non_conformity(
    nc_id: int,
    body: NonConformityUpdate,
    ctx: AuthorizationContext = Depends(get_auth_context),
    s: AsyncSession = Depends(get_session),
):
    row = await findings.update_non_conformity(s, ctx, nc_id, body)
    return {"data": (await non_conformity_outs(s, [row]))[0]}
