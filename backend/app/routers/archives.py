"""
Audit archives — /audit-archives
Immutable history of finished audits.
"""
from datetime import datetime

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import AuthorizationContext, get_auth_context
from app.database import get_session
from app.schemas.archive import ArchiveFilters, ArchiveOut, ArchiveStats, AutoArchiveResult
from app.schemas.common import Envelope, ListEnvelope
from app.services import archives as archive_service

router = APIRouter(prefix="/audit-archives", tags=["Audit archives"])


@router.post(
    "/archive/{execution_id}", response_model=Envelope[ArchiveOut], status_code=201,
    summary="Archive a completed or reviewed audit",
)
async def archive_execution(
    execution_id: int,
    ctx: AuthorizationContext = Depends(get_auth_context),
    s: AsyncSession = Depends(get_session),
):
    archive = await archive_service.archive_execution(s, ctx, execution_id)
    return {"data": ArchiveOut.model_validate(archive)}


@router.post("/auto-archive", response_model=Envelope[AutoArchiveResult], summary="Archive every finished audit")
async def auto_archive(
    ctx: AuthorizationContext = Depends(get_auth_context),
    s: AsyncSession = Depends(get_session),
):
    ids = await archive_service.auto_archive(s, ctx)
    return {"data": AutoArchiveResult(archived_count=len(ids), archive_ids=ids)}


@router.get("", response_model=ListEnvelope[ArchiveOut], summary="Search archived audits")
async def list_archives(
    category: str | None = Query(None),
    restaurant_name: str | None = Query(None),
    inspector_name: str | None = Query(None),
    date_from: datetime | None = Query(None),
    date_to: datetime | None = Query(None),
    min_score: float | None = Query(None),
    max_score: float | None = Query(None),
    status: str = Query("archived"),
    sort_by: str = Query("archived_at"),
    sort_order: str = Query("desc"),
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1, le=100),
    ctx: AuthorizationContext = Depends(get_auth_context),
    s: AsyncSession = Depends(get_session),
):
    filters = ArchiveFilters(
        category=category, restaurant_name=restaurant_name, inspector_name=inspector_name,
        date_from=date_from, date_to=date_to, min_score=min_score, max_score=max_score,
        status=status, sort_by=sort_by, sort_order=sort_order, page=page, limit=limit,
    )
    rows, pagination = await archive_service.list_archives(s, ctx, filters)
    return {"data": [ArchiveOut.model_validate(a) for a in rows], "pagination": pagination}


@router.get("/stats", response_model=Envelope[ArchiveStats], summary="Archive counters")
async def archive_stats(
    ctx: AuthorizationContext = Depends(get_auth_context),
    s: AsyncSession = Depends(get_session),
):
    return {"data": await archive_service.archive_stats(s, ctx)}


@router.get("/{archive_id}", response_model=Envelope[ArchiveOut], summary="Get an archived audit")
async def get_archive(
    archive_id: int,
    ctx: AuthorizationContext = Depends(get_auth_context),
    s: AsyncSession = Depends(get_session),
):
    archive = await archive_service.get_archive(s, ctx, archive_id)
    return {"data": ArchiveOut.model_validate(archive)}


@router.delete("/{archive_id}", status_code=204, summary="Soft-delete an archived audit")
async def delete_archive(
    archive_id: int,
    ctx: AuthorizationContext = Depends(get_auth_context),
    s: AsyncSession = Depends(get_session),
):
    await archive_service.delete_archive(s, ctx, archive_id)
    return Response(status_code=204)
