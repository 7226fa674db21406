from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from app.schemas.common import naive_utc


class ArchiveOut(BaseModel):
    id: int
    original_execution_id: int
    template_id: int
    restaurant_id: int
    inspector_id: int
    tenant_id: int
    scheduled_date: datetime
    completed_date: datetime | None = None
    total_score: float | None = None
    max_possible_score: float | None = None
    notes: str | None = None
    status: str
    archived_by: int
    archived_at: datetime
    template_name: str
    template_category: str
    restaurant_name: str
    inspector_name: str
    responses_data: list[dict] = Field(default_factory=list)
    non_conformities_data: list[dict] = Field(default_factory=list)
    corrective_actions_data: list[dict] = Field(default_factory=list)
    model_config = {"from_attributes": True}


class ArchiveFilters(BaseModel):
    category: str | None = None
    restaurant_name: str | None = None
    inspector_name: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    min_score: float | None = None
    max_score: float | None = None
    status: str = "archived"
    sort_by: str = "archived_at"
    sort_order: str = "desc"
    page: int = Field(1, ge=1)
    limit: int | None = Field(None, ge=1, le=100)

    @field_validator("date_from", "date_to")
    @classmethod
    def normalize_dates(cls, v):
        return naive_utc(v)


class AutoArchiveResult(BaseModel):
    archived_count: int
    archive_ids: list[int] = Field(default_factory=list)


class CategoryCount(BaseModel):
    category: str
    count: int


class ArchiveStats(BaseModel):
    total_archives: int
    average_score: float | None = None
    categories: list[CategoryCount] = Field(default_factory=list)
