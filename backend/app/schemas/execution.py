from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from app.schemas.common import naive_utc
from app.schemas.finding import NonConformityOut


# ═══ Scheduling ═══

class ExecutionCreate(BaseModel):
    template_id: int
    restaurant_id: int
    inspector_id: int
    scheduled_date: datetime
    notes: str | None = None

    @field_validator("scheduled_date")
    @classmethod
    def normalize_dates(cls, v):
        return naive_utc(v)


class SnapshotItemOut(BaseModel):
    id: int
    question: str
    type: str
    is_required: bool
    is_critical: bool
    order: int
    max_score: int | None = None
    help_text: str | None = None


class ExecutionOut(BaseModel):
    id: int
    template_id: int
    template_name: str | None = None
    template_category: str | None = None
    restaurant_id: int
    restaurant_name: str | None = None
    inspector_id: int
    inspector_name: str | None = None
    tenant_id: int
    scheduled_date: datetime
    status: str
    effective_status: str
    is_overdue: bool
    allowed_actions: list[str] = Field(default_factory=list)
    notes: str | None = None
    started_at: datetime | None = None
    completed_date: datetime | None = None
    reviewed_at: datetime | None = None
    reviewed_by: int | None = None
    total_score: float | None = None
    max_possible_score: float | None = None
    assigned_by: int | None = None
    created_at: datetime
    updated_at: datetime


# ═══ Responses ═══

class ResponseIn(BaseModel):
    item_id: int
    value: str | bool | int | float | None = None
    score: float | None = None
    notes: str | None = None
    photo_url: str | None = Field(None, max_length=500)


class ResponseOut(BaseModel):
    id: int
    execution_id: int
    item_id: int
    value: str | None = None
    score: float | None = None
    notes: str | None = None
    photo_url: str | None = None
    created_at: datetime
    updated_at: datetime
    model_config = {"from_attributes": True}


class ResponseResultOut(BaseModel):
    response: ResponseOut
    execution_status: str
    non_conformity: NonConformityOut | None = None


class ExecutionDetailOut(ExecutionOut):
    items: list[SnapshotItemOut] = Field(default_factory=list)
    responses: list[ResponseOut] = Field(default_factory=list)
    non_conformities: list[NonConformityOut] = Field(default_factory=list)


# ═══ Lifecycle ═══

class ReviewRequest(BaseModel):
    notes: str | None = None


class PlanningOut(BaseModel):
    today: list[ExecutionOut] = Field(default_factory=list)
    overdue: list[ExecutionOut] = Field(default_factory=list)
    upcoming: list[ExecutionOut] = Field(default_factory=list)
    future: list[ExecutionOut] = Field(default_factory=list)
