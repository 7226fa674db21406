from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from app.schemas.common import naive_utc


class ActionCreate(BaseModel):
    action_description: str = Field(..., min_length=1)
    assigned_to: int
    due_date: datetime | None = None
    priority: str | None = None
    non_conformity_id: int | None = None
    restaurant_id: int | None = None
    notes: str | None = None

    @field_validator("due_date")
    @classmethod
    def normalize_dates(cls, v):
        return naive_utc(v)


class ActionUpdate(BaseModel):
    action_description: str | None = Field(None, min_length=1)
    assigned_to: int | None = None
    due_date: datetime | None = None
    priority: str | None = None
    notes: str | None = None
    status: str | None = None
    completion_date: datetime | None = None
    completion_notes: str | None = None
    verification_notes: str | None = None

    @field_validator("due_date", "completion_date")
    @classmethod
    def normalize_dates(cls, v):
        return naive_utc(v)


class ActionOut(BaseModel):
    id: int
    tenant_id: int
    restaurant_id: int | None = None
    restaurant_name: str | None = None
    non_conformity_id: int | None = None
    action_description: str
    assigned_to: int
    assigned_to_name: str | None = None
    created_by: int | None = None
    priority: str
    due_date: datetime
    status: str
    is_overdue: bool = False
    notes: str | None = None
    completion_date: datetime | None = None
    completion_notes: str | None = None
    verification_notes: str | None = None
    verified_by: int | None = None
    verification_date: datetime | None = None
    created_at: datetime
    updated_at: datetime


class ActionStats(BaseModel):
    total: int
    by_status: dict[str, int]
    by_priority: dict[str, int]
    overdue: int
