from datetime import datetime

from pydantic import BaseModel


class NonConformityOut(BaseModel):
    id: int
    execution_id: int
    item_id: int
    response_id: int | None = None
    severity: str
    description: str
    evidence: str | None = None
    status: str
    identified_date: datetime
    resolution_notes: str | None = None
    resolution_date: datetime | None = None
    restaurant_id: int | None = None
    restaurant_name: str | None = None
    action_count: int = 0
    created_at: datetime
    updated_at: datetime


class NonConformityUpdate(BaseModel):
    status: str | None = None
    severity: str | None = None
    description: str | None = None
    resolution_notes: str | None = None


class NonConformityStats(BaseModel):
    total: int
    by_status: dict[str, int]
    by_severity: dict[str, int]
    critical: int
