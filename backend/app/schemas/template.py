from datetime import datetime

from pydantic import BaseModel, Field


class AuditItemIn(BaseModel):
    question: str
    type: str
    is_required: bool = True
    is_critical: bool = False
    max_score: int | None = None
    help_text: str | None = None


class AuditItemOut(BaseModel):
    id: int
    question: str
    type: str
    is_required: bool
    is_critical: bool
    order: int
    max_score: int | None = None
    help_text: str | None = None
    model_config = {"from_attributes": True}


class TemplateCreate(BaseModel):
    name: str
    category: str
    description: str | None = None
    items: list[AuditItemIn] = Field(default_factory=list)
    estimated_duration: int | None = Field(None, ge=1)
    frequency: str = "on_demand"


class TemplateUpdate(BaseModel):
    name: str | None = None
    category: str | None = None
    description: str | None = None
    items: list[AuditItemIn] | None = None
    estimated_duration: int | None = Field(None, ge=1)
    frequency: str | None = None
    is_active: bool | None = None


class TemplateOut(BaseModel):
    id: int
    name: str
    category: str
    description: str | None = None
    frequency: str
    estimated_duration: int | None = None
    is_active: bool
    tenant_id: int | None = None
    created_by: int | None = None
    item_count: int = 0
    items: list[AuditItemOut] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
