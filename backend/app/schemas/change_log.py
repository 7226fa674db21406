from datetime import datetime

from pydantic import BaseModel


class ChangeLogOut(BaseModel):
    id: int
    user_id: int | None = None
    tenant_id: int | None = None
    module: str
    action: str
    entity_type: str
    entity_id: int
    field_name: str | None = None
    old_value: str | None = None
    new_value: str | None = None
    ip_address: str | None = None
    created_at: datetime
    model_config = {"from_attributes": True}


class ChangeLogPage(BaseModel):
    items: list[ChangeLogOut]
    total: int
    page: int
    per_page: int
