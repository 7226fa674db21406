from datetime import datetime

from sqlalchemy import JSON, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base

EXECUTION_STATUSES = ("todo", "scheduled", "in_progress", "completed", "reviewed")
ACTIVE_STATUSES = ("todo", "scheduled", "in_progress")
CLOSEABLE_STATUSES = ("completed", "reviewed")


class AuditExecution(Base):
    __tablename__ = "audit_executions"
    # ids must never be handed out twice: archives reference them after deletion
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    template_id: Mapped[int] = mapped_column(ForeignKey("audit_templates.id"), nullable=False, index=True)
    restaurant_id: Mapped[int] = mapped_column(ForeignKey("restaurants.id"), nullable=False, index=True)
    inspector_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    tenant_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    scheduled_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), default="todo", nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    items_snapshot: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    started_at: Mapped[datetime | None] = mapped_column(DateTime)
    completed_date: Mapped[datetime | None] = mapped_column(DateTime)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime)
    reviewed_by: Mapped[int | None] = mapped_column(Integer)
    total_score: Mapped[float | None] = mapped_column(Float)
    max_possible_score: Mapped[float | None] = mapped_column(Float)

    assigned_by: Mapped[int | None] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False,
    )

    # Valid status transitions (archival is handled separately)
    TRANSITIONS = {
        "todo": ["in_progress"],
        "scheduled": ["in_progress"],
        "in_progress": ["completed"],
        "completed": ["reviewed"],
    }

    def can_transition_to(self, target: str) -> bool:
        return target in self.TRANSITIONS.get(self.status, [])

    def snapshot_item(self, item_id: int) -> dict | None:
        for item in self.items_snapshot or []:
            if item["id"] == item_id:
                return item
        return None


class AuditResponse(Base):
    __tablename__ = "audit_responses"
    __table_args__ = (
        UniqueConstraint("execution_id", "item_id", name="uq_response_execution_item"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    execution_id: Mapped[int] = mapped_column(
        ForeignKey("audit_executions.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    # refers to an entry of the execution's items_snapshot
    item_id: Mapped[int] = mapped_column(Integer, nullable=False)
    value: Mapped[str | None] = mapped_column(Text)
    score: Mapped[float | None] = mapped_column(Float)
    notes: Mapped[str | None] = mapped_column(Text)
    photo_url: Mapped[str | None] = mapped_column(String(500))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False,
    )
