from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base

ACTION_STATUSES = ("assigned", "in_progress", "completed", "verified", "archived")
ACTION_PRIORITIES = ("critical", "urgent", "normal", "planned")
CLOSED_ACTION_STATUSES = ("completed", "verified", "archived")


class CorrectiveAction(Base):
    __tablename__ = "corrective_actions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    restaurant_id: Mapped[int | None] = mapped_column(ForeignKey("restaurants.id"), index=True)
    # null for standalone actions, and for actions whose finding has been archived
    non_conformity_id: Mapped[int | None] = mapped_column(
        ForeignKey("non_conformities.id", ondelete="SET NULL"), index=True,
    )

    action_description: Mapped[str] = mapped_column(Text, nullable=False)
    assigned_to: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    created_by: Mapped[int | None] = mapped_column(Integer)
    priority: Mapped[str] = mapped_column(String(10), default="normal", nullable=False)
    due_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="assigned", nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)

    completion_date: Mapped[datetime | None] = mapped_column(DateTime)
    completion_notes: Mapped[str | None] = mapped_column(Text)
    verification_notes: Mapped[str | None] = mapped_column(Text)
    verified_by: Mapped[int | None] = mapped_column(Integer)
    verification_date: Mapped[datetime | None] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False,
    )

    # Forward-only; "archived" is only reachable from "completed"
    TRANSITIONS = {
        "assigned": ["in_progress", "completed"],
        "in_progress": ["completed"],
        "completed": ["verified", "archived"],
    }

    def can_transition_to(self, target: str) -> bool:
        return target in self.TRANSITIONS.get(self.status, [])

    @property
    def is_editable(self) -> bool:
        return self.status not in CLOSED_ACTION_STATUSES
