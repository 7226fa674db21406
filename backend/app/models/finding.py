from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base

SEVERITIES = ("low", "medium", "high", "critical")
NC_STATUSES = ("open", "in_progress", "resolved", "verified")


class NonConformity(Base):
    __tablename__ = "non_conformities"
    __table_args__ = (
        UniqueConstraint("execution_id", "item_id", name="uq_nc_execution_item"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    execution_id: Mapped[int] = mapped_column(
        ForeignKey("audit_executions.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    item_id: Mapped[int] = mapped_column(Integer, nullable=False)
    response_id: Mapped[int | None] = mapped_column(
        ForeignKey("audit_responses.id", ondelete="SET NULL"),
    )
    severity: Mapped[str] = mapped_column(String(10), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    evidence: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), default="open", nullable=False)
    identified_date: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    resolution_notes: Mapped[str | None] = mapped_column(Text)
    resolution_date: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False,
    )

    TRANSITIONS = {
        "open": ["in_progress", "resolved"],
        "in_progress": ["resolved"],
        "resolved": ["verified"],
    }

    def can_transition_to(self, target: str) -> bool:
        return target in self.TRANSITIONS.get(self.status, [])
