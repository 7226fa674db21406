from datetime import datetime

from sqlalchemy import JSON, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base

ARCHIVE_STATUSES = ("archived", "deleted")


class AuditArchive(Base):
    """Frozen, denormalised copy of a finished execution.

    Holds plain ids and names rather than foreign keys so it stays readable
    after the template, restaurant or inspector is renamed or removed.
    """

    __tablename__ = "audit_archives"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    original_execution_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    template_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    restaurant_id: Mapped[int] = mapped_column(Integer, nullable=False)
    inspector_id: Mapped[int] = mapped_column(Integer, nullable=False)
    tenant_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    scheduled_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    completed_date: Mapped[datetime | None] = mapped_column(DateTime)
    total_score: Mapped[float | None] = mapped_column(Float)
    max_possible_score: Mapped[float | None] = mapped_column(Float)
    notes: Mapped[str | None] = mapped_column(Text)

    status: Mapped[str] = mapped_column(String(10), default="archived", nullable=False)
    archived_by: Mapped[int] = mapped_column(Integer, nullable=False)
    archived_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    template_name: Mapped[str] = mapped_column(String(100), nullable=False)
    template_category: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    restaurant_name: Mapped[str] = mapped_column(String(200), nullable=False)
    inspector_name: Mapped[str] = mapped_column(String(255), nullable=False)

    responses_data: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    non_conformities_data: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    corrective_actions_data: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
