from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base

TEMPLATE_CATEGORIES = (
    "hygiene", "security", "service", "management",
    "environment", "infrastructure", "finance",
)
TEMPLATE_FREQUENCIES = ("daily", "weekly", "monthly", "quarterly", "on_demand")
ITEM_TYPES = ("yes_no", "score", "text", "photo")


class AuditTemplate(Base):
    __tablename__ = "audit_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    category: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text)
    frequency: Mapped[str] = mapped_column(String(20), default="on_demand", nullable=False)
    estimated_duration: Mapped[int | None] = mapped_column(Integer)  # minutes
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Creator's tenant; only filtered on when TEMPLATES_TENANT_SCOPED is set
    tenant_id: Mapped[int | None] = mapped_column(Integer, index=True)
    created_by: Mapped[int | None] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False,
    )


class AuditItem(Base):
    __tablename__ = "audit_items"
    __table_args__ = (
        UniqueConstraint("template_id", "order", name="uq_audit_item_order"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    template_id: Mapped[int] = mapped_column(
        ForeignKey("audit_templates.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    question: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(10), nullable=False)
    is_required: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_critical: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    order: Mapped[int] = mapped_column(Integer, nullable=False)
    max_score: Mapped[int | None] = mapped_column(Integer)
    help_text: Mapped[str | None] = mapped_column(Text)

    def snapshot(self) -> dict:
        """Plain copy stored on executions so later template edits do not leak into them."""
        return {
            "id": self.id,
            "question": self.question,
            "type": self.type,
            "is_required": self.is_required,
            "is_critical": self.is_critical,
            "order": self.order,
            "max_score": self.max_score,
            "help_text": self.help_text,
        }
