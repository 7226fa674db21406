"""Audit core: directory mirrors, templates, executions, findings, actions, archives, change log.

Revision ID: 001_audit_core
Revises:
"""
from alembic import op
import sqlalchemy as sa

revision = "001_audit_core"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ── directory (owned by tenant administration) ──
    op.create_table(
        "restaurants",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.Integer, nullable=False, index=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("city", sa.String(120)),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.Integer, nullable=False, index=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("display_name", sa.String(200)),
        sa.Column("role", sa.String(20), nullable=False, server_default="inspector"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )

    # ── template catalog ──
    op.create_table(
        "audit_templates",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("category", sa.String(30), nullable=False, index=True),
        sa.Column("description", sa.Text),
        sa.Column("frequency", sa.String(20), nullable=False, server_default="on_demand"),
        sa.Column("estimated_duration", sa.Integer),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="1"),
        sa.Column("tenant_id", sa.Integer, index=True),
        sa.Column("created_by", sa.Integer),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        "audit_items",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("template_id", sa.Integer, sa.ForeignKey("audit_templates.id", ondelete="CASCADE"),
                  nullable=False, index=True),
        sa.Column("question", sa.Text, nullable=False),
        sa.Column("type", sa.String(10), nullable=False),
        sa.Column("is_required", sa.Boolean, nullable=False, server_default="1"),
        sa.Column("is_critical", sa.Boolean, nullable=False, server_default="0"),
        sa.Column("order", sa.Integer, nullable=False),
        sa.Column("max_score", sa.Integer),
        sa.Column("help_text", sa.Text),
        sa.UniqueConstraint("template_id", "order", name="uq_audit_item_order"),
    )

    # ── executions ──
    op.create_table(
        "audit_executions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("template_id", sa.Integer, sa.ForeignKey("audit_templates.id"), nullable=False, index=True),
        sa.Column("restaurant_id", sa.Integer, sa.ForeignKey("restaurants.id"), nullable=False, index=True),
        sa.Column("inspector_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("tenant_id", sa.Integer, nullable=False, index=True),
        sa.Column("scheduled_date", sa.DateTime, nullable=False, index=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="todo"),
        sa.Column("notes", sa.Text),
        sa.Column("items_snapshot", sa.JSON, nullable=False),
        sa.Column("started_at", sa.DateTime),
        sa.Column("completed_date", sa.DateTime),
        sa.Column("reviewed_at", sa.DateTime),
        sa.Column("reviewed_by", sa.Integer),
        sa.Column("total_score", sa.Float),
        sa.Column("max_possible_score", sa.Float),
        sa.Column("assigned_by", sa.Integer),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sqlite_autoincrement=True,
    )
    op.create_table(
        "audit_responses",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("execution_id", sa.Integer, sa.ForeignKey("audit_executions.id", ondelete="CASCADE"),
                  nullable=False, index=True),
        sa.Column("item_id", sa.Integer, nullable=False),
        sa.Column("value", sa.Text),
        sa.Column("score", sa.Float),
        sa.Column("notes", sa.Text),
        sa.Column("photo_url", sa.String(500)),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("execution_id", "item_id", name="uq_response_execution_item"),
    )

    # ── findings & actions ──
    op.create_table(
        "non_conformities",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("execution_id", sa.Integer, sa.ForeignKey("audit_executions.id", ondelete="CASCADE"),
                  nullable=False, index=True),
        sa.Column("item_id", sa.Integer, nullable=False),
        sa.Column("response_id", sa.Integer, sa.ForeignKey("audit_responses.id", ondelete="SET NULL")),
        sa.Column("severity", sa.String(10), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("evidence", sa.Text),
        sa.Column("status", sa.String(20), nullable=False, server_default="open"),
        sa.Column("identified_date", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("resolution_notes", sa.Text),
        sa.Column("resolution_date", sa.DateTime),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("execution_id", "item_id", name="uq_nc_execution_item"),
    )
    op.create_table(
        "corrective_actions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.Integer, nullable=False, index=True),
        sa.Column("restaurant_id", sa.Integer, sa.ForeignKey("restaurants.id"), index=True),
        sa.Column("non_conformity_id", sa.Integer, sa.ForeignKey("non_conformities.id", ondelete="SET NULL"),
                  index=True),
        sa.Column("action_description", sa.Text, nullable=False),
        sa.Column("assigned_to", sa.Integer, sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("created_by", sa.Integer),
        sa.Column("priority", sa.String(10), nullable=False, server_default="normal"),
        sa.Column("due_date", sa.DateTime, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="assigned"),
        sa.Column("notes", sa.Text),
        sa.Column("completion_date", sa.DateTime),
        sa.Column("completion_notes", sa.Text),
        sa.Column("verification_notes", sa.Text),
        sa.Column("verified_by", sa.Integer),
        sa.Column("verification_date", sa.DateTime),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )

    # ── archives ──
    op.create_table(
        "audit_archives",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("original_execution_id", sa.Integer, nullable=False, unique=True),
        sa.Column("template_id", sa.Integer, nullable=False, index=True),
        sa.Column("restaurant_id", sa.Integer, nullable=False),
        sa.Column("inspector_id", sa.Integer, nullable=False),
        sa.Column("tenant_id", sa.Integer, nullable=False, index=True),
        sa.Column("scheduled_date", sa.DateTime, nullable=False),
        sa.Column("completed_date", sa.DateTime),
        sa.Column("total_score", sa.Float),
        sa.Column("max_possible_score", sa.Float),
        sa.Column("notes", sa.Text),
        sa.Column("status", sa.String(10), nullable=False, server_default="archived"),
        sa.Column("archived_by", sa.Integer, nullable=False),
        sa.Column("archived_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("template_name", sa.String(100), nullable=False),
        sa.Column("template_category", sa.String(30), nullable=False, index=True),
        sa.Column("restaurant_name", sa.String(200), nullable=False),
        sa.Column("inspector_name", sa.String(255), nullable=False),
        sa.Column("responses_data", sa.JSON, nullable=False),
        sa.Column("non_conformities_data", sa.JSON, nullable=False),
        sa.Column("corrective_actions_data", sa.JSON, nullable=False),
    )

    # ── change trail ──
    op.create_table(
        "change_log",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer),
        sa.Column("tenant_id", sa.Integer, index=True),
        sa.Column("module", sa.String(50), nullable=False),
        sa.Column("action", sa.Enum("create", "update", "delete", "review", "archive", name="change_action"),
                  nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.Integer, nullable=False),
        sa.Column("field_name", sa.String(100)),
        sa.Column("old_value", sa.Text),
        sa.Column("new_value", sa.Text),
        sa.Column("ip_address", sa.String(45)),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("change_log")
    op.drop_table("audit_archives")
    op.drop_table("corrective_actions")
    op.drop_table("non_conformities")
    op.drop_table("audit_responses")
    op.drop_table("audit_executions")
    op.drop_table("audit_items")
    op.drop_table("audit_templates")
    op.drop_table("users")
    op.drop_table("restaurants")
    sa.Enum(name="change_action").drop(op.get_bind(), checkfirst=True)
