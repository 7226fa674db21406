"""
Read-time lifecycle rules.

Nothing here touches the database: every function is a pure function of the
stored status, the relevant date and an explicit ``now``, so the same rules
drive API responses, planning groups and exports.
"""
from datetime import datetime, timedelta

from app.auth import AuthorizationContext
from app.models.corrective_action import CLOSED_ACTION_STATUSES
from app.models.execution import ACTIVE_STATUSES, CLOSEABLE_STATUSES

PRIORITY_DUE_DAYS = {"critical": 1, "urgent": 7, "normal": 30, "planned": 90}

PLANNING_GROUPS = ("today", "overdue", "upcoming", "future")


def initial_status(scheduled_date: datetime, now: datetime) -> str:
    return "todo" if scheduled_date <= now else "scheduled"


def effective_status(status: str, scheduled_date: datetime, now: datetime) -> str:
    """A scheduled execution whose date has arrived reads as todo."""
    if status == "scheduled" and scheduled_date <= now:
        return "todo"
    return status


def execution_is_overdue(status: str, scheduled_date: datetime, now: datetime) -> bool:
    return status not in CLOSEABLE_STATUSES and scheduled_date < now


def action_is_overdue(status: str, due_date: datetime, now: datetime) -> bool:
    return status not in CLOSED_ACTION_STATUSES and due_date < now


def planning_group(
    status: str,
    scheduled_date: datetime,
    now: datetime,
    upcoming_days: int = 7,
) -> str | None:
    """Return the planning bucket of an execution, or None when it is no longer active.

    The buckets are mutually exclusive; "today" wins over "overdue" so that an
    audit due this morning is still listed with the rest of today's work.
    """
    if status not in ACTIVE_STATUSES:
        return None
    if scheduled_date.date() == now.date():
        return "today"
    if execution_is_overdue(status, scheduled_date, now):
        return "overdue"
    if scheduled_date <= now + timedelta(days=upcoming_days):
        return "upcoming"
    return "future"


def default_due_date(priority: str, now: datetime) -> datetime:
    return now + timedelta(days=PRIORITY_DUE_DAYS.get(priority, PRIORITY_DUE_DAYS["normal"]))


def allowed_actions(
    status: str,
    inspector_id: int,
    ctx: AuthorizationContext,
) -> list[str]:
    """Operations the caller may run next on an execution in ``status``."""
    is_inspector = inspector_id == ctx.user_id
    actions: list[str] = []
    if status in ACTIVE_STATUSES and (is_inspector or ctx.is_manager):
        actions.append("record_response")
    if status == "in_progress" and (is_inspector or ctx.is_manager):
        actions.append("complete")
    if status == "completed" and ctx.is_manager:
        actions.append("review")
    if status in CLOSEABLE_STATUSES and ctx.is_manager:
        actions.append("archive")
    return actions
