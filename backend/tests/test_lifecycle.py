"""Pure lifecycle rules — overdue, planning groups, derived status, default due dates."""
from datetime import datetime, timedelta

from app.auth import AuthorizationContext
from app.services import lifecycle

NOW = datetime(2026, 3, 10, 14, 30, 0)

MANAGER = AuthorizationContext(user_id=1, tenant_id=1, role="manager")
INSPECTOR = AuthorizationContext(user_id=2, tenant_id=1, role="inspector")
OTHER_INSPECTOR = AuthorizationContext(user_id=3, tenant_id=1, role="inspector")


def test_initial_status_depends_on_date():
    assert lifecycle.initial_status(NOW, NOW) == "todo"
    assert lifecycle.initial_status(NOW - timedelta(hours=1), NOW) == "todo"
    assert lifecycle.initial_status(NOW + timedelta(seconds=1), NOW) == "scheduled"


def test_scheduled_collapses_to_todo_once_its_date_arrives():
    assert lifecycle.effective_status("scheduled", NOW + timedelta(days=1), NOW) == "scheduled"
    assert lifecycle.effective_status("scheduled", NOW, NOW) == "todo"
    assert lifecycle.effective_status("scheduled", NOW - timedelta(days=2), NOW) == "todo"
    assert lifecycle.effective_status("in_progress", NOW - timedelta(days=2), NOW) == "in_progress"


def test_execution_overdue_boundary():
    one_second_ago = NOW - timedelta(seconds=1)
    assert lifecycle.execution_is_overdue("todo", one_second_ago, NOW) is True
    assert lifecycle.execution_is_overdue("in_progress", one_second_ago, NOW) is True
    assert lifecycle.execution_is_overdue("todo", NOW, NOW) is False
    assert lifecycle.execution_is_overdue("completed", one_second_ago, NOW) is False
    assert lifecycle.execution_is_overdue("reviewed", one_second_ago, NOW) is False


def test_action_overdue_boundary():
    one_second_ago = NOW - timedelta(seconds=1)
    yesterday = NOW - timedelta(days=1)
    assert lifecycle.action_is_overdue("assigned", one_second_ago, NOW) is True
    assert lifecycle.action_is_overdue("in_progress", yesterday, NOW) is True
    assert lifecycle.action_is_overdue("assigned", NOW + timedelta(seconds=1), NOW) is False
    for closed in ("completed", "verified", "archived"):
        assert lifecycle.action_is_overdue(closed, yesterday, NOW) is False


def test_planning_groups_are_mutually_exclusive():
    cases = {
        NOW.replace(hour=8): "today",         # earlier today, already past
        NOW.replace(hour=22): "today",        # later today
        NOW - timedelta(days=1): "overdue",
        NOW - timedelta(days=40): "overdue",
        NOW + timedelta(days=1): "upcoming",
        NOW + timedelta(days=7): "upcoming",
        NOW + timedelta(days=7, seconds=1): "future",
        NOW + timedelta(days=60): "future",
    }
    for when, expected in cases.items():
        assert lifecycle.planning_group("todo", when, NOW) == expected, when


def test_planning_ignores_closed_executions():
    assert lifecycle.planning_group("completed", NOW - timedelta(days=1), NOW) is None
    assert lifecycle.planning_group("reviewed", NOW, NOW) is None
    assert lifecycle.planning_group("in_progress", NOW - timedelta(days=3), NOW) == "overdue"


def test_planning_upcoming_window_is_configurable():
    when = NOW + timedelta(days=10)
    assert lifecycle.planning_group("scheduled", when, NOW, upcoming_days=7) == "future"
    assert lifecycle.planning_group("scheduled", when, NOW, upcoming_days=14) == "upcoming"


def test_default_due_dates_follow_priority():
    assert lifecycle.default_due_date("critical", NOW) == NOW + timedelta(days=1)
    assert lifecycle.default_due_date("urgent", NOW) == NOW + timedelta(days=7)
    assert lifecycle.default_due_date("normal", NOW) == NOW + timedelta(days=30)
    assert lifecycle.default_due_date("planned", NOW) == NOW + timedelta(days=90)


def test_allowed_actions_by_role_and_status():
    assert lifecycle.allowed_actions("todo", 2, INSPECTOR) == ["record_response"]
    assert lifecycle.allowed_actions("todo", 2, OTHER_INSPECTOR) == []
    assert lifecycle.allowed_actions("in_progress", 2, INSPECTOR) == ["record_response", "complete"]
    assert lifecycle.allowed_actions("completed", 2, INSPECTOR) == []
    assert lifecycle.allowed_actions("completed", 2, MANAGER) == ["review", "archive"]
    assert lifecycle.allowed_actions("reviewed", 2, MANAGER) == ["archive"]
