"""
Change trail written from the ORM unit of work.

Every create, delete and changed column on an audit-domain table becomes one
ChangeLog row in the same transaction. The acting user, tenant and client IP
come from the request (ChangeContextMiddleware in app.main):

    install_change_listeners()
    set_change_context(user_id=7, tenant_id=1, ip_address="10.0.0.4")
"""
from __future__ import annotations

import contextvars
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from app.models.base import Base
from app.models.change_log import ChangeLog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Actor:
    user_id: int | None = None
    tenant_id: int | None = None
    ip_address: str | None = None


_actor: contextvars.ContextVar[_Actor] = contextvars.ContextVar("change_actor", default=_Actor())


def set_change_context(
    *,
    user_id: int | None = None,
    tenant_id: int | None = None,
    ip_address: str | None = None,
) -> None:
    _actor.set(_Actor(user_id, tenant_id, ip_address))


def current_ip_address() -> str | None:
    return _actor.get().ip_address


# Directory tables are owned elsewhere; the trail itself is never traced.
_UNTRACED = frozenset({"change_log", "alembic_version", "restaurants", "users"})

_MODULES = {
    "audit_templates": "templates",
    "audit_items": "templates",
    "audit_executions": "audits",
    "audit_responses": "audits",
    "non_conformities": "findings",
    "corrective_actions": "corrective_actions",
    "audit_archives": "archives",
}

_PENDING_KEY = "change_log_pending"
_WRITING_KEY = "change_log_writing"


def resolve_module(table_name: str) -> str:
    return _MODULES.get(table_name, table_name)


def _traced_table(obj: Any) -> str | None:
    if not isinstance(obj, Base):
        return None
    table = obj.__tablename__
    return None if table in _UNTRACED else table


def _primary_key(obj: Any) -> int | None:
    return getattr(obj, "id", None)


def _text(value: Any) -> str | None:
    if value is None:
        return None
    return value.isoformat() if isinstance(value, datetime) else str(value)


def _field_changes(obj: Any):
    """Yield (column, old, new) for every changed column except updated_at."""
    state = inspect(obj)
    columns = {c.key for c in state.mapper.column_attrs}
    for key in sorted(columns - {"updated_at"}):
        history = state.attrs[key].history
        if history.has_changes():
            old = history.deleted[0] if history.deleted else None
            new = history.added[0] if history.added else None
            yield key, _text(old), _text(new)


def _before_flush(session: Session, flush_context: Any, instances: Any) -> None:
    """Snapshot field histories now; they are gone once the flush has run."""
    if session.info.get(_WRITING_KEY):
        return
    pending: list[tuple] = []
    for obj in session.new:
        table = _traced_table(obj)
        if table:
            pending.append((obj, table, "create", None, None, None))
    for obj in session.dirty:
        table = _traced_table(obj)
        if table and session.is_modified(obj, include_collections=False):
            pending.extend((obj, table, "update", *change) for change in _field_changes(obj))
    for obj in session.deleted:
        table = _traced_table(obj)
        if table:
            # deleted rows lose their identity after the flush
            pending.append((_primary_key(obj), table, "delete", None, None, None))
    session.info[_PENDING_KEY] = pending


def _after_flush(session: Session, flush_context: Any) -> None:
    if session.info.get(_WRITING_KEY):
        return
    pending = session.info.pop(_PENDING_KEY, [])
    if not pending:
        return

    actor = _actor.get()
    now = datetime.utcnow()
    session.info[_WRITING_KEY] = True
    try:
        for target, table, action, field_name, old_value, new_value in pending:
            entity_id = target if action == "delete" else _primary_key(target)
            session.add(ChangeLog(
                user_id=actor.user_id,
                tenant_id=actor.tenant_id,
                module=resolve_module(table),
                action=action,
                entity_type=table,
                entity_id=entity_id or 0,
                field_name=field_name,
                old_value=old_value,
                new_value=new_value,
                ip_address=actor.ip_address,
                created_at=now,
            ))
    finally:
        session.info[_WRITING_KEY] = False


_installed = False


def install_change_listeners() -> None:
    global _installed
    if _installed:
        return
    event.listen(Session, "before_flush", _before_flush)
    event.listen(Session, "after_flush", _after_flush)
    _installed = True
    logger.info("Change trail listeners installed")
