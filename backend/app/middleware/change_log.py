"""
Explicit change-trail entries.

The ORM listeners in change_log_auto only see objects that pass through the
unit of work. Bulk statements (archival deletes) and domain events such as a
review are recorded here instead:

    await record_change(s, ctx, module="archives", action="archive",
                        entity_type="audit_executions", entity_id=execution.id,
                        changes={"status": (execution.status, "archived")})
"""
from __future__ import annotations

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import AuthorizationContext
from app.middleware.change_log_auto import current_ip_address
from app.models.change_log import ChangeLog


async def record_change(
    session: AsyncSession,
    ctx: AuthorizationContext,
    *,
    module: str,
    action: str,
    entity_type: str,
    entity_id: int,
    changes: dict[str, tuple[object, object]] | None = None,
) -> None:
    """
    Add one entry per changed field to the session; the caller commits.

    changes: dict of field_name -> (old_value, new_value)
    If changes is None, a single entry with no field detail is created.
    """
    now = datetime.utcnow()
    ip_address = current_ip_address()
    rows = changes.items() if changes else [(None, (None, None))]
    for field_name, (old_val, new_val) in rows:
        session.add(ChangeLog(
            user_id=ctx.user_id,
            tenant_id=ctx.tenant_id,
            module=module,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            field_name=field_name,
            old_value=str(old_val) if old_val is not None else None,
            new_value=str(new_val) if new_val is not None else None,
            ip_address=ip_address,
            created_at=now,
        ))
