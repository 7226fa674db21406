"""
Caller identity as resolved by the upstream authorization gateway.

The gateway validates the bearer token and forwards the resolved identity as
trusted headers; this service only reads them into an AuthorizationContext
that is passed explicitly to every core operation.
"""
from dataclasses import dataclass

from fastapi import Header, HTTPException

from app.errors import AuthorizationError

ROLES = ("admin", "manager", "inspector", "viewer")
MANAGER_ROLES = ("admin", "manager")


@dataclass(frozen=True)
class AuthorizationContext:
    user_id: int
    tenant_id: int
    role: str
    restaurant_id: int | None = None

    @property
    def is_manager(self) -> bool:
        return self.role in MANAGER_ROLES


def require_manager(ctx: AuthorizationContext, what: str = "this operation") -> None:
    if not ctx.is_manager:
        raise AuthorizationError(f"Only managers and admins may perform {what}")


def _parse_int(raw: str | None, header: str) -> int | None:
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise HTTPException(401, f"Invalid {header} header")


async def get_auth_context(
    x_user_id: str | None = Header(None),
    x_tenant_id: str | None = Header(None),
    x_user_role: str | None = Header(None),
    x_restaurant_id: str | None = Header(None),
) -> AuthorizationContext:
    user_id = _parse_int(x_user_id, "X-User-Id")
    tenant_id = _parse_int(x_tenant_id, "X-Tenant-Id")
    if user_id is None or tenant_id is None or not x_user_role:
        raise HTTPException(401, "Missing caller identity")
    role = x_user_role.strip().lower()
    if role not in ROLES:
        raise HTTPException(401, f"Unknown role '{x_user_role}'")
    return AuthorizationContext(
        user_id=user_id,
        tenant_id=tenant_id,
        role=role,
        restaurant_id=_parse_int(x_restaurant_id, "X-Restaurant-Id"),
    )
