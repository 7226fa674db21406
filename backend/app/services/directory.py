"""Tenant-checked lookups into the restaurant and user directories."""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import AuthorizationContext
from app.errors import NotFoundError, ValidationError
from app.models.directory import Restaurant, User


async def get_restaurant(s: AsyncSession, ctx: AuthorizationContext, restaurant_id: int) -> Restaurant:
    restaurant = await s.get(Restaurant, restaurant_id)
    if not restaurant or restaurant.tenant_id != ctx.tenant_id:
        raise NotFoundError(f"Restaurant {restaurant_id} not found")
    return restaurant


async def get_user(
    s: AsyncSession,
    ctx: AuthorizationContext,
    user_id: int,
    *,
    must_be_active: bool = False,
) -> User:
    user = await s.get(User, user_id)
    if not user or user.tenant_id != ctx.tenant_id:
        raise NotFoundError(f"User {user_id} not found")
    if must_be_active and not user.is_active:
        raise ValidationError(f"User {user_id} is not active")
    return user


async def restaurant_names(s: AsyncSession, ids: set[int]) -> dict[int, str]:
    ids = {i for i in ids if i is not None}
    if not ids:
        return {}
    rows = (await s.execute(select(Restaurant.id, Restaurant.name).where(Restaurant.id.in_(ids)))).all()
    return {rid: name for rid, name in rows}


async def user_labels(s: AsyncSession, ids: set[int]) -> dict[int, str]:
    ids = {i for i in ids if i is not None}
    if not ids:
        return {}
    users = (await s.execute(select(User).where(User.id.in_(ids)))).scalars().all()
    return {u.id: u.label for u in users}
