"""Identity resolution and the capability checks every operation starts with.

``subject`` is whatever the identity provider handed us for the current call:
the caller's Telegram id, or ``None`` when nobody is signed in.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from fest_bot.errors import Unauthenticated, Unauthorized, UserNotFound
from fest_bot.models import Registration, User, UserRole


async def resolve_user(session: AsyncSession, subject: Optional[int]) -> Optional[User]:
    if subject is None:
        return None
    result = await session.execute(select(User).where(User.tg_id == subject))
    return result.scalars().first()


def is_admin(user: Optional[User]) -> bool:
    return user is not None and user.role == UserRole.admin


def is_owner(user: Optional[User], registration: Registration) -> bool:
    return user is not None and registration.user_id == user.id


async def require_user(session: AsyncSession, subject: Optional[int]) -> User:
    """Return the provisioned caller or fail."""
    if subject is None:
        raise Unauthenticated()
    user = await resolve_user(session, subject)
    if user is None:
        raise UserNotFound()
    return user


async def require_admin(session: AsyncSession, subject: Optional[int]) -> User:
    if subject is None:
        raise Unauthenticated()
    user = await resolve_user(session, subject)
    if not is_admin(user):
        raise Unauthorized("Admin access required.")
    return user  # type: ignore[return-value]


def ensure_can_manage(user: User, registration: Registration) -> None:
    """Students may only touch their own registrations; admins any."""
    if not (is_admin(user) or is_owner(user, registration)):
        raise Unauthorized()
