import logging
import re
from typing import Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from fest_bot.config import settings
from fest_bot.db import transaction
from fest_bot.errors import UserNotFound, ValidationFailed
from fest_bot.models import User, UserRead, UserRole
from fest_bot.services.auth import require_admin

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


async def get_user_by_tg_id(session: AsyncSession, tg_id: int) -> Optional[UserRead]:
    async with transaction(session):
        result = await session.execute(select(User).where(User.tg_id == tg_id))
        user = result.scalars().first()
    return UserRead.model_validate(user) if user else None


async def provision_user(
    session: AsyncSession,
    tg_id: int,
    name: str,
    email: str,
    admin_ids: Iterable[int] | None = None,
) -> UserRead:
    """Create the user record for a Telegram account, or refresh its profile.

    Accounts listed in ``admin_ids`` (``settings.ADMIN_IDS`` by default) get
    the admin role; an existing admin is never demoted here.
    """
    name = " ".join(name.split())
    email = email.strip().lower()
    problems = []
    if len(name) < 2:
        problems.append("name must be at least 2 characters")
    if not EMAIL_RE.match(email):
        problems.append("email is not valid")
    if problems:
        raise ValidationFailed(problems=problems)

    admins = set(settings.ADMIN_IDS if admin_ids is None else admin_ids)
    async with transaction(session):
        result = await session.execute(select(User).where(User.tg_id == tg_id))
        user = result.scalars().first()
        if user is None:
            user = User(tg_id=tg_id, name=name, email=email)
            logger.info("user_provisioned tg_id=%s", tg_id)
        else:
            user.name = name
            user.email = email
        if tg_id in admins:
            user.role = UserRole.admin
        session.add(user)
        await session.flush()
        return UserRead.model_validate(user)


async def set_role(session: AsyncSession, subject: Optional[int], tg_id: int, role: UserRole | str) -> None:
    """Admin-only: promote or demote a provisioned user."""
    try:
        role = UserRole(role)
    except ValueError:
        raise ValidationFailed(f"Unknown role: {role}") from None
    async with transaction(session):
        admin = await require_admin(session, subject)
        result = await session.execute(select(User).where(User.tg_id == tg_id))
        user = result.scalars().first()
        if user is None:
            raise UserNotFound(f"No user with Telegram id {tg_id}.")
        user.role = role
        session.add(user)
    logger.info("role_changed tg_id=%s role=%s by=%s", tg_id, role.value, admin.tg_id)


async def list_admins(session: AsyncSession) -> List[UserRead]:
    async with transaction(session):
        result = await session.execute(
            select(User).where(User.role == UserRole.admin).order_by(User.created_at)  # type: ignore[arg-type]
        )
        return [UserRead.model_validate(user) for user in result.scalars().all()]
