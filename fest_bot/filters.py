from typing import Union

from aiogram.filters import BaseFilter
from aiogram.types import CallbackQuery, Message
from sqlalchemy.ext.asyncio import AsyncSession

from fest_bot.models import UserRole
from fest_bot.services.users import get_user_by_tg_id


class AdminFilter(BaseFilter):
    """Passes updates from users whose stored role is admin."""

    async def __call__(self, event: Union[Message, CallbackQuery], session: AsyncSession) -> bool:
        if not event.from_user:
            return False
        user = await get_user_by_tg_id(session, event.from_user.id)
        return user is not None and user.role == UserRole.admin
