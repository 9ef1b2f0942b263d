from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel

from fest_bot.utils.time import utcnow


class UserRole(str, Enum):
    student = "student"
    admin = "admin"


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    # Subject id issued by the identity provider (Telegram user id)
    tg_id: int = Field(index=True, unique=True)
    email: str
    name: str
    role: UserRole = Field(default=UserRole.student, index=True)
    created_at: datetime = Field(default_factory=utcnow)


class UserRead(SQLModel):
    id: int
    tg_id: int
    email: str
    name: str
    role: UserRole
    created_at: datetime
