from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import Field, Index, SQLModel

from fest_bot.models.event import EventRead
from fest_bot.models.user import UserRead
from fest_bot.utils.time import utcnow


class RegistrationStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    cancelled = "cancelled"

    @property
    def is_active(self) -> bool:
        """Pending and confirmed registrations hold a spot."""
        return self is not RegistrationStatus.cancelled


class Registration(SQLModel, table=True):
    # At most one *active* row per (user, event); checked when registering.
    __table_args__ = (
        Index("ix_registration_user_event", "user_id", "event_id"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    # No foreign key: cancelled rows outlive a deleted event
    event_id: int = Field(index=True)
    status: RegistrationStatus = Field(default=RegistrationStatus.pending, index=True)
    registered_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class RegistrationRead(SQLModel):
    id: int
    user_id: int
    event_id: int
    status: RegistrationStatus
    registered_at: datetime
    updated_at: datetime
    event: Optional[EventRead] = None
    user: Optional[UserRead] = None
