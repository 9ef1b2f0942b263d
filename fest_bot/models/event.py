import datetime as dt
import re
from enum import Enum
from typing import Optional

from pydantic import field_validator
from sqlmodel import Field, SQLModel

from fest_bot.utils.time import utcnow

TIME_RE = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])$")


class EventCategory(str, Enum):
    Music = "Music"
    Dance = "Dance"
    Drama = "Drama"
    Art = "Art"
    Sports = "Sports"
    Technical = "Technical"
    Literary = "Literary"
    Other = "Other"


class EventBase(SQLModel):
    name: str = Field(min_length=3, max_length=100)
    description: str = Field(min_length=10, max_length=1000)
    category: EventCategory = Field(index=True)
    date: dt.date = Field(index=True)
    time: dt.time  # local festival time, minute precision
    venue: str = Field(min_length=3)
    capacity: int = Field(gt=0)


class Event(EventBase, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    # Denormalized number of non-cancelled registrations
    registered_count: int = 0
    created_by: int = Field(foreign_key="user.id")
    created_at: dt.datetime = Field(default_factory=utcnow)
    updated_at: dt.datetime = Field(default_factory=utcnow)


class EventFields(EventBase):
    """The admin-editable part of an event, validated on the way in."""

    @field_validator("time", mode="before")
    @classmethod
    def _parse_hh_mm(cls, value):
        if isinstance(value, str):
            match = TIME_RE.match(value.strip())
            if not match:
                raise ValueError("time must be in HH:MM format")
            return dt.time(int(match.group(1)), int(match.group(2)))
        return value

    @field_validator("capacity", mode="before")
    @classmethod
    def _reject_bool(cls, value):
        # bool is an int subclass; True must not become a capacity of 1
        if isinstance(value, bool):
            raise ValueError("capacity must be a positive integer")
        return value


class EventRead(EventBase):
    id: int
    registered_count: int
    created_by: int
    created_at: dt.datetime
    updated_at: dt.datetime
    available_spots: int
    is_full: bool

    @classmethod
    def from_event(cls, event: Event) -> "EventRead":
        return cls.model_validate(
            event,
            update={
                "available_spots": event.capacity - event.registered_count,
                "is_full": event.registered_count >= event.capacity,
            },
        )
