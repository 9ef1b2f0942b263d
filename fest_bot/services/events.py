import logging
import re
from typing import Any, List, Mapping, Optional

from pydantic import ValidationError
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from fest_bot.db import transaction
from fest_bot.errors import EventNotFound, ValidationFailed
from fest_bot.models import Event, EventCategory, EventFields, EventRead, Registration, RegistrationStatus
from fest_bot.services.auth import require_admin
from fest_bot.utils.time import today_local, utcnow

logger = logging.getLogger(__name__)

WORD_RE = re.compile(r"\w+")


def parse_category(value: EventCategory | str | None) -> Optional[EventCategory]:
    if value is None or value == "":
        return None
    try:
        return EventCategory(value)
    except ValueError:
        raise ValidationFailed(f"Unknown category: {value}") from None


def validate_fields(data: EventFields | Mapping[str, Any]) -> EventFields:
    """Turn admin input into ``EventFields`` or raise ``ValidationFailed``."""
    if isinstance(data, EventFields):
        data = data.model_dump()
    try:
        return EventFields.model_validate(dict(data))
    except ValidationError as exc:
        problems = [
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
        ]
        raise ValidationFailed(problems=problems) from None


def _search_terms(search: str) -> list[str]:
    return WORD_RE.findall(search.lower())


def _match_score(name: str, terms: list[str]) -> int:
    """Number of query terms that are a prefix of some word of the name."""
    words = WORD_RE.findall(name.lower())
    return sum(1 for term in terms if any(word.startswith(term) for word in words))


async def list_events(
    session: AsyncSession,
    category: EventCategory | str | None = None,
    search: str | None = None,
) -> List[EventRead]:
    """All events, optionally narrowed by category and/or a name search.

    Search is by name only: an event matches when any query word prefixes a
    word of its name; better matches come first.
    """
    category = parse_category(category)
    terms = _search_terms(search) if search and search.strip() else []

    stmt = select(Event)
    if category is not None:
        stmt = stmt.where(Event.category == category)
    stmt = stmt.order_by(Event.id).execution_options(populate_existing=True)  # type: ignore[arg-type]

    async with transaction(session):
        events = list((await session.execute(stmt)).scalars().all())

    if terms:
        scored = [(_match_score(ev.name, terms), ev) for ev in events]
        # sorted() is stable, so equal scores keep creation order
        events = [ev for score, ev in sorted(scored, key=lambda item: -item[0]) if score > 0]
    return [EventRead.from_event(ev) for ev in events]


async def get_event(session: AsyncSession, event_id: int) -> Optional[EventRead]:
    async with transaction(session):
        event = await session.get(Event, event_id, populate_existing=True)
    return EventRead.from_event(event) if event else None


async def create_event(session: AsyncSession, subject: Optional[int], data: EventFields | Mapping[str, Any]) -> int:
    async with transaction(session):
        admin = await require_admin(session, subject)
        fields = validate_fields(data)
        if fields.date < today_local():
            raise ValidationFailed("Event date cannot be in the past.", problems=["date: cannot be in the past"])

        now = utcnow()
        new_event = Event(
            **fields.model_dump(),
            registered_count=0,
            created_by=admin.id,
            created_at=now,
            updated_at=now,
        )
        session.add(new_event)
        await session.flush()
        event_id = new_event.id
    logger.info("event_created id=%s name=%r capacity=%s by=%s", event_id, fields.name, fields.capacity, admin.tg_id)
    return event_id  # type: ignore[return-value]


async def update_event(
    session: AsyncSession,
    subject: Optional[int],
    event_id: int,
    data: EventFields | Mapping[str, Any],
) -> None:
    """Replace every editable field of an event.

    The registration counter, owner and creation time are left alone.  A new
    capacity below the current ``registered_count`` is accepted as is.
    """
    async with transaction(session):
        admin = await require_admin(session, subject)
        fields = validate_fields(data)
        event = await session.get(Event, event_id, populate_existing=True)
        if event is None:
            raise EventNotFound()
        event.sqlmodel_update(fields.model_dump())
        event.updated_at = utcnow()
        session.add(event)
        over_capacity = event.registered_count > event.capacity
    if over_capacity:
        logger.warning(
            "event_capacity_below_registrations id=%s capacity=%s registered=%s",
            event_id, fields.capacity, event.registered_count,
        )
    logger.info("event_updated id=%s by=%s", event_id, admin.tg_id)


async def delete_event(session: AsyncSession, subject: Optional[int], event_id: int) -> None:
    """Cancel every registration of the event, then remove it; one transaction."""
    async with transaction(session):
        admin = await require_admin(session, subject)
        event = await session.get(Event, event_id, populate_existing=True)
        if event is None:
            raise EventNotFound()
        result = await session.execute(
            update(Registration)
            .where(Registration.event_id == event_id)  # type: ignore[arg-type]
            .values(status=RegistrationStatus.cancelled, updated_at=utcnow())
        )
        cancelled = result.rowcount
        await session.delete(event)
    logger.info("event_deleted id=%s cancelled_registrations=%s by=%s", event_id, cancelled, admin.tg_id)
