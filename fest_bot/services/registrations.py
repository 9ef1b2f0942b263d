"""Registration lifecycle: register, cancel, moderate.

``Event.registered_count`` must equal the number of active (pending or
confirmed) registrations of the event.  Every status change that moves a
registration in or out of the active set changes the counter in the same
transaction, and the counter itself is only ever changed with a conditional
UPDATE so two callers can never both take the last spot.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import case, func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from fest_bot.db import transaction
from fest_bot.errors import (
    AlreadyCancelled,
    AlreadyRegistered,
    EventFull,
    EventNotFound,
    RegistrationNotFound,
    ValidationFailed,
)
from fest_bot.models import (
    Event,
    EventRead,
    Registration,
    RegistrationRead,
    RegistrationStatus,
    User,
    UserRead,
)
from fest_bot.services.auth import ensure_can_manage, require_admin, require_user, resolve_user
from fest_bot.utils.time import utcnow

logger = logging.getLogger(__name__)


def parse_status(value: RegistrationStatus | str | None) -> Optional[RegistrationStatus]:
    if value is None or value == "":
        return None
    try:
        return RegistrationStatus(value)
    except ValueError:
        raise ValidationFailed(f"Unknown registration status: {value}") from None


# ---------- counter primitives ----------


async def _claim_spot(session: AsyncSession, event_id: int, now: datetime) -> bool:
    """Increment the counter unless the event is full.  False when it is."""
    result = await session.execute(
        update(Event)
        .where(Event.id == event_id, Event.registered_count < Event.capacity)  # type: ignore[arg-type]
        .values(registered_count=Event.registered_count + 1, updated_at=now)
    )
    return result.rowcount == 1


async def _release_spot(session: AsyncSession, event_id: int, now: datetime) -> None:
    """Decrement the counter, never below zero.  No-op if the event is gone."""
    await session.execute(
        update(Event)
        .where(Event.id == event_id)  # type: ignore[arg-type]
        .values(
            registered_count=case((Event.registered_count > 0, Event.registered_count - 1), else_=0),
            updated_at=now,
        )
    )


async def _load_registration(session: AsyncSession, registration_id: int) -> Optional[Registration]:
    return await session.get(Registration, registration_id, populate_existing=True)


async def _active_registration(session: AsyncSession, user_id: int, event_id: int) -> Optional[Registration]:
    result = await session.execute(
        select(Registration)
        .where(Registration.user_id == user_id)  # type: ignore[arg-type]
        .where(Registration.event_id == event_id)  # type: ignore[arg-type]
        .where(Registration.status != RegistrationStatus.cancelled)  # type: ignore[arg-type]
    )
    return result.scalars().first()


# ---------- mutations ----------


async def register(session: AsyncSession, subject: Optional[int], event_id: int) -> int:
    """Register the caller for an event.  Returns the new registration id."""
    async with transaction(session):
        user = await require_user(session, subject)
        if await _active_registration(session, user.id, event_id):  # type: ignore[arg-type]
            raise AlreadyRegistered()

        event = await session.get(Event, event_id, populate_existing=True)
        if event is None:
            raise EventNotFound()
        if event.registered_count >= event.capacity:
            raise EventFull()

        now = utcnow()
        if not await _claim_spot(session, event_id, now):
            raise EventFull()
        registration = Registration(
            user_id=user.id,  # type: ignore[arg-type]
            event_id=event_id,
            status=RegistrationStatus.pending,
            registered_at=now,
            updated_at=now,
        )
        session.add(registration)
        await session.flush()
        registration_id = registration.id

    logger.info("registered id=%s event=%s user=%s", registration_id, event_id, user.tg_id)
    return registration_id  # type: ignore[return-value]


async def cancel(session: AsyncSession, subject: Optional[int], registration_id: int) -> None:
    """Cancel a registration; the owner or an admin may do this."""
    async with transaction(session):
        user = await require_user(session, subject)
        registration = await _load_registration(session, registration_id)
        if registration is None:
            raise RegistrationNotFound()
        ensure_can_manage(user, registration)
        if registration.status == RegistrationStatus.cancelled:
            raise AlreadyCancelled()

        now = utcnow()
        registration.status = RegistrationStatus.cancelled
        registration.updated_at = now
        session.add(registration)
        await _release_spot(session, registration.event_id, now)
        event_id = registration.event_id

    logger.info("registration_cancelled id=%s event=%s by=%s", registration_id, event_id, user.tg_id)


async def set_status(
    session: AsyncSession,
    subject: Optional[int],
    registration_id: int,
    status: RegistrationStatus | str,
) -> None:
    """Admin-only status change with the matching counter effect.

    active -> cancelled frees a spot; cancelled -> active takes one (or fails
    with EventFull and leaves the registration untouched); active -> active
    does not touch the counter.
    """
    async with transaction(session):
        admin = await require_admin(session, subject)
        new_status = parse_status(status)
        if new_status is None:
            raise ValidationFailed("Registration status is required.")
        registration = await _load_registration(session, registration_id)
        if registration is None:
            raise RegistrationNotFound()

        old_status = registration.status
        now = utcnow()
        if old_status.is_active and not new_status.is_active:
            await _release_spot(session, registration.event_id, now)
        elif not old_status.is_active and new_status.is_active:
            event = await session.get(Event, registration.event_id, populate_existing=True)
            if event is not None:
                if event.registered_count >= event.capacity:
                    raise EventFull("Cannot restore this registration: the event is full.")
                if not await _claim_spot(session, event.id, now):  # type: ignore[arg-type]
                    raise EventFull("Cannot restore this registration: the event is full.")

        # status goes last so a rejected restore leaves the row as it was
        registration.status = new_status
        registration.updated_at = now
        session.add(registration)

    logger.info(
        "registration_status id=%s %s->%s by=%s",
        registration_id, old_status.value, new_status.value, admin.tg_id,
    )


# ---------- queries ----------


async def _join(
    session: AsyncSession,
    registrations: Iterable[Registration],
    with_users: bool = False,
) -> List[RegistrationRead]:
    """Attach event snapshots (and optionally users) to registrations."""
    registrations = list(registrations)
    events: Dict[int, EventRead] = {}
    users: Dict[int, UserRead] = {}

    event_ids = {reg.event_id for reg in registrations}
    if event_ids:
        rows = await session.execute(
            select(Event).where(Event.id.in_(event_ids)).execution_options(populate_existing=True)  # type: ignore[union-attr]
        )
        events = {ev.id: EventRead.from_event(ev) for ev in rows.scalars()}  # type: ignore[misc]

    user_ids = {reg.user_id for reg in registrations}
    if with_users and user_ids:
        rows = await session.execute(select(User).where(User.id.in_(user_ids)))  # type: ignore[union-attr]
        users = {u.id: UserRead.model_validate(u) for u in rows.scalars()}  # type: ignore[misc]

    return [
        RegistrationRead.model_validate(
            reg,
            update={"event": events.get(reg.event_id), "user": users.get(reg.user_id)},
        )
        for reg in registrations
    ]


async def list_mine(session: AsyncSession, subject: Optional[int]) -> List[RegistrationRead]:
    """The caller's registrations with their events; empty when signed out."""
    async with transaction(session):
        user = await resolve_user(session, subject)
        if user is None:
            return []
        result = await session.execute(
            select(Registration)
            .where(Registration.user_id == user.id)  # type: ignore[arg-type]
            .order_by(Registration.registered_at, Registration.id)  # type: ignore[arg-type]
            .execution_options(populate_existing=True)
        )
        return await _join(session, result.scalars().all())


async def list_all(
    session: AsyncSession,
    subject: Optional[int],
    event_id: Optional[int] = None,
    status: RegistrationStatus | str | None = None,
) -> List[RegistrationRead]:
    """Admin view of registrations, joined with event and user.

    Filters by event or by status; when both are given the event wins.
    """
    async with transaction(session):
        await require_admin(session, subject)
        status = parse_status(status)
        stmt = select(Registration)
        if event_id is not None:
            stmt = stmt.where(Registration.event_id == event_id)  # type: ignore[arg-type]
        elif status is not None:
            stmt = stmt.where(Registration.status == status)  # type: ignore[arg-type]
        stmt = stmt.order_by(Registration.registered_at, Registration.id)  # type: ignore[arg-type]
        result = await session.execute(stmt.execution_options(populate_existing=True))
        return await _join(session, result.scalars().all(), with_users=True)


# ---------- audit ----------


async def active_counts(session: AsyncSession) -> Dict[int, int]:
    """Number of active registrations per event id, computed from the rows."""
    result = await session.execute(
        select(Registration.event_id, func.count())
        .where(Registration.status != RegistrationStatus.cancelled)  # type: ignore[arg-type]
        .group_by(Registration.event_id)
    )
    return {event_id: count for event_id, count in result.all()}


async def recount_registered(session: AsyncSession, event_id: Optional[int] = None) -> Dict[int, Tuple[int, int]]:
    """Repair ``registered_count`` from the registration rows.

    Returns ``{event_id: (stored, actual)}`` for every event that drifted.
    """
    drift: Dict[int, Tuple[int, int]] = {}
    async with transaction(session):
        counts = await active_counts(session)
        stmt = select(Event).execution_options(populate_existing=True)
        if event_id is not None:
            stmt = stmt.where(Event.id == event_id)  # type: ignore[arg-type]
        for event in (await session.execute(stmt)).scalars():
            actual = counts.get(event.id, 0)  # type: ignore[arg-type]
            if event.registered_count != actual:
                drift[event.id] = (event.registered_count, actual)  # type: ignore[index]
                event.registered_count = actual
                event.updated_at = utcnow()
                session.add(event)

    for drifted_id, (stored, actual) in drift.items():
        logger.warning("registered_count_repaired event=%s stored=%s actual=%s", drifted_id, stored, actual)
    return drift
