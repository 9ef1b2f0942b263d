from html import escape
from tempfile import NamedTemporaryFile
from typing import Optional

import pandas as pd
from sqlalchemy.ext.asyncio import AsyncSession

from fest_bot.db import transaction
from fest_bot.services.auth import require_admin
from fest_bot.services.events import list_events
from fest_bot.services.registrations import active_counts, list_all

COLUMNS = ["ID", "Event", "Date", "Time", "Venue", "Name", "Email", "Telegram ID", "Status", "Registered at"]


async def export_registrations(
    session: AsyncSession,
    subject: Optional[int],
    file_path: str,
    event_id: Optional[int] = None,
) -> str:
    """Writes registrations (all, or of one event) to an Excel sheet."""
    registrations = await list_all(session, subject, event_id=event_id)
    rows = []
    for reg in registrations:
        rows.append({
            "ID": reg.id,
            "Event": reg.event.name if reg.event else f"(deleted event #{reg.event_id})",
            "Date": reg.event.date if reg.event else None,
            "Time": reg.event.time.strftime("%H:%M") if reg.event else None,
            "Venue": reg.event.venue if reg.event else None,
            "Name": reg.user.name if reg.user else None,
            "Email": reg.user.email if reg.user else None,
            "Telegram ID": reg.user.tg_id if reg.user else None,
            "Status": reg.status.value,
            "Registered at": reg.registered_at,
        })
    pd.DataFrame(rows, columns=COLUMNS).to_excel(file_path, index=False)
    return file_path


async def make_export(session: AsyncSession, subject: Optional[int], event_id: Optional[int] = None) -> str:
    tmp = NamedTemporaryFile(delete=False, suffix=".xlsx")
    tmp.close()
    return await export_registrations(session, subject, tmp.name, event_id=event_id)


async def events_summary(session: AsyncSession, subject: Optional[int]) -> str:
    """Text summary per event; flags counters that disagree with the rows."""
    async with transaction(session):
        await require_admin(session, subject)
        counts = await active_counts(session)
    events = await list_events(session)
    if not events:
        return "No events yet."

    lines = ["Festival events:"]
    for ev in sorted(events, key=lambda e: (e.date, e.time)):
        actual = counts.get(ev.id, 0)
        line = (
            f"\n{ev.date.strftime('%d.%m.%Y')} {ev.time.strftime('%H:%M')} – {escape(ev.name)} ({ev.category.value})\n"
            f"  registered: {ev.registered_count} / {ev.capacity}"
        )
        if actual != ev.registered_count:
            line += f"\n  ⚠️ counter drift: {actual} active registrations, run /audit"
        lines.append(line)
    return "\n".join(lines)
