from html import escape
from typing import Optional

from fest_bot.models import EventRead, RegistrationRead, RegistrationStatus

CATEGORY_ICONS = {
    "Music": "🎵",
    "Dance": "💃",
    "Drama": "🎭",
    "Art": "🎨",
    "Sports": "🏅",
    "Technical": "💻",
    "Literary": "📚",
    "Other": "✨",
}

STATUS_ICONS = {
    RegistrationStatus.pending: "⏳",
    RegistrationStatus.confirmed: "✅",
    RegistrationStatus.cancelled: "❌",
}


def event_label(ev: EventRead) -> str:
    icon = CATEGORY_ICONS.get(ev.category.value, "")
    full = " (full)" if ev.is_full else ""
    return f"{icon} {ev.date.strftime('%d.%m')} {ev.time.strftime('%H:%M')} – {ev.name}{full}"


def spots_text(ev: EventRead) -> str:
    if ev.is_full:
        return f"Full ({ev.registered_count} / {ev.capacity})"
    return f"{ev.available_spots} of {ev.capacity} spots left"


def event_card(ev: EventRead, registration: Optional[RegistrationRead] = None) -> str:
    """HTML card shown when a user opens an event."""
    text = (
        f"<b>{escape(ev.name)}</b>\n"
        f"{CATEGORY_ICONS.get(ev.category.value, '')} {ev.category.value}\n"
        f"📅 {ev.date.strftime('%d.%m.%Y')} at {ev.time.strftime('%H:%M')}\n"
        f"📍 {escape(ev.venue)}\n"
        f"👥 {spots_text(ev)}\n\n"
        f"{escape(ev.description)}"
    )
    if registration is not None:
        text += f"\n\nYour registration: {STATUS_ICONS[registration.status]} {registration.status.value}"
    return text


def registration_line(reg: RegistrationRead, with_user: bool = False) -> str:
    icon = STATUS_ICONS[reg.status]
    if reg.event is not None:
        what = f"{reg.event.name}, {reg.event.date.strftime('%d.%m')} {reg.event.time.strftime('%H:%M')}"
    else:
        what = f"deleted event #{reg.event_id}"
    line = f"{icon} #{reg.id} {escape(what)} – {reg.status.value}"
    if with_user and reg.user is not None:
        line += f"\n    {escape(reg.user.name)} &lt;{escape(reg.user.email)}&gt;"
    return line
