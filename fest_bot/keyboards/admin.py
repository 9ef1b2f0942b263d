from typing import Sequence

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup, KeyboardButton, ReplyKeyboardMarkup

from fest_bot.models import EventCategory, EventRead, RegistrationRead, RegistrationStatus
from fest_bot.utils.formatting import CATEGORY_ICONS, STATUS_ICONS, event_label

PAGE_SIZE = 5

# Fields an admin can change from the edit menu, in form order
EDITABLE_FIELDS = {
    "name": "Name",
    "description": "Description",
    "category": "Category",
    "date": "Date",
    "time": "Time",
    "venue": "Venue",
    "capacity": "Capacity",
}

admin_menu_kb = ReplyKeyboardMarkup(
    keyboard=[
        [KeyboardButton(text="🗂 Manage events"), KeyboardButton(text="📋 Registrations")],
        [KeyboardButton(text="📊 Export"), KeyboardButton(text="📈 Summary")],
        [KeyboardButton(text="🎭 Events"), KeyboardButton(text="🎟 My registrations")],
    ],
    resize_keyboard=True,
)


def admin_events_kb(events: Sequence[EventRead], page: int) -> InlineKeyboardMarkup:
    start = page * PAGE_SIZE
    rows = []
    for ev in events[start : start + PAGE_SIZE]:
        rows.append([
            InlineKeyboardButton(text=event_label(ev), callback_data=f"adm_regs:evt{ev.id}:0"),
            InlineKeyboardButton(text="✏️", callback_data=f"adm_edit:{ev.id}"),
            InlineKeyboardButton(text="🗑️", callback_data=f"adm_del:{ev.id}"),
        ])

    nav_row = []
    if page > 0:
        nav_row.append(InlineKeyboardButton(text="⬅️", callback_data=f"adm_pg:{page-1}"))
    if start + PAGE_SIZE < len(events):
        nav_row.append(InlineKeyboardButton(text="➡️", callback_data=f"adm_pg:{page+1}"))
    if nav_row:
        rows.append(nav_row)

    rows.append([InlineKeyboardButton(text="➕ Add event", callback_data="adm_add")])
    return InlineKeyboardMarkup(inline_keyboard=rows)


def confirm_delete_kb(event_id: int) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[[
        InlineKeyboardButton(text="🗑️ Delete and cancel registrations", callback_data=f"adm_del_ok:{event_id}"),
        InlineKeyboardButton(text="Keep", callback_data="adm_del_no"),
    ]])


def category_pick_kb(prefix: str) -> InlineKeyboardMarkup:
    buttons = [
        InlineKeyboardButton(text=f"{CATEGORY_ICONS[c.value]} {c.value}", callback_data=f"{prefix}:{c.value}")
        for c in EventCategory
    ]
    return InlineKeyboardMarkup(inline_keyboard=[buttons[i : i + 2] for i in range(0, len(buttons), 2)])


def edit_fields_kb(event_id: int) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text=label, callback_data=f"adm_field:{event_id}:{field}")]
            for field, label in EDITABLE_FIELDS.items()
        ]
    )


def registration_filters_kb() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[[
        InlineKeyboardButton(text="All", callback_data="adm_regs:all:0"),
        *[
            InlineKeyboardButton(text=f"{STATUS_ICONS[s]} {s.value.title()}", callback_data=f"adm_regs:{s.value}:0")
            for s in RegistrationStatus
        ],
    ]])


def moderation_kb(registrations: Sequence[RegistrationRead], filter_key: str, page: int) -> InlineKeyboardMarkup:
    """One row per registration with a button for every other status."""
    start = page * PAGE_SIZE
    rows = []
    for reg in registrations[start : start + PAGE_SIZE]:
        row = [InlineKeyboardButton(text=f"#{reg.id}", callback_data="noop")]
        for status in RegistrationStatus:
            if status is reg.status:
                continue
            row.append(
                InlineKeyboardButton(
                    text=f"{STATUS_ICONS[status]} {status.value}",
                    callback_data=f"adm_st:{reg.id}:{status.value}:{filter_key}:{page}",
                )
            )
        rows.append(row)

    nav_row = []
    if page > 0:
        nav_row.append(InlineKeyboardButton(text="⬅️", callback_data=f"adm_regs:{filter_key}:{page-1}"))
    if start + PAGE_SIZE < len(registrations):
        nav_row.append(InlineKeyboardButton(text="➡️", callback_data=f"adm_regs:{filter_key}:{page+1}"))
    if nav_row:
        rows.append(nav_row)
    return InlineKeyboardMarkup(inline_keyboard=rows)
