from typing import Optional, Sequence

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup, KeyboardButton, ReplyKeyboardMarkup

from fest_bot.models import EventCategory, EventRead, RegistrationRead
from fest_bot.utils.formatting import CATEGORY_ICONS, event_label

PAGE_SIZE = 5
ALL_CATEGORIES = "all"
# suffix on cancel buttons shown under the "My registrations" list
FROM_LIST = "list"

main_menu_kb = ReplyKeyboardMarkup(
    keyboard=[
        [KeyboardButton(text="🎭 Events"), KeyboardButton(text="🔎 Search")],
        [KeyboardButton(text="🎟 My registrations")],
    ],
    resize_keyboard=True,
)

# Back button for simple FSM cancel
back_button = ReplyKeyboardMarkup(
    keyboard=[[KeyboardButton(text="⬅️ Back")]], resize_keyboard=True, one_time_keyboard=True
)


def categories_kb() -> InlineKeyboardMarkup:
    buttons = [InlineKeyboardButton(text="🌟 All", callback_data=f"evt_cat:{ALL_CATEGORIES}:0")]
    buttons += [
        InlineKeyboardButton(text=f"{CATEGORY_ICONS[c.value]} {c.value}", callback_data=f"evt_cat:{c.value}:0")
        for c in EventCategory
    ]
    rows = [buttons[i : i + 3] for i in range(0, len(buttons), 3)]
    return InlineKeyboardMarkup(inline_keyboard=rows)


def events_page_kb(events: Sequence[EventRead], category_key: str, page: int) -> InlineKeyboardMarkup:
    start = page * PAGE_SIZE
    slice_events = events[start : start + PAGE_SIZE]
    rows = [[InlineKeyboardButton(text=event_label(ev), callback_data=f"evt_info:{ev.id}")] for ev in slice_events]

    nav_row = []
    if page > 0:
        nav_row.append(InlineKeyboardButton(text="⬅️", callback_data=f"evt_cat:{category_key}:{page-1}"))
    if start + PAGE_SIZE < len(events):
        nav_row.append(InlineKeyboardButton(text="➡️", callback_data=f"evt_cat:{category_key}:{page+1}"))
    if nav_row:
        rows.append(nav_row)
    return InlineKeyboardMarkup(inline_keyboard=rows)


def search_results_kb(events: Sequence[EventRead]) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text=event_label(ev), callback_data=f"evt_info:{ev.id}")]
            for ev in events[:PAGE_SIZE * 2]
        ]
    )


def event_card_kb(ev: EventRead, registration: Optional[RegistrationRead]) -> Optional[InlineKeyboardMarkup]:
    if registration is not None:
        return InlineKeyboardMarkup(
            inline_keyboard=[[InlineKeyboardButton(text="Cancel registration", callback_data=f"reg_cancel:{registration.id}")]]
        )
    if ev.is_full:
        return None
    return InlineKeyboardMarkup(
        inline_keyboard=[[InlineKeyboardButton(text="Register", callback_data=f"evt_reg:{ev.id}")]]
    )


def my_registrations_kb(registrations: Sequence[RegistrationRead]) -> Optional[InlineKeyboardMarkup]:
    rows = [
        [InlineKeyboardButton(text=f"Cancel #{reg.id}", callback_data=f"reg_cancel:{reg.id}:{FROM_LIST}")]
        for reg in registrations
        if reg.status.is_active
    ]
    return InlineKeyboardMarkup(inline_keyboard=rows) if rows else None
