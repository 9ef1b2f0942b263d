from typing import Optional

from html import escape

from aiogram import F, Router
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.types import CallbackQuery, Message
from sqlalchemy.ext.asyncio import AsyncSession

from fest_bot.errors import LedgerError
from fest_bot.keyboards.student import (
    ALL_CATEGORIES,
    FROM_LIST,
    back_button,
    categories_kb,
    event_card_kb,
    events_page_kb,
    my_registrations_kb,
    search_results_kb,
)
from fest_bot.models import RegistrationRead
from fest_bot.services.events import get_event, list_events
from fest_bot.services.registrations import cancel, list_mine, register
from fest_bot.utils.formatting import event_card, registration_line

router = Router()


class SearchState(StatesGroup):
    waiting_for_query = State()


async def _my_active_registration(
    session: AsyncSession, tg_id: Optional[int], event_id: int
) -> Optional[RegistrationRead]:
    for reg in await list_mine(session, tg_id):
        if reg.event_id == event_id and reg.status.is_active:
            return reg
    return None


# ---------- Browsing ----------


@router.message(F.text == "🎭 Events")
async def choose_category(message: Message):
    await message.answer("Pick a category:", reply_markup=categories_kb())


@router.callback_query(F.data.startswith("evt_cat:"))
async def events_by_category(call: CallbackQuery, session: AsyncSession):
    if not call.data:
        await call.answer()
        return
    _, category_key, page_str = call.data.split(":")
    category = None if category_key == ALL_CATEGORIES else category_key
    events = await list_events(session, category=category)
    if not events:
        await call.answer("No events in this category yet.", show_alert=True)
        return
    kb = events_page_kb(events, category_key, int(page_str))
    title = "All events" if category is None else f"{category} events"
    await call.message.edit_text(f"{title}:", reply_markup=kb)  # type: ignore[union-attr]
    await call.answer()


@router.message(F.text == "🔎 Search")
async def search_start(message: Message, state: FSMContext):
    await message.answer("Type a few letters of the event name:", reply_markup=back_button)
    await state.set_state(SearchState.waiting_for_query)


@router.message(SearchState.waiting_for_query)
async def search_run(message: Message, session: AsyncSession, state: FSMContext):
    query = (message.text or "").strip()
    if not query:
        await message.answer("Please type a name to search for.")
        return
    await state.clear()
    events = await list_events(session, search=query)
    if not events:
        await message.answer(f"Nothing matches «{escape(query)}».")
        return
    await message.answer(f"Found {len(events)}:", reply_markup=search_results_kb(events))


@router.callback_query(F.data.startswith("evt_info:"))
async def event_info(call: CallbackQuery, session: AsyncSession):
    if not call.data:
        await call.answer()
        return
    event_id = int(call.data.split(":")[1])
    event = await get_event(session, event_id)
    if not event:
        await call.answer("Event not found", show_alert=True)
        return
    registration = await _my_active_registration(session, call.from_user.id if call.from_user else None, event_id)
    await call.message.answer(  # type: ignore[union-attr]
        event_card(event, registration),
        parse_mode="HTML",
        reply_markup=event_card_kb(event, registration),
    )
    await call.answer()


# --------- Register / cancel via buttons ---------


@router.callback_query(F.data.startswith("evt_reg:"))
async def evt_register_cb(call: CallbackQuery, session: AsyncSession):
    if not call.data:
        await call.answer()
        return
    event_id = int(call.data.split(":")[1])
    try:
        await register(session, call.from_user.id, event_id)
    except LedgerError as exc:
        await call.answer(exc.text, show_alert=True)
        return

    event = await get_event(session, event_id)
    registration = await _my_active_registration(session, call.from_user.id, event_id)
    if event is not None:
        await call.message.edit_text(  # type: ignore[union-attr]
            event_card(event, registration),
            parse_mode="HTML",
            reply_markup=event_card_kb(event, registration),
        )
    await call.answer("You are registered! ✅ An organizer will confirm your spot.", show_alert=True)


@router.callback_query(F.data.startswith("reg_cancel:"))
async def reg_cancel_cb(call: CallbackQuery, session: AsyncSession):
    if not call.data:
        await call.answer()
        return
    parts = call.data.split(":")
    registration_id = int(parts[1])
    try:
        await cancel(session, call.from_user.id, registration_id)
    except LedgerError as exc:
        await call.answer(exc.text, show_alert=True)
        return

    registrations = await list_mine(session, call.from_user.id)
    if parts[2:] == [FROM_LIST]:
        text, kb = _my_registrations_view(registrations)
        await call.message.edit_text(text, parse_mode="HTML", reply_markup=kb)  # type: ignore[union-attr]
    else:
        event_id = next((reg.event_id for reg in registrations if reg.id == registration_id), None)
        event = await get_event(session, event_id) if event_id is not None else None
        if event is not None:
            await call.message.edit_text(  # type: ignore[union-attr]
                event_card(event, None),
                parse_mode="HTML",
                reply_markup=event_card_kb(event, None),
            )
        else:
            await call.message.edit_reply_markup(reply_markup=None)  # type: ignore[union-attr]
    await call.answer("Registration cancelled.", show_alert=True)


def _my_registrations_view(registrations):
    text = "Your registrations:\n\n" + "\n".join(registration_line(reg) for reg in registrations)
    return text, my_registrations_kb(registrations)


@router.message(F.text == "🎟 My registrations")
async def my_registrations(message: Message, session: AsyncSession):
    if not message.from_user:
        return
    registrations = await list_mine(session, message.from_user.id)
    if not registrations:
        await message.answer("You have no registrations yet. Open 🎭 Events to find something fun!")
        return
    text, kb = _my_registrations_view(registrations)
    await message.answer(text, parse_mode="HTML", reply_markup=kb)
