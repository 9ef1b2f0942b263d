import logging
import os
from typing import Any, Optional

from html import escape

import dateparser  # type: ignore
from aiogram import F, Router
from aiogram.filters import Command, CommandObject
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.types import CallbackQuery, FSInputFile, Message
from sqlalchemy.ext.asyncio import AsyncSession

from fest_bot.errors import LedgerError
from fest_bot.filters import AdminFilter
from fest_bot.keyboards.admin import (
    EDITABLE_FIELDS,
    PAGE_SIZE,
    admin_events_kb,
    category_pick_kb,
    confirm_delete_kb,
    edit_fields_kb,
    moderation_kb,
    registration_filters_kb,
)
from fest_bot.keyboards.student import back_button
from fest_bot.models import RegistrationStatus, UserRole
from fest_bot.services.events import create_event, delete_event, get_event, list_events, update_event
from fest_bot.services.registrations import list_all, recount_registered, set_status
from fest_bot.services.reports import events_summary, make_export
from fest_bot.services.users import set_role
from fest_bot.utils.formatting import registration_line

logger = logging.getLogger(__name__)

router = Router()
# All handlers in this router are for admins only
router.message.filter(AdminFilter())
router.callback_query.filter(AdminFilter())


class AdminStates(StatesGroup):
    waiting_for_event_name = State()
    waiting_for_event_description = State()
    waiting_for_event_category = State()
    waiting_for_event_date = State()
    waiting_for_event_time = State()
    waiting_for_event_venue = State()
    waiting_for_event_capacity = State()
    # edit one field of an existing event
    waiting_for_edit_value = State()
    waiting_for_edit_category = State()


def parse_date_input(text: str):
    parsed = dateparser.parse(text, settings={"DATE_ORDER": "DMY", "PREFER_DATES_FROM": "future"})
    return parsed.date() if parsed else None


def parse_field_input(field: str, text: str) -> Any:
    """Convert the admin's text for one field; None when it cannot be parsed."""
    text = text.strip()
    if field == "date":
        return parse_date_input(text)
    if field == "capacity":
        return int(text) if text.lstrip("-").isdigit() else None
    return text or None


# ---------- Events overview ----------


async def _events_overview(session: AsyncSession):
    events = await list_events(session)
    return sorted(events, key=lambda ev: (ev.date, ev.time))


@router.message(F.text == "🗂 Manage events")
async def events_overview(message: Message, session: AsyncSession):
    events = await _events_overview(session)
    header = "Festival events:" if events else "No events yet."
    await message.answer(header, reply_markup=admin_events_kb(events, 0))


@router.callback_query(F.data.startswith("adm_pg:"))
async def events_pagination(call: CallbackQuery, session: AsyncSession):
    page = int((call.data or "adm_pg:0").split(":")[1])
    events = await _events_overview(session)
    await call.message.edit_reply_markup(reply_markup=admin_events_kb(events, page))  # type: ignore[union-attr]
    await call.answer()


# ---------- Delete ----------


@router.callback_query(F.data.startswith("adm_del:"))
async def event_delete_ask(call: CallbackQuery, session: AsyncSession):
    event_id = int((call.data or "").split(":")[1])
    event = await get_event(session, event_id)
    if not event:
        await call.answer("Event not found", show_alert=True)
        return
    await call.message.answer(  # type: ignore[union-attr]
        f"Delete «{escape(event.name)}»? Its {event.registered_count} active registration(s) will be cancelled.",
        reply_markup=confirm_delete_kb(event_id),
    )
    await call.answer()


@router.callback_query(F.data.startswith("adm_del_ok:"))
async def event_delete_confirm(call: CallbackQuery, session: AsyncSession):
    event_id = int((call.data or "").split(":")[1])
    try:
        await delete_event(session, call.from_user.id, event_id)
    except LedgerError as exc:
        await call.answer(exc.text, show_alert=True)
        return
    await call.message.edit_text("Event deleted, registrations cancelled.")  # type: ignore[union-attr]
    await call.answer("Deleted")


@router.callback_query(F.data == "adm_del_no")
async def event_delete_abort(call: CallbackQuery):
    await call.message.edit_text("Nothing deleted.")  # type: ignore[union-attr]
    await call.answer()


# ---------- Add event (step by step) ----------


async def _cancel_requested(message: Message, state: FSMContext) -> bool:
    if message.text and message.text.startswith("⬅️"):
        await state.clear()
        await message.answer("Cancelled.")
        return True
    return False


@router.callback_query(F.data == "adm_add")
async def event_add_start(call: CallbackQuery, state: FSMContext):
    await call.answer()
    await call.message.answer("Event name:", reply_markup=back_button)  # type: ignore[union-attr]
    await state.set_state(AdminStates.waiting_for_event_name)


@router.message(AdminStates.waiting_for_event_name)
async def add_event_name(message: Message, state: FSMContext):
    if await _cancel_requested(message, state) or not message.text:
        return
    await state.update_data(name=message.text.strip())
    await message.answer("Short description (10–1000 characters):")
    await state.set_state(AdminStates.waiting_for_event_description)


@router.message(AdminStates.waiting_for_event_description)
async def add_event_description(message: Message, state: FSMContext):
    if await _cancel_requested(message, state) or not message.text:
        return
    await state.update_data(description=message.text.strip())
    await message.answer("Category:", reply_markup=category_pick_kb("adm_cat"))
    await state.set_state(AdminStates.waiting_for_event_category)


@router.callback_query(AdminStates.waiting_for_event_category, F.data.startswith("adm_cat:"))
async def add_event_category(call: CallbackQuery, state: FSMContext):
    category = (call.data or "").split(":", 1)[1]
    await state.update_data(category=category)
    await call.message.answer(f"Category: {category}\nDate of the event (e.g. 14.02.2027):")  # type: ignore[union-attr]
    await state.set_state(AdminStates.waiting_for_event_date)
    await call.answer()


@router.message(AdminStates.waiting_for_event_date)
async def add_event_date(message: Message, state: FSMContext):
    if await _cancel_requested(message, state) or not message.text:
        return
    event_date = parse_date_input(message.text)
    if event_date is None:
        await message.answer("Could not read that date. Try the DD.MM.YYYY format.")
        return
    await state.update_data(date=event_date.isoformat())
    await message.answer("Start time (HH:MM):")
    await state.set_state(AdminStates.waiting_for_event_time)


@router.message(AdminStates.waiting_for_event_time)
async def add_event_time(message: Message, state: FSMContext):
    if await _cancel_requested(message, state) or not message.text:
        return
    await state.update_data(time=message.text.strip())
    await message.answer("Venue:")
    await state.set_state(AdminStates.waiting_for_event_venue)


@router.message(AdminStates.waiting_for_event_venue)
async def add_event_venue(message: Message, state: FSMContext):
    if await _cancel_requested(message, state) or not message.text:
        return
    await state.update_data(venue=message.text.strip())
    await message.answer("Capacity (number of participants):")
    await state.set_state(AdminStates.waiting_for_event_capacity)


@router.message(AdminStates.waiting_for_event_capacity)
async def add_event_capacity(message: Message, state: FSMContext, session: AsyncSession):
    if await _cancel_requested(message, state) or not message.text or not message.from_user:
        return
    capacity = parse_field_input("capacity", message.text)
    if capacity is None:
        await message.answer("Capacity must be a whole number.")
        return
    data = await state.get_data()
    data["capacity"] = capacity
    await state.clear()
    try:
        event_id = await create_event(session, message.from_user.id, data)
    except LedgerError as exc:
        await message.answer(f"Event not created: {escape(exc.text)}\nPress ➕ Add event to start over.")
        return
    await message.answer(f"Event #{event_id} «{escape(data['name'])}» created ✅")
    events = await _events_overview(session)
    await message.answer("Festival events:", reply_markup=admin_events_kb(events, 0))


# ---------- Edit event ----------


@router.callback_query(F.data.startswith("adm_edit:"))
async def event_edit_menu(call: CallbackQuery, session: AsyncSession):
    event_id = int((call.data or "").split(":")[1])
    event = await get_event(session, event_id)
    if not event:
        await call.answer("Event not found", show_alert=True)
        return
    await call.message.answer(f"What should change in «{escape(event.name)}»?", reply_markup=edit_fields_kb(event_id))  # type: ignore[union-attr]
    await call.answer()


@router.callback_query(F.data.startswith("adm_field:"))
async def event_edit_field(call: CallbackQuery, state: FSMContext):
    _, event_id, field = (call.data or "").split(":")
    await state.update_data(edit_event_id=int(event_id), edit_field=field)
    if field == "category":
        await call.message.answer("New category:", reply_markup=category_pick_kb("adm_setcat"))  # type: ignore[union-attr]
        await state.set_state(AdminStates.waiting_for_edit_category)
    else:
        await call.message.answer(f"New {EDITABLE_FIELDS[field].lower()}:", reply_markup=back_button)  # type: ignore[union-attr]
        await state.set_state(AdminStates.waiting_for_edit_value)
    await call.answer()


async def _apply_edit(session: AsyncSession, subject: int, state: FSMContext, value: Any) -> str:
    data = await state.get_data()
    await state.clear()
    event_id, field = data["edit_event_id"], data["edit_field"]
    event = await get_event(session, event_id)
    if event is None:
        return "Event not found."
    fields = {name: getattr(event, name) for name in EDITABLE_FIELDS}
    fields[field] = value
    try:
        await update_event(session, subject, event_id, fields)
    except LedgerError as exc:
        return f"Not saved: {escape(exc.text)}"
    note = ""
    if field == "capacity" and isinstance(value, int) and value < event.registered_count:
        note = f"\n⚠️ {event.registered_count} people are already registered."
    return f"«{escape(fields['name'])}» updated ✅{note}"


@router.message(AdminStates.waiting_for_edit_value)
async def event_edit_value(message: Message, state: FSMContext, session: AsyncSession):
    if await _cancel_requested(message, state) or not message.text or not message.from_user:
        return
    field = (await state.get_data())["edit_field"]
    value = parse_field_input(field, message.text)
    if value is None:
        await message.answer("Could not read that value, try again.")
        return
    await message.answer(await _apply_edit(session, message.from_user.id, state, value))


@router.callback_query(AdminStates.waiting_for_edit_category, F.data.startswith("adm_setcat:"))
async def event_edit_category(call: CallbackQuery, state: FSMContext, session: AsyncSession):
    category = (call.data or "").split(":", 1)[1]
    await call.message.answer(await _apply_edit(session, call.from_user.id, state, category))  # type: ignore[union-attr]
    await call.answer()


# ---------- Registrations moderation ----------


def _parse_filter(key: str) -> tuple[Optional[int], Optional[RegistrationStatus]]:
    if key.startswith("evt"):
        return int(key[3:]), None
    if key == "all":
        return None, None
    return None, RegistrationStatus(key)


async def _render_registrations(session: AsyncSession, subject: int, key: str, page: int):
    event_id, status = _parse_filter(key)
    registrations = await list_all(session, subject, event_id=event_id, status=status)
    if not registrations:
        return "No registrations here.", None
    start = page * PAGE_SIZE
    shown = registrations[start : start + PAGE_SIZE]
    text = f"Registrations ({len(registrations)}):\n\n" + "\n".join(
        registration_line(reg, with_user=True) for reg in shown
    )
    return text, moderation_kb(registrations, key, page)


@router.message(F.text == "📋 Registrations")
async def registrations_menu(message: Message):
    await message.answer("Which registrations?", reply_markup=registration_filters_kb())


@router.callback_query(F.data.startswith("adm_regs:"))
async def registrations_page(call: CallbackQuery, session: AsyncSession):
    _, key, page = (call.data or "").split(":")
    try:
        text, kb = await _render_registrations(session, call.from_user.id, key, int(page))
    except LedgerError as exc:
        await call.answer(exc.text, show_alert=True)
        return
    await call.message.answer(text, parse_mode="HTML", reply_markup=kb)  # type: ignore[union-attr]
    await call.answer()


@router.callback_query(F.data.startswith("adm_st:"))
async def registration_status_change(call: CallbackQuery, session: AsyncSession):
    _, registration_id, status, key, page = (call.data or "").split(":")
    try:
        await set_status(session, call.from_user.id, int(registration_id), status)
    except LedgerError as exc:
        await call.answer(exc.text, show_alert=True)
        return
    text, kb = await _render_registrations(session, call.from_user.id, key, int(page))
    await call.message.edit_text(text, parse_mode="HTML", reply_markup=kb)  # type: ignore[union-attr]
    await call.answer(f"#{registration_id} → {status}")


# ---------- Reports and tools ----------


@router.message(F.text == "📊 Export")
async def export_registrations(message: Message, session: AsyncSession):
    if not message.from_user:
        return
    file_path = await make_export(session, message.from_user.id)
    try:
        await message.answer_document(FSInputFile(file_path, filename="registrations.xlsx"))
    finally:
        os.remove(file_path)


@router.message(F.text == "📈 Summary")
async def summary(message: Message, session: AsyncSession):
    if not message.from_user:
        return
    await message.answer(await events_summary(session, message.from_user.id))


@router.message(Command("audit"))
async def cmd_audit(message: Message, session: AsyncSession):
    drift = await recount_registered(session)
    if not drift:
        await message.answer("All event counters match their registrations ✅")
        return
    lines = [f"Event #{event_id}: {stored} → {actual}" for event_id, (stored, actual) in drift.items()]
    await message.answer("Repaired counters:\n" + "\n".join(lines))


@router.message(Command("promote", "demote"))
async def cmd_role(message: Message, command: CommandObject, session: AsyncSession):
    if not message.from_user:
        return
    if not command.args or not command.args.strip().isdigit():
        await message.answer(f"Usage: /{command.command} <telegram id>")
        return
    role = UserRole.admin if command.command == "promote" else UserRole.student
    try:
        await set_role(session, message.from_user.id, int(command.args.strip()), role)
    except LedgerError as exc:
        await message.answer(escape(exc.text))
        return
    await message.answer(f"User {command.args.strip()} is now {role.value}.")
