from html import escape

from aiogram import F, Router
from aiogram.filters import Command
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.types import CallbackQuery, InlineKeyboardButton, InlineKeyboardMarkup, Message, ReplyKeyboardRemove
from sqlalchemy.ext.asyncio import AsyncSession

from fest_bot.config import settings
from fest_bot.errors import LedgerError
from fest_bot.keyboards import admin_menu_kb, main_menu_kb
from fest_bot.models import UserRole
from fest_bot.services.users import get_user_by_tg_id, provision_user

router = Router()


class SignUpState(StatesGroup):
    waiting_for_name = State()
    waiting_for_email = State()


def menu_for(role: UserRole):
    return admin_menu_kb if role == UserRole.admin else main_menu_kb


@router.message(Command("start"))
async def cmd_start(message: Message, session: AsyncSession, state: FSMContext):
    if not message.from_user:
        return
    await state.clear()
    user = await get_user_by_tg_id(session, message.from_user.id)
    if user:
        await message.answer(f"Welcome back to {escape(settings.FESTIVAL_NAME)}, {escape(user.name)}!", reply_markup=menu_for(user.role))
        return

    start_kb = InlineKeyboardMarkup(
        inline_keyboard=[[InlineKeyboardButton(text="🚀 Sign up", callback_data="signup:start")]]
    )
    await message.answer(
        f"Hi! This is the official bot of {escape(settings.FESTIVAL_NAME)}. Here you can:\n"
        "• browse festival events\n"
        "• register for the ones you like\n"
        "• keep track of your registrations\n\n"
        "Press «Sign up» to get started.",
        reply_markup=start_kb,
    )


# Registered before the FSM steps so it also leaves a half-finished form
@router.message(Command("menu"))
@router.message(F.text == "⬅️ Back")
async def cmd_menu(message: Message, session: AsyncSession, state: FSMContext):
    if not message.from_user:
        return
    await state.clear()
    user = await get_user_by_tg_id(session, message.from_user.id)
    if not user:
        await message.answer("Send /start to sign up first.")
        return
    await message.answer("Main menu", reply_markup=menu_for(user.role))


@router.callback_query(F.data == "signup:start")
async def signup_start_cb(call: CallbackQuery, state: FSMContext):
    await call.answer()
    await call.message.answer("What is your full name?", reply_markup=ReplyKeyboardRemove())  # type: ignore[union-attr]
    await state.set_state(SignUpState.waiting_for_name)


@router.message(SignUpState.waiting_for_name)
async def process_name(message: Message, state: FSMContext):
    cleaned = " ".join((message.text or "").split())
    if len(cleaned) < 2:
        await message.answer("Please enter your name.")
        return
    await state.update_data(name=cleaned)
    await message.answer("And your email address?")
    await state.set_state(SignUpState.waiting_for_email)


@router.message(SignUpState.waiting_for_email)
async def process_email(message: Message, session: AsyncSession, state: FSMContext):
    if not message.from_user or not message.text:
        await message.answer("Please enter your email address.")
        return
    data = await state.get_data()
    try:
        user = await provision_user(session, message.from_user.id, data.get("name", ""), message.text)
    except LedgerError as exc:
        await message.answer(f"{escape(exc.text)} Try again.")
        return
    await state.clear()
    await message.answer(f"You are all set, {escape(user.name)}! 🎉", reply_markup=menu_for(user.role))


@router.message(Command("help"))
async def cmd_help(message: Message):
    await message.answer(
        "/start – sign up or open the menu\n"
        "/menu – back to the main menu\n"
        "🎭 Events – browse by category\n"
        "🔎 Search – find an event by name\n"
        "🎟 My registrations – see and cancel your registrations"
    )


@router.callback_query(F.data == "noop")
async def noop_cb(call: CallbackQuery):
    await call.answer()
