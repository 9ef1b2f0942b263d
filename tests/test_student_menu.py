"""
Tests for the student's cancel buttons
"""
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import OTHER_TG, STUDENT_TG
from fest_bot.handlers.student_menu import reg_cancel_cb
from fest_bot.services.registrations import list_mine, register


def make_call(data: str, tg_id: int = STUDENT_TG) -> MagicMock:
    call = MagicMock()
    call.data = data
    call.from_user.id = tg_id
    call.answer = AsyncMock()
    call.message.edit_text = AsyncMock()
    call.message.edit_reply_markup = AsyncMock()
    return call


def button_data(markup) -> list:
    if markup is None:
        return []
    return [button.callback_data for row in markup.inline_keyboard for button in row]


@pytest.mark.asyncio
class TestCancelFromList:
    """Cancelling one entry of "My registrations" keeps the rest cancellable"""

    async def test_other_buttons_survive(self, session, make_event):
        first = await register(session, STUDENT_TG, await make_event(name="Battle of the Bands"))
        second = await register(session, STUDENT_TG, await make_event(name="Robot Wars"))

        call = make_call(f"reg_cancel:{first}:list")
        await reg_cancel_cb(call, session)

        call.message.edit_reply_markup.assert_not_awaited()
        call.message.edit_text.assert_awaited_once()
        text = call.message.edit_text.await_args.args[0]
        assert "Robot Wars" in text
        assert "❌" in text
        assert button_data(call.message.edit_text.await_args.kwargs["reply_markup"]) == [
            f"reg_cancel:{second}:list"
        ]
        call.answer.assert_awaited_once_with("Registration cancelled.", show_alert=True)

    async def test_last_active_clears_buttons(self, session, make_event):
        only = await register(session, STUDENT_TG, await make_event())

        call = make_call(f"reg_cancel:{only}:list")
        await reg_cancel_cb(call, session)

        assert call.message.edit_text.await_args.kwargs["reply_markup"] is None
        assert not [reg for reg in await list_mine(session, STUDENT_TG) if reg.status.is_active]

    async def test_failure_leaves_message(self, session, make_event):
        only = await register(session, STUDENT_TG, await make_event())
        await reg_cancel_cb(make_call(f"reg_cancel:{only}:list"), session)

        call = make_call(f"reg_cancel:{only}:list")
        await reg_cancel_cb(call, session)

        call.message.edit_text.assert_not_awaited()
        assert call.answer.await_args.kwargs["show_alert"] is True


@pytest.mark.asyncio
class TestCancelFromCard:
    """Cancelling from an event card redraws that card"""

    async def test_card_offers_register_again(self, session, make_event):
        event_id = await make_event()
        registration_id = await register(session, STUDENT_TG, event_id)

        call = make_call(f"reg_cancel:{registration_id}")
        await reg_cancel_cb(call, session)

        call.message.edit_text.assert_awaited_once()
        assert button_data(call.message.edit_text.await_args.kwargs["reply_markup"]) == [f"evt_reg:{event_id}"]

    async def test_someone_elses_registration(self, session, make_event):
        event_id = await make_event()
        registration_id = await register(session, STUDENT_TG, event_id)

        call = make_call(f"reg_cancel:{registration_id}", tg_id=OTHER_TG)
        await reg_cancel_cb(call, session)

        call.message.edit_text.assert_not_awaited()
        call.message.edit_reply_markup.assert_not_awaited()
        assert call.answer.await_args.kwargs["show_alert"] is True
        assert [reg.status.is_active for reg in await list_mine(session, STUDENT_TG)] == [True]
