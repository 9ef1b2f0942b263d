"""
Tests for message formatting, keyboards and admin input parsing
"""
import datetime as dt

import pytest

from fest_bot.handlers.admin_menu import parse_date_input, parse_field_input
from fest_bot.keyboards.admin import admin_events_kb
from fest_bot.keyboards.student import PAGE_SIZE, event_card_kb, events_page_kb, my_registrations_kb
from fest_bot.models import EventCategory, EventRead, RegistrationRead, RegistrationStatus, UserRead, UserRole
from fest_bot.utils.formatting import event_card, registration_line, spots_text

NOW = dt.datetime(2027, 1, 10, 12, 0, tzinfo=dt.timezone.utc)


def make_event_read(event_id=1, name="Battle of the Bands", capacity=10, registered=0, **overrides):
    data = dict(
        id=event_id,
        name=name,
        description="Student bands compete on the main stage.",
        category=EventCategory.Music,
        date=dt.date(2027, 2, 14),
        time=dt.time(18, 30),
        venue="Main Auditorium",
        capacity=capacity,
        registered_count=registered,
        created_by=1,
        created_at=NOW,
        updated_at=NOW,
        available_spots=capacity - registered,
        is_full=registered >= capacity,
    )
    data.update(overrides)
    return EventRead(**data)


def make_registration_read(reg_id=1, status=RegistrationStatus.pending, event=None, user=None, event_id=1):
    return RegistrationRead(
        id=reg_id,
        user_id=1,
        event_id=event_id,
        status=status,
        registered_at=NOW,
        updated_at=NOW,
        event=event,
        user=user,
    )


class TestEventCard:
    """Tests for event_card and spots_text"""

    def test_card_escapes_html(self):
        ev = make_event_read(name="<b>Rock</b> & Roll")
        card = event_card(ev)
        assert "&lt;b&gt;Rock&lt;/b&gt; &amp; Roll" in card
        assert "14.02.2027 at 18:30" in card

    def test_spots_left(self):
        assert spots_text(make_event_read(capacity=10, registered=3)) == "7 of 10 spots left"

    def test_spots_full(self):
        assert spots_text(make_event_read(capacity=2, registered=2)) == "Full (2 / 2)"

    def test_card_shows_own_registration(self):
        ev = make_event_read()
        card = event_card(ev, make_registration_read(status=RegistrationStatus.confirmed))
        assert "Your registration: ✅ confirmed" in card


class TestRegistrationLine:
    """Tests for registration_line"""

    def test_with_event_and_user(self):
        user = UserRead(id=1, tg_id=5, email="alice@fest.edu", name="Alice", role=UserRole.student, created_at=NOW)
        line = registration_line(make_registration_read(event=make_event_read(), user=user), with_user=True)
        assert "#1 Battle of the Bands, 14.02 18:30" in line
        assert "Alice &lt;alice@fest.edu&gt;" in line

    def test_deleted_event(self):
        line = registration_line(make_registration_read(status=RegistrationStatus.cancelled, event_id=9))
        assert line.startswith("❌")
        assert "deleted event #9" in line


class TestKeyboards:
    """Tests for the inline keyboards"""

    def test_events_page_navigation(self):
        events = [make_event_read(event_id=i) for i in range(1, PAGE_SIZE + 3)]

        first_page = events_page_kb(events, "all", 0)
        assert len(first_page.inline_keyboard) == PAGE_SIZE + 1
        assert first_page.inline_keyboard[-1][0].callback_data == "evt_cat:all:1"

        second_page = events_page_kb(events, "all", 1)
        assert second_page.inline_keyboard[0][0].callback_data == f"evt_info:{PAGE_SIZE + 1}"
        assert second_page.inline_keyboard[-1][0].callback_data == "evt_cat:all:0"

    def test_card_keyboard(self):
        open_event = make_event_read(event_id=3)
        assert event_card_kb(open_event, None).inline_keyboard[0][0].callback_data == "evt_reg:3"
        assert event_card_kb(make_event_read(capacity=1, registered=1), None) is None
        registered = event_card_kb(open_event, make_registration_read(reg_id=8))
        assert registered.inline_keyboard[0][0].callback_data == "reg_cancel:8"

    def test_my_registrations_only_active(self):
        regs = [
            make_registration_read(reg_id=1),
            make_registration_read(reg_id=2, status=RegistrationStatus.cancelled),
        ]
        kb = my_registrations_kb(regs)
        assert [row[0].callback_data for row in kb.inline_keyboard] == ["reg_cancel:1:list"]
        assert my_registrations_kb(regs[1:]) is None

    def test_admin_events_has_add_button(self):
        kb = admin_events_kb([make_event_read(event_id=4)], 0)
        assert [b.callback_data for b in kb.inline_keyboard[0]] == ["adm_regs:evt4:0", "adm_edit:4", "adm_del:4"]
        assert kb.inline_keyboard[-1][0].callback_data == "adm_add"


class TestAdminInput:
    """Tests for parsing what admins type"""

    def test_day_first_dates(self):
        assert parse_date_input("14.02.2027") == dt.date(2027, 2, 14)

    def test_unreadable_date(self):
        assert parse_date_input("banana split") is None

    @pytest.mark.parametrize(
        "field, text, expected",
        [
            ("capacity", "40", 40),
            ("capacity", "-1", -1),
            ("capacity", "forty", None),
            ("venue", "  Hall B ", "Hall B"),
            ("name", "   ", None),
        ],
    )
    def test_parse_field_input(self, field, text, expected):
        assert parse_field_input(field, text) == expected
