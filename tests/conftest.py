# tests/conftest.py

import datetime as dt

import pytest
import pytest_asyncio
from sqlmodel import SQLModel

import fest_bot.models  # noqa: F401  registers tables on the metadata
from fest_bot.db import make_engine, make_session_pool, transaction
from fest_bot.services.events import create_event, get_event
from fest_bot.services.registrations import active_counts
from fest_bot.services.users import provision_user

# Telegram ids of the provisioned test accounts
ADMIN_TG = 1001
STUDENT_TG = 2001
OTHER_TG = 2002
THIRD_TG = 2003


# --- Database Setup ---
@pytest_asyncio.fixture
async def engine(tmp_path):
    """A fresh file-backed SQLite database per test."""
    test_engine = make_engine(tmp_path / "ledger.db", busy_timeout=10)
    async with test_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_pool(engine):
    return make_session_pool(engine)


@pytest_asyncio.fixture
async def session(session_pool):
    async with session_pool() as db_session:
        yield db_session


@pytest_asyncio.fixture
async def users(session):
    """One admin and three students."""
    admin = await provision_user(session, ADMIN_TG, "Festival Admin", "admin@fest.edu", admin_ids={ADMIN_TG})
    student = await provision_user(session, STUDENT_TG, "Alice Student", "alice@fest.edu", admin_ids=set())
    other = await provision_user(session, OTHER_TG, "Bob Student", "bob@fest.edu", admin_ids=set())
    third = await provision_user(session, THIRD_TG, "Carol Student", "carol@fest.edu", admin_ids=set())
    return {"admin": admin, "student": student, "other": other, "third": third}


# --- Event Helpers ---
@pytest.fixture
def event_data():
    """Factory for a valid event payload, one month ahead."""

    def _make(**overrides):
        data = {
            "name": "Battle of the Bands",
            "description": "Student bands compete on the main stage.",
            "category": "Music",
            "date": dt.date.today() + dt.timedelta(days=30),
            "time": "18:30",
            "venue": "Main Auditorium",
            "capacity": 50,
        }
        data.update(overrides)
        return data

    return _make


@pytest.fixture
def make_event(session, users, event_data):
    """Creates an event as the admin and returns its id."""

    async def _make(**overrides):
        return await create_event(session, ADMIN_TG, event_data(**overrides))

    return _make


@pytest.fixture
def assert_counter_consistent(session):
    """Checks the stored counter against the active registration rows."""

    async def _check(event_id: int):
        event = await get_event(session, event_id)
        assert event is not None
        async with transaction(session):
            counts = await active_counts(session)
        assert event.registered_count == counts.get(event_id, 0)
        assert 0 <= event.registered_count <= event.capacity
        return event

    return _check
