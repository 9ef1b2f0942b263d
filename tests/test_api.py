"""
Tests for the mini-app JSON API
"""
import datetime as dt
import hashlib
import hmac
import json
import time
import warnings
from urllib.parse import urlencode

import pytest
import pytest_asyncio
from aiohttp import test_utils, web

from conftest import ADMIN_TG, OTHER_TG, STUDENT_TG
from fest_bot.api import server
from fest_bot.api.server import INIT_DATA_HEADER, create_app

BOT_TOKEN = "123456:TEST-TOKEN"


def sign_init_data(tg_id: int, token: str = BOT_TOKEN) -> str:
    """Builds WebApp initData the way Telegram signs it."""
    fields = {
        "auth_date": str(int(time.time())),
        "query_id": "AAHdF6IQAAAAAN0XohDhrOrc",
        "user": json.dumps({"id": tg_id, "first_name": "Test"}, separators=(",", ":")),
    }
    check_string = "\n".join(f"{key}={value}" for key, value in sorted(fields.items()))
    secret = hmac.new(b"WebAppData", token.encode(), hashlib.sha256).digest()
    fields["hash"] = hmac.new(secret, check_string.encode(), hashlib.sha256).hexdigest()
    return urlencode(fields)


def as_user(tg_id: int) -> dict:
    return {INIT_DATA_HEADER: sign_init_data(tg_id)}


@pytest_asyncio.fixture
async def client(session_pool, users):
    app = create_app(session_pool, BOT_TOKEN)
    async with test_utils.TestClient(test_utils.TestServer(app)) as test_client:
        yield test_client


@pytest.fixture
def event_payload():
    return {
        "name": "Battle of the Bands",
        "description": "Student bands compete on the main stage.",
        "category": "Music",
        "date": (dt.date.today() + dt.timedelta(days=30)).isoformat(),
        "time": "18:30",
        "venue": "Main Auditorium",
        "capacity": 1,
    }


async def _create(client, payload):
    resp = await client.post("/api/events", json=payload, headers=as_user(ADMIN_TG))
    assert resp.status == 201
    return (await resp.json())["id"]


@pytest.mark.asyncio
class TestEventRoutes:
    """Tests for /api/events"""

    async def test_create_and_list(self, client, event_payload):
        event_id = await _create(client, event_payload)

        resp = await client.get("/api/events")
        assert resp.status == 200
        events = await resp.json()
        assert [ev["id"] for ev in events] == [event_id]
        assert events[0]["available_spots"] == 1
        assert events[0]["time"] == "18:30:00"

    async def test_get_missing_event_is_null(self, client):
        resp = await client.get("/api/events/999")
        assert resp.status == 200
        assert await resp.json() is None

    async def test_search_and_category(self, client, event_payload):
        await _create(client, event_payload)
        await _create(client, {**event_payload, "name": "Robot Wars", "category": "Technical"})

        resp = await client.get("/api/events", params={"search": "robo", "category": "Technical"})
        assert [ev["name"] for ev in await resp.json()] == ["Robot Wars"]

    async def test_create_without_identity(self, client, event_payload):
        resp = await client.post("/api/events", json=event_payload)
        assert resp.status == 401
        assert (await resp.json())["error"] == "unauthenticated"

    async def test_forged_init_data_is_anonymous(self, client, event_payload):
        headers = {INIT_DATA_HEADER: sign_init_data(ADMIN_TG, token="999:OTHER")}
        resp = await client.post("/api/events", json=event_payload, headers=headers)
        assert resp.status == 401

    async def test_create_as_student(self, client, event_payload):
        resp = await client.post("/api/events", json=event_payload, headers=as_user(STUDENT_TG))
        assert resp.status == 403
        assert (await resp.json())["error"] == "unauthorized"

    async def test_create_invalid(self, client, event_payload):
        resp = await client.post("/api/events", json={**event_payload, "capacity": 0}, headers=as_user(ADMIN_TG))
        assert resp.status == 422
        body = await resp.json()
        assert body["error"] == "validation_failed"
        assert body["problems"]

    async def test_body_must_be_json_object(self, client):
        resp = await client.post("/api/events", data="not json", headers=as_user(ADMIN_TG))
        assert resp.status == 422
        resp = await client.post("/api/events", json=[1, 2], headers=as_user(ADMIN_TG))
        assert resp.status == 422

    async def test_update_and_delete(self, client, event_payload):
        event_id = await _create(client, event_payload)

        resp = await client.put(
            f"/api/events/{event_id}", json={**event_payload, "venue": "Open Air Stage"}, headers=as_user(ADMIN_TG)
        )
        assert resp.status == 204
        resp = await client.get(f"/api/events/{event_id}")
        assert (await resp.json())["venue"] == "Open Air Stage"

        resp = await client.delete(f"/api/events/{event_id}", headers=as_user(ADMIN_TG))
        assert resp.status == 204
        resp = await client.delete(f"/api/events/{event_id}", headers=as_user(ADMIN_TG))
        assert resp.status == 404


@pytest.mark.asyncio
class TestRegistrationRoutes:
    """Tests for registering, cancelling and moderating over HTTP"""

    async def test_register_until_full(self, client, event_payload):
        event_id = await _create(client, event_payload)

        resp = await client.post(f"/api/events/{event_id}/register", headers=as_user(STUDENT_TG))
        assert resp.status == 201
        registration_id = (await resp.json())["id"]

        resp = await client.post(f"/api/events/{event_id}/register", headers=as_user(STUDENT_TG))
        assert resp.status == 409
        assert (await resp.json())["error"] == "already_registered"

        resp = await client.post(f"/api/events/{event_id}/register", headers=as_user(OTHER_TG))
        assert resp.status == 409
        assert (await resp.json())["error"] == "event_full"

        resp = await client.get("/api/registrations/mine", headers=as_user(STUDENT_TG))
        mine = await resp.json()
        assert [reg["id"] for reg in mine] == [registration_id]
        assert mine[0]["status"] == "pending"
        assert mine[0]["event"]["is_full"] is True

    async def test_register_missing_event(self, client):
        resp = await client.post("/api/events/999/register", headers=as_user(STUDENT_TG))
        assert resp.status == 404
        assert (await resp.json())["error"] == "not_found"

    async def test_cancel(self, client, event_payload):
        event_id = await _create(client, event_payload)
        resp = await client.post(f"/api/events/{event_id}/register", headers=as_user(STUDENT_TG))
        registration_id = (await resp.json())["id"]

        resp = await client.post(f"/api/registrations/{registration_id}/cancel", headers=as_user(OTHER_TG))
        assert resp.status == 403

        resp = await client.post(f"/api/registrations/{registration_id}/cancel", headers=as_user(STUDENT_TG))
        assert resp.status == 204

        resp = await client.post(f"/api/registrations/{registration_id}/cancel", headers=as_user(STUDENT_TG))
        assert resp.status == 409
        assert (await resp.json())["error"] == "already_cancelled"

    async def test_mine_signed_out_is_empty(self, client):
        resp = await client.get("/api/registrations/mine")
        assert resp.status == 200
        assert await resp.json() == []

    async def test_admin_listing_and_status(self, client, event_payload):
        event_id = await _create(client, {**event_payload, "capacity": 5})
        resp = await client.post(f"/api/events/{event_id}/register", headers=as_user(STUDENT_TG))
        registration_id = (await resp.json())["id"]

        resp = await client.patch(
            f"/api/registrations/{registration_id}", json={"status": "confirmed"}, headers=as_user(ADMIN_TG)
        )
        assert resp.status == 204

        resp = await client.get(
            "/api/registrations", params={"status": "confirmed"}, headers=as_user(ADMIN_TG)
        )
        registrations = await resp.json()
        assert [reg["id"] for reg in registrations] == [registration_id]
        assert registrations[0]["user"]["email"] == "alice@fest.edu"

        resp = await client.get("/api/registrations", headers=as_user(STUDENT_TG))
        assert resp.status == 403

    async def test_bad_query_parameters(self, client):
        resp = await client.get("/api/registrations", params={"event_id": "abc"}, headers=as_user(ADMIN_TG))
        assert resp.status == 422
        resp = await client.get("/api/registrations", params={"status": "approved"}, headers=as_user(ADMIN_TG))
        assert resp.status == 422


class TestModuleLayout:
    """Tests for how the API module declares itself"""

    def test_module_docstring(self):
        assert server.__doc__ is not None
        assert server.__doc__.startswith("JSON API for the festival mini-app.")

    def test_request_state_uses_typed_keys(self):
        assert isinstance(server.DB_SESSION, web.RequestKey)
        assert isinstance(server.SUBJECT, web.RequestKey)


@pytest.mark.asyncio
class TestRequestKeys:
    """Tests that serving a request stores state without untyped keys"""

    @pytest.mark.filterwarnings("error::aiohttp.web.NotAppKeyWarning")
    async def test_no_key_warning_on_request(self, client):
        resp = await client.get("/api/registrations/mine", headers=as_user(STUDENT_TG))
        assert resp.status == 200

    async def test_no_key_warning_captured(self, session_pool, users):
        app = create_app(session_pool, BOT_TOKEN)
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            async with test_utils.TestClient(test_utils.TestServer(app)) as test_client:
                resp = await test_client.get("/api/events", headers=as_user(STUDENT_TG))
                assert resp.status == 200
        assert not [w for w in caught if issubclass(w.category, web.NotAppKeyWarning)]
