"""JSON API for the festival mini-app.

The mini-app calls the same ledger operations as the bot.  Identity comes from
the Telegram WebApp ``initData`` string sent in the ``X-Telegram-Init-Data``
header; it is verified against the bot token, and anything missing or forged
is treated as an anonymous caller.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional

from aiogram.utils.web_app import safe_parse_webapp_init_data
from aiohttp import web
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fest_bot.config import settings
from fest_bot.errors import LedgerError, ValidationFailed
from fest_bot.services import events as events_service
from fest_bot.services import registrations as registrations_service

logger = logging.getLogger(__name__)

INIT_DATA_HEADER = "X-Telegram-Init-Data"

SESSION_POOL = web.AppKey("session_pool", async_sessionmaker)
BOT_TOKEN = web.AppKey("bot_token", str)
DB_SESSION = web.RequestKey("session", AsyncSession)
# None when the caller is anonymous
SUBJECT = web.RequestKey("subject", int)

ERROR_STATUS = {
    "unauthenticated": 401,
    "unauthorized": 403,
    "not_found": 404,
    "validation_failed": 422,
    "already_registered": 409,
    "already_cancelled": 409,
    "event_full": 409,
}

routes = web.RouteTableDef()


def resolve_subject(request: web.Request) -> Optional[int]:
    init_data = request.headers.get(INIT_DATA_HEADER)
    if not init_data:
        return None
    try:
        data = safe_parse_webapp_init_data(request.app[BOT_TOKEN], init_data)
    except ValueError:
        logger.info("init_data_rejected path=%s", request.path)
        return None
    return data.user.id if data.user else None


@web.middleware
async def ledger_errors(request: web.Request, handler):
    try:
        return await handler(request)
    except LedgerError as exc:
        body: dict[str, Any] = {"error": exc.code, "message": exc.text}
        if isinstance(exc, ValidationFailed) and exc.problems:
            body["problems"] = exc.problems
        return web.json_response(body, status=ERROR_STATUS.get(exc.code, 400))


@web.middleware
async def db_session(request: web.Request, handler):
    async with request.app[SESSION_POOL]() as session:
        request[DB_SESSION] = session
        request[SUBJECT] = resolve_subject(request)
        return await handler(request)


async def _json_body(request: web.Request) -> dict:
    try:
        body = await request.json()
    except json.JSONDecodeError:
        raise ValidationFailed("Request body must be JSON.") from None
    if not isinstance(body, dict):
        raise ValidationFailed("Request body must be a JSON object.")
    return body


def _int_param(request: web.Request, name: str) -> Optional[int]:
    raw = request.query.get(name)
    if raw in (None, ""):
        return None
    try:
        return int(raw)  # type: ignore[arg-type]
    except ValueError:
        raise ValidationFailed(f"{name} must be an integer.") from None


# ---------- event catalog ----------


@routes.get("/api/events")
async def list_events(request: web.Request) -> web.Response:
    events = await events_service.list_events(
        request[DB_SESSION],
        category=request.query.get("category"),
        search=request.query.get("search"),
    )
    return web.json_response([ev.model_dump(mode="json") for ev in events])


@routes.get(r"/api/events/{event_id:\d+}")
async def get_event(request: web.Request) -> web.Response:
    event = await events_service.get_event(request[DB_SESSION], int(request.match_info["event_id"]))
    return web.json_response(event.model_dump(mode="json") if event else None)


@routes.post("/api/events")
async def create_event(request: web.Request) -> web.Response:
    body = await _json_body(request)
    event_id = await events_service.create_event(request[DB_SESSION], request[SUBJECT], body)
    return web.json_response({"id": event_id}, status=201)


@routes.put(r"/api/events/{event_id:\d+}")
async def update_event(request: web.Request) -> web.Response:
    body = await _json_body(request)
    await events_service.update_event(
        request[DB_SESSION], request[SUBJECT], int(request.match_info["event_id"]), body
    )
    return web.Response(status=204)


@routes.delete(r"/api/events/{event_id:\d+}")
async def delete_event(request: web.Request) -> web.Response:
    await events_service.delete_event(request[DB_SESSION], request[SUBJECT], int(request.match_info["event_id"]))
    return web.Response(status=204)


# ---------- registrations ----------


@routes.post(r"/api/events/{event_id:\d+}/register")
async def register(request: web.Request) -> web.Response:
    registration_id = await registrations_service.register(
        request[DB_SESSION], request[SUBJECT], int(request.match_info["event_id"])
    )
    return web.json_response({"id": registration_id}, status=201)


@routes.post(r"/api/registrations/{registration_id:\d+}/cancel")
async def cancel(request: web.Request) -> web.Response:
    await registrations_service.cancel(
        request[DB_SESSION], request[SUBJECT], int(request.match_info["registration_id"])
    )
    return web.Response(status=204)


@routes.get("/api/registrations/mine")
async def list_mine(request: web.Request) -> web.Response:
    registrations = await registrations_service.list_mine(request[DB_SESSION], request[SUBJECT])
    return web.json_response([reg.model_dump(mode="json") for reg in registrations])


@routes.get("/api/registrations")
async def list_all(request: web.Request) -> web.Response:
    registrations = await registrations_service.list_all(
        request[DB_SESSION],
        request[SUBJECT],
        event_id=_int_param(request, "event_id"),
        status=request.query.get("status"),
    )
    return web.json_response([reg.model_dump(mode="json") for reg in registrations])


@routes.patch(r"/api/registrations/{registration_id:\d+}")
async def set_status(request: web.Request) -> web.Response:
    body = await _json_body(request)
    await registrations_service.set_status(
        request[DB_SESSION],
        request[SUBJECT],
        int(request.match_info["registration_id"]),
        body.get("status"),  # type: ignore[arg-type]
    )
    return web.Response(status=204)


def create_app(session_pool: async_sessionmaker, bot_token: str) -> web.Application:
    app = web.Application(middlewares=[ledger_errors, db_session])
    app[SESSION_POOL] = session_pool
    app[BOT_TOKEN] = bot_token
    app.add_routes(routes)
    return app


async def start_api_server(session_pool: async_sessionmaker, host: str | None = None, port: int | None = None) -> None:
    """Serve the API until the surrounding task is cancelled.

    Run it with ``asyncio.create_task`` next to the bot polling loop.
    """
    _host = host or settings.API_HOST
    _port = port or settings.API_PORT
    app = create_app(session_pool, settings.BOT_TOKEN)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host=_host, port=_port)
    await site.start()

    logger.info("Festival API is being served at http://%s:%d/api/", _host, _port)

    try:
        while True:
            await asyncio.sleep(3600)
    finally:
        await runner.cleanup()


# ---------------------------------------------------------------------------
# CLI helper
# ---------------------------------------------------------------------------


if __name__ == "__main__":
    #   python -m fest_bot.api.server
    from fest_bot.db import SessionLocal, init_db

    async def _main() -> None:
        await init_db()
        await start_api_server(SessionLocal)

    logging.basicConfig(level=logging.INFO)
    try:
        asyncio.run(_main())
    except (KeyboardInterrupt, SystemExit):
        pass
