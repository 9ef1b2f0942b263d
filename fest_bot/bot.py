import asyncio
import logging
import sys

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.fsm.storage.memory import MemoryStorage

from fest_bot.api.server import start_api_server
from fest_bot.config import settings
from fest_bot.db import SessionLocal, init_db
from fest_bot.handlers import (
    admin_menu_router,
    common_router,
    errors_router,
    student_menu_router,
)
from fest_bot.middleware.db import DbSessionMiddleware
from fest_bot.services.scheduler import schedule_jobs


def setup_logging() -> None:
    settings.LOG_DIR.mkdir(parents=True, exist_ok=True)
    log_file = settings.LOG_DIR / "bot.log"

    # Console and file, same format
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file, encoding="utf-8"),
        ],
        force=True,
    )
    logging.getLogger("aiogram").setLevel(logging.INFO)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


async def main():
    setup_logging()
    if not settings.BOT_TOKEN:
        raise SystemExit("BOT_TOKEN is not set (environment or .env)")

    logging.info("Bot starting…")

    await init_db()

    bot = Bot(token=settings.BOT_TOKEN, default=DefaultBotProperties(parse_mode="HTML"))
    dp = Dispatcher(storage=MemoryStorage())

    # Middleware
    dp.update.middleware(DbSessionMiddleware(session_pool=SessionLocal))

    # Routers
    dp.include_router(common_router)
    dp.include_router(admin_menu_router)
    dp.include_router(student_menu_router)
    dp.include_router(errors_router)

    # Scheduler
    scheduler = schedule_jobs()

    api_task = None
    if settings.API_ENABLED:
        api_task = asyncio.create_task(start_api_server(SessionLocal))

    try:
        await dp.start_polling(bot)
    finally:
        scheduler.shutdown(wait=False)
        if api_task is not None:
            api_task.cancel()
        await bot.session.close()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
