import logging
import shutil
from datetime import datetime
from pathlib import Path

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from fest_bot.config import settings
from fest_bot.db import SessionLocal
from fest_bot.services.registrations import recount_registered

logger = logging.getLogger(__name__)


async def audit_registered_counts() -> None:
    """Nightly check that every event counter matches its active registrations."""
    async with SessionLocal() as session:
        drift = await recount_registered(session)
    if drift:
        logger.warning("audit_repaired_events count=%s", len(drift))
    else:
        logger.info("audit_ok")


def daily_backup(db_path: Path | None = None, backup_dir: Path | None = None) -> Path | None:
    db_path = db_path or settings.DB_PATH
    if not db_path.exists():
        return None
    backup_dir = backup_dir or settings.BACKUP_DIR or db_path.parent / "backups"
    backup_dir.mkdir(parents=True, exist_ok=True)
    backup_path = backup_dir / f"{db_path.name}_{datetime.now().strftime('%Y-%m-%d_%H-%M-%S')}"
    shutil.copy(db_path, backup_path)
    logger.info("backup_written path=%s", backup_path)
    return backup_path


def schedule_jobs() -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone=settings.TIMEZONE)
    scheduler.add_job(audit_registered_counts, "cron", hour=0, minute=15)
    scheduler.add_job(daily_backup, "cron", hour=3, minute=0)
    scheduler.start()
    return scheduler
