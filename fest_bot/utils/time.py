from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from fest_bot.config import settings


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp, the form stored in the database."""
    return datetime.now(timezone.utc)


def today_local() -> date:
    """Return current date in the festival time zone."""
    return datetime.now(ZoneInfo(settings.TIMEZONE)).date()
