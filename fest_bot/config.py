from pathlib import Path
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    BOT_TOKEN: str = ""
    # Telegram ids that are provisioned with the admin role
    ADMIN_IDS: set[int] = set()
    FESTIVAL_NAME: str = "Cultural Fest"
    DB_PATH: Path = Path.home() / "fest.db"
    # Seconds a writer waits for the SQLite write lock before giving up
    DB_BUSY_TIMEOUT: float = 30.0
    # Festival local time zone, used for "today" and scheduled jobs
    TIMEZONE: str = "UTC"

    # JSON API for the festival mini-app
    API_ENABLED: bool = False
    API_HOST: str = "127.0.0.1"
    API_PORT: int = 8080

    LOG_LEVEL: str = "INFO"
    LOG_DIR: Path = Path(__file__).resolve().parent / "logs"
    BACKUP_DIR: Path | None = None

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
