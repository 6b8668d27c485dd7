import os
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Settings:
    # -------------------------------------------------------
    # Project
    # -------------------------------------------------------
    PROJECT_NAME: str = "Family Tree API"
    ENV: str = os.getenv("ENV", "dev")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # -------------------------------------------------------
    # Database
    # -------------------------------------------------------
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        "sqlite:///./family_tree.db"
    )

    # Hosted Postgres URLs use postgres:// but SQLAlchemy needs postgresql://
    if DATABASE_URL.startswith("postgres://"):
        DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

    # -------------------------------------------------------
    # Authentication / JWT
    # -------------------------------------------------------
    SECRET_KEY: str = os.getenv(
        "SECRET_KEY",
        "supersecretlocalkey123"   # Only used for local dev
    )
    ALGORITHM: str = "HS256"

    # 7 days token expiry by default
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(
        os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24 * 7)
    )

    # Local media folder (member and user avatars)
    LOCAL_MEDIA_PATH: str = os.getenv(
        "LOCAL_MEDIA_PATH",
        "./media"
    )

    # -------------------------------------------------------
    # Reminders / scheduler
    # -------------------------------------------------------
    SCHEDULER_ENABLED: bool = _env_bool("SCHEDULER_ENABLED", "true")
    SCHEDULER_INTERVAL_HOURS: int = int(os.getenv("SCHEDULER_INTERVAL_HOURS", 24))
    BIRTHDAY_WINDOW_DAYS: int = int(os.getenv("BIRTHDAY_WINDOW_DAYS", 7))
    ANNIVERSARY_WINDOW_DAYS: int = int(os.getenv("ANNIVERSARY_WINDOW_DAYS", 7))
    EVENT_WINDOW_DAYS: int = int(os.getenv("EVENT_WINDOW_DAYS", 3))
    NOTIFICATION_RETENTION_DAYS: int = int(
        os.getenv("NOTIFICATION_RETENTION_DAYS", 30)
    )

    # -------------------------------------------------------
    # Confessions
    # -------------------------------------------------------
    CONFESSION_DAILY_LIMIT: int = int(os.getenv("CONFESSION_DAILY_LIMIT", 3))
    CONFESSION_PAGE_LIMIT: int = 20
    CONFESSION_MAX_LENGTH: int = 1000


# Single instance that is imported everywhere
settings = Settings()
