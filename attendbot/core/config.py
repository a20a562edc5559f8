import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in ("1", "true", "yes", "y", "on")


def _env_int(name: str) -> int | None:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return None
    if not raw.lstrip("-").isdigit():
        raise RuntimeError(f"{name} is invalid (must be digits)")
    return int(raw)


def make_async_db_url(url: str) -> str:
    """Accepts Railway-style DATABASE_URL (or a sqlite path) and returns sqlalchemy async url."""
    if url.startswith(("postgresql+asyncpg://", "sqlite+aiosqlite://")):
        return url
    if url.startswith("postgres://"):
        return "postgresql+asyncpg://" + url[len("postgres://") :]
    if url.startswith("postgresql://"):
        return "postgresql+asyncpg://" + url[len("postgresql://") :]
    if url.startswith("sqlite://"):
        return "sqlite+aiosqlite://" + url[len("sqlite://") :]
    raise RuntimeError("Unsupported DATABASE_URL format")


def make_sync_db_url(url: str) -> str:
    """Alembic runs with the sync drivers."""
    url = make_async_db_url(url)
    if url.startswith("postgresql+asyncpg://"):
        return "postgresql://" + url[len("postgresql+asyncpg://") :]
    return "sqlite://" + url[len("sqlite+aiosqlite://") :]


@dataclass(frozen=True)
class Settings:
    # None -> degraded mode: the keep-alive server runs, the bot does not
    bot_token: str | None
    bot_username: str | None
    database_url: str

    # admin access + where user queries go
    admin_chat_id: int | None = None

    # observability: a second bot posts events into a log chat
    logger_bot_token: str | None = None
    log_chat_id: int | None = None

    # TeachUs attendance API
    attendance_api_url: str = "https://api.teachusapp.com/teachus/attendance/student_attendance_list"
    attendance_api_token: str | None = None
    attendance_college_code: str = "thakur_college_of_science_and_commerce"
    attendance_from_date: str = "2024-11-21"
    attendance_timeout_seconds: int = 20

    # keep-alive HTTP
    http_host: str = "0.0.0.0"
    http_port: int = 3000
    http_enabled: bool = True


def _load_settings() -> Settings:
    bot_token = (os.getenv("BOT_TOKEN") or os.getenv("TELEGRAM_BOT_TOKEN") or "").strip() or None

    database_url_raw = os.getenv("DATABASE_URL", "").strip() or "sqlite+aiosqlite:///./data/bot.db"

    return Settings(
        bot_token=bot_token,
        bot_username=(os.getenv("BOT_USERNAME") or "").strip().lstrip("@") or None,
        database_url=make_async_db_url(database_url_raw),
        admin_chat_id=_env_int("ADMIN_CHAT_ID"),
        logger_bot_token=(os.getenv("LOGGER_BOT_TOKEN") or "").strip() or None,
        log_chat_id=_env_int("LOG_CHAT_ID"),
        attendance_api_url=os.getenv(
            "TEACHUS_API_URL",
            "https://api.teachusapp.com/teachus/attendance/student_attendance_list",
        ).strip(),
        attendance_api_token=(os.getenv("TEACHUS_API_JWT_TOKEN") or "").strip() or None,
        attendance_college_code=os.getenv(
            "TEACHUS_COLLEGE_CODE", "thakur_college_of_science_and_commerce"
        ).strip(),
        attendance_from_date=os.getenv("TEACHUS_FROM_DATE", "2024-11-21").strip(),
        attendance_timeout_seconds=int(os.getenv("ATTENDANCE_TIMEOUT_SECONDS", "20")),
        http_host=os.getenv("HOST", "0.0.0.0").strip(),
        http_port=int(os.getenv("PORT", "3000")),
        http_enabled=_env_bool("HTTP_ENABLED", True),
    )


settings = _load_settings()
