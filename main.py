import asyncio
import logging
import subprocess
import sys
from html import escape

from aiogram import Bot

from attendbot.bot.app import run_bot
from attendbot.core.config import settings
from attendbot.core.logging import setup_logging
from attendbot.db.session import dispose_engine, init_engine
from attendbot.engine.engine import ConversationEngine
from attendbot.services.attendance.client import build_attendance_client
from attendbot.services.telemetry.sink import TelegramLogSink, build_log_sink
from attendbot.web import start_keepalive

log = logging.getLogger(__name__)


def _run_alembic_upgrade_head_best_effort() -> None:
    """Apply migrations at boot (best-effort)."""
    try:
        subprocess.check_call([sys.executable, "-m", "alembic", "upgrade", "head"])
        log.info("alembic_upgrade_head_ok")
    except (subprocess.CalledProcessError, OSError):
        log.exception("alembic_upgrade_head_failed; continuing without migrations")


async def main() -> None:
    setup_logging()
    init_engine(settings.database_url)
    _run_alembic_upgrade_head_best_effort()

    sink = build_log_sink()
    runner = None
    if settings.http_enabled:
        runner = await start_keepalive(settings.http_host, settings.http_port, bot_enabled=bool(settings.bot_token))

    try:
        if not settings.bot_token:
            log.error("bot_token_missing; bot disabled, serving keep-alive only")
            await asyncio.Event().wait()
            return

        engine = ConversationEngine(
            attendance=build_attendance_client(),
            sink=sink,
            bot_username=settings.bot_username,
        )
        bot = Bot(token=settings.bot_token)
        await sink.log_event("🚀 Main bot started.")
        try:
            await run_bot(bot, engine)
        finally:
            await bot.session.close()
    except Exception as e:
        log.exception("fatal_error")
        await sink.log_event(f"🚨 <b>Fatal error</b>: <code>{escape(repr(e))}</code>\nBot will attempt to restart.")
        raise
    finally:
        if runner is not None:
            await runner.cleanup()
        if isinstance(sink, TelegramLogSink):
            await sink.close()
        await dispose_engine()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
    except Exception:
        # non-zero exit so the platform restarts the container
        sys.exit(1)
