from __future__ import annotations

import logging

from aiohttp import web

log = logging.getLogger(__name__)

BOT_ENABLED = web.AppKey("bot_enabled", bool)


async def index(request: web.Request) -> web.Response:
    if request.app[BOT_ENABLED]:
        return web.Response(text="Telegram bot is running. Visit your Telegram bot to interact.")
    return web.Response(text="Telegram bot is disabled (BOT_TOKEN is not set).")


async def health(request: web.Request) -> web.Response:
    return web.json_response({"ok": True, "bot_enabled": request.app[BOT_ENABLED]})


def build_app(*, bot_enabled: bool) -> web.Application:
    app = web.Application()
    app[BOT_ENABLED] = bot_enabled
    app.router.add_get("/", index)
    app.router.add_get("/health", health)
    return app


async def start_keepalive(host: str, port: int, *, bot_enabled: bool) -> web.AppRunner:
    runner = web.AppRunner(build_app(bot_enabled=bot_enabled))
    await runner.setup()
    site = web.TCPSite(runner, host=host, port=port)
    await site.start()
    log.info("keepalive_started host=%s port=%s", host, port)
    return runner
