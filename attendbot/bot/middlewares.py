from __future__ import annotations

import logging
import time
from typing import Any, Awaitable, Callable, Dict

from aiogram import BaseMiddleware
from aiogram.types import CallbackQuery, TelegramObject, Update

log = logging.getLogger(__name__)

Handler = Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]]


class CorrelationIdMiddleware(BaseMiddleware):
    """Exposes ``log_extra`` (corr_id, update_id, user_id) to handlers."""

    async def __call__(self, handler: Handler, event: TelegramObject, data: Dict[str, Any]) -> Any:
        extra: dict[str, Any] = {}
        update: Update | None = data.get("event_update")
        if update:
            extra["corr_id"] = f"u{update.update_id}"
            extra["update_id"] = update.update_id
        from_user = getattr(event, "from_user", None)
        if from_user:
            extra["user_id"] = from_user.id
        data["log_extra"] = extra
        return await handler(event, data)


class RateLimitMiddleware(BaseMiddleware):
    """Drops repeated taps on the same menu button within ``min_interval_sec``."""

    def __init__(self, min_interval_sec: float = 0.4, max_tracked: int = 10_000):
        self.min_interval_sec = min_interval_sec
        self.max_tracked = max_tracked
        self._last_tap: dict[tuple[int, str], float] = {}

    def _prune(self, now: float) -> None:
        cutoff = now - self.min_interval_sec
        self._last_tap = {k: t for k, t in self._last_tap.items() if t >= cutoff}

    async def __call__(self, handler: Handler, event: TelegramObject, data: Dict[str, Any]) -> Any:
        if not isinstance(event, CallbackQuery) or not event.data:
            return await handler(event, data)

        key = (event.from_user.id, event.data)
        now = time.monotonic()
        last = self._last_tap.get(key)
        if last is not None and now - last < self.min_interval_sec:
            log.debug("menu_tap_dropped user_id=%s data=%s", event.from_user.id, event.data)
            await event.answer()
            return None

        if len(self._last_tap) >= self.max_tracked:
            self._prune(now)
        self._last_tap[key] = now
        return await handler(event, data)
