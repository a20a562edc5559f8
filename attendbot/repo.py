from __future__ import annotations

import logging

from attendbot.db.models import AppSetting
from attendbot.db.store import Store

log = logging.getLogger(__name__)


# ---- Runtime settings (admin-tunable) ----------------------------------------
async def get_setting(store: Store, key: str) -> str | None:
    row = await store.get(AppSetting, key)
    return None if row is None else row.value


async def get_setting_int(store: Store, key: str, *, default: int) -> int:
    raw = await get_setting(store, key)
    if raw is None or not raw.strip().lstrip("-").isdigit():
        return int(default)
    return int(raw)


async def set_setting(store: Store, key: str, value: str | int | None) -> None:
    row = await store.get(AppSetting, key)
    if row is None:
        row = AppSetting(key=key)
    row.value = None if value is None else str(value)
    row.touch()
    await store.put(row)
    log.info("app_setting_updated key=%s", key)

