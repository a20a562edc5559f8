import pytest
from aiohttp.test_utils import TestClient, TestServer

from attendbot.web import build_app


@pytest.mark.asyncio
@pytest.mark.parametrize("enabled", [True, False])
async def test_health(enabled):
    async with TestClient(TestServer(build_app(bot_enabled=enabled))) as client:
        resp = await client.get("/health")
        assert resp.status == 200
        assert await resp.json() == {"ok": True, "bot_enabled": enabled}

        resp = await client.get("/")
        body = await resp.text()
        assert ("running" in body) is enabled
