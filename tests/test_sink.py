import pytest

from attendbot.services.telemetry.sink import NullLogSink, TelegramLogSink


class FakeBot:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[tuple[int, str]] = []

    async def send_message(self, *, chat_id: int, text: str, parse_mode: str) -> None:
        if self.fail:
            raise OSError("network down")
        self.sent.append((chat_id, text))


class TestTelegramLogSink:
    @pytest.mark.asyncio
    async def test_events_go_to_log_chat(self):
        bot = FakeBot()
        sink = TelegramLogSink(bot, log_chat_id=-100, admin_chat_id=42)
        await sink.log_event("hello")
        assert bot.sent == [(-100, "[BOT LOG] hello")]

    @pytest.mark.asyncio
    async def test_queries_prefer_admin_chat(self):
        bot = FakeBot()
        assert await TelegramLogSink(bot, log_chat_id=-100, admin_chat_id=42).forward_query("q1")
        assert await TelegramLogSink(bot, log_chat_id=-100).forward_query("q2")
        assert bot.sent == [(42, "q1"), (-100, "q2")]

    @pytest.mark.asyncio
    async def test_send_failures_are_swallowed(self):
        sink = TelegramLogSink(FakeBot(fail=True), log_chat_id=-100)
        await sink.log_event("hello")
        assert await sink.forward_query("q") is False


@pytest.mark.asyncio
async def test_null_sink_reports_not_forwarded():
    sink = NullLogSink()
    await sink.log_event("x")
    assert await sink.forward_query("q") is False
