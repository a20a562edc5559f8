import asyncio

import pytest

from attendbot.engine.session import SessionRegistry, UserLocks
from attendbot.engine.states import DialogState


class TestSessionRegistry:
    def test_get_creates_and_clear_drops(self):
        sessions = SessionRegistry()
        assert sessions.peek(1) is None
        s = sessions.get(1)
        assert s.state == DialogState.START
        s.state = DialogState.AWAITING_PHONE
        assert sessions.get(1) is s
        sessions.clear(1)
        assert sessions.peek(1) is None
        assert len(sessions) == 0
        sessions.clear(1)


class TestUserLocks:
    @pytest.mark.asyncio
    async def test_serializes_one_user(self):
        locks = UserLocks()
        order: list[str] = []

        async def job(name: str) -> None:
            async with locks.hold(7):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(job("a"), job("b"))
        assert order == ["a-in", "a-out", "b-in", "b-out"]
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_lock_released_on_error(self):
        locks = UserLocks()
        with pytest.raises(ValueError):
            async with locks.hold(7):
                raise ValueError("x")
        assert len(locks) == 0
        async with locks.hold(7):
            pass
