import pytest

from attendbot import repo
from attendbot.db.models import Course
from attendbot.db.session import unit_of_work


@pytest.mark.asyncio
async def test_unit_of_work_commits(sessionmaker):
    async with unit_of_work(sessionmaker) as store:
        await store.put(Course(ordinal=1, name="A", external_id="1"))
    async with unit_of_work(sessionmaker) as store:
        assert (await store.get(Course, 1)).name == "A"


@pytest.mark.asyncio
async def test_unit_of_work_rolls_back_on_error(sessionmaker):
    with pytest.raises(RuntimeError):
        async with unit_of_work(sessionmaker) as store:
            await store.put(Course(ordinal=1, name="A", external_id="1"))
            raise RuntimeError("abort")
    async with unit_of_work(sessionmaker) as store:
        assert await store.get(Course, 1) is None


@pytest.mark.asyncio
async def test_scan_and_delete(store):
    for n in (3, 1, 2):
        await store.put(Course(ordinal=n, name=f"C{n}", external_id=str(n)))
    rows = await store.scan(Course, order_by=Course.ordinal.asc(), offset=1, limit=5)
    assert [c.ordinal for c in rows] == [2, 3]
    assert await store.count(Course, Course.ordinal > 1) == 2
    assert await store.delete(Course, 2) is True
    assert await store.delete(Course, 2) is False
    assert await store.delete_where(Course, Course.ordinal > 0) is True
    assert await store.count(Course) == 0


@pytest.mark.asyncio
async def test_settings(store):
    assert await repo.get_setting(store, "x") is None
    assert await repo.get_setting_int(store, "x", default=7) == 7
    await repo.set_setting(store, "x", "12")
    assert await repo.get_setting_int(store, "x", default=7) == 12
    await repo.set_setting(store, "x", "junk")
    assert await repo.get_setting_int(store, "x", default=7) == 7
