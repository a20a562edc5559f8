"""Persistence port.

Thin facade over an AsyncSession so the ledgers speak in records and keys
instead of queries. Every driver / SQLAlchemy failure comes out as
StorageUnavailable; callers surface it, they do not degrade silently.

Writes are single-record upserts. Nothing here serializes two writers of the
same key; that is the conversation engine's per-user lock plus the
``for_update`` reads below.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, TypeVar

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from attendbot.core.errors import StorageUnavailable
from attendbot.db.base import Base

M = TypeVar("M", bound=Base)


@asynccontextmanager
async def _storage_errors() -> AsyncIterator[None]:
    try:
        yield
    except (SQLAlchemyError, OSError) as e:
        raise StorageUnavailable(str(e)) from e


class Store:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, model: type[M], key: Any, *, for_update: bool = False) -> M | None:
        async with _storage_errors():
            if for_update:
                # FOR UPDATE is dropped by SQLite and honoured by Postgres
                return await self.session.get(model, key, with_for_update=True, populate_existing=True)
            return await self.session.get(model, key)

    async def put(self, record: M) -> M:
        """Upsert: replaces every column of the row with the record's values."""
        async with _storage_errors():
            if record not in self.session:
                record = await self.session.merge(record)
            await self.session.flush()
            return record

    async def add(self, record: M) -> M:
        """Plain insert; a unique-key clash surfaces as StorageUnavailable."""
        async with _storage_errors():
            self.session.add(record)
            await self.session.flush()
            return record

    async def scan(
        self,
        model: type[M],
        *where: Any,
        order_by: Any = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[M]:
        q = select(model).where(*where)
        if order_by is not None:
            q = q.order_by(order_by)
        if offset:
            q = q.offset(offset)
        if limit is not None:
            q = q.limit(limit)
        async with _storage_errors():
            res = await self.session.scalars(q)
            return list(res.all())

    async def first(self, model: type[M], *where: Any) -> M | None:
        rows = await self.scan(model, *where, limit=1)
        return rows[0] if rows else None

    async def count(self, model: type[M], *where: Any) -> int:
        q = select(func.count()).select_from(model).where(*where)
        async with _storage_errors():
            return int(await self.session.scalar(q) or 0)

    async def execute(self, statement: Any) -> Any:
        async with _storage_errors():
            return await self.session.execute(statement)

    async def delete(self, model: type[M], key: Any) -> bool:
        async with _storage_errors():
            row = await self.session.get(model, key)
            if row is None:
                return False
            await self.session.delete(row)
            await self.session.flush()
            return True

    async def delete_where(self, model: type[M], *where: Any) -> bool:
        async with _storage_errors():
            res = await self.session.execute(delete(model).where(*where))
            await self.session.flush()
            return (res.rowcount or 0) > 0

    @asynccontextmanager
    async def savepoint(self) -> AsyncIterator[None]:
        """Nested transaction. A failure inside rolls back only this block and
        leaves the session usable for the rest of the unit of work."""
        async with _storage_errors():
            async with self.session.begin_nested():
                yield

    async def commit(self) -> None:
        async with _storage_errors():
            await self.session.commit()
