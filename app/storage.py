"""Key-value stores holding the durable client state."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .db_models import KeyValueEntry


@runtime_checkable
class KeyValueStore(Protocol):
    """String key-value storage used by the session store."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def clear(self) -> None: ...


class MemoryKeyValueStore:
    """Non-persistent store, data is lost with the object."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def clear(self) -> None:
        self._data.clear()


class DatabaseKeyValueStore:
    """Store rows in the ``kv_entries`` table through async SQLAlchemy sessions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, key: str) -> str | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(KeyValueEntry.value).where(KeyValueEntry.key == key)
            )
            return result.scalar_one_or_none()

    async def set(self, key: str, value: str) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                entry = await session.get(KeyValueEntry, key)
                if entry is None:
                    session.add(KeyValueEntry(key=key, value=value))
                else:
                    entry.value = value

    async def delete(self, key: str) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(
                    delete(KeyValueEntry).where(KeyValueEntry.key == key)
                )

    async def clear(self) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(delete(KeyValueEntry))
