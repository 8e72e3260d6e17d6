from __future__ import annotations
from typing import Optional
from sqlalchemy.ext.asyncio import async_sessionmaker, AsyncSession
from sqlalchemy import text


def slot_lock_key(user_id: int, category_id: int, location_id: int) -> str:
    return f"subscription-slot:{user_id}:{category_id}:{location_id}"


class AsyncUnitOfWork:
    """
    Одна транзакция на весь блок: commit при успешном выходе, rollback при исключении.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._sf = session_factory
        self.session: Optional[AsyncSession] = None

    async def __aenter__(self):
        self.session = self._sf()
        await self.session.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        try:
            if exc:
                await self.session.rollback()
            else:
                await self.session.commit()
        finally:
            await self.session.__aexit__(exc_type, exc, tb)

    async def advisory_lock(self, key: str | None):
        """Транзакционный advisory-lock по строковому ключу. Снимается при commit/rollback."""
        if not key:
            return
        if self.session.bind.dialect.name != "postgresql":
            return
        await self.session.execute(text("SELECT pg_advisory_xact_lock(hashtext(:k))"), {"k": key})

    async def lock_slot(self, user_id: int, category_id: int, location_id: int):
        """Сериализует заявки/активации по одной связке (пользователь, категория, локация)."""
        await self.advisory_lock(slot_lock_key(user_id, category_id, location_id))
