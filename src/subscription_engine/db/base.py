from __future__ import annotations

from typing import AsyncGenerator, Annotated, Optional
from datetime import datetime

from sqlalchemy import MetaData, func, DateTime
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase, mapped_column

# Имена ограничений фиксированы: на них ссылаются ON CONFLICT и триггеры
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=convention)


CreatedAt = Annotated[datetime, mapped_column(DateTime(timezone=True), server_default=func.now())]
UpdatedAt = Annotated[datetime, mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())]
# Момент жизненного цикла: пусто, пока событие не произошло (start_at, watermark-и, sent_at)
Moment = Annotated[Optional[datetime], mapped_column(DateTime(timezone=True), nullable=True)]


async def get_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """Короткая сессия для одного чтения или одной транзакции репозитория."""
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.close()
