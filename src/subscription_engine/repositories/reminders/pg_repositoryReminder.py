# subscription_engine/repositories/reminders/pg_repositoryReminder.py

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker, AsyncSession

from subscription_engine.db import ReminderORM, UserORM
from subscription_engine.db.base import get_session
from subscription_engine.exceptions import DatabaseError, NotFoundError, ValidationError
from subscription_engine.models.reminder import ReminderCreate, ReminderInDB

logger = logging.getLogger(__name__)


class ReminderRepository:
    """
    Напоминания агентов по объектам CRM.
    Отправку "забирает" mark_sent: условный UPDATE по is_sent = false.
    """
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create(self, user_id: int, data: ReminderCreate, now: datetime) -> ReminderInDB:
        if not data.message:
            raise ValidationError("Reminder message must not be empty.")
        if data.remind_at <= now:
            raise ValidationError("Reminder time must be in the future.")

        async for session in get_session(self._session_factory):
            if await session.get(UserORM, user_id) is None:
                raise NotFoundError(f"User with id {user_id} not found.")
            reminder = ReminderORM(user_id=user_id, **data.model_dump())
            try:
                session.add(reminder)
                await session.commit()
                await session.refresh(reminder)
                logger.info(f"Reminder {reminder.id} for object-client {data.object_client_id} at {data.remind_at}")
                return ReminderInDB.model_validate(reminder)
            except SQLAlchemyError as e:
                await session.rollback()
                raise DatabaseError(f"Failed to create reminder: {e}") from e

    async def delete(self, reminder_id: int, user_id: int) -> None:
        async for session in get_session(self._session_factory):
            try:
                result = await session.execute(
                    delete(ReminderORM).where(ReminderORM.id == reminder_id, ReminderORM.user_id == user_id)
                )
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise DatabaseError(f"Failed to delete reminder {reminder_id}: {e}") from e
            if result.rowcount == 0:
                raise NotFoundError(f"Reminder with id {reminder_id} not found.")

    async def get(self, reminder_id: int) -> Optional[ReminderInDB]:
        async for session in get_session(self._session_factory):
            reminder = await session.get(ReminderORM, reminder_id)
            return ReminderInDB.model_validate(reminder) if reminder else None

    async def list_for_user(self, user_id: int, now: datetime) -> List[ReminderInDB]:
        """Предстоящие неотправленные напоминания пользователя."""
        async for session in get_session(self._session_factory):
            result = await session.execute(
                select(ReminderORM)
                .where(ReminderORM.user_id == user_id, ReminderORM.is_sent.is_(False), ReminderORM.remind_at > now)
                .order_by(ReminderORM.remind_at)
            )
            return [ReminderInDB.model_validate(r) for r in result.unique().scalars().all()]

    async def list_for_object_client(self, object_client_id: int, user_id: int) -> List[ReminderInDB]:
        async for session in get_session(self._session_factory):
            result = await session.execute(
                select(ReminderORM)
                .where(ReminderORM.object_client_id == object_client_id, ReminderORM.user_id == user_id)
                .order_by(ReminderORM.remind_at)
            )
            return [ReminderInDB.model_validate(r) for r in result.unique().scalars().all()]

    async def list_due(self, now: datetime, limit: int = 500) -> List[ReminderORM]:
        # user подгружается joined-связью: диспетчеру нужен telegram_id
        async for session in get_session(self._session_factory):
            result = await session.execute(
                select(ReminderORM)
                .where(ReminderORM.is_sent.is_(False), ReminderORM.remind_at <= now)
                .order_by(ReminderORM.remind_at, ReminderORM.id)
                .limit(limit)
            )
            return list(result.unique().scalars().all())

    async def mark_sent(self, reminder_id: int, now: datetime) -> bool:
        """True - только у одного из конкурирующих диспетчеров."""
        async for session in get_session(self._session_factory):
            try:
                result = await session.execute(
                    update(ReminderORM)
                    .where(ReminderORM.id == reminder_id, ReminderORM.is_sent.is_(False))
                    .values(is_sent=True, sent_at=now)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
                return result.rowcount == 1
            except SQLAlchemyError as e:
                await session.rollback()
                raise DatabaseError(f"Failed to mark reminder {reminder_id} as sent: {e}") from e
