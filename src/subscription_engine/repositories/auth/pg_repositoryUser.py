# src/subscription_engine/repositories/auth/pg_repositoryUser.py

import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker, AsyncSession

from subscription_engine.db import UserORM, ADMIN_ROLE
from subscription_engine.db.base import get_session
from subscription_engine.exceptions import AccessDeniedError, ConflictError, DatabaseError, NotFoundError

logger = logging.getLogger(__name__)


class UserRepository:
    """
    Поставщик пользователей и ролей: владелец флага демо-периода и адреса доставки уведомлений.
    """
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create_user(
        self,
        email: str,
        role: str = "user",
        telegram_id: Optional[int] = None,
    ) -> UserORM:
        user = UserORM(email=email, role=role, telegram_id=telegram_id)
        async for session in get_session(self._session_factory):
            try:
                session.add(user)
                await session.commit()
                await session.refresh(user)
                return user
            except IntegrityError as e:
                await session.rollback()
                raise ConflictError(f"User with email {email} already exists.") from e
            except SQLAlchemyError as e:
                await session.rollback()
                raise DatabaseError(f"Failed to create user: {e}") from e

    async def get_by_id(self, user_id: int) -> Optional[UserORM]:
        async for session in get_session(self._session_factory):
            return await session.get(UserORM, user_id)

    async def get_by_email(self, email: str) -> Optional[UserORM]:
        async for session in get_session(self._session_factory):
            result = await session.execute(select(UserORM).where(UserORM.email == email))
            return result.scalar_one_or_none()

    async def require_admin(self, user_id: int) -> UserORM:
        """Пропускает только роль 'admin'; остальным - AccessDeniedError."""
        user = await self.get_by_id(user_id)
        if user is None:
            raise NotFoundError(f"User with id {user_id} not found.")
        if user.role != ADMIN_ROLE:
            logger.warning(f"User {user_id} with role '{user.role}' tried an admin-only operation")
            raise AccessDeniedError(f"User {user_id} is not an administrator.")
        return user

    async def mark_bot_blocked(self, user_id: int, blocked: bool = True) -> None:
        """Пользователь заблокировал бота: дальше уведомления ему не шлём."""
        async for session in get_session(self._session_factory):
            try:
                await session.execute(
                    update(UserORM).where(UserORM.id == user_id).values(telegram_bot_blocked=blocked)
                )
                await session.commit()
                logger.info(f"Set telegram_bot_blocked={blocked} for user {user_id}")
            except SQLAlchemyError as e:
                await session.rollback()
                raise DatabaseError(f"Failed to update user {user_id}: {e}") from e
