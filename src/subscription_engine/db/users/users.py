from __future__ import annotations
from typing import List, Optional

from sqlalchemy import String, Boolean, BigInteger, Integer, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..base import Base, CreatedAt
from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from ..billing.subscription_orm import SubscriptionORM
    from ..reminders.reminder_orm import ReminderORM


ADMIN_ROLE = "admin"


class UserORM(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    created_at: Mapped[CreatedAt]

    # Системная роль пользователя.
    # 'user' - стандартный пользователь.
    # 'admin' - подтверждает, продлевает и отменяет подписки.
    role: Mapped[str] = mapped_column(String(50), default="user", server_default="user", nullable=False)

    # Одноразовый флаг демо-периода. Выставляется в той же транзакции,
    # что и создание подписки, которая его "потратила".
    is_trial_used: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text("false"), nullable=False)

    # Куда доставлять уведомления
    telegram_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    telegram_bot_blocked: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text("false"), nullable=False)

    subscriptions: Mapped[List["SubscriptionORM"]] = relationship(
        back_populates="user",
        foreign_keys="SubscriptionORM.user_id",
        cascade="all, delete-orphan"
    )
    reminders: Mapped[List["ReminderORM"]] = relationship(back_populates="user", cascade="all, delete-orphan")

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    @property
    def can_receive_notifications(self) -> bool:
        return bool(self.telegram_id) and not self.telegram_bot_blocked
