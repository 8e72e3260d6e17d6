# subscription_engine/db/reminders/reminder_orm.py
from __future__ import annotations
from datetime import datetime
from sqlalchemy import ForeignKey, DateTime, Boolean, Integer, BigInteger, Text, Index, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ..base import Base, CreatedAt, UpdatedAt, Moment
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..users.users import UserORM


class ReminderORM(Base):
    """
    Напоминание агента по связке объект+контакт CRM.
    После создания строку меняет только диспетчер: is_sent/sent_at - это и блокировка, и отметка о доставке.
    """
    __tablename__ = "reminders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Связка объект+контакт живёт в CRM, здесь только ссылка
    object_client_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    remind_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_sent: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text("false"), nullable=False)
    sent_at: Mapped[Moment]

    created_at: Mapped[CreatedAt]
    updated_at: Mapped[UpdatedAt]

    user: Mapped["UserORM"] = relationship(back_populates="reminders", lazy="joined")

    __table_args__ = (
        Index("ix_reminders_pending", "is_sent", "remind_at"),
        Index("ix_reminders_user_sent", "user_id", "is_sent"),
    )
