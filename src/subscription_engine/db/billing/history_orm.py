# subscription_engine/db/billing/history_orm.py
from __future__ import annotations
import enum
from decimal import Decimal
from datetime import datetime
from typing import Optional
from sqlalchemy import String, ForeignKey, DateTime, Numeric, Integer, Text, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ..base import Base, CreatedAt
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .subscription_orm import SubscriptionORM


class HistoryAction(str, enum.Enum):
    created = "created"
    requested = "requested"
    activated = "activated"
    extended = "extended"
    extend_requested = "extend_requested"
    cancelled = "cancelled"
    expired = "expired"


class SubscriptionHistoryORM(Base):
    """
    Журнал переходов подписки для сверки биллинга.
    Названия тарифа, категории и локации копируются в момент записи,
    чтобы история читалась и после переименования или удаления справочников.
    """
    __tablename__ = "subscription_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    subscription_id: Mapped[Optional[int]] = mapped_column(ForeignKey("subscriptions.id"), nullable=True, index=True)

    action: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    tariff_name: Mapped[str] = mapped_column(String(255), nullable=False)
    category_name: Mapped[str] = mapped_column(String(255), nullable=False)
    location_name: Mapped[str] = mapped_column(String(512), nullable=False)
    price_paid: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    action_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[CreatedAt]

    subscription: Mapped[Optional["SubscriptionORM"]] = relationship(back_populates="history")

    __table_args__ = (
        Index("ix_subscription_history_user_action_at", "user_id", "action_at"),
    )
