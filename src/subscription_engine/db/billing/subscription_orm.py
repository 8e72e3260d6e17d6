# subscription_engine/db/billing/subscription_orm.py
from __future__ import annotations
import enum
from decimal import Decimal
from datetime import datetime
from typing import List, Optional
from sqlalchemy import String, ForeignKey, Numeric, Boolean, Integer, Text, Index, CheckConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ..base import Base, CreatedAt, UpdatedAt, Moment
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..users.users import UserORM
    from ..catalog.tariff_orm import TariffORM
    from ..catalog.catalog_orm import CategoryORM, LocationORM
    from .history_orm import SubscriptionHistoryORM


class SubscriptionStatus(str, enum.Enum):
    pending = "pending"
    active = "active"
    extend_pending = "extend_pending"
    cancelled = "cancelled"
    expired = "expired"


OPEN_STATUSES = (SubscriptionStatus.pending, SubscriptionStatus.active, SubscriptionStatus.extend_pending)
# Подписка "идёт": срок тикает, доступ открыт
LIVE_STATUSES = (SubscriptionStatus.active, SubscriptionStatus.extend_pending)
TERMINAL_STATUSES = (SubscriptionStatus.cancelled, SubscriptionStatus.expired)

_OPEN_SQL = "status IN ('pending', 'active', 'extend_pending')"

# Колонки-watermark: время отправки уведомления служит и флагом "уже отправлено"
WATERMARK_COLUMNS = ("notified_3d", "notified_1d", "notified_1h", "notified_15m", "notified_expired")


class SubscriptionORM(Base):
    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    tariff_id: Mapped[int] = mapped_column(ForeignKey("tariffs.id"), nullable=False, index=True)
    category_id: Mapped[int] = mapped_column(ForeignKey("categories.id"), nullable=False)
    location_id: Mapped[int] = mapped_column(ForeignKey("locations.id"), nullable=False)

    # Копия признака тарифа на момент создания; участвует в частичных уникальных индексах
    is_demo: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text("false"), nullable=False)

    price_paid: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"), server_default="0")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=SubscriptionStatus.pending.value, index=True)

    # Заполняются одновременно при активации
    start_at: Mapped[Moment]
    end_at: Mapped[Moment]

    # Пауза доступа без потери оставшегося времени; на статус не влияет
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True, server_default=text("true"), nullable=False)

    payment_method: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    admin_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    approved_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved_at: Mapped[Moment]
    cancelled_at: Mapped[Moment]

    # Тариф, указанный пользователем в заявке на продление
    requested_tariff_id: Mapped[Optional[int]] = mapped_column(ForeignKey("tariffs.id"), nullable=True)

    notified_3d: Mapped[Moment]
    notified_1d: Mapped[Moment]
    notified_1h: Mapped[Moment]
    notified_15m: Mapped[Moment]
    notified_expired: Mapped[Moment]

    created_at: Mapped[CreatedAt]
    updated_at: Mapped[UpdatedAt]

    user: Mapped["UserORM"] = relationship(back_populates="subscriptions", foreign_keys=[user_id])
    approver: Mapped[Optional["UserORM"]] = relationship(foreign_keys=[approved_by])
    tariff: Mapped["TariffORM"] = relationship(foreign_keys=[tariff_id], lazy="joined")
    requested_tariff: Mapped[Optional["TariffORM"]] = relationship(foreign_keys=[requested_tariff_id])
    category: Mapped["CategoryORM"] = relationship(lazy="joined")
    location: Mapped["LocationORM"] = relationship(lazy="joined")
    history: Mapped[List["SubscriptionHistoryORM"]] = relationship(
        back_populates="subscription", order_by="SubscriptionHistoryORM.action_at"
    )

    __table_args__ = (
        # Не больше одной открытой платной подписки на связку. Терминальные строки
        # (cancelled/expired) копятся как история и в индекс не попадают.
        Index(
            "ux_subscriptions_open_slot",
            "user_id", "category_id", "location_id",
            unique=True,
            postgresql_where=text(f"{_OPEN_SQL} AND NOT is_demo"),
        ),
        # Demo-строка может ждать отмены рядом с заявкой на платный тариф (апгрейд),
        # но сама по себе на связке тоже одна.
        Index(
            "ux_subscriptions_open_demo_slot",
            "user_id", "category_id", "location_id",
            unique=True,
            postgresql_where=text(f"{_OPEN_SQL} AND is_demo"),
        ),
        Index("ix_subscriptions_status_end_at", "status", "end_at"),
        CheckConstraint(
            "status IN ('pending', 'active', 'extend_pending', 'cancelled', 'expired')",
            name="valid_status",
        ),
        CheckConstraint(
            "status <> 'pending' OR (start_at IS NULL AND end_at IS NULL)",
            name="pending_has_no_period",
        ),
        CheckConstraint(
            "status NOT IN ('active', 'extend_pending', 'expired') OR (start_at IS NOT NULL AND end_at IS NOT NULL)",
            name="live_has_period",
        ),
        CheckConstraint("start_at IS NULL OR end_at IS NULL OR end_at > start_at", name="period_is_positive"),
        CheckConstraint("price_paid >= 0", name="non_negative_price"),
    )

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def remaining_seconds(self, now: datetime) -> int:
        if not self.is_live or self.end_at is None:
            return 0
        return max(0, int((self.end_at - now).total_seconds()))

    def grants_access(self, now: datetime) -> bool:
        return self.is_live and self.is_enabled and self.end_at is not None and self.end_at > now
