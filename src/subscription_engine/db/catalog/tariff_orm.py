# subscription_engine/db/catalog/tariff_orm.py
from __future__ import annotations
from decimal import Decimal
from typing import Optional
from sqlalchemy import String, Boolean, Numeric, Text, Integer, ForeignKey, CheckConstraint, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ..base import Base, CreatedAt, UpdatedAt

DEMO_CODE = "demo"
PREMIUM_PREFIX = "premium_"


class TariffORM(Base):
    __tablename__ = "tariffs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Машинный код: 'demo', 'day1', 'day3', 'premium_31' ...
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    duration_hours: Mapped[int] = mapped_column(Integer, nullable=False)

    # Базовая цена; переопределяется в tariff_prices для (локация, категория)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"), server_default="0")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Архивные тарифы не удаляются: на них ссылаются подписки
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default=text("true"), nullable=False)

    created_at: Mapped[CreatedAt]
    updated_at: Mapped[UpdatedAt]

    __table_args__ = (
        CheckConstraint("duration_hours > 0", name="positive_duration"),
        CheckConstraint("price >= 0", name="non_negative_price"),
    )

    def is_demo(self, demo_code: str = DEMO_CODE) -> bool:
        return self.code == demo_code

    @property
    def is_premium(self) -> bool:
        return self.code.startswith(PREMIUM_PREFIX)


class TariffPriceORM(Base):
    """Переопределение цены тарифа для локации (и, опционально, категории)."""
    __tablename__ = "tariff_prices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tariff_id: Mapped[int] = mapped_column(ForeignKey("tariffs.id", ondelete="CASCADE"), nullable=False, index=True)
    location_id: Mapped[int] = mapped_column(ForeignKey("locations.id", ondelete="CASCADE"), nullable=False)
    # NULL - цена для всех категорий локации
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id", ondelete="CASCADE"), nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    created_at: Mapped[CreatedAt]
    updated_at: Mapped[UpdatedAt]

    tariff: Mapped["TariffORM"] = relationship(lazy="joined")

    __table_args__ = (
        UniqueConstraint(
            "tariff_id", "location_id", "category_id",
            name="uq_tariff_prices_tariff_location_category",
            postgresql_nulls_not_distinct=True,
        ),
        CheckConstraint("price >= 0", name="non_negative_price"),
    )
