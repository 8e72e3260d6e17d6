# Файл: subscription_engine/models/tariff.py

from __future__ import annotations
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field


class TariffCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    code: str = Field(..., min_length=1, max_length=50)
    duration_hours: int = Field(..., gt=0)
    price: Decimal = Field(Decimal("0"), ge=0)
    description: str | None = None
    is_active: bool = True


class TariffInDB(TariffCreate):
    id: int

    model_config = {"from_attributes": True}


class CategoryInDB(BaseModel):
    id: int
    name: str

    model_config = {"from_attributes": True}


class LocationInDB(BaseModel):
    id: int
    city: str
    region: str
    full_name: str

    model_config = {"from_attributes": True}


class PriceOverrideCreate(BaseModel):
    tariff_id: int
    location_id: int
    category_id: Optional[int] = None
    price: Decimal = Field(..., ge=0)


# Строка прайса для страницы тарифов: тариф x локация x категория
class TariffPriceInfo(BaseModel):
    tariff_id: int
    location_id: int
    category_id: int
    price: Decimal


class TariffCatalog(BaseModel):
    tariffs: List[TariffInDB] = []
    locations: List[LocationInDB] = []
    categories: List[CategoryInDB] = []
    prices: List[TariffPriceInfo] = []


# Стартовый набор тарифов для `subscription-engine seed`
DEFAULT_TARIFFS: List[TariffCreate] = [
    TariffCreate(name="Demo", code="demo", duration_hours=3, price=Decimal("0"),
                 description="Демо-доступ на 3 часа"),
    TariffCreate(name="1 день", code="day1", duration_hours=24, price=Decimal("1000.00"),
                 description="Полный доступ на 1 день"),
    TariffCreate(name="3 дня", code="day3", duration_hours=72, price=Decimal("3000.00"),
                 description="Полный доступ на 3 дня"),
    TariffCreate(name="7 дней", code="day7", duration_hours=168, price=Decimal("5000.00"),
                 description="Полный доступ на 7 дней"),
    TariffCreate(name="Премиум 31 день", code="premium_31", duration_hours=744, price=Decimal("5000.00"),
                 description="Полный доступ на 31 день"),
]
