# subscription_engine/repositories/catalog/pg_repositoryTariff.py

import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, or_
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker, AsyncSession

from subscription_engine.db import TariffORM, TariffPriceORM, CategoryORM, LocationORM
from subscription_engine.db.base import get_session
from subscription_engine.exceptions import ConflictError, DatabaseError, NotFoundError
from subscription_engine.models.tariff import (
    TariffCreate, TariffInDB, CategoryInDB, LocationInDB, PriceOverrideCreate, TariffPriceInfo, TariffCatalog,
)

logger = logging.getLogger(__name__)


async def resolve_price(
    session: AsyncSession,
    tariff: TariffORM,
    location_id: int,
    category_id: Optional[int] = None,
) -> Decimal:
    """
    Цена тарифа для связки: точное совпадение (локация, категория),
    затем цена на всю локацию (category_id IS NULL), затем базовая цена тарифа.
    """
    stmt = (
        select(TariffPriceORM.price, TariffPriceORM.category_id)
        .where(
            TariffPriceORM.tariff_id == tariff.id,
            TariffPriceORM.location_id == location_id,
            or_(TariffPriceORM.category_id == category_id, TariffPriceORM.category_id.is_(None))
            if category_id is not None
            else TariffPriceORM.category_id.is_(None),
        )
    )
    # Строка с конкретной категорией важнее строки "для всех категорий"
    rows = sorted((await session.execute(stmt)).all(), key=lambda r: r.category_id is None)
    if rows:
        return Decimal(rows[0].price)
    return Decimal(tariff.price)


class TariffRepository:
    """
    Справочники: тарифы, переопределения цен, категории и локации.
    """
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create_tariff(self, data: TariffCreate) -> TariffInDB:
        tariff = TariffORM(**data.model_dump())
        async for session in get_session(self._session_factory):
            try:
                session.add(tariff)
                await session.commit()
                await session.refresh(tariff)
                logger.info(f"Created tariff '{tariff.code}' with id {tariff.id}")
                return TariffInDB.model_validate(tariff)
            except IntegrityError as e:
                await session.rollback()
                raise ConflictError(f"Tariff with code '{data.code}' already exists.") from e
            except SQLAlchemyError as e:
                await session.rollback()
                raise DatabaseError(f"Failed to create tariff: {e}") from e

    async def ensure_tariffs(self, tariffs: List[TariffCreate]) -> int:
        """Добавляет тарифы, которых ещё нет (по code). Возвращает число добавленных."""
        stmt = (
            pg_insert(TariffORM)
            .values([t.model_dump() for t in tariffs])
            .on_conflict_do_nothing(index_elements=["code"])
        )
        async for session in get_session(self._session_factory):
            try:
                result = await session.execute(stmt)
                await session.commit()
                logger.info(f"Seeded {result.rowcount} of {len(tariffs)} tariffs")
                return result.rowcount
            except SQLAlchemyError as e:
                await session.rollback()
                raise DatabaseError(f"Failed to seed tariffs: {e}") from e

    async def get_tariff(self, tariff_id: int) -> Optional[TariffInDB]:
        async for session in get_session(self._session_factory):
            tariff = await session.get(TariffORM, tariff_id)
            return TariffInDB.model_validate(tariff) if tariff else None

    async def get_by_code(self, code: str) -> Optional[TariffInDB]:
        async for session in get_session(self._session_factory):
            result = await session.execute(select(TariffORM).where(TariffORM.code == code))
            tariff = result.scalar_one_or_none()
            return TariffInDB.model_validate(tariff) if tariff else None

    async def list_tariffs(self, active_only: bool = True) -> List[TariffInDB]:
        async for session in get_session(self._session_factory):
            stmt = select(TariffORM).order_by(TariffORM.duration_hours, TariffORM.id)
            if active_only:
                stmt = stmt.where(TariffORM.is_active.is_(True))
            result = await session.execute(stmt)
            return [TariffInDB.model_validate(t) for t in result.scalars().all()]

    async def create_category(self, name: str) -> CategoryInDB:
        category = CategoryORM(name=name)
        async for session in get_session(self._session_factory):
            try:
                session.add(category)
                await session.commit()
                await session.refresh(category)
                return CategoryInDB.model_validate(category)
            except IntegrityError as e:
                await session.rollback()
                raise ConflictError(f"Category '{name}' already exists.") from e

    async def create_location(self, city: str, region: str = "") -> LocationInDB:
        location = LocationORM(city=city, region=region)
        async for session in get_session(self._session_factory):
            try:
                session.add(location)
                await session.commit()
                await session.refresh(location)
                return LocationInDB.model_validate(location)
            except SQLAlchemyError as e:
                await session.rollback()
                raise DatabaseError(f"Failed to create location: {e}") from e

    async def list_categories(self) -> List[CategoryInDB]:
        async for session in get_session(self._session_factory):
            result = await session.execute(select(CategoryORM).order_by(CategoryORM.name))
            return [CategoryInDB.model_validate(c) for c in result.scalars().all()]

    async def list_locations(self) -> List[LocationInDB]:
        async for session in get_session(self._session_factory):
            result = await session.execute(select(LocationORM).order_by(LocationORM.id))
            return [LocationInDB.model_validate(loc) for loc in result.scalars().all()]

    async def set_price_override(self, data: PriceOverrideCreate) -> None:
        """Идемпотентно задаёт цену для (тариф, локация, категория)."""
        stmt = pg_insert(TariffPriceORM).values(**data.model_dump())
        stmt = stmt.on_conflict_do_update(
            constraint="uq_tariff_prices_tariff_location_category",
            set_={"price": stmt.excluded.price},
        )
        async for session in get_session(self._session_factory):
            try:
                await session.execute(stmt)
                await session.commit()
                logger.info(
                    f"Price override for tariff {data.tariff_id} / location {data.location_id} "
                    f"/ category {data.category_id}: {data.price}"
                )
            except IntegrityError as e:
                await session.rollback()
                raise NotFoundError(f"Tariff, location or category does not exist: {e}") from e
            except SQLAlchemyError as e:
                await session.rollback()
                raise DatabaseError(f"Failed to set price override: {e}") from e

    async def get_tariff_price(self, tariff_id: int, location_id: int, category_id: Optional[int] = None) -> Decimal:
        async for session in get_session(self._session_factory):
            tariff = await session.get(TariffORM, tariff_id)
            if tariff is None:
                raise NotFoundError(f"Tariff with id {tariff_id} not found.")
            if await session.get(LocationORM, location_id) is None:
                raise NotFoundError(f"Location with id {location_id} not found.")
            return await resolve_price(session, tariff, location_id, category_id)

    async def get_catalog(self) -> TariffCatalog:
        """Всё для страницы тарифов: активные тарифы, локации, категории и цены по каждой связке."""
        tariffs = await self.list_tariffs(active_only=True)
        locations = await self.list_locations()
        categories = await self.list_categories()

        async for session in get_session(self._session_factory):
            overrides = (await session.execute(select(TariffPriceORM))).scalars().all()
            by_key = {(o.tariff_id, o.location_id, o.category_id): Decimal(o.price) for o in overrides}

            prices = []
            for tariff in tariffs:
                for location in locations:
                    for category in categories:
                        price = by_key.get(
                            (tariff.id, location.id, category.id),
                            by_key.get((tariff.id, location.id, None), tariff.price),
                        )
                        prices.append(TariffPriceInfo(
                            tariff_id=tariff.id, location_id=location.id, category_id=category.id, price=price,
                        ))
            return TariffCatalog(tariffs=tariffs, locations=locations, categories=categories, prices=prices)
