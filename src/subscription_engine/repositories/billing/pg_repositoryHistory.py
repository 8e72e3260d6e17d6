# subscription_engine/repositories/billing/pg_repositoryHistory.py

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import async_sessionmaker, AsyncSession

from subscription_engine.db import SubscriptionHistoryORM, SubscriptionORM, HistoryAction
from subscription_engine.db.base import get_session
from subscription_engine.models.subscription import HistoryEntryInDB, HistoryFilter, Page

logger = logging.getLogger(__name__)


def build_history_entry(
    subscription: SubscriptionORM,
    action: HistoryAction,
    action_at: datetime,
    notes: Optional[str] = None,
    price: Optional[Decimal] = None,
    tariff_name: Optional[str] = None,
) -> SubscriptionHistoryORM:
    """
    Снимок подписки для журнала. Связи tariff/category/location должны быть загружены:
    их названия копируются в строку, а не хранятся ссылкой.
    Запись добавляется в ту же сессию, что и сам переход.
    """
    return SubscriptionHistoryORM(
        user_id=subscription.user_id,
        subscription_id=subscription.id,
        action=action.value,
        tariff_name=tariff_name or subscription.tariff.name,
        category_name=subscription.category.name,
        location_name=subscription.location.full_name,
        price_paid=subscription.price_paid if price is None else price,
        action_at=action_at,
        notes=notes,
    )


class HistoryRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def list_history(self, filters: HistoryFilter) -> Page[HistoryEntryInDB]:
        conditions = []
        if filters.user_id is not None:
            conditions.append(SubscriptionHistoryORM.user_id == filters.user_id)
        if filters.subscription_id is not None:
            conditions.append(SubscriptionHistoryORM.subscription_id == filters.subscription_id)
        if filters.actions:
            conditions.append(SubscriptionHistoryORM.action.in_(filters.actions))
        if filters.date_from is not None:
            conditions.append(SubscriptionHistoryORM.action_at >= filters.date_from)
        if filters.date_to is not None:
            conditions.append(SubscriptionHistoryORM.action_at <= filters.date_to)

        order = SubscriptionHistoryORM.action_at.asc() if filters.sort_dir == "asc" else SubscriptionHistoryORM.action_at.desc()
        async for session in get_session(self._session_factory):
            total = (await session.execute(
                select(func.count()).select_from(SubscriptionHistoryORM).where(*conditions)
            )).scalar_one()
            result = await session.execute(
                select(SubscriptionHistoryORM)
                .where(*conditions)
                .order_by(order, SubscriptionHistoryORM.id)
                .offset((filters.page - 1) * filters.per_page)
                .limit(filters.per_page)
            )
            return Page[HistoryEntryInDB](
                items=[HistoryEntryInDB.model_validate(h) for h in result.scalars().all()],
                total=total,
                per_page=filters.per_page,
                current_page=filters.page,
            )

    async def list_for_subscription(self, subscription_id: int) -> list[HistoryEntryInDB]:
        async for session in get_session(self._session_factory):
            result = await session.execute(
                select(SubscriptionHistoryORM)
                .where(SubscriptionHistoryORM.subscription_id == subscription_id)
                .order_by(SubscriptionHistoryORM.action_at, SubscriptionHistoryORM.id)
            )
            return [HistoryEntryInDB.model_validate(h) for h in result.scalars().all()]
