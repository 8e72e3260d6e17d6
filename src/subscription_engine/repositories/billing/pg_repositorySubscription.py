# subscription_engine/repositories/billing/pg_repositorySubscription.py

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from decimal import Decimal
from typing import AsyncIterator, List, Optional, Sequence

from sqlalchemy import select, update, func, exists, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker, AsyncSession
from sqlalchemy.orm import selectinload

from subscription_engine.config import SubscriptionPolicy
from subscription_engine.db import (
    SubscriptionORM, SubscriptionStatus, TariffORM, CategoryORM, LocationORM, UserORM, HistoryAction,
    LIVE_STATUSES, OPEN_STATUSES,
)
from subscription_engine.db.base import get_session
from subscription_engine.db.uow import AsyncUnitOfWork
from subscription_engine.thresholds import Threshold, watermarks_to_reset
from subscription_engine.exceptions import (
    ConflictError, InvalidStateError, MultiCategoryDemoError, NotFoundError, OperationFailedError,
    TrialAlreadyUsedError, ValidationError,
)
from subscription_engine.models.subscription import SubscriptionInDB, SubscriptionView, SubscriptionFilter, Page
from subscription_engine.repositories.billing.pg_repositoryHistory import build_history_entry
from subscription_engine.repositories.catalog.pg_repositoryTariff import resolve_price

logger = logging.getLogger(__name__)

_OPEN = [s.value for s in OPEN_STATUSES]
_LIVE = [s.value for s in LIVE_STATUSES]

_SORT_COLUMNS = {
    "days_left": SubscriptionORM.end_at,
    "created_at": SubscriptionORM.created_at,
    "end_at": SubscriptionORM.end_at,
    "start_at": SubscriptionORM.start_at,
    "price_paid": SubscriptionORM.price_paid,
    "status": SubscriptionORM.status,
    "id": SubscriptionORM.id,
}


def _append_note(current: Optional[str], note: Optional[str]) -> Optional[str]:
    if not note:
        return current
    return f"{current}; {note}" if current else note


def _period_hours(tariff: TariffORM, override: Optional[int]) -> int:
    if override is None:
        return tariff.duration_hours
    if override <= 0:
        raise ValidationError(f"Duration override must be a positive number of hours, got {override}.")
    return override


def to_view(sub: SubscriptionORM, now: datetime) -> SubscriptionView:
    remaining = sub.remaining_seconds(now)
    return SubscriptionView(
        **SubscriptionInDB.model_validate(sub).model_dump(),
        tariff_name=sub.tariff.name,
        tariff_code=sub.tariff.code,
        category_name=sub.category.name,
        location_name=sub.location.full_name,
        days_left=remaining // 86400,
        remaining_seconds=remaining,
    )


class SubscriptionRepository:
    """
    Журнал подписок: заявки, активация, продление, отмена, истечение.

    Каждый переход состояния - одна транзакция вместе со строкой истории.
    Проверки "на связке уже есть открытая подписка" сериализуются advisory-lock'ом
    по (пользователь, категория, локация), окончательную гарантию дают частичные
    уникальные индексы.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], policy: Optional[SubscriptionPolicy] = None):
        self._session_factory = session_factory
        self._policy = policy or SubscriptionPolicy()

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[AsyncUnitOfWork]:
        try:
            async with AsyncUnitOfWork(self._session_factory) as uow:
                yield uow
        except IntegrityError as e:
            logger.warning(f"{operation}: integrity violation: {e.orig}")
            raise ConflictError(f"{operation}: an open subscription already exists for this slot.") from e
        except SQLAlchemyError as e:
            logger.error(f"{operation}: storage failure: {e}", exc_info=True)
            raise OperationFailedError(f"{operation} failed: {e}") from e

    @staticmethod
    async def _get_for_update(session: AsyncSession, subscription_id: int) -> Optional[SubscriptionORM]:
        result = await session.execute(
            select(SubscriptionORM)
            .where(SubscriptionORM.id == subscription_id)
            .with_for_update(of=SubscriptionORM)
        )
        return result.unique().scalar_one_or_none()

    async def _require_for_update(self, session: AsyncSession, subscription_id: int) -> SubscriptionORM:
        sub = await self._get_for_update(session, subscription_id)
        if sub is None:
            raise NotFoundError(f"Subscription with id {subscription_id} not found.")
        return sub

    async def _lock_in_slot_order(self, uow: AsyncUnitOfWork, subscription_id: int) -> tuple[SubscriptionORM, UserORM]:
        """
        Блокировки берутся в одном порядке для всех переходов:
        строка пользователя, затем связка, затем строки подписок.
        Владелец и связка строки не меняются, поэтому их можно прочитать без блокировки.
        """
        session = uow.session
        slot = (await session.execute(
            select(SubscriptionORM.user_id, SubscriptionORM.category_id, SubscriptionORM.location_id)
            .where(SubscriptionORM.id == subscription_id)
        )).one_or_none()
        if slot is None:
            raise NotFoundError(f"Subscription with id {subscription_id} not found.")
        user = await session.get(UserORM, slot.user_id, with_for_update=True)
        await uow.lock_slot(slot.user_id, slot.category_id, slot.location_id)
        return await self._require_for_update(session, subscription_id), user

    # ------------------------------------------------------------------ заявки

    async def request_subscriptions(
        self,
        user_id: int,
        tariff_id: int,
        category_ids: Sequence[int],
        location_id: int,
        now: datetime,
    ) -> List[SubscriptionInDB]:
        """
        Заявка на тариф по одной или нескольким категориям одной локации.
        Вся пачка - одна транзакция: либо созданы все строки, либо ни одной.
        """
        category_ids = list(dict.fromkeys(category_ids))
        if not category_ids:
            raise ValidationError("At least one category is required.")

        async with self._transaction("request_subscriptions") as uow:
            session = uow.session

            tariff = await session.get(TariffORM, tariff_id)
            if tariff is None or not tariff.is_active:
                raise NotFoundError(f"Tariff with id {tariff_id} not found or inactive.")
            is_demo = tariff.is_demo(self._policy.demo_tariff_code)
            if is_demo and len(category_ids) > 1:
                raise MultiCategoryDemoError("Demo tariff can be requested for a single category only.")

            location = await session.get(LocationORM, location_id)
            if location is None:
                raise NotFoundError(f"Location with id {location_id} not found.")
            categories = {
                c.id: c for c in (await session.execute(
                    select(CategoryORM).where(CategoryORM.id.in_(category_ids))
                )).scalars().all()
            }
            missing = [cid for cid in category_ids if cid not in categories]
            if missing:
                raise NotFoundError(f"Categories not found: {missing}")

            user = await session.get(UserORM, user_id, with_for_update=True)
            if user is None:
                raise NotFoundError(f"User with id {user_id} not found.")
            if is_demo and user.is_trial_used:
                raise TrialAlreadyUsedError(f"User {user_id} has already used the demo tariff.")

            created: List[SubscriptionORM] = []
            for category_id in category_ids:
                await uow.lock_slot(user_id, category_id, location_id)
                open_rows = (await session.execute(
                    select(SubscriptionORM).where(
                        SubscriptionORM.user_id == user_id,
                        SubscriptionORM.category_id == category_id,
                        SubscriptionORM.location_id == location_id,
                        SubscriptionORM.status.in_(_OPEN),
                    )
                )).unique().scalars().all()
                # Платная заявка поверх собственного demo - путь апгрейда, demo отменится при активации
                is_upgrade = not is_demo and all(row.is_demo for row in open_rows)
                if open_rows and not is_upgrade:
                    raise ConflictError(
                        f"User {user_id} already has an open subscription for category {category_id} "
                        f"in location {location_id}."
                    )

                sub = SubscriptionORM(
                    user_id=user_id,
                    tariff=tariff,
                    category=categories[category_id],
                    location=location,
                    is_demo=is_demo,
                    price_paid=await resolve_price(session, tariff, location_id, category_id),
                    status=SubscriptionStatus.pending.value,
                    is_enabled=True,
                )
                session.add(sub)
                await session.flush()

                if is_demo and self._policy.auto_activate_demo:
                    session.add(build_history_entry(sub, HistoryAction.created, now, notes="Demo"))
                    await self._apply_activation(session, sub, user, None, None, "Demo auto-activation", None, now)
                else:
                    action = HistoryAction.created if is_demo else HistoryAction.requested
                    session.add(build_history_entry(sub, action, now))
                created.append(sub)

            user.is_trial_used = True
            await session.flush()
            logger.info(
                f"User {user_id} requested tariff '{tariff.code}' for categories {category_ids} "
                f"in location {location_id}: subscriptions {[s.id for s in created]}"
            )
            return [SubscriptionInDB.model_validate(s) for s in created]

    # ------------------------------------------------------------------ активация

    async def _apply_activation(
        self,
        session: AsyncSession,
        sub: SubscriptionORM,
        user: UserORM,
        approver_id: Optional[int],
        payment_method: Optional[str],
        notes: Optional[str],
        duration_hours: Optional[int],
        now: datetime,
    ) -> None:
        tariff = sub.tariff
        if not sub.is_demo:
            demo_rows = (await session.execute(
                select(SubscriptionORM)
                .where(
                    SubscriptionORM.user_id == sub.user_id,
                    SubscriptionORM.category_id == sub.category_id,
                    SubscriptionORM.location_id == sub.location_id,
                    SubscriptionORM.is_demo.is_(True),
                    SubscriptionORM.status.in_(_OPEN),
                    SubscriptionORM.id != sub.id,
                )
                .with_for_update(of=SubscriptionORM)
            )).unique().scalars().all()
            for demo in demo_rows:
                demo.status = SubscriptionStatus.cancelled.value
                demo.cancelled_at = now
                demo.admin_notes = _append_note(demo.admin_notes, self._policy.upgrade_cancel_reason)
                session.add(build_history_entry(demo, HistoryAction.cancelled, now, notes=self._policy.upgrade_cancel_reason))
                logger.info(f"Demo subscription {demo.id} cancelled on upgrade to subscription {sub.id}")
            await session.flush()
            user.is_trial_used = True

        duration = _period_hours(tariff, duration_hours)
        sub.price_paid = await resolve_price(session, tariff, sub.location_id, sub.category_id)
        sub.status = SubscriptionStatus.active.value
        sub.is_enabled = True
        sub.start_at = now
        sub.end_at = now + timedelta(hours=duration)
        sub.payment_method = payment_method
        sub.admin_notes = _append_note(sub.admin_notes, notes)
        sub.approved_by = approver_id
        sub.approved_at = now
        session.add(build_history_entry(sub, HistoryAction.activated, now, notes=notes))
        await session.flush()

    async def activate(
        self,
        subscription_id: int,
        approver_id: int,
        payment_method: Optional[str],
        now: datetime,
        notes: Optional[str] = None,
        duration_hours: Optional[int] = None,
    ) -> SubscriptionInDB:
        async with self._transaction("activate") as uow:
            session = uow.session
            sub, user = await self._lock_in_slot_order(uow, subscription_id)

            if sub.status == SubscriptionStatus.extend_pending:
                await self._apply_extension(session, sub, approver_id, payment_method, None, notes, duration_hours, now)
                logger.info(f"Subscription {sub.id} activation routed to extension, new end_at {sub.end_at}")
                return SubscriptionInDB.model_validate(sub)
            if sub.status != SubscriptionStatus.pending:
                raise InvalidStateError(f"Subscription {subscription_id} is '{sub.status}', expected 'pending'.")

            await self._apply_activation(session, sub, user, approver_id, payment_method, notes, duration_hours, now)
            logger.info(f"Subscription {sub.id} activated by {approver_id} until {sub.end_at}")
            return SubscriptionInDB.model_validate(sub)

    # ------------------------------------------------------------------ продление

    async def _apply_extension(
        self,
        session: AsyncSession,
        sub: SubscriptionORM,
        approver_id: Optional[int],
        payment_method: Optional[str],
        new_price: Optional[Decimal],
        notes: Optional[str],
        duration_hours: Optional[int],
        now: datetime,
    ) -> None:
        if new_price is not None and new_price < 0:
            raise ValidationError(f"Price must not be negative, got {new_price}.")
        tariff = sub.tariff
        if sub.requested_tariff_id and sub.requested_tariff_id != sub.tariff_id:
            requested = await session.get(TariffORM, sub.requested_tariff_id)
            if requested is not None:
                tariff = requested
                sub.tariff = requested
                sub.is_demo = requested.is_demo(self._policy.demo_tariff_code)

        duration = _period_hours(tariff, duration_hours)
        # Неиспользованный остаток сохраняется; просроченная, но ещё не истёкшая строка продлевается от now
        base = sub.end_at if sub.end_at is not None and sub.end_at > now else now
        new_end = base + timedelta(hours=duration)
        for column in watermarks_to_reset(new_end, now):
            setattr(sub, column, None)

        sub.end_at = new_end
        sub.status = SubscriptionStatus.active.value
        if new_price is not None:
            sub.price_paid = new_price
        if payment_method:
            sub.payment_method = payment_method
        sub.admin_notes = _append_note(sub.admin_notes, notes)
        sub.approved_by = approver_id
        sub.approved_at = now
        sub.requested_tariff_id = None
        session.add(build_history_entry(sub, HistoryAction.extended, now, notes=notes, tariff_name=tariff.name))
        await session.flush()

    async def extend(
        self,
        subscription_id: int,
        approver_id: int,
        now: datetime,
        payment_method: Optional[str] = None,
        new_price: Optional[Decimal] = None,
        notes: Optional[str] = None,
        duration_hours: Optional[int] = None,
    ) -> SubscriptionInDB:
        async with self._transaction("extend") as uow:
            session = uow.session
            sub, _ = await self._lock_in_slot_order(uow, subscription_id)
            if sub.status == SubscriptionStatus.active and self._policy.require_extension_request:
                raise InvalidStateError(f"Subscription {subscription_id} has no extension request.")
            if sub.status not in LIVE_STATUSES:
                raise InvalidStateError(
                    f"Subscription {subscription_id} is '{sub.status}', expected 'active' or 'extend_pending'."
                )
            await self._apply_extension(session, sub, approver_id, payment_method, new_price, notes, duration_hours, now)
            logger.info(f"Subscription {sub.id} extended by {approver_id} until {sub.end_at}")
            return SubscriptionInDB.model_validate(sub)

    async def request_extension(
        self,
        subscription_id: int,
        user_id: int,
        now: datetime,
        tariff_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> SubscriptionInDB:
        async with self._transaction("request_extension") as uow:
            session = uow.session
            sub = await self._get_for_update(session, subscription_id)
            if sub is None or sub.user_id != user_id:
                raise NotFoundError(f"Subscription with id {subscription_id} not found.")
            if sub.status != SubscriptionStatus.active:
                raise InvalidStateError(f"Subscription {subscription_id} is '{sub.status}', expected 'active'.")

            tariff = sub.tariff
            if tariff_id is not None and tariff_id != sub.tariff_id:
                tariff = await session.get(TariffORM, tariff_id)
                if tariff is None or not tariff.is_active:
                    raise NotFoundError(f"Tariff with id {tariff_id} not found or inactive.")
            if tariff.is_demo(self._policy.demo_tariff_code):
                raise ValidationError("Demo tariff cannot be used for an extension.")

            sub.status = SubscriptionStatus.extend_pending.value
            sub.requested_tariff_id = tariff.id
            session.add(build_history_entry(
                sub, HistoryAction.extend_requested, now,
                notes=notes or "Запрос на продление подписки",
                price=Decimal("0"),
                tariff_name=tariff.name,
            ))
            await session.flush()
            logger.info(f"User {user_id} requested extension of subscription {sub.id} with tariff '{tariff.code}'")
            return SubscriptionInDB.model_validate(sub)

    # ------------------------------------------------------------------ отмена, пауза, истечение

    async def cancel(
        self,
        subscription_id: int,
        now: datetime,
        reason: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> bool:
        """False - подписка уже в терминальном состоянии, ничего не изменено."""
        async with self._transaction("cancel") as uow:
            session = uow.session
            sub = await self._get_for_update(session, subscription_id)
            if sub is None or (user_id is not None and sub.user_id != user_id):
                raise NotFoundError(f"Subscription with id {subscription_id} not found.")
            if sub.is_terminal:
                return False
            sub.status = SubscriptionStatus.cancelled.value
            sub.cancelled_at = now
            sub.admin_notes = _append_note(sub.admin_notes, reason)
            session.add(build_history_entry(sub, HistoryAction.cancelled, now, notes=reason or "Подписка отменена"))
            await session.flush()
            logger.info(f"Subscription {sub.id} cancelled: {reason or 'no reason'}")
            return True

    async def set_enabled(self, subscription_id: int, enabled: bool, user_id: Optional[int] = None) -> bool:
        """True, если флаг изменился; повторный вызов с тем же значением ничего не пишет."""
        async with self._transaction("toggle") as uow:
            sub = await self._get_for_update(uow.session, subscription_id)
            if sub is None or (user_id is not None and sub.user_id != user_id):
                raise NotFoundError(f"Subscription with id {subscription_id} not found.")
            if sub.status != SubscriptionStatus.active:
                raise InvalidStateError(f"Subscription {subscription_id} is '{sub.status}', expected 'active'.")
            if sub.is_enabled == enabled:
                return False
            sub.is_enabled = enabled
            logger.info(f"Subscription {sub.id} is_enabled={enabled}")
            return True

    async def expire(self, subscription_id: int, now: datetime) -> bool:
        """Переводит в expired, только если строка всё ещё живая и срок действительно вышел."""
        async with self._transaction("expire") as uow:
            session = uow.session
            sub = await self._get_for_update(session, subscription_id)
            if sub is None or sub.status not in LIVE_STATUSES or sub.end_at is None or sub.end_at > now:
                return False
            sub.status = SubscriptionStatus.expired.value
            session.add(build_history_entry(sub, HistoryAction.expired, now, notes="Срок действия подписки истек"))
            await session.flush()
            logger.info(f"Subscription {sub.id} expired at {sub.end_at}")
            return True

    # ------------------------------------------------------------------ watermark-ы уведомлений

    async def _claim(self, stmt) -> bool:
        async for session in get_session(self._session_factory):
            try:
                result = await session.execute(stmt.execution_options(synchronize_session=False))
                await session.commit()
                return result.rowcount == 1
            except SQLAlchemyError as e:
                await session.rollback()
                raise OperationFailedError(f"Failed to claim notification watermark: {e}") from e

    async def claim_threshold(self, subscription_id: int, threshold: Threshold, now: datetime) -> bool:
        """
        Compare-and-set: ставит watermark порога, если он пуст и порог всё ещё пересечён
        при текущем end_at. True - этот вызов получил право отправить уведомление.
        """
        column = getattr(SubscriptionORM, threshold.watermark)
        stmt = (
            update(SubscriptionORM)
            .where(
                SubscriptionORM.id == subscription_id,
                column.is_(None),
                SubscriptionORM.status.in_(_LIVE),
                SubscriptionORM.end_at > now,
                SubscriptionORM.end_at <= now + threshold.delta,
            )
            .values({threshold.watermark: now})
        )
        return await self._claim(stmt)

    async def claim_expired_notice(self, subscription_id: int, now: datetime) -> bool:
        stmt = (
            update(SubscriptionORM)
            .where(
                SubscriptionORM.id == subscription_id,
                SubscriptionORM.notified_expired.is_(None),
                SubscriptionORM.status == SubscriptionStatus.expired.value,
            )
            .values(notified_expired=now)
        )
        return await self._claim(stmt)

    # ------------------------------------------------------------------ выборки для диспетчера

    async def find_due_for_expiry(self, now: datetime) -> List[int]:
        async for session in get_session(self._session_factory):
            result = await session.execute(
                select(SubscriptionORM.id)
                .where(SubscriptionORM.status.in_(_LIVE), SubscriptionORM.end_at <= now)
                .order_by(SubscriptionORM.end_at)
            )
            return list(result.scalars().all())

    async def find_expiring(self, now: datetime, horizon: timedelta) -> List[SubscriptionORM]:
        """Живые строки, у которых до конца меньше horizon. Пользователь подгружается для доставки."""
        async for session in get_session(self._session_factory):
            result = await session.execute(
                select(SubscriptionORM)
                .options(selectinload(SubscriptionORM.user))
                .where(
                    SubscriptionORM.status.in_(_LIVE),
                    SubscriptionORM.end_at > now,
                    SubscriptionORM.end_at <= now + horizon,
                )
                .order_by(SubscriptionORM.end_at)
            )
            return list(result.unique().scalars().all())

    async def find_unnotified_expired(self, now: datetime, backlog: timedelta) -> List[SubscriptionORM]:
        async for session in get_session(self._session_factory):
            result = await session.execute(
                select(SubscriptionORM)
                .options(selectinload(SubscriptionORM.user))
                .where(
                    SubscriptionORM.status == SubscriptionStatus.expired.value,
                    SubscriptionORM.notified_expired.is_(None),
                    SubscriptionORM.end_at >= now - backlog,
                )
                .order_by(SubscriptionORM.end_at)
            )
            return list(result.unique().scalars().all())

    # ------------------------------------------------------------------ чтение

    async def check_connection(self):
        """Проверяет соединение с базой данных, выполняя простой запрос."""
        async for session in get_session(self._session_factory):
            try:
                await session.execute(text("SELECT 1"))
            except SQLAlchemyError as e:
                logger.error(f"PostgreSQL connection failed: {e}")
                raise OperationFailedError("Failed to connect to the database.") from e

    async def get_for_notification(self, subscription_id: int) -> Optional[SubscriptionORM]:
        """Строка вместе с пользователем - для текста уведомления и адреса доставки."""
        async for session in get_session(self._session_factory):
            result = await session.execute(
                select(SubscriptionORM)
                .options(selectinload(SubscriptionORM.user))
                .where(SubscriptionORM.id == subscription_id)
            )
            return result.unique().scalar_one_or_none()

    async def get(self, subscription_id: int) -> Optional[SubscriptionInDB]:
        async for session in get_session(self._session_factory):
            sub = await session.get(SubscriptionORM, subscription_id)
            return SubscriptionInDB.model_validate(sub) if sub else None

    async def get_view(self, subscription_id: int, now: datetime) -> Optional[SubscriptionView]:
        async for session in get_session(self._session_factory):
            sub = await session.get(SubscriptionORM, subscription_id)
            return to_view(sub, now) if sub else None

    async def get_remaining_seconds(self, subscription_id: int, now: datetime) -> int:
        async for session in get_session(self._session_factory):
            sub = await session.get(SubscriptionORM, subscription_id)
            if sub is None:
                raise NotFoundError(f"Subscription with id {subscription_id} not found.")
            return sub.remaining_seconds(now)

    async def has_access(self, user_id: int, category_id: int, location_id: int, now: datetime) -> bool:
        async for session in get_session(self._session_factory):
            stmt = select(exists().where(
                SubscriptionORM.user_id == user_id,
                SubscriptionORM.category_id == category_id,
                SubscriptionORM.location_id == location_id,
                SubscriptionORM.status.in_(_LIVE),
                SubscriptionORM.is_enabled.is_(True),
                SubscriptionORM.end_at > now,
            ))
            return bool((await session.execute(stmt)).scalar())

    async def list_subscriptions(self, filters: SubscriptionFilter, now: datetime) -> Page[SubscriptionView]:
        conditions = []
        if filters.user_id is not None:
            conditions.append(SubscriptionORM.user_id == filters.user_id)
        if filters.tariff_id is not None:
            conditions.append(SubscriptionORM.tariff_id == filters.tariff_id)
        if filters.statuses:
            conditions.append(SubscriptionORM.status.in_(filters.statuses))
        if filters.created_from is not None:
            conditions.append(SubscriptionORM.created_at >= filters.created_from)
        if filters.created_to is not None:
            conditions.append(SubscriptionORM.created_at <= filters.created_to)
        # days_left = целые сутки до end_at
        if filters.days_left_min is not None:
            conditions.append(SubscriptionORM.end_at >= now + timedelta(days=filters.days_left_min))
        if filters.days_left_max is not None:
            conditions.append(SubscriptionORM.end_at < now + timedelta(days=filters.days_left_max + 1))

        column = _SORT_COLUMNS[filters.sort_by]
        order = column.asc().nulls_last() if filters.sort_dir == "asc" else column.desc().nulls_last()

        async for session in get_session(self._session_factory):
            total = (await session.execute(
                select(func.count()).select_from(SubscriptionORM).where(*conditions)
            )).scalar_one()
            result = await session.execute(
                select(SubscriptionORM)
                .where(*conditions)
                .order_by(order, SubscriptionORM.id)
                .offset((filters.page - 1) * filters.per_page)
                .limit(filters.per_page)
            )
            return Page[SubscriptionView](
                items=[to_view(s, now) for s in result.unique().scalars().all()],
                total=total,
                per_page=filters.per_page,
                current_page=filters.page,
            )
