import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncEngine

from subscription_engine.clock import Clock, SystemClock
from subscription_engine.config import EngineConfig
from subscription_engine.db import SubscriptionORM, UserORM
from subscription_engine.dispatch import messages
from subscription_engine.dispatch.expiry import ExpiryDispatcher, SweepReport
from subscription_engine.dispatch.notifier import NotificationChannel
from subscription_engine.dispatch.reminders import ReminderDispatcher, DispatchReport
from subscription_engine.exceptions import AccessDeniedError, EngineError, NotificationError, NotFoundError, ValidationError
from subscription_engine.models import (
    TariffCreate, TariffInDB, CategoryInDB, LocationInDB, PriceOverrideCreate, TariffCatalog, DEFAULT_TARIFFS,
    SubscriptionInDB, SubscriptionView, SubscriptionFilter, HistoryFilter, HistoryEntryInDB, Page,
    BulkActivationResult, BulkFailure, ReminderCreate, ReminderInDB,
    SubscriptionRequest, ActivationRequest, ExtensionRequest,
)
from subscription_engine.repositories import (
    UserRepository,
    TariffRepository,
    HistoryRepository,
    SubscriptionRepository,
    ReminderRepository,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def _parse(model: Type[M], **fields) -> M:
    """Поля запроса проверяет pydantic-модель; её ошибка становится ValidationError движка."""
    try:
        return model(**fields)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid {model.__name__}: {e.errors(include_url=False)}") from e


class SubscriptionClient:
    """
    Единая точка доступа для бизнес-логики подписок.

    Время берётся из переданного Clock, права администратора проверяются здесь,
    а транзакции и блокировки живут в репозиториях.
    """

    def __init__(
        self,
        config: EngineConfig,
        user_repo: UserRepository,
        tariff_repo: TariffRepository,
        subscription_repo: SubscriptionRepository,
        history_repo: HistoryRepository,
        reminder_repo: ReminderRepository,
        notifier: NotificationChannel,
        clock: Optional[Clock] = None,
        engine: Optional[AsyncEngine] = None,
    ):
        self.config = config
        self.user_repo = user_repo
        self.tariff_repo = tariff_repo
        self.subscription_repo = subscription_repo
        self.history_repo = history_repo
        self.reminder_repo = reminder_repo
        self.notifier = notifier
        self.clock = clock or SystemClock()
        self._engine = engine

        self.expiry_dispatcher = ExpiryDispatcher(
            subscription_repo, user_repo, notifier,
            clock=self.clock, config=config.notifications, policy=config.subscriptions,
        )
        self.reminder_dispatcher = ReminderDispatcher(reminder_repo, user_repo, notifier, clock=self.clock)

    async def aclose(self):
        aclose = getattr(self.notifier, "aclose", None)
        if aclose is not None:
            await aclose()
        if self._engine is not None:
            await self._engine.dispose()

    async def check_connections(self) -> dict[str, str]:
        statuses = {}
        try:
            await self.subscription_repo.check_connection()
            statuses["postgres"] = "ok"
        except EngineError as e:
            statuses["postgres"] = f"failed: {e}"
        return statuses

    def _now(self) -> datetime:
        return self.clock.now()

    async def _is_admin(self, user_id: int) -> bool:
        user = await self.user_repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError(f"User with id {user_id} not found.")
        return user.is_admin

    async def _notify(self, subscription_id: int, render: Callable[[SubscriptionORM], str]) -> None:
        """Событийные уведомления пользователю. Ошибка доставки не влияет на уже зафиксированный переход."""
        sub = await self.subscription_repo.get_for_notification(subscription_id)
        if sub is None or sub.user is None or not sub.user.can_receive_notifications:
            return
        try:
            await self.notifier.send(sub.user.telegram_id, render(sub))
        except NotificationError as e:
            logger.warning(f"Failed to notify user {sub.user_id} about subscription {subscription_id}: {e}")

    # ――― users ――― #

    async def create_user(self, email: str, role: str = "user", telegram_id: Optional[int] = None) -> UserORM:
        return await self.user_repo.create_user(email, role=role, telegram_id=telegram_id)

    async def get_user(self, user_id: int) -> Optional[UserORM]:
        return await self.user_repo.get_by_id(user_id)

    # ――― catalog ――― #

    async def create_tariff(self, data: TariffCreate) -> TariffInDB:
        return await self.tariff_repo.create_tariff(data)

    async def seed_tariffs(self, tariffs: Optional[List[TariffCreate]] = None) -> int:
        return await self.tariff_repo.ensure_tariffs(tariffs or DEFAULT_TARIFFS)

    async def create_category(self, name: str) -> CategoryInDB:
        return await self.tariff_repo.create_category(name)

    async def create_location(self, city: str, region: str = "") -> LocationInDB:
        return await self.tariff_repo.create_location(city, region)

    async def set_price_override(self, data: PriceOverrideCreate) -> None:
        await self.tariff_repo.set_price_override(data)

    async def list_tariffs(self, active_only: bool = True) -> List[TariffInDB]:
        return await self.tariff_repo.list_tariffs(active_only=active_only)

    async def get_tariff_catalog(self) -> TariffCatalog:
        return await self.tariff_repo.get_catalog()

    async def get_tariff_price(self, tariff_id: int, location_id: int, category_id: Optional[int] = None) -> Decimal:
        return await self.tariff_repo.get_tariff_price(tariff_id, location_id, category_id)

    # ――― subscription lifecycle ――― #

    async def request_subscription(
        self, user_id: int, tariff_id: int, category_id: int, location_id: int
    ) -> SubscriptionInDB:
        created = await self.request_subscriptions(user_id, tariff_id, [category_id], location_id)
        return created[0]

    async def request_subscriptions(
        self, user_id: int, tariff_id: int, category_ids: Sequence[int], location_id: int
    ) -> List[SubscriptionInDB]:
        request = _parse(
            SubscriptionRequest,
            user_id=user_id, tariff_id=tariff_id, category_ids=list(category_ids), location_id=location_id,
        )
        created = await self.subscription_repo.request_subscriptions(
            request.user_id, request.tariff_id, request.category_ids, request.location_id, now=self._now()
        )
        for sub in created:
            if sub.status == "active":
                await self._notify(sub.id, messages.subscription_activated)
        return created

    async def activate_subscription(
        self,
        subscription_id: int,
        approver_id: int,
        payment_method: Optional[str],
        notes: Optional[str] = None,
        duration_hours: Optional[int] = None,
    ) -> SubscriptionInDB:
        request = _parse(ActivationRequest, payment_method=payment_method, notes=notes, duration_hours=duration_hours)
        await self.user_repo.require_admin(approver_id)
        return await self._activate(subscription_id, approver_id, request)

    async def _activate(self, subscription_id: int, approver_id: int, request: ActivationRequest) -> SubscriptionInDB:
        result = await self.subscription_repo.activate(
            subscription_id, approver_id, request.payment_method, now=self._now(),
            notes=request.notes, duration_hours=request.duration_hours,
        )
        await self._notify(result.id, messages.subscription_activated)
        return result

    async def activate_subscriptions(
        self,
        subscription_ids: Sequence[int],
        approver_id: int,
        payment_method: Optional[str],
        notes: Optional[str] = None,
        duration_hours: Optional[int] = None,
    ) -> BulkActivationResult:
        """Каждый id - отдельная транзакция; ошибка одного не мешает остальным."""
        request = _parse(ActivationRequest, payment_method=payment_method, notes=notes, duration_hours=duration_hours)
        await self.user_repo.require_admin(approver_id)
        result = BulkActivationResult()
        for subscription_id in subscription_ids:
            try:
                result.succeeded.append(await self._activate(subscription_id, approver_id, request))
            except EngineError as e:
                logger.warning(f"Bulk activation: subscription {subscription_id} failed with {e.code}: {e}")
                result.failed.append(BulkFailure(id=subscription_id, error=e.code, message=str(e)))
        logger.info(
            f"Bulk activation by {approver_id}: {len(result.succeeded)} succeeded, {len(result.failed)} failed"
        )
        return result

    async def request_extension(
        self,
        subscription_id: int,
        user_id: int,
        tariff_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> SubscriptionInDB:
        return await self.subscription_repo.request_extension(
            subscription_id, user_id, now=self._now(), tariff_id=tariff_id, notes=notes,
        )

    async def extend_subscription(
        self,
        subscription_id: int,
        approver_id: int,
        payment_method: Optional[str] = None,
        new_price: Optional[Decimal] = None,
        notes: Optional[str] = None,
        duration_hours: Optional[int] = None,
    ) -> SubscriptionInDB:
        request = _parse(
            ExtensionRequest,
            payment_method=payment_method, new_price=new_price, notes=notes, duration_hours=duration_hours,
        )
        await self.user_repo.require_admin(approver_id)
        result = await self.subscription_repo.extend(
            subscription_id, approver_id, now=self._now(),
            payment_method=request.payment_method, new_price=request.new_price,
            notes=request.notes, duration_hours=request.duration_hours,
        )
        await self._notify(result.id, messages.subscription_extended)
        return result

    async def cancel_subscription(
        self,
        subscription_id: int,
        reason: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> bool:
        """
        actor_id=None - системный вызов. Пользователь без роли admin может отменить только свою подписку.
        """
        owner_id = None
        if actor_id is not None and not await self._is_admin(actor_id):
            owner_id = actor_id
        cancelled = await self.subscription_repo.cancel(subscription_id, now=self._now(), reason=reason, user_id=owner_id)
        if cancelled:
            await self._notify(subscription_id, lambda sub: messages.subscription_cancelled(sub, reason))
        return cancelled

    async def toggle_subscription(self, subscription_id: int, enabled: bool, user_id: Optional[int] = None) -> bool:
        return await self.subscription_repo.set_enabled(subscription_id, enabled, user_id=user_id)

    # ――― queries ――― #

    async def get_subscription(self, subscription_id: int) -> Optional[SubscriptionView]:
        return await self.subscription_repo.get_view(subscription_id, now=self._now())

    async def get_remaining_time(self, subscription_id: int) -> int:
        return await self.subscription_repo.get_remaining_seconds(subscription_id, now=self._now())

    async def has_access(self, user_id: int, category_id: int, location_id: int) -> bool:
        return await self.subscription_repo.has_access(user_id, category_id, location_id, now=self._now())

    async def list_subscriptions(self, filters: SubscriptionFilter, actor_id: Optional[int] = None) -> Page[SubscriptionView]:
        if actor_id is not None and filters.user_id != actor_id and not await self._is_admin(actor_id):
            raise AccessDeniedError(f"User {actor_id} may list only own subscriptions.")
        return await self.subscription_repo.list_subscriptions(filters, now=self._now())

    async def list_history(self, filters: HistoryFilter, actor_id: Optional[int] = None) -> Page[HistoryEntryInDB]:
        if actor_id is not None and filters.user_id != actor_id and not await self._is_admin(actor_id):
            raise AccessDeniedError(f"User {actor_id} may read only own history.")
        return await self.history_repo.list_history(filters)

    async def get_subscription_history(self, subscription_id: int) -> List[HistoryEntryInDB]:
        return await self.history_repo.list_for_subscription(subscription_id)

    # ――― reminders ――― #

    async def create_reminder(
        self, user_id: int, object_client_id: int, remind_at: datetime, message: str
    ) -> ReminderInDB:
        data = _parse(ReminderCreate, object_client_id=object_client_id, remind_at=remind_at, message=message)
        return await self.reminder_repo.create(user_id, data, now=self._now())

    async def delete_reminder(self, reminder_id: int, user_id: int) -> None:
        await self.reminder_repo.delete(reminder_id, user_id)

    async def list_reminders(self, user_id: int) -> List[ReminderInDB]:
        return await self.reminder_repo.list_for_user(user_id, now=self._now())

    async def list_reminders_for_object_client(self, object_client_id: int, user_id: int) -> List[ReminderInDB]:
        return await self.reminder_repo.list_for_object_client(object_client_id, user_id)

    # ――― background passes ――― #

    async def sweep(self, now: Optional[datetime] = None) -> SweepReport:
        return await self.expiry_dispatcher.sweep(now)

    async def dispatch_reminders(self, now: Optional[datetime] = None) -> DispatchReport:
        return await self.reminder_dispatcher.dispatch(now)
