# Файл: subscription_engine/dispatch/expiry.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from subscription_engine.clock import Clock, SystemClock
from subscription_engine.config import NotificationConfig, SubscriptionPolicy
from subscription_engine.db import SubscriptionORM, UserORM, WATERMARK_COLUMNS
from subscription_engine.exceptions import NotificationError, RecipientBlockedError
from subscription_engine.repositories.auth.pg_repositoryUser import UserRepository
from subscription_engine.repositories.billing.pg_repositorySubscription import SubscriptionRepository
from subscription_engine.thresholds import MAX_HORIZON, classify_tariff, due_thresholds
from . import messages
from .notifier import NotificationChannel

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    expired: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    def fail(self, message: str) -> None:
        self.failed += 1
        self.errors.append(message)


async def deliver(
    notifier: NotificationChannel,
    users: UserRepository,
    user: Optional[UserORM],
    text: str,
    report,
) -> None:
    """
    Отправка уже "забранного" уведомления. Ничего не откатывает: watermark остаётся,
    даже если доставка не удалась или получателя нет.
    """
    if user is None or not user.can_receive_notifications:
        report.skipped += 1
        logger.info(f"User {getattr(user, 'id', None)} has no reachable chat, notification skipped")
        return
    try:
        await notifier.send(user.telegram_id, text)
        report.sent += 1
    except RecipientBlockedError as e:
        report.fail(str(e))
        logger.info(f"User {user.id} blocked the bot, disabling notifications")
        await users.mark_bot_blocked(user.id)
    except NotificationError as e:
        report.fail(str(e))
        logger.warning(f"Failed to notify user {user.id}: {e}")


class ExpiryDispatcher:
    """
    Периодический проход: переводит истёкшие подписки в expired и рассылает
    предупреждения по порогам. Каждое уведомление уходит не больше одного раза:
    право на отправку получает тот, кто первым заполнил watermark.
    """

    def __init__(
        self,
        subscriptions: SubscriptionRepository,
        users: UserRepository,
        notifier: NotificationChannel,
        clock: Optional[Clock] = None,
        config: Optional[NotificationConfig] = None,
        policy: Optional[SubscriptionPolicy] = None,
    ):
        self._subscriptions = subscriptions
        self._users = users
        self._notifier = notifier
        self._clock = clock or SystemClock()
        self._config = config or NotificationConfig()
        self._policy = policy or SubscriptionPolicy()

    async def sweep(self, now: Optional[datetime] = None) -> SweepReport:
        now = now or self._clock.now()
        report = SweepReport()

        await self._expire_due(now, report)
        await self._notify_expired(now, report)
        await self._notify_expiring(now, report)

        logger.info(
            f"Sweep at {now.isoformat()}: expired={report.expired} sent={report.sent} "
            f"skipped={report.skipped} failed={report.failed}"
        )
        return report

    async def _expire_due(self, now: datetime, report: SweepReport) -> None:
        try:
            due = await self._subscriptions.find_due_for_expiry(now)
        except Exception as e:
            logger.exception("Failed to select subscriptions due for expiry")
            report.fail(f"select due: {e}")
            return
        for subscription_id in due:
            try:
                if await self._subscriptions.expire(subscription_id, now):
                    report.expired += 1
            except Exception as e:
                logger.exception(f"Failed to expire subscription {subscription_id}")
                report.fail(f"expire {subscription_id}: {e}")

    async def _notify_expired(self, now: datetime, report: SweepReport) -> None:
        # Включает строки, истёкшие в прошлых проходах, если уведомление тогда не ушло
        backlog = timedelta(hours=self._config.expired_backlog_hours)
        try:
            rows = await self._subscriptions.find_unnotified_expired(now, backlog)
        except Exception as e:
            logger.exception("Failed to select expired subscriptions")
            report.fail(f"select expired: {e}")
            return
        for sub in rows:
            try:
                if await self._subscriptions.claim_expired_notice(sub.id, now):
                    await deliver(self._notifier, self._users, sub.user, messages.subscription_expired(sub), report)
            except Exception as e:
                logger.exception(f"Failed to process expired notice for subscription {sub.id}")
                report.fail(f"expired notice {sub.id}: {e}")

    async def _notify_expiring(self, now: datetime, report: SweepReport) -> None:
        try:
            rows = await self._subscriptions.find_expiring(now, MAX_HORIZON)
        except Exception as e:
            logger.exception("Failed to select expiring subscriptions")
            report.fail(f"select expiring: {e}")
            return
        for sub in rows:
            try:
                await self._notify_thresholds(sub, now, report)
            except Exception as e:
                logger.exception(f"Failed to process thresholds for subscription {sub.id}")
                report.fail(f"thresholds {sub.id}: {e}")

    async def _notify_thresholds(self, sub: SubscriptionORM, now: datetime, report: SweepReport) -> None:
        tariff_class = classify_tariff(
            sub.tariff.code,
            sub.tariff.duration_hours,
            demo_code=self._policy.demo_tariff_code,
            short_max_hours=self._config.short_tariff_max_hours,
        )
        watermarks = {column: getattr(sub, column) for column in WATERMARK_COLUMNS}
        for threshold in due_thresholds(sub.end_at, now, tariff_class, watermarks):
            if not await self._subscriptions.claim_threshold(sub.id, threshold, now):
                logger.debug(f"Threshold {threshold.key} of subscription {sub.id} already claimed")
                continue
            logger.info(f"Subscription {sub.id} crossed threshold {threshold.key}, notifying user {sub.user_id}")
            await deliver(self._notifier, self._users, sub.user, messages.subscription_expiring(sub, now), report)
