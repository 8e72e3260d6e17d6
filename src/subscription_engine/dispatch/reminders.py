# Файл: subscription_engine/dispatch/reminders.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from subscription_engine.clock import Clock, SystemClock
from subscription_engine.repositories.auth.pg_repositoryUser import UserRepository
from subscription_engine.repositories.reminders.pg_repositoryReminder import ReminderRepository
from . import messages
from .expiry import deliver
from .notifier import NotificationChannel

logger = logging.getLogger(__name__)


@dataclass
class DispatchReport:
    total: int = 0
    sent: int = 0
    skipped: int = 0
    already_claimed: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    def fail(self, message: str) -> None:
        self.failed += 1
        self.errors.append(message)


class ReminderDispatcher:
    """Рассылает наступившие напоминания; каждое - ровно одним из параллельных процессов."""

    def __init__(
        self,
        reminders: ReminderRepository,
        users: UserRepository,
        notifier: NotificationChannel,
        clock: Optional[Clock] = None,
    ):
        self._reminders = reminders
        self._users = users
        self._notifier = notifier
        self._clock = clock or SystemClock()

    async def dispatch(self, now: Optional[datetime] = None) -> DispatchReport:
        now = now or self._clock.now()
        report = DispatchReport()
        try:
            due = await self._reminders.list_due(now)
        except Exception as e:
            logger.exception("Failed to select due reminders")
            report.fail(f"select due: {e}")
            return report

        report.total = len(due)
        for item in due:
            try:
                if not await self._reminders.mark_sent(item.id, now):
                    report.already_claimed += 1
                    logger.info(f"Reminder {item.id} is handled by another process")
                    continue
                await deliver(self._notifier, self._users, item.user, messages.reminder(item), report)
            except Exception as e:
                logger.exception(f"Failed to dispatch reminder {item.id}")
                report.fail(f"reminder {item.id}: {e}")

        logger.info(
            f"Reminders at {now.isoformat()}: total={report.total} sent={report.sent} "
            f"claimed_elsewhere={report.already_claimed} skipped={report.skipped} failed={report.failed}"
        )
        return report
