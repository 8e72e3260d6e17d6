# Файл: src/subscription_engine/scheduler.py
"""
Планировщик фоновых проходов: истечение подписок с уведомлениями и рассылка напоминаний.
Несколько экземпляров могут работать одновременно, дубли отсекаются watermark-ами в БД.
"""
import asyncio
import logging
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from subscription_engine.client import SubscriptionClient
from subscription_engine.config import SchedulerConfig

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "subscription_sweep"
REMINDER_JOB_ID = "reminder_dispatch"


def build_scheduler(client: SubscriptionClient, config: SchedulerConfig) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone=config.timezone)
    now = datetime.now(timezone.utc)
    scheduler.add_job(
        client.sweep,
        IntervalTrigger(minutes=config.sweep_interval_minutes),
        id=SWEEP_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        next_run_time=now,
    )
    scheduler.add_job(
        client.dispatch_reminders,
        IntervalTrigger(minutes=config.reminder_interval_minutes),
        id=REMINDER_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        next_run_time=now,
    )
    return scheduler


async def run_scheduler(client: SubscriptionClient, config: SchedulerConfig) -> None:
    """Запускает задачи и ждёт до отмены (Ctrl+C / SIGTERM)."""
    scheduler = build_scheduler(client, config)
    scheduler.start()
    logger.info(
        f"Scheduler started: sweep every {config.sweep_interval_minutes} min, "
        f"reminders every {config.reminder_interval_minutes} min"
    )
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown(wait=False)
        await client.aclose()
        logger.info("Scheduler stopped")
