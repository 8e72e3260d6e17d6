# Файл: src/subscription_engine/__init__.py

from typing import Optional
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from .client import SubscriptionClient
from .clock import Clock, SystemClock, FrozenClock
from .config import get_settings, EngineConfig, PostgresConfig, TelegramConfig, NotificationConfig, SubscriptionPolicy, SchedulerConfig
from .dispatch.notifier import NotificationChannel, build_notifier
from .repositories import (
    UserRepository,
    TariffRepository,
    HistoryRepository,
    SubscriptionRepository,
    ReminderRepository,
)
from .exceptions import *


def create_subscription_client(
    config: Optional[EngineConfig] = None,
    notifier: Optional[NotificationChannel] = None,
    clock: Optional[Clock] = None,
) -> SubscriptionClient:
    """
    Фабричная функция для создания и конфигурации SubscriptionClient.

    :param config: Единый объект с настройками.
                   Если не предоставлен, используются переменные окружения.
    :param notifier: Канал уведомлений. По умолчанию Telegram, если задан токен бота.
    :param clock: Источник времени; тесты передают FrozenClock.
    """
    if config is None:
        config = get_settings().to_engine_config()

    engine = create_async_engine(
        config.postgres.get_pg_dsn(),
        pool_size=config.postgres.pool_size,
        max_overflow=config.postgres.max_overflow,
        pool_timeout=config.postgres.pool_timeout,
        pool_recycle=config.postgres.pool_recycle,
        pool_pre_ping=config.postgres.pool_pre_ping,
        connect_args={
            "server_settings": {
                "application_name": config.postgres.application_name
            }
        }
    )
    session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)

    return SubscriptionClient(
        config=config,
        user_repo=UserRepository(session_factory),
        tariff_repo=TariffRepository(session_factory),
        subscription_repo=SubscriptionRepository(session_factory, policy=config.subscriptions),
        history_repo=HistoryRepository(session_factory),
        reminder_repo=ReminderRepository(session_factory),
        notifier=notifier or build_notifier(config.telegram),
        clock=clock,
        engine=engine,
    )


__all__ = [
    "SubscriptionClient", "create_subscription_client",
    "Clock", "SystemClock", "FrozenClock",
    "EngineConfig", "PostgresConfig", "TelegramConfig", "NotificationConfig", "SubscriptionPolicy", "SchedulerConfig",
    "EngineError", "ValidationError", "NotFoundError", "ConflictError", "InvalidStateError",
    "TrialAlreadyUsedError", "MultiCategoryDemoError", "AccessDeniedError",
    "OperationFailedError", "DatabaseError", "NotificationError", "RecipientBlockedError",
]
