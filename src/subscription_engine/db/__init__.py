# subscription_engine/db/__init__.py

from .base import Base

from .users.users import UserORM, ADMIN_ROLE
from .catalog.catalog_orm import CategoryORM, LocationORM
from .catalog.tariff_orm import TariffORM, TariffPriceORM

# таблицы, которые от них зависят
from .billing.subscription_orm import (
    SubscriptionORM,
    SubscriptionStatus,
    OPEN_STATUSES,
    LIVE_STATUSES,
    TERMINAL_STATUSES,
    WATERMARK_COLUMNS,
)
from .billing.history_orm import SubscriptionHistoryORM, HistoryAction
from .reminders.reminder_orm import ReminderORM

from . import triggers


__all__ = [
    "Base",
    "UserORM",
    "ADMIN_ROLE",
    "CategoryORM",
    "LocationORM",
    "TariffORM",
    "TariffPriceORM",
    "SubscriptionORM",
    "SubscriptionStatus",
    "OPEN_STATUSES",
    "LIVE_STATUSES",
    "TERMINAL_STATUSES",
    "WATERMARK_COLUMNS",
    "SubscriptionHistoryORM",
    "HistoryAction",
    "ReminderORM",
    "triggers"
]
