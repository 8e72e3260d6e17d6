from subscription_engine.thresholds import (
    TariffClass, Threshold, THRESHOLD_TABLE, ALL_THRESHOLDS, MAX_HORIZON,
    classify_tariff, due_thresholds, watermarks_to_reset,
)
from .notifier import NotificationChannel, TelegramNotifier, LoggingNotifier, build_notifier
from .expiry import ExpiryDispatcher, SweepReport
from .reminders import ReminderDispatcher, DispatchReport

__all__ = [
    "TariffClass", "Threshold", "THRESHOLD_TABLE", "ALL_THRESHOLDS", "MAX_HORIZON",
    "classify_tariff", "due_thresholds", "watermarks_to_reset",
    "NotificationChannel", "TelegramNotifier", "LoggingNotifier", "build_notifier",
    "ExpiryDispatcher", "SweepReport", "ReminderDispatcher", "DispatchReport",
]
