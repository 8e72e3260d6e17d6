from .auth.pg_repositoryUser import UserRepository
from .catalog.pg_repositoryTariff import TariffRepository, resolve_price
from .billing.pg_repositoryHistory import HistoryRepository, build_history_entry
from .billing.pg_repositorySubscription import SubscriptionRepository
from .reminders.pg_repositoryReminder import ReminderRepository

__all__ = [
    "UserRepository",
    "TariffRepository",
    "resolve_price",
    "HistoryRepository",
    "build_history_entry",
    "SubscriptionRepository",
    "ReminderRepository",
]
