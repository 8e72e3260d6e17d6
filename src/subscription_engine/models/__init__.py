from .tariff import TariffCreate, TariffInDB, CategoryInDB, LocationInDB, PriceOverrideCreate, TariffPriceInfo, TariffCatalog, DEFAULT_TARIFFS
from .subscription import (
    SubscriptionRequest, ActivationRequest, ExtensionRequest,
    SubscriptionInDB, SubscriptionView, HistoryEntryInDB,
    SubscriptionFilter, HistoryFilter, Page,
    BulkFailure, BulkActivationResult,
)
from .reminder import ReminderCreate, ReminderInDB

__all__ = [
    "TariffCreate", "TariffInDB", "CategoryInDB", "LocationInDB", "PriceOverrideCreate", "TariffPriceInfo", "TariffCatalog",
    "DEFAULT_TARIFFS",
    "SubscriptionRequest", "ActivationRequest", "ExtensionRequest",
    "SubscriptionInDB", "SubscriptionView", "HistoryEntryInDB",
    "SubscriptionFilter", "HistoryFilter", "Page",
    "BulkFailure", "BulkActivationResult",
    "ReminderCreate", "ReminderInDB",
]
