# Файл: src/subscription_engine/config.py

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional

# --- 1. Настройки PostgreSQL ---
class PostgresConfig(BaseModel):
    user: str = "postgres"
    password: str = "postgres"
    host: str = "localhost"
    port: int = 5432
    db: str = "subscriptions"

    pool_size: int = 5
    max_overflow: int = 5
    pool_timeout: int = 30
    pool_recycle: int = 1800
    pool_pre_ping: bool = True
    application_name: str = "subscription_engine"

    def get_pg_dsn(self) -> str:
        """Собирает DSN для SQLAlchemy из полей этого объекта."""
        return f"postgresql+asyncpg://{self.user}:{self.password}@{self.host}:{self.port}/{self.db}"

# --- 2. Канал уведомлений (Telegram Bot API) ---
class TelegramConfig(BaseModel):
    bot_token: str | None = None
    api_url: str = "https://api.telegram.org"
    request_timeout: float = 10.0
    # Повторы только для сетевых ошибок отправки, никогда для записи watermark
    retry_attempts: int = 3
    retry_wait_seconds: float = 1.0

# --- 3. Пороги уведомлений ---
class NotificationConfig(BaseModel):
    # Тарифы не длиннее этого значения (и demo) получают пороги 1h/15m, остальные 3d/1d
    short_tariff_max_hours: int = 72
    # Окно, в котором досылаем пропущенные уведомления об истечении
    expired_backlog_hours: int = 24

# --- 4. Политика жизненного цикла подписок ---
class SubscriptionPolicy(BaseModel):
    demo_tariff_code: str = "demo"
    # Demo активируется сразу при заявке, без подтверждения администратора
    auto_activate_demo: bool = False
    # Продление администратором только через заявку пользователя (active -> extend_pending -> active)
    require_extension_request: bool = False
    upgrade_cancel_reason: str = "auto-cancel on upgrade"

class SchedulerConfig(BaseModel):
    sweep_interval_minutes: int = 2
    reminder_interval_minutes: int = 5
    timezone: str = "UTC"

# --- 5. Единый объект для явной передачи конфигурации ---
class EngineConfig(BaseModel):
    postgres: PostgresConfig = Field(default_factory=PostgresConfig)
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    subscriptions: SubscriptionPolicy = Field(default_factory=SubscriptionPolicy)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)

# --- 6. Чтение из .env ---
class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_nested_delimiter='__',
        extra='ignore'
    )

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    postgres: PostgresConfig = Field(default_factory=PostgresConfig)
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    subscriptions: SubscriptionPolicy = Field(default_factory=SubscriptionPolicy)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)

    def to_engine_config(self) -> EngineConfig:
        return EngineConfig(
            postgres=self.postgres,
            telegram=self.telegram,
            notifications=self.notifications,
            subscriptions=self.subscriptions,
            scheduler=self.scheduler,
        )

# Ленивая инициализация: настройки читаются при первом обращении, а не при импорте
_cached_settings: Optional[Settings] = None

def get_settings() -> Settings:
    """
    Возвращает синглтон-экземпляр настроек, создавая его при первом вызове.
    """
    global _cached_settings
    if _cached_settings is None:
        _cached_settings = Settings()
    return _cached_settings

def reset_settings() -> None:
    """Сбрасывает кэш настроек (нужно тестам, которые меняют окружение)."""
    global _cached_settings
    _cached_settings = None
