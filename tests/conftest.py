import os
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine

# Импортируем Base для создания/удаления таблиц
from subscription_engine.db.base import Base
# Импортируем нашу фабрику, чтобы тесты работали как реальное приложение
from subscription_engine import SubscriptionClient, FrozenClock, create_subscription_client
from subscription_engine.config import get_settings, reset_settings
from subscription_engine.exceptions import NotificationError, RecipientBlockedError
from subscription_engine.models import TariffCreate


START = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def _export_postgres_env(user: str, password: str, host: str, port: str, db: str) -> None:
    # Переменные окружения, которые прочитает get_settings()
    os.environ["POSTGRES__USER"] = user
    os.environ["POSTGRES__PASSWORD"] = password
    os.environ["POSTGRES__HOST"] = host
    os.environ["POSTGRES__PORT"] = str(port)
    os.environ["POSTGRES__DB"] = db
    os.environ["TELEGRAM__BOT_TOKEN"] = ""
    reset_settings()


@pytest.fixture(scope="session", autouse=True)
def _test_database():
    """
    Поднимает PostgreSQL один раз на всю тестовую сессию.
    Если задан TEST_POSTGRES_DSN, используется уже запущенный сервер.
    """
    dsn = os.environ.get("TEST_POSTGRES_DSN")
    if dsn:
        url = make_url(dsn)
        _export_postgres_env(url.username, url.password, url.host, url.port or 5432, url.database)
        yield
        return

    from testcontainers.postgres import PostgresContainer

    print("\nStarting PostgreSQL container...")
    postgres = PostgresContainer("postgres:15")
    postgres.start()
    _export_postgres_env(
        postgres.username,
        postgres.password,
        postgres.get_container_host_ip(),
        postgres.get_exposed_port(5432),
        postgres.dbname,
    )
    print("PostgreSQL container is running and environment is set.")
    yield
    print("\nStopping PostgreSQL container...")
    postgres.stop()


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """
    Создает движок для тестовой БД и ГАРАНТИРОВАННО создает в ней все таблицы.
    После теста все таблицы удаляются для полной изоляции.
    """
    engine = create_async_engine(get_settings().postgres.get_pg_dsn())

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


class RecordingNotifier:
    """Канал уведомлений, который ничего не отправляет, а запоминает."""

    def __init__(self):
        self.sent: list[tuple[int, str]] = []
        self.failing: set[int] = set()
        self.blocked: set[int] = set()

    async def send(self, chat_id: int, text: str) -> None:
        if chat_id in self.blocked:
            raise RecipientBlockedError(f"Chat {chat_id} blocked the bot.")
        if chat_id in self.failing:
            raise NotificationError(f"Chat {chat_id} is unreachable.")
        self.sent.append((chat_id, text))

    def texts_for(self, chat_id: int) -> list[str]:
        return [text for cid, text in self.sent if cid == chat_id]

    def clear(self) -> None:
        self.sent.clear()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(START)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest_asyncio.fixture(scope="function")
async def client(db_engine, clock, notifier) -> SubscriptionClient:
    """
    Собирает SubscriptionClient, готовый к работе.
    Использует фабрику create_subscription_client, время управляется FrozenClock.
    """
    client = create_subscription_client(notifier=notifier, clock=clock)
    yield client
    await client.aclose()


@dataclass
class Catalog:
    admin_id: int
    user_id: int
    user_chat: int
    location_id: int
    category_ids: list[int]
    tariffs: dict[str, int]

    @property
    def category_id(self) -> int:
        return self.category_ids[0]


@pytest_asyncio.fixture(scope="function")
async def catalog(client: SubscriptionClient) -> Catalog:
    """Администратор, пользователь с Telegram, одна локация, три категории и стандартные тарифы."""
    admin = await client.create_user("admin@example.com", role="admin", telegram_id=1000)
    user = await client.create_user("agent@example.com", telegram_id=2000)
    location = await client.create_location("Москва", "Московская область")
    categories = [await client.create_category(name) for name in ("Квартиры", "Дома", "Коммерция")]
    await client.seed_tariffs()
    await client.create_tariff(TariffCreate(name="Архив", code="archived", duration_hours=24, price=Decimal("1"), is_active=False))
    tariffs = {t.code: t.id for t in await client.list_tariffs(active_only=False)}
    return Catalog(
        admin_id=admin.id,
        user_id=user.id,
        user_chat=2000,
        location_id=location.id,
        category_ids=[c.id for c in categories],
        tariffs=tariffs,
    )
