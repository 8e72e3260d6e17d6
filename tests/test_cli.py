import asyncio
import sys

import pytest
from typer.testing import CliRunner
from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import create_async_engine

# Убедитесь, что политика для Windows установлена, если тестируете на Windows
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from subscription_engine.cli import app
from subscription_engine.config import get_settings
from subscription_engine.db.base import Base

runner = CliRunner()


def _run_on_engine(fn):
    async def _inner():
        engine = create_async_engine(get_settings().postgres.get_pg_dsn())
        try:
            async with engine.begin() as conn:
                return await conn.run_sync(fn)
        finally:
            await engine.dispose()
    return asyncio.run(_inner())


@pytest.fixture
def clean_schema():
    """Команды CLI сами создают схему; после теста она удаляется целиком."""
    yield
    _run_on_engine(Base.metadata.drop_all)


def test_cli_init_and_check(clean_schema):
    """
    Тестирует команды init и check в едином сценарии.
    Команды сами настраивают окружение, фикстура только убирает за ними.
    """
    # --- ACT 1: Запускаем инициализацию ---
    result_init = runner.invoke(app, ["init"])

    # --- ASSERT 1: Проверяем результат init ---
    assert result_init.exit_code == 0, f"Команда 'init' провалилась: {result_init.output}"
    assert "Database tables created successfully" in result_init.output

    # Дополнительная проверка: таблицы действительно созданы в БД
    tables = _run_on_engine(lambda conn: set(inspect(conn).get_table_names()))
    assert {"tariffs", "subscriptions", "subscription_history", "reminders", "users"} <= tables

    # --- ACT 2: Проверяем статус после инициализации ---
    result_check = runner.invoke(app, ["check"])

    # --- ASSERT 2: Проверяем результат check ---
    assert result_check.exit_code == 0
    assert "PostgreSQL connection: OK" in result_check.output


def test_cli_seed_is_idempotent(clean_schema):
    assert runner.invoke(app, ["init"]).exit_code == 0

    first = runner.invoke(app, ["seed"])
    assert first.exit_code == 0, first.output
    assert "Tariffs seeded: 5 added." in first.output

    second = runner.invoke(app, ["seed"])
    assert "Tariffs seeded: 0 added." in second.output


def test_cli_background_passes_on_empty_database(clean_schema):
    assert runner.invoke(app, ["init"]).exit_code == 0

    sweep = runner.invoke(app, ["sweep"])
    assert sweep.exit_code == 0, sweep.output
    assert "Subscription sweep" in sweep.output

    reminders = runner.invoke(app, ["send-reminders"])
    assert reminders.exit_code == 0, reminders.output
    assert "Reminder dispatch" in reminders.output
