import asyncio
from datetime import timedelta

import pytest

from subscription_engine.exceptions import NotFoundError, ValidationError

pytestmark = pytest.mark.asyncio

OBJECT_CLIENT = 501


async def test_create_and_list_reminders(client, catalog, clock):
    # --- ARRANGE & ACT ---
    later = await client.create_reminder(catalog.user_id, OBJECT_CLIENT, clock.now() + timedelta(days=1), "Перезвонить")
    sooner = await client.create_reminder(catalog.user_id, OBJECT_CLIENT, clock.now() + timedelta(hours=2), "  Показ  ")

    # --- ASSERT ---
    assert sooner.message == "Показ"
    assert sooner.is_sent is False
    upcoming = await client.list_reminders(catalog.user_id)
    assert [r.id for r in upcoming] == [sooner.id, later.id]
    assert await client.list_reminders(catalog.admin_id) == []
    by_object = await client.list_reminders_for_object_client(OBJECT_CLIENT, catalog.user_id)
    assert len(by_object) == 2


async def test_create_reminder_validation(client, catalog, clock):
    with pytest.raises(ValidationError):
        await client.create_reminder(catalog.user_id, OBJECT_CLIENT, clock.now() - timedelta(minutes=1), "Поздно")
    with pytest.raises(ValidationError):
        await client.create_reminder(catalog.user_id, OBJECT_CLIENT, clock.now(), "Сейчас")
    with pytest.raises(ValidationError):
        await client.create_reminder(catalog.user_id, OBJECT_CLIENT, clock.now() + timedelta(hours=1), "   ")
    with pytest.raises(NotFoundError):
        await client.create_reminder(999999, OBJECT_CLIENT, clock.now() + timedelta(hours=1), "Никому")


async def test_delete_reminder_only_by_owner(client, catalog, clock):
    reminder = await client.create_reminder(catalog.user_id, OBJECT_CLIENT, clock.now() + timedelta(hours=1), "Договор")

    with pytest.raises(NotFoundError):
        await client.delete_reminder(reminder.id, catalog.admin_id)

    await client.delete_reminder(reminder.id, catalog.user_id)
    assert await client.list_reminders(catalog.user_id) == []
    with pytest.raises(NotFoundError):
        await client.delete_reminder(reminder.id, catalog.user_id)


async def test_dispatch_sends_due_reminders_once(client, catalog, clock, notifier):
    # --- ARRANGE ---
    due = await client.create_reminder(catalog.user_id, OBJECT_CLIENT, clock.now() + timedelta(minutes=5), "Позвонить <b>клиенту</b>")
    await client.create_reminder(catalog.user_id, OBJECT_CLIENT, clock.now() + timedelta(hours=5), "Позже")

    # --- ACT ---
    clock.advance(timedelta(minutes=10))
    report = await client.dispatch_reminders()

    # --- ASSERT ---
    assert report.total == 1
    assert report.sent == 1
    texts = notifier.texts_for(catalog.user_chat)
    assert len(texts) == 1
    assert "Позвонить &lt;b&gt;клиенту&lt;/b&gt;" in texts[0]

    stored = await client.reminder_repo.get(due.id)
    assert stored.is_sent is True
    assert stored.sent_at == clock.now()

    # Повторный проход ничего не находит
    assert (await client.dispatch_reminders()).total == 0


async def test_concurrent_dispatch_delivers_each_reminder_once(client, catalog, clock, notifier):
    for minutes in (1, 2, 3):
        await client.create_reminder(catalog.user_id, OBJECT_CLIENT, clock.now() + timedelta(minutes=minutes), f"#{minutes}")
    clock.advance(timedelta(minutes=5))

    reports = await asyncio.gather(*(client.dispatch_reminders() for _ in range(4)))

    assert sum(r.sent for r in reports) == 3
    assert len(notifier.sent) == 3


async def test_reminder_for_user_without_telegram_is_consumed(client, catalog, clock, notifier):
    silent = await client.create_user("silent@example.com")
    reminder = await client.create_reminder(silent.id, OBJECT_CLIENT, clock.now() + timedelta(minutes=1), "Тихо")
    clock.advance(timedelta(minutes=2))

    report = await client.dispatch_reminders()

    assert report.skipped == 1
    assert notifier.sent == []
    assert (await client.reminder_repo.get(reminder.id)).is_sent is True


async def test_failed_delivery_is_reported(client, catalog, clock, notifier):
    await client.create_reminder(catalog.user_id, OBJECT_CLIENT, clock.now() + timedelta(minutes=1), "Сбой")
    notifier.failing.add(catalog.user_chat)
    clock.advance(timedelta(minutes=2))

    report = await client.dispatch_reminders()

    assert report.failed == 1
    assert report.errors
    assert (await client.dispatch_reminders()).total == 0
