import asyncio
from datetime import timedelta

import pytest

from subscription_engine.client import SubscriptionClient

# Помечаем все тесты в этом файле для работы с asyncio
pytestmark = pytest.mark.asyncio


async def _activate(client: SubscriptionClient, catalog, code: str, category_id=None, user_id=None):
    sub = await client.request_subscription(
        user_id or catalog.user_id, catalog.tariffs[code], category_id or catalog.category_id, catalog.location_id
    )
    return await client.activate_subscription(sub.id, catalog.admin_id, "card")


async def test_long_tariff_gets_one_notice_per_threshold(client, catalog, clock, notifier):
    # --- ARRANGE ---
    sub = await _activate(client, catalog, "day7")
    notifier.clear()

    # --- 3 дня до конца ---
    clock.set(sub.end_at - timedelta(days=3) + timedelta(minutes=1))
    report = await client.sweep()
    assert report.sent == 1
    assert "истекает" in notifier.sent[-1][1]
    assert (await client.sweep()).sent == 0

    # --- меньше суток ---
    clock.set(sub.end_at - timedelta(hours=23))
    assert (await client.sweep()).sent == 1
    assert (await client.sweep()).sent == 0

    # --- срок вышел ---
    clock.set(sub.end_at + timedelta(seconds=1))
    report = await client.sweep()
    assert report.expired == 1
    assert report.sent == 1
    assert "Подписка закончилась" in notifier.sent[-1][1]
    assert (await client.sweep()).sent == 0

    # --- ASSERT ---
    assert len(notifier.texts_for(catalog.user_chat)) == 3
    expired = await client.get_subscription(sub.id)
    assert expired.status == "expired"
    assert expired.notified_3d is not None and expired.notified_1d is not None and expired.notified_expired is not None
    assert expired.notified_1h is None
    history = await client.get_subscription_history(sub.id)
    assert history[-1].action == "expired"
    assert await client.has_access(catalog.user_id, catalog.category_id, catalog.location_id) is False


async def test_short_tariff_uses_hour_thresholds(client, catalog, clock, notifier):
    demo = await _activate(client, catalog, "demo")
    notifier.clear()

    clock.set(demo.end_at - timedelta(minutes=55))
    assert (await client.sweep()).sent == 1

    clock.set(demo.end_at - timedelta(minutes=10))
    assert (await client.sweep()).sent == 1
    assert (await client.sweep()).sent == 0

    updated = await client.get_subscription(demo.id)
    assert updated.notified_1h is not None
    assert updated.notified_15m is not None
    assert updated.notified_3d is None and updated.notified_1d is None


async def test_missed_sweeps_send_each_crossed_threshold_once(client, catalog, clock, notifier):
    sub = await _activate(client, catalog, "day1")
    notifier.clear()

    # Проходы не запускались до последних 10 минут: оба порога пересечены сразу
    clock.set(sub.end_at - timedelta(minutes=10))
    assert (await client.sweep()).sent == 2
    assert (await client.sweep()).sent == 0


async def test_extension_rearms_thresholds_that_lie_ahead(client, catalog, clock, notifier):
    # --- ARRANGE: предупреждение за 3 дня уже ушло ---
    sub = await _activate(client, catalog, "day7")
    clock.set(sub.end_at - timedelta(days=2))
    await client.sweep()
    notifier.clear()

    # --- ACT ---
    extended = await client.extend_subscription(sub.id, catalog.admin_id, payment_method="card")
    assert extended.notified_3d is None
    notifier.clear()

    # --- ASSERT ---
    assert (await client.sweep()).sent == 0
    clock.set(extended.end_at - timedelta(days=3) + timedelta(minutes=1))
    assert (await client.sweep()).sent == 1


async def test_extension_keeps_threshold_already_crossed(client, catalog, clock):
    sub = await _activate(client, catalog, "day7")
    clock.set(sub.end_at - timedelta(days=2))
    await client.sweep()

    # +12 часов: порог 3d при новом end_at всё ещё позади
    extended = await client.extend_subscription(sub.id, catalog.admin_id, duration_hours=12)

    assert extended.notified_3d is not None
    assert extended.notified_1d is None


async def test_concurrent_sweeps_deliver_each_notice_once(client, catalog, clock, notifier):
    # --- ARRANGE ---
    subs = [await _activate(client, catalog, "day1", category_id=cid) for cid in catalog.category_ids]
    notifier.clear()
    clock.set(subs[0].end_at - timedelta(minutes=50))

    # --- ACT ---
    reports = await asyncio.gather(client.sweep(), client.sweep(), client.sweep())

    # --- ASSERT ---
    assert sum(r.sent for r in reports) == len(subs)
    assert len(notifier.sent) == len(subs)


async def test_unreachable_users_are_skipped_without_retry(client, catalog, clock, notifier):
    # --- ARRANGE: пользователь без Telegram ---
    silent = await client.create_user("silent@example.com")
    sub = await _activate(client, catalog, "day1", user_id=silent.id)
    notifier.clear()

    # --- ACT ---
    clock.set(sub.end_at - timedelta(minutes=50))
    report = await client.sweep()

    # --- ASSERT: порог "израсходован", повторной попытки нет ---
    assert report.sent == 0
    assert report.skipped == 1
    assert (await client.sweep()).skipped == 0
    assert (await client.get_subscription(sub.id)).notified_1h is not None


async def test_user_who_blocked_bot_is_flagged(client, catalog, clock, notifier):
    sub = await _activate(client, catalog, "day1")
    notifier.blocked.add(catalog.user_chat)

    clock.set(sub.end_at - timedelta(minutes=50))
    report = await client.sweep()

    assert report.failed == 1
    assert (await client.get_user(catalog.user_id)).telegram_bot_blocked

    # Дальше уведомления этому пользователю не отправляются
    clock.set(sub.end_at - timedelta(minutes=10))
    assert (await client.sweep()).skipped == 1


async def test_delivery_failure_does_not_release_the_claim(client, catalog, clock, notifier):
    sub = await _activate(client, catalog, "day1")
    notifier.failing.add(catalog.user_chat)

    clock.set(sub.end_at - timedelta(minutes=50))
    assert (await client.sweep()).failed == 1

    notifier.failing.clear()
    assert (await client.sweep()).sent == 0
    assert (await client.get_subscription(sub.id)).notified_1h is not None


async def test_expired_notice_backlog(client, catalog, clock, notifier):
    # --- ARRANGE: две подписки истекли без уведомления (процесс упал между шагами) ---
    old = await _activate(client, catalog, "day1", category_id=catalog.category_ids[0])
    clock.advance(timedelta(hours=30))
    recent = await _activate(client, catalog, "day1", category_id=catalog.category_ids[1])
    clock.set(recent.end_at + timedelta(hours=2))
    now = clock.now()
    assert await client.subscription_repo.expire(old.id, now)
    assert await client.subscription_repo.expire(recent.id, now)
    notifier.clear()

    # --- ACT ---
    report = await client.sweep()

    # --- ASSERT: досылается только то, что истекло в пределах окна ---
    assert report.expired == 0
    assert report.sent == 1
    assert (await client.get_subscription(recent.id)).notified_expired is not None
    assert (await client.get_subscription(old.id)).notified_expired is None


async def test_sweep_never_raises(client, catalog, clock, monkeypatch):
    sub = await _activate(client, catalog, "day1")

    async def broken(now):
        raise RuntimeError("connection reset")

    monkeypatch.setattr(client.subscription_repo, "find_due_for_expiry", broken)
    clock.set(sub.end_at - timedelta(minutes=50))

    report = await client.sweep()

    assert report.failed == 1
    assert "connection reset" in report.errors[0]
    # Остальные шаги прохода выполнены
    assert report.sent == 1


async def test_expire_is_conditional(client, catalog, clock):
    sub = await _activate(client, catalog, "day1")

    # Срок ещё не вышел
    assert await client.subscription_repo.expire(sub.id, clock.now()) is False

    clock.set(sub.end_at)
    assert await client.subscription_repo.expire(sub.id, clock.now()) is True
    assert await client.subscription_repo.expire(sub.id, clock.now()) is False
