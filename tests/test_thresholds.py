from datetime import datetime, timedelta, timezone

from subscription_engine.dispatch.messages import format_remaining
from subscription_engine.thresholds import (
    TariffClass, THRESHOLD_1D, THRESHOLD_1H, THRESHOLD_3D, THRESHOLD_15M,
    classify_tariff, due_thresholds, watermarks_to_reset,
)

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)
EMPTY = {"notified_3d": None, "notified_1d": None, "notified_1h": None, "notified_15m": None}


def test_classify_tariff():
    assert classify_tariff("demo", 3) is TariffClass.short
    assert classify_tariff("day1", 24) is TariffClass.short
    assert classify_tariff("day3", 72) is TariffClass.short
    assert classify_tariff("day7", 168) is TariffClass.long
    assert classify_tariff("premium_31", 744) is TariffClass.long
    # demo короткий при любой длительности
    assert classify_tariff("trial", 500, demo_code="trial") is TariffClass.short
    assert classify_tariff("day3", 72, short_max_hours=48) is TariffClass.long


def test_long_tariff_thresholds():
    # --- 4 дня до конца: ничего ---
    assert due_thresholds(NOW + timedelta(days=4), NOW, TariffClass.long, EMPTY) == []
    # --- ровно 3 дня: порог пересечён ---
    assert due_thresholds(NOW + timedelta(days=3), NOW, TariffClass.long, EMPTY) == [THRESHOLD_3D]
    # --- 20 часов, 3d уже отмечен: только 1d ---
    marked = dict(EMPTY, notified_3d=NOW - timedelta(days=2))
    assert due_thresholds(NOW + timedelta(hours=20), NOW, TariffClass.long, marked) == [THRESHOLD_1D]
    # короткие пороги длинному тарифу не положены
    assert THRESHOLD_1H not in due_thresholds(NOW + timedelta(minutes=30), NOW, TariffClass.long, EMPTY)


def test_short_tariff_thresholds():
    end_at = NOW + timedelta(minutes=10)
    assert due_thresholds(end_at, NOW, TariffClass.short, EMPTY) == [THRESHOLD_1H, THRESHOLD_15M]
    assert due_thresholds(NOW + timedelta(hours=2), NOW, TariffClass.short, EMPTY) == []


def test_due_thresholds_skip_finished_subscription():
    assert due_thresholds(NOW, NOW, TariffClass.short, EMPTY) == []
    assert due_thresholds(NOW - timedelta(minutes=1), NOW, TariffClass.long, EMPTY) == []


def test_watermarks_to_reset():
    # Новый конец через 2 дня: 3d уже пересечён и остаётся, 1d/1h/15m и expired сбрасываются
    reset = watermarks_to_reset(NOW + timedelta(days=2), NOW)
    assert "notified_3d" not in reset
    assert set(reset) == {"notified_1d", "notified_1h", "notified_15m", "notified_expired"}

    # Далёкий конец: сбрасывается всё
    assert set(watermarks_to_reset(NOW + timedelta(days=31), NOW)) == {
        "notified_3d", "notified_1d", "notified_1h", "notified_15m", "notified_expired",
    }


def test_format_remaining():
    assert format_remaining(2 * 86400 + 3 * 3600) == "2 дня 3 часа"
    assert format_remaining(45 * 60) == "45 минут"
    assert format_remaining(21 * 60) == "21 минута"
    assert format_remaining(86400 + 60) == "1 день 1 минута"
    assert format_remaining(5) == "меньше минуты"
