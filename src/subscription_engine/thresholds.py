# Файл: subscription_engine/thresholds.py
"""
Таблица порогов уведомлений об окончании подписки.

Длинные тарифы предупреждаются за 3 дня и за 1 день, короткие и demo - за час
и за 15 минут. Класс тарифа определяется один раз здесь, диспетчер и ledger
работают только с таблицей.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Mapping, Optional, Sequence


class TariffClass(str, enum.Enum):
    long = "long"
    short = "short"


@dataclass(frozen=True)
class Threshold:
    key: str
    delta: timedelta
    watermark: str

    def is_crossed(self, end_at: datetime, now: datetime) -> bool:
        return now >= end_at - self.delta


THRESHOLD_3D = Threshold("3d", timedelta(days=3), "notified_3d")
THRESHOLD_1D = Threshold("1d", timedelta(days=1), "notified_1d")
THRESHOLD_1H = Threshold("1h", timedelta(hours=1), "notified_1h")
THRESHOLD_15M = Threshold("15m", timedelta(minutes=15), "notified_15m")

# По убыванию горизонта внутри каждого класса
THRESHOLD_TABLE: Mapping[TariffClass, Sequence[Threshold]] = {
    TariffClass.long: (THRESHOLD_3D, THRESHOLD_1D),
    TariffClass.short: (THRESHOLD_1H, THRESHOLD_15M),
}

ALL_THRESHOLDS: Sequence[Threshold] = (THRESHOLD_3D, THRESHOLD_1D, THRESHOLD_1H, THRESHOLD_15M)
EXPIRED_WATERMARK = "notified_expired"

MAX_HORIZON: timedelta = max(t.delta for t in ALL_THRESHOLDS)


def classify_tariff(code: str, duration_hours: int, *, demo_code: str = "demo", short_max_hours: int = 72) -> TariffClass:
    if code == demo_code or duration_hours <= short_max_hours:
        return TariffClass.short
    return TariffClass.long


def thresholds_for(tariff_class: TariffClass) -> Sequence[Threshold]:
    return THRESHOLD_TABLE[tariff_class]


def due_thresholds(
    end_at: datetime,
    now: datetime,
    tariff_class: TariffClass,
    watermarks: Mapping[str, Optional[datetime]],
) -> list[Threshold]:
    """Пороги класса, которые уже пересечены и ещё не отмечены. Истёкшие подписки сюда не попадают."""
    if end_at <= now:
        return []
    return [
        t for t in thresholds_for(tariff_class)
        if t.is_crossed(end_at, now) and watermarks.get(t.watermark) is None
    ]


def watermarks_to_reset(new_end_at: datetime, now: datetime) -> list[str]:
    """
    После продления сбрасываются только те отметки, чей порог при новом end_at
    ещё впереди; уже пересечённые остаются, чтобы не слать повтор.
    """
    reset = [t.watermark for t in ALL_THRESHOLDS if now < new_end_at - t.delta]
    if new_end_at > now:
        reset.append(EXPIRED_WATERMARK)
    return reset
