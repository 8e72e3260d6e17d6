# Файл: subscription_engine/dispatch/messages.py
"""Тексты уведомлений. Разметка - HTML-режим Telegram Bot API."""
from __future__ import annotations

from datetime import datetime
from html import escape

from subscription_engine.db import SubscriptionORM, ReminderORM

DATE_FORMAT = "%d.%m.%Y %H:%M"


def _plural(n: int, one: str, few: str, many: str) -> str:
    if n % 10 == 1 and n % 100 != 11:
        return one
    if 2 <= n % 10 <= 4 and not 12 <= n % 100 <= 14:
        return few
    return many


def format_remaining(seconds: int) -> str:
    """'2 дня 3 часа', '45 минут'. Не больше двух старших единиц."""
    seconds = max(0, int(seconds))
    days, rest = divmod(seconds, 86400)
    hours, rest = divmod(rest, 3600)
    minutes = rest // 60
    parts = []
    if days:
        parts.append(f"{days} {_plural(days, 'день', 'дня', 'дней')}")
    if hours:
        parts.append(f"{hours} {_plural(hours, 'час', 'часа', 'часов')}")
    if minutes and len(parts) < 2:
        parts.append(f"{minutes} {_plural(minutes, 'минута', 'минуты', 'минут')}")
    return " ".join(parts[:2]) or "меньше минуты"


def _scope(sub: SubscriptionORM) -> str:
    return (
        f"Ваша подписка <b>{escape(sub.tariff.name)}</b> на категорию <b>{escape(sub.category.name)}</b> "
        f"для локации <b>{escape(sub.location.full_name)}</b>"
    )


def subscription_expiring(sub: SubscriptionORM, now: datetime) -> str:
    end = sub.end_at.strftime(DATE_FORMAT)
    left = format_remaining(int((sub.end_at - now).total_seconds()))
    return (
        "⚠️ <b>Срок действия подписки истекает!</b>\n\n"
        f"{_scope(sub)} истекает <b>{end}</b> (осталось {left}).\n\n"
        "Чтобы сохранить доступ, продлите подписку в личном кабинете."
    )


def subscription_expired(sub: SubscriptionORM) -> str:
    return (
        "🔒 <b>Подписка закончилась</b>\n\n"
        f"{_scope(sub)} закончилась.\n\n"
        "Для возобновления доступа продлите подписку в личном кабинете или свяжитесь со службой поддержки."
    )


def subscription_activated(sub: SubscriptionORM) -> str:
    title = "🎯 <b>Демо-подписка активирована!</b>" if sub.is_demo else "🚀 <b>Подписка успешно активирована!</b>"
    return (
        f"{title}\n\n"
        f"{_scope(sub)} активирована.\n\n"
        f"⏱ Доступ открыт до: <b>{sub.end_at.strftime(DATE_FORMAT)}</b>"
    )


def subscription_extended(sub: SubscriptionORM) -> str:
    return (
        "🔄 <b>Подписка успешно продлена!</b>\n\n"
        f"{_scope(sub)} продлена.\n\n"
        f"⏱ Доступ продлён до: <b>{sub.end_at.strftime(DATE_FORMAT)}</b>"
    )


def subscription_cancelled(sub: SubscriptionORM, reason: str | None) -> str:
    text = f"❌ <b>Подписка отменена</b>\n\n{_scope(sub)} была отменена."
    if reason:
        text += f"\n\nПричина: <i>{escape(reason)}</i>"
    return text


def reminder(item: ReminderORM) -> str:
    return f"🔔 <b>Напоминание</b>\n\n{escape(item.message)}"
