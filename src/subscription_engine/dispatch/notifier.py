# Файл: subscription_engine/dispatch/notifier.py
from __future__ import annotations

import logging
from typing import Optional, Protocol

import httpx
from tenacity import AsyncRetrying, before_sleep_log, retry_if_exception_type, stop_after_attempt, wait_fixed

from subscription_engine.config import TelegramConfig
from subscription_engine.exceptions import NotificationError, RecipientBlockedError

logger = logging.getLogger(__name__)


class NotificationChannel(Protocol):
    """Куда уходят уведомления. Ошибка доставки - NotificationError."""

    async def send(self, chat_id: int, text: str) -> None: ...


class TelegramNotifier:
    """
    Отправка через Telegram Bot API (sendMessage, parse_mode=HTML).

    Повторяются только сетевые ошибки; ответ API с ошибкой не повторяется.
    403 означает, что пользователь заблокировал бота.
    """

    def __init__(self, config: TelegramConfig, client: Optional[httpx.AsyncClient] = None):
        if not config.bot_token:
            raise ValueError("Telegram bot token is not configured.")
        self._config = config
        self._url = f"{config.api_url.rstrip('/')}/bot{config.bot_token}/sendMessage"
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._config.request_timeout)
        return self._client

    async def send(self, chat_id: int, text: str) -> None:
        client = await self._get_client()
        payload = {"chat_id": chat_id, "text": text, "parse_mode": "HTML", "disable_web_page_preview": True}
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._config.retry_attempts),
                wait=wait_fixed(self._config.retry_wait_seconds),
                retry=retry_if_exception_type(httpx.TransportError),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True,
            ):
                with attempt:
                    response = await client.post(self._url, json=payload)
        except httpx.TransportError as e:
            raise NotificationError(f"Telegram is unreachable: {e}") from e

        if response.status_code == 403:
            raise RecipientBlockedError(f"Chat {chat_id} blocked the bot.")
        if response.is_error:
            raise NotificationError(f"Telegram API error {response.status_code}: {response.text}")

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


class LoggingNotifier:
    """Канал без внешней отправки: когда токен бота не задан."""

    async def send(self, chat_id: int, text: str) -> None:
        logger.info(f"Notification for chat {chat_id}", extra={"chat_id": chat_id, "text": text})


def build_notifier(config: TelegramConfig) -> NotificationChannel:
    if config.bot_token:
        return TelegramNotifier(config)
    logger.warning("Telegram bot token is not set, notifications will only be logged")
    return LoggingNotifier()
