import json

import httpx
import pytest

from subscription_engine.config import SchedulerConfig, TelegramConfig
from subscription_engine.dispatch.notifier import LoggingNotifier, TelegramNotifier, build_notifier
from subscription_engine.exceptions import NotificationError, RecipientBlockedError
from subscription_engine.scheduler import REMINDER_JOB_ID, SWEEP_JOB_ID, build_scheduler

pytestmark = pytest.mark.asyncio

CONFIG = TelegramConfig(bot_token="123:abc", api_url="https://telegram.test", retry_attempts=3, retry_wait_seconds=0)


def _notifier(handler) -> TelegramNotifier:
    return TelegramNotifier(CONFIG, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


async def test_send_posts_html_message():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"ok": True})

    await _notifier(handler).send(2000, "<b>Привет</b>")

    assert len(requests) == 1
    assert str(requests[0].url) == "https://telegram.test/bot123:abc/sendMessage"
    payload = json.loads(requests[0].content)
    assert payload["chat_id"] == 2000
    assert payload["parse_mode"] == "HTML"


async def test_transport_errors_are_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) < 3:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"ok": True})

    await _notifier(handler).send(2000, "text")
    assert len(calls) == 3


async def test_unreachable_api_raises_after_retries():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(NotificationError):
        await _notifier(handler).send(2000, "text")


async def test_forbidden_means_recipient_blocked():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(403, json={"ok": False, "description": "Forbidden: bot was blocked by the user"})

    with pytest.raises(RecipientBlockedError):
        await _notifier(handler).send(2000, "text")
    # Ответ API не повторяется
    assert len(calls) == 1


async def test_api_error_is_not_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(400, json={"ok": False, "description": "Bad Request: chat not found"})

    with pytest.raises(NotificationError) as exc_info:
        await _notifier(handler).send(2000, "text")
    assert not isinstance(exc_info.value, RecipientBlockedError)
    assert len(calls) == 1


async def test_build_notifier_without_token_only_logs():
    assert isinstance(build_notifier(TelegramConfig(bot_token=None)), LoggingNotifier)
    assert isinstance(build_notifier(TelegramConfig(bot_token="")), LoggingNotifier)
    with pytest.raises(ValueError):
        TelegramNotifier(TelegramConfig(bot_token=None))


async def test_scheduler_registers_both_jobs(client):
    scheduler = build_scheduler(client, SchedulerConfig(sweep_interval_minutes=2, reminder_interval_minutes=5))

    jobs = {job.id: job for job in scheduler.get_jobs()}

    assert set(jobs) == {SWEEP_JOB_ID, REMINDER_JOB_ID}
    assert jobs[SWEEP_JOB_ID].max_instances == 1
    assert jobs[SWEEP_JOB_ID].coalesce is True
