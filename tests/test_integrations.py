from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock

import httpx
import pytest
from fastapi import HTTPException

from core import crypto, email
from integrations import credentials, repository, service, webhooks
from integrations.schemas import IntegrationCreateRequest, IntegrationUpdateRequest, WebhookRequest


@pytest.fixture(autouse=True)
def encryption_key(monkeypatch):
    monkeypatch.setenv("INTEGRATION_ENCRYPTION_KEY", crypto.generate_key())
    crypto.reset_cipher()
    yield
    crypto.reset_cipher()


@pytest.fixture()
def events(monkeypatch) -> AsyncMock:
    insert = AsyncMock(return_value=None)
    monkeypatch.setattr(repository, "insert_event", insert)
    return insert


def _integration(config: dict | None = None, **overrides) -> dict:
    row = {
        "id": 3,
        "user_id": 1,
        "name": "Label webhook",
        "type": "OTHER",
        "config": config if config is not None else {"webhook_url": "https://hooks.example.com/in"},
        "is_active": True,
    }
    row.update(overrides)
    return row


def test_secrets_are_encrypted_and_hidden() -> None:
    stored = credentials.encrypt_config({"api_key": "sk-123", "region": "eu", "api_secret": ""})

    assert "api_key" not in stored
    assert stored["region"] == "eu"
    assert "api_secret_encrypted" not in stored
    assert credentials.decrypt_config(stored) == {"region": "eu", "api_key": "sk-123"}
    assert credentials.public_config(stored) == {"region": "eu", "api_key_set": True, "api_secret_set": False}


def test_merge_config_keeps_unmentioned_secrets() -> None:
    stored = credentials.encrypt_config({"api_key": "old", "api_secret": "s", "region": "eu"})

    merged = credentials.merge_config(stored, {"api_key": "new", "region": None, "team": "a"})

    config = credentials.decrypt_config(merged)
    assert config == {"team": "a", "api_key": "new", "api_secret": "s"}


def test_decrypt_with_wrong_key_raises_secrets_error(monkeypatch) -> None:
    stored = credentials.encrypt_config({"api_key": "sk"})
    monkeypatch.setenv("INTEGRATION_ENCRYPTION_KEY", crypto.generate_key())
    crypto.reset_cipher()

    with pytest.raises(crypto.SecretsError):
        credentials.decrypt_config(stored)


def test_webhook_url_must_be_http() -> None:
    with pytest.raises(ValueError):
        IntegrationCreateRequest(name="x", type="OTHER", config={"webhook_url": "ftp://example.com"})
    assert IntegrationUpdateRequest(config=None).config is None


def test_retry_delay_doubles_and_caps() -> None:
    assert [webhooks.retry_delay_s(a) for a in (1, 2, 3, 10)] == [600.0, 1200.0, 2400.0, 3600.0]


async def test_create_encrypts_before_storing(monkeypatch, events, user: dict) -> None:
    insert = AsyncMock(side_effect=lambda **kwargs: _integration(kwargs["config"], type=kwargs["type"]))
    monkeypatch.setattr(repository, "insert_integration", insert)

    result = await service.create_integration(
        user, IntegrationCreateRequest(name=" Mailer ", type="EMAIL_PROVIDER", config={"api_key": "sk"})
    )

    assert insert.await_args.kwargs["name"] == "Mailer"
    assert "api_key_encrypted" in insert.await_args.kwargs["config"]
    assert result["config"] == {"api_key_set": True, "api_secret_set": False}
    assert events.await_args.args[1] == service.INTEGRATION_CREATED


async def test_connectivity_reports_missing_keys(monkeypatch, events, user: dict) -> None:
    monkeypatch.setattr(repository, "get_integration", AsyncMock(return_value=_integration({}, type="PAYMENT_GATEWAY")))

    result = await service.check_integration(user, 3)

    assert result.success is False
    assert result.message == "Missing config keys: api_key, api_secret"


async def test_email_provider_connectivity_uses_provider(monkeypatch, events, user: dict) -> None:
    stored = credentials.encrypt_config({"api_key": "sk"})
    monkeypatch.setattr(repository, "get_integration", AsyncMock(return_value=_integration(stored, type="EMAIL_PROVIDER")))
    check = AsyncMock(return_value=False)
    monkeypatch.setattr(email, "check_credentials", check)

    result = await service.check_integration(user, 3)

    check.assert_awaited_once_with("sk")
    assert result.success is False
    assert events.await_args.args[1] == service.INTEGRATION_TESTED


async def test_queue_webhook_requires_active_integration_with_url(monkeypatch, events, user: dict) -> None:
    monkeypatch.setattr(repository, "get_integration", AsyncMock(return_value=_integration(is_active=False)))
    with pytest.raises(HTTPException) as exc_info:
        await service.queue_webhook(user, 3, WebhookRequest(event_type="release.published"))
    assert exc_info.value.status_code == 400

    monkeypatch.setattr(repository, "get_integration", AsyncMock(return_value=_integration({})))
    with pytest.raises(HTTPException) as exc_info:
        await service.queue_webhook(user, 3, WebhookRequest(event_type="release.published"))
    assert exc_info.value.status_code == 400


def test_webhook_endpoint_queues_job(client, monkeypatch, events) -> None:
    monkeypatch.setattr(repository, "get_integration", AsyncMock(return_value=_integration()))
    queue = webhooks.WebhookQueue()
    monkeypatch.setattr(service, "webhook_queue", queue)

    response = client.post("/integrations/3/webhook", json={"event_type": "release.published", "payload": {"id": 1}})

    assert response.status_code == 202
    assert response.json()["status"] == "queued"
    assert queue.size() == 1


async def test_process_posts_event_and_records_delivery(monkeypatch, events) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(204)

    monkeypatch.setattr(repository, "get_integration", AsyncMock(return_value=_integration()))
    queue = webhooks.WebhookQueue(transport=httpx.MockTransport(handler))
    job = webhooks.WebhookJob(integration_id=3, event_type="release.published", payload={"track": "Midnight"})

    assert await queue.process(job) is True

    body = json.loads(seen[0].content)
    assert str(seen[0].url) == "https://hooks.example.com/in"
    assert seen[0].headers["X-Webhook-Event"] == "release.published"
    assert body["event"] == "release.published"
    assert body["data"] == {"track": "Midnight"}
    assert "timestamp" in body
    assert events.await_args.args[1] == webhooks.WEBHOOK_DELIVERED


async def test_failed_webhook_retries_then_gives_up(monkeypatch, events) -> None:
    attempts: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        return httpx.Response(500)

    monkeypatch.setattr(repository, "get_integration", AsyncMock(return_value=_integration()))
    queue = webhooks.WebhookQueue(retry_delay=lambda _: 0, transport=httpx.MockTransport(handler))
    await queue.start()
    try:
        queue.enqueue(3, "release.published", {})
        for _ in range(200):
            if events.await_count:
                break
            await asyncio.sleep(0.01)
    finally:
        await queue.stop()

    assert len(attempts) == webhooks.MAX_ATTEMPTS
    event_type, metadata = events.await_args.args[1], events.await_args.args[2]
    assert event_type == webhooks.WEBHOOK_FAILED
    assert metadata["attempts"] == webhooks.MAX_ATTEMPTS
    assert "500" in metadata["error"]


async def test_inactive_integration_fails_without_request(monkeypatch, events) -> None:
    handler = AsyncMock()
    monkeypatch.setattr(repository, "get_integration", AsyncMock(return_value=_integration(is_active=False)))
    queue = webhooks.WebhookQueue(retry_delay=lambda _: 3600, transport=httpx.MockTransport(handler))
    job = webhooks.WebhookJob(integration_id=3, event_type="x", payload={})

    assert await queue.process(job) is False
    assert job.last_error == "Integration is inactive."
    handler.assert_not_called()
    await queue.stop()
