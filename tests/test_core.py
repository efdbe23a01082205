from __future__ import annotations

import base64
import json
from datetime import timedelta
from unittest.mock import AsyncMock

import httpx
import pytest

from core import cache, config, email, llm, pagination, scheduler


def test_env_helpers_fall_back_on_bad_values(monkeypatch) -> None:
    monkeypatch.setenv("SOME_INT", "abc")
    monkeypatch.setenv("SOME_BOOL", "Yes")
    monkeypatch.setenv("SOME_LIST", " a, ,b ")

    assert config.env_int("SOME_INT", 7) == 7
    assert config.env_bool("SOME_BOOL") is True
    assert config.env_list("SOME_LIST") == ["a", "b"]
    assert config.env_list("MISSING_LIST", ["x"]) == ["x"]


@pytest.mark.parametrize(
    ("page", "limit", "offset"),
    [(1, 20, 0), (3, 20, 40), (0, 10, 0)],
)
def test_offset_for(page: int, limit: int, offset: int) -> None:
    assert pagination.offset_for(page, limit) == offset


def test_pagination_block() -> None:
    assert pagination.pagination_block(total=41, page=2, limit=20) == {
        "total": 41,
        "page": 2,
        "limit": 20,
        "total_pages": 3,
    }


def test_cache_key_is_order_independent_for_dicts() -> None:
    assert cache.cache_key("p", {"a": 1, "b": 2}) == cache.cache_key("p", {"b": 2, "a": 1})
    assert cache.cache_key("p", "x") != cache.cache_key("q", "x")


def test_cache_entries_expire(monkeypatch, fresh_cache) -> None:
    clock = [100.0]
    monkeypatch.setattr(cache.time, "monotonic", lambda: clock[0])

    fresh_cache.set("k", "v", ttl_s=10)
    assert fresh_cache.get("k") == "v"
    clock[0] = 111.0
    assert fresh_cache.get("k") is None


def test_full_cache_evicts_entry_closest_to_expiry(monkeypatch, fresh_cache) -> None:
    monkeypatch.setattr(cache.time, "monotonic", lambda: 0.0)
    for index, ttl in enumerate([50, 10, 30, 40]):
        fresh_cache.set(f"k{index}", index, ttl_s=ttl)

    fresh_cache.set("new", "v")

    assert fresh_cache.get("k1") is None
    assert fresh_cache.get("k0") == 0
    assert fresh_cache.get("new") == "v"


async def test_get_or_set_runs_factory_once(fresh_cache) -> None:
    factory = AsyncMock(return_value={"answer": 1})

    first = await fresh_cache.get_or_set("k", factory)
    second = await fresh_cache.get_or_set("k", factory)

    assert first == ({"answer": 1}, False)
    assert second == ({"answer": 1}, True)
    factory.assert_awaited_once()


async def test_chat_messages_builds_ollama_payload() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "model": "qwen2.5:3b-instruct",
                "message": {"role": "assistant", "content": "  {\"ok\": true}  "},
                "prompt_eval_count": 11,
                "eval_count": 7,
            },
        )

    result = await llm.chat_messages(
        messages=[{"role": "user", "content": "hi"}],
        temperature=0.2,
        max_output_tokens=64,
        json_output=True,
        base_url="http://llm.internal:11434/",
        transport=httpx.MockTransport(handler),
    )

    body = json.loads(seen[0].content)
    assert str(seen[0].url) == "http://llm.internal:11434/api/chat"
    assert body["format"] == "json"
    assert body["stream"] is False
    assert body["options"] == {"temperature": 0.2, "num_predict": 64}
    assert result.content == '{"ok": true}'
    assert result.total_tokens == 18


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="model not loaded"),
        httpx.Response(200, json={"message": {"role": "assistant", "content": "   "}}),
    ],
)
async def test_chat_messages_errors(response: httpx.Response) -> None:
    with pytest.raises(llm.LLMError):
        await llm.chat_messages(
            messages=[{"role": "user", "content": "hi"}],
            base_url="http://llm.internal:11434",
            transport=httpx.MockTransport(lambda request: response),
        )


async def test_chat_messages_requires_messages() -> None:
    with pytest.raises(llm.LLMError):
        await llm.chat_messages(messages=[], base_url="http://llm.internal:11434")


def test_email_payload_includes_attachments(monkeypatch) -> None:
    monkeypatch.setenv("EMAIL_FROM", "promo@label.example")
    message = email.OutgoingEmail(
        to_email="dj@radio.example",
        subject="Weekly report",
        html_content="<p>Attached</p>",
        text_content="Attached",
        reply_to="team@label.example",
        attachments=(email.EmailAttachment(filename="report.csv", content=b"a,b\n", mime_type="text/csv"),),
    )

    payload = email.build_payload(message)

    assert payload["from"] == {"email": "promo@label.example", "name": "Music Promo CRM"}
    assert [c["type"] for c in payload["content"]] == ["text/plain", "text/html"]
    assert payload["reply_to"] == {"email": "team@label.example"}
    assert payload["attachments"] == [
        {
            "content": base64.b64encode(b"a,b\n").decode("ascii"),
            "filename": "report.csv",
            "type": "text/csv",
            "disposition": "attachment",
        }
    ]


async def test_send_email_is_skipped_without_api_key(monkeypatch) -> None:
    monkeypatch.delenv("SENDGRID_API_KEY", raising=False)
    handler = AsyncMock()

    sent = await email.send_email(
        email.OutgoingEmail(to_email="dj@radio.example", subject="s", html_content="b"),
        transport=httpx.MockTransport(handler),
    )

    assert sent is False
    handler.assert_not_called()


async def test_send_email_posts_to_provider(monkeypatch) -> None:
    monkeypatch.setenv("SENDGRID_API_KEY", "SG.key")
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(202)

    sent = await email.send_email(
        email.OutgoingEmail(to_email="dj@radio.example", subject="s", html_content="b"),
        transport=httpx.MockTransport(handler),
    )

    assert sent is True
    assert seen[0].url.path == "/v3/mail/send"
    assert seen[0].headers["Authorization"] == "Bearer SG.key"


async def test_send_email_raises_on_rejection(monkeypatch) -> None:
    monkeypatch.setenv("SENDGRID_API_KEY", "SG.key")

    with pytest.raises(email.EmailDeliveryError):
        await email.send_email(
            email.OutgoingEmail(to_email="dj@radio.example", subject="s", html_content="b"),
            transport=httpx.MockTransport(lambda request: httpx.Response(400, text="bad sender")),
        )


async def test_check_credentials() -> None:
    ok = await email.check_credentials("SG.key", transport=httpx.MockTransport(lambda request: httpx.Response(200)))
    rejected = await email.check_credentials("SG.key", transport=httpx.MockTransport(lambda request: httpx.Response(401)))

    assert ok is True
    assert rejected is False


def test_build_scheduler_registers_interval_jobs() -> None:
    async def campaigns_job() -> int:
        return 0

    async def reports_job() -> int:
        return 0

    built = scheduler.build_scheduler({"scheduled_campaigns": campaigns_job, "scheduled_reports": reports_job}, 30.0)
    jobs = {job.id: job for job in built.get_jobs()}

    assert set(jobs) == {"scheduled_campaigns", "scheduled_reports"}
    assert jobs["scheduled_campaigns"].trigger.interval == timedelta(seconds=30)
    assert jobs["scheduled_campaigns"].args == ("scheduled_campaigns", campaigns_job)
    assert jobs["scheduled_reports"].max_instances == 1
    assert built.running is False


async def test_run_job_returns_handled_count() -> None:
    assert await scheduler.run_job("scheduled_reports", AsyncMock(return_value=3)) == 3


async def test_run_job_propagates_failures() -> None:
    with pytest.raises(RuntimeError):
        await scheduler.run_job("scheduled_reports", AsyncMock(side_effect=RuntimeError("db unavailable")))


def test_scheduler_interval_has_floor(monkeypatch) -> None:
    monkeypatch.setenv("SCHEDULER_INTERVAL_S", "0.01")
    monkeypatch.setenv("SCHEDULER_ENABLED", "false")

    assert scheduler.scheduler_interval_s() == 1.0
    assert scheduler.scheduler_enabled() is False


def test_health(anonymous_client) -> None:
    assert anonymous_client.get("/health").json() == {"status": "ok"}
