from __future__ import annotations

import json
from unittest.mock import AsyncMock

import httpx
import pytest
from fastapi import BackgroundTasks, HTTPException

from automation import actions, repository, schemas, service
from contacts import repository as contacts_repository
from core import email
from email_templates import repository as templates_repository


@pytest.fixture()
def events(monkeypatch) -> AsyncMock:
    insert = AsyncMock(return_value=None)
    monkeypatch.setattr(repository, "insert_event", insert)
    return insert


def _rule(**overrides) -> dict:
    row = {
        "id": 5,
        "user_id": 1,
        "name": "Welcome new press contacts",
        "trigger_type": "MANUAL",
        "trigger_config": {},
        "actions": [],
        "is_active": True,
    }
    row.update(overrides)
    return row


def _event_types(events: AsyncMock) -> list[str]:
    return [call.args[1] for call in events.await_args_list]


@pytest.mark.parametrize(
    "action",
    [
        {"type": "SEND_EMAIL", "config": {}},
        {"type": "UPDATE_CONTACT", "config": {"fields": "status=active"}},
        {"type": "DELAY", "config": {"delay_seconds": -1}},
        {"type": "CALL_WEBHOOK", "config": {"webhook_url": "hooks.example.com"}},
    ],
)
def test_invalid_action_config_is_rejected(action: dict) -> None:
    with pytest.raises(ValueError):
        schemas.AutomationAction.model_validate(action)


async def test_actions_run_in_order_and_failures_do_not_stop_the_rule(monkeypatch, events) -> None:
    rule = _rule(
        actions=[
            {"type": "DELAY", "config": {"delay_seconds": 0}, "order": 2},
            {"type": "ADD_TAG", "config": {"tag": "radio"}, "order": 0},
            {"type": "CALL_WEBHOOK", "config": {"webhook_url": "https://x"}, "order": 1},
        ]
    )
    monkeypatch.setattr(repository, "get_rule", AsyncMock(return_value=rule))
    ran: list[str] = []

    async def fake_execute(owner_id: int, action: dict, context: dict) -> dict:
        ran.append(action["type"])
        if action["type"] == "CALL_WEBHOOK":
            raise actions.ActionError("Webhook request failed with status 500.")
        return {"owner": owner_id}

    monkeypatch.setattr(actions, "execute", fake_execute)

    result = await service.execute_rule(5, {"contact_id": 9})

    assert result == "completed"
    assert ran == ["ADD_TAG", "CALL_WEBHOOK", "DELAY"]
    assert _event_types(events) == [
        service.RULE_TRIGGERED,
        service.ACTION_EXECUTED,
        service.ACTION_FAILED,
        service.ACTION_EXECUTED,
        service.RULE_COMPLETED,
    ]
    assert events.await_args_list[-1].args[2] == {"failed_actions": 1}
    assert not service.is_running(5)


async def test_inactive_rule_is_skipped(monkeypatch, events) -> None:
    monkeypatch.setattr(repository, "get_rule", AsyncMock(return_value=_rule(is_active=False)))

    assert await service.execute_rule(5) == "skipped"
    events.assert_not_awaited()


async def test_rule_crash_is_recorded_as_failure(monkeypatch, events) -> None:
    monkeypatch.setattr(repository, "get_rule", AsyncMock(side_effect=RuntimeError("pool closed")))

    assert await service.execute_rule(5) == "failed"
    assert _event_types(events) == [service.RULE_FAILED]
    assert not service.is_running(5)


async def test_trigger_queues_background_run(monkeypatch, user: dict) -> None:
    monkeypatch.setattr(repository, "get_rule", AsyncMock(return_value=_rule()))
    background = BackgroundTasks()

    result = await service.trigger_rule(user, 5, schemas.TriggerRequest(data={"contact_id": 9}), background)

    assert result == {"rule_id": 5, "status": "triggered"}
    assert background.tasks[0].func is service.execute_rule
    assert background.tasks[0].args == (5, {"contact_id": 9})


async def test_trigger_rejects_inactive_rule(monkeypatch, user: dict) -> None:
    monkeypatch.setattr(repository, "get_rule", AsyncMock(return_value=_rule(is_active=False)))

    with pytest.raises(HTTPException) as exc_info:
        await service.trigger_rule(user, 5, schemas.TriggerRequest(), BackgroundTasks())
    assert exc_info.value.status_code == 400


async def test_running_rule_cannot_be_triggered_or_deleted(monkeypatch, user: dict) -> None:
    monkeypatch.setattr(repository, "get_rule", AsyncMock(return_value=_rule()))
    delete = AsyncMock(return_value=True)
    monkeypatch.setattr(repository, "delete_rule", delete)
    monkeypatch.setattr(service, "_running_rules", {5})

    with pytest.raises(HTTPException) as exc_info:
        await service.trigger_rule(user, 5, schemas.TriggerRequest(), BackgroundTasks())
    assert exc_info.value.status_code == 409

    with pytest.raises(HTTPException) as exc_info:
        await service.delete_rule(user, 5)
    assert exc_info.value.status_code == 409
    delete.assert_not_awaited()

    assert await service.execute_rule(5) == "skipped"


def test_create_rule_endpoint(client, monkeypatch, events) -> None:
    insert = AsyncMock(side_effect=lambda **kwargs: {**_rule(), **kwargs["values"]})
    monkeypatch.setattr(repository, "insert_rule", insert)

    response = client.post(
        "/automation/rules",
        json={
            "name": " Tag radio ",
            "trigger_type": "MANUAL",
            "actions": [{"type": "ADD_TAG", "config": {"tag": "Radio"}}],
        },
    )

    assert response.status_code == 201
    values = insert.await_args.kwargs["values"]
    assert values["name"] == "Tag radio"
    assert values["actions"] == [{"type": "ADD_TAG", "config": {"tag": "Radio"}, "order": 0}]


async def test_add_tag_normalizes_tag(monkeypatch) -> None:
    add = AsyncMock(return_value={"id": 9})
    monkeypatch.setattr(contacts_repository, "add_tag", add)

    result = await actions.add_tag(1, {"tag": " Radio "}, {"contact_id": "9"})

    assert result == {"contact_id": 9, "tag": "radio"}
    add.assert_awaited_once_with(9, user_id=1, tag="radio")


async def test_contact_actions_need_contact_id() -> None:
    with pytest.raises(actions.ActionError):
        await actions.add_tag(1, {"tag": "radio"}, {})


async def test_send_email_renders_template_for_trigger_data(monkeypatch) -> None:
    template = {"id": 2, "subject": "Hi {{first_name}}", "body": "<p>{{first_name}} {{release}}</p>"}
    monkeypatch.setattr(templates_repository, "get_template", AsyncMock(return_value=template))
    send = AsyncMock(return_value=True)
    monkeypatch.setattr(email, "send_email", send)

    result = await actions.send_email(1, {"template_id": 2}, {"email": "dj@radio.example", "first_name": "<Ana>"})

    message = send.await_args.args[0]
    assert message.to_email == "dj@radio.example"
    assert message.subject == "Hi <Ana>"
    assert "&lt;Ana&gt;" in message.html_content
    assert result["missing_variables"] == ["release"]


async def test_send_email_fails_when_disabled(monkeypatch) -> None:
    monkeypatch.setattr(templates_repository, "get_template", AsyncMock(return_value={"id": 2, "subject": "s", "body": "b"}))
    monkeypatch.setattr(email, "send_email", AsyncMock(return_value=False))

    with pytest.raises(actions.ActionError):
        await actions.send_email(1, {"template_id": 2}, {"email": "dj@radio.example"})


async def test_call_webhook_posts_context() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    result = await actions.call_webhook(
        1,
        {"webhook_url": "https://hooks.example.com/a", "webhook_payload": {"source": "crm"}},
        {"contact_id": 9},
        transport=httpx.MockTransport(handler),
    )

    body = json.loads(seen[0].content)
    assert result == {"status": 200}
    assert body["source"] == "crm"
    assert body["context"] == {"contact_id": 9}


async def test_call_webhook_raises_on_error_status() -> None:
    with pytest.raises(actions.ActionError):
        await actions.call_webhook(
            1,
            {"webhook_url": "https://hooks.example.com/a"},
            {},
            transport=httpx.MockTransport(lambda request: httpx.Response(503)),
        )


async def test_delay_is_capped(monkeypatch) -> None:
    slept: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        slept.append(seconds)

    monkeypatch.setenv("AUTOMATION_MAX_DELAY_S", "2")
    monkeypatch.setattr(actions.asyncio, "sleep", fake_sleep)

    assert await actions.delay(1, {"delay_seconds": 3600}, {}) == {"delayed_s": 2.0}
    assert slept == [2.0]


async def test_unknown_action_type() -> None:
    with pytest.raises(actions.ActionError):
        await actions.execute(1, {"type": "SEND_SMS", "config": {}}, {})
