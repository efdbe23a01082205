from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi import HTTPException

from campaigns import repository, schemas, service
from core import email
from notifications import service as notifications_service

TEMPLATE = {"subject": "New single for {{first_name}}", "body": "<p>Hey {{first_name}} & friends</p>", "variables": []}


def _campaign(status: str = "draft", **overrides) -> dict:
    row = {
        "id": 7,
        "user_id": 1,
        "name": "Summer single",
        "subject": "Hello {{first_name}}",
        "from_email": "promo@example.com",
        "from_name": "Nova Sound",
        "reply_to": None,
        "template": TEMPLATE,
        "status": status,
        "scheduled_at": None,
    }
    row.update(overrides)
    return row


def test_stats_are_cumulative() -> None:
    stats = service.stats_from_counts({"pending": 2, "sent": 3, "delivered": 2, "opened": 2, "clicked": 1, "bounced": 1, "failed": 1})

    assert stats.total == 12
    assert stats.sent == 9
    assert stats.delivered == 5
    assert stats.opened == 3
    assert stats.clicked == 1
    assert stats.open_rate == 60
    assert stats.click_rate == 20


def test_stats_with_no_deliveries_have_zero_rates() -> None:
    stats = service.stats_from_counts({})
    assert stats.total == 0
    assert stats.open_rate == 0


@pytest.mark.parametrize(
    ("current", "new", "allowed"),
    [
        ("draft", "scheduled", True),
        ("draft", "paused", False),
        ("scheduled", "paused", True),
        ("paused", "scheduled", True),
        ("sending", "cancelled", True),
        ("sent", "draft", False),
        ("cancelled", "scheduled", False),
    ],
)
def test_status_transitions(current: str, new: str, allowed: bool) -> None:
    if allowed:
        service.validate_status_transition(current, new)
    else:
        with pytest.raises(HTTPException):
            service.validate_status_transition(current, new)


async def test_create_with_schedule_starts_scheduled(monkeypatch, user: dict) -> None:
    insert = AsyncMock(return_value=_campaign("scheduled"))
    monkeypatch.setattr(repository, "insert_campaign", insert)
    when = datetime(2030, 5, 1, 9, 0, tzinfo=timezone.utc)

    await service.create_campaign(
        user,
        schemas.CampaignCreateRequest(
            name="Summer single",
            subject="Hello",
            from_email="promo@example.com",
            from_name="Nova Sound",
            template=TEMPLATE,
            scheduled_at=when,
        ),
    )

    values = insert.await_args.kwargs["values"]
    assert values["status"] == "scheduled"
    assert values["scheduled_at"] == when
    assert values["template"]["subject"] == TEMPLATE["subject"]


async def test_scheduling_requires_a_time(monkeypatch, user: dict) -> None:
    monkeypatch.setattr(repository, "get_campaign", AsyncMock(return_value=_campaign()))
    with pytest.raises(HTTPException) as exc_info:
        await service.change_status(user, 7, schemas.StatusUpdateRequest(status="scheduled"))
    assert "Scheduled time" in exc_info.value.detail


def test_sent_campaign_cannot_be_updated(client, monkeypatch) -> None:
    monkeypatch.setattr(repository, "get_campaign", AsyncMock(return_value=_campaign("sent")))
    response = client.patch("/campaigns/7", json={"name": "Renamed"})
    assert response.status_code == 400


def test_prepare_recipients_only_for_drafts(client, monkeypatch) -> None:
    monkeypatch.setattr(repository, "get_campaign", AsyncMock(return_value=_campaign("draft")))
    replace = AsyncMock(return_value=12)
    monkeypatch.setattr(repository, "replace_recipients", replace)

    response = client.post("/campaigns/7/recipients/prepare", json={"tags": [" Radio "], "countries": ["UK", " "]})

    assert response.json() == {"count": 12}
    kwargs = replace.await_args.kwargs
    assert kwargs["tags"] == ["radio"]
    assert kwargs["countries"] == ["UK"]
    assert kwargs["statuses"] == ["active"]

    monkeypatch.setattr(repository, "get_campaign", AsyncMock(return_value=_campaign("scheduled")))
    assert client.post("/campaigns/7/recipients/prepare", json={}).status_code == 400


def test_send_without_recipients_is_rejected(client, monkeypatch) -> None:
    monkeypatch.setattr(repository, "get_campaign", AsyncMock(return_value=_campaign()))
    monkeypatch.setattr(repository, "count_recipients", AsyncMock(return_value=0))

    response = client.post("/campaigns/7/send")
    assert response.status_code == 400


def test_send_claims_and_schedules_delivery(client, monkeypatch) -> None:
    monkeypatch.setattr(repository, "get_campaign", AsyncMock(return_value=_campaign()))
    monkeypatch.setattr(repository, "count_recipients", AsyncMock(return_value=3))
    monkeypatch.setattr(repository, "claim_for_sending", AsyncMock(return_value=_campaign("sending")))
    delivered: list[int] = []

    async def fake_delivery(campaign_id: int) -> None:
        delivered.append(campaign_id)

    monkeypatch.setattr(service, "deliver_campaign_background", fake_delivery)

    response = client.post("/campaigns/7/send")

    assert response.status_code == 202
    assert response.json() == {"campaign_id": 7, "status": "sending", "recipients": 3}
    assert delivered == [7]


def test_send_conflict_when_claim_fails(client, monkeypatch) -> None:
    monkeypatch.setattr(repository, "get_campaign", AsyncMock(return_value=_campaign()))
    monkeypatch.setattr(repository, "count_recipients", AsyncMock(return_value=3))
    monkeypatch.setattr(repository, "claim_for_sending", AsyncMock(return_value=None))

    assert client.post("/campaigns/7/send").status_code == 409


async def test_deliver_marks_each_recipient_and_notifies(monkeypatch) -> None:
    recipients = [
        {"contact_id": 1, "email": "ada@example.com", "first_name": "Ada", "last_name": "L"},
        {"contact_id": 2, "email": "bob@example.com", "first_name": "Bob", "last_name": "M"},
    ]
    monkeypatch.setattr(repository, "get_campaign", AsyncMock(return_value=_campaign("sending")))
    monkeypatch.setattr(repository, "claim_pending_recipients", AsyncMock(side_effect=[recipients, []]))
    monkeypatch.setattr(repository, "release_claims", AsyncMock(return_value=0))
    monkeypatch.setattr(repository, "get_status", AsyncMock(return_value="sending"))
    mark = AsyncMock(return_value=None)
    monkeypatch.setattr(repository, "mark_recipient", mark)
    monkeypatch.setattr(repository, "complete_sending", AsyncMock(return_value=_campaign("sent")))
    monkeypatch.setattr(repository, "recipient_status_counts", AsyncMock(return_value={"sent": 1, "failed": 1}))
    send = AsyncMock(side_effect=[True, email.EmailDeliveryError("rejected")])
    monkeypatch.setattr(email, "send_email", send)
    notify = AsyncMock(return_value={})
    monkeypatch.setattr(notifications_service, "create_notification", notify)

    stats = await service.deliver_campaign(7)

    assert stats.sent == 1
    assert stats.failed == 1
    first_message = send.await_args_list[0].args[0]
    assert first_message.subject == "Hello Ada"
    assert first_message.html_content == "<p>Hey Ada & friends</p>"
    assert mark.await_args_list[0].kwargs == {"status": "sent"}
    assert mark.await_args_list[1].kwargs["status"] == "failed"
    assert notify.await_args.kwargs["type"] == "CAMPAIGN"
    assert notify.await_args.kwargs["related_entity_id"] == "7"


async def test_deliver_stops_when_campaign_paused(monkeypatch) -> None:
    monkeypatch.setattr(repository, "get_campaign", AsyncMock(return_value=_campaign("sending")))
    monkeypatch.setattr(
        repository,
        "claim_pending_recipients",
        AsyncMock(return_value=[{"contact_id": 1, "email": "ada@example.com", "first_name": "Ada"}]),
    )
    release = AsyncMock(return_value=0)
    monkeypatch.setattr(repository, "release_claims", release)
    monkeypatch.setattr(repository, "get_status", AsyncMock(return_value="paused"))
    monkeypatch.setattr(repository, "mark_recipient", AsyncMock(return_value=None))
    complete = AsyncMock()
    monkeypatch.setattr(repository, "complete_sending", complete)
    monkeypatch.setattr(email, "send_email", AsyncMock(return_value=True))

    assert await service.deliver_campaign(7) is None
    complete.assert_not_awaited()
    release.assert_awaited_once()


async def test_background_failure_pauses_campaign(monkeypatch) -> None:
    monkeypatch.setattr(service, "deliver_campaign", AsyncMock(side_effect=RuntimeError("boom")))
    pause = AsyncMock(return_value=True)
    monkeypatch.setattr(repository, "pause_if_sending", pause)

    await service.deliver_campaign_background(7)

    pause.assert_awaited_once_with(7)


class _RecipientRows:
    """In-memory recipient rows, claimed batch by batch like the SKIP LOCKED update."""

    def __init__(self, emails: list[str]) -> None:
        self.rows = {
            index: {"contact_id": index, "email": address, "first_name": "Fan", "status": "pending", "claimed_by": None}
            for index, address in enumerate(emails, start=1)
        }
        self.campaign_status = "sending"

    async def claim(self, campaign_id: int, *, claim_token: str, limit: int, stale_after_s: float) -> list[dict]:
        batch = [row for row in self.rows.values() if row["status"] == "pending" and row["claimed_by"] is None][:limit]
        for row in batch:
            row["claimed_by"] = claim_token
        return [dict(row) for row in batch]

    async def release(self, campaign_id: int, *, claim_token: str) -> int:
        released = 0
        for row in self.rows.values():
            if row["claimed_by"] == claim_token and row["status"] == "pending":
                row["claimed_by"] = None
                released += 1
        return released

    async def mark(self, campaign_id: int, contact_id: int, *, status: str, error: str | None = None) -> None:
        self.rows[contact_id]["status"] = status

    async def get_status(self, campaign_id: int) -> str:
        return self.campaign_status

    async def complete(self, campaign_id: int) -> dict | None:
        if self.campaign_status != "sending" or any(row["status"] == "pending" for row in self.rows.values()):
            return None
        self.campaign_status = "sent"
        return _campaign("sent")

    async def counts(self, campaign_id: int) -> dict[str, int]:
        counts: dict[str, int] = {}
        for row in self.rows.values():
            counts[row["status"]] = counts.get(row["status"], 0) + 1
        return counts


async def test_concurrent_deliveries_send_each_recipient_once(monkeypatch) -> None:
    rows = _RecipientRows(["r1@x.io", "r2@x.io", "r3@x.io"])
    monkeypatch.setattr(service, "SEND_BATCH_SIZE", 1)
    monkeypatch.setattr(repository, "get_campaign", AsyncMock(return_value=_campaign("sending")))
    monkeypatch.setattr(repository, "claim_pending_recipients", rows.claim)
    monkeypatch.setattr(repository, "release_claims", rows.release)
    monkeypatch.setattr(repository, "mark_recipient", rows.mark)
    monkeypatch.setattr(repository, "get_status", rows.get_status)
    monkeypatch.setattr(repository, "complete_sending", rows.complete)
    monkeypatch.setattr(repository, "recipient_status_counts", rows.counts)
    sent_to: list[str] = []

    async def fake_send(message: email.OutgoingEmail) -> bool:
        await asyncio.sleep(0)
        sent_to.append(message.to_email)
        return True

    monkeypatch.setattr(email, "send_email", fake_send)
    notify = AsyncMock(return_value={})
    monkeypatch.setattr(notifications_service, "create_notification", notify)

    # A resume while the first task is mid-batch starts a second delivery of the same campaign.
    results = await asyncio.gather(service.deliver_campaign(7), service.deliver_campaign(7))

    assert sorted(sent_to) == ["r1@x.io", "r2@x.io", "r3@x.io"]
    assert {row["status"] for row in rows.rows.values()} == {"sent"}
    assert len([stats for stats in results if stats is not None]) == 1
    notify.assert_awaited_once()
    assert rows.campaign_status == "sent"


async def test_dispatch_due_campaigns_delivers_each_claimed(monkeypatch) -> None:
    monkeypatch.setattr(repository, "claim_due_scheduled", AsyncMock(return_value=[_campaign(id=3), _campaign(id=4)]))
    background = AsyncMock(return_value=None)
    monkeypatch.setattr(service, "deliver_campaign_background", background)

    assert await service.dispatch_due_campaigns() == 2
    assert [call.args[0] for call in background.await_args_list] == [3, 4]


def test_recipient_event_is_applied_for_owned_campaign(client, monkeypatch) -> None:
    monkeypatch.setattr(repository, "get_campaign", AsyncMock(return_value=_campaign("sent")))
    recipient = {"campaign_id": 7, "contact_id": 3, "email": "ada@example.com", "status": "opened", "opens": 1, "clicks": 0}
    apply = AsyncMock(return_value=recipient)
    monkeypatch.setattr(repository, "apply_recipient_event", apply)

    response = client.post("/campaigns/7/recipients/3/events", json={"event": "opened"})

    assert response.status_code == 200
    assert response.json() == {"recipient": recipient}
    apply.assert_awaited_once_with(7, 3, event="opened")


def test_recipient_event_for_unknown_recipient_is_not_found(client, monkeypatch) -> None:
    monkeypatch.setattr(repository, "get_campaign", AsyncMock(return_value=_campaign("sent")))
    monkeypatch.setattr(repository, "apply_recipient_event", AsyncMock(return_value=None))

    response = client.post("/campaigns/7/recipients/99/events", json={"event": "clicked"})

    assert response.status_code == 404
    assert response.json()["detail"] == "Recipient not found."


def test_recipient_event_rejects_unknown_events_and_foreign_campaigns(client, monkeypatch) -> None:
    apply = AsyncMock(return_value=None)
    monkeypatch.setattr(repository, "apply_recipient_event", apply)
    monkeypatch.setattr(repository, "get_campaign", AsyncMock(return_value=None))

    assert client.post("/campaigns/7/recipients/3/events", json={"event": "unsubscribed"}).status_code == 422
    assert client.post("/campaigns/7/recipients/3/events", json={"event": "opened"}).status_code == 404
    apply.assert_not_awaited()


async def test_apply_recipient_event_keeps_terminal_statuses(monkeypatch) -> None:
    fetch = AsyncMock(return_value={"contact_id": 3, "status": "bounced"})
    monkeypatch.setattr(repository.db, "fetch_one", fetch)

    await repository.apply_recipient_event(7, 3, event="opened")

    query, *args = fetch.await_args.args
    assert args == [7, 3, "opened"]
    assert "WHEN r.status IN ('bounced', 'failed') THEN r.status" in query
    assert "WHEN $3 = 'opened' AND r.status IN ('pending', 'sent', 'delivered') THEN 'opened'" in query
