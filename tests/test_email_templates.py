from __future__ import annotations

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock

import pytest

from email_templates import rendering, repository, schemas, service


def _template(template_id: int = 1, **overrides) -> dict:
    row = {
        "id": template_id,
        "user_id": 1,
        "name": "Release day",
        "subject": "Hi {{first_name}}",
        "body": "<p>{{ first_name }}, {{track.title}} is out</p>",
        "variables": ["first_name", "track.title"],
        "preview_text": "New single from {{artist}}",
        "is_default": False,
        "category": "release",
        "thumbnail": None,
    }
    row.update(overrides)
    return row


def test_extract_variables_keeps_first_seen_order() -> None:
    assert rendering.extract_variables("Hi {{name}}", "{{ band }} and {{name}}", None) == ["name", "band"]


def test_render_reports_missing_and_walks_dotted_names() -> None:
    text, missing = rendering.render(
        "{{first_name}} / {{track.title}} / {{unknown}}",
        {"first_name": "Ada", "track": {"title": "Midnight"}},
    )
    assert text == "Ada / Midnight / {{unknown}}"
    assert missing == ["unknown"]


def test_render_escapes_html_when_asked() -> None:
    text, _ = rendering.render("<b>{{name}}</b>", {"name": "<script>"}, escape=True)
    assert text == "<b>&lt;script&gt;</b>"


def test_contact_variables_builds_full_name() -> None:
    variables = rendering.contact_variables({"first_name": "Ada", "last_name": None, "email": "a@example.com"})
    assert variables["full_name"] == "Ada"
    assert variables["company"] == ""


async def test_create_template_derives_variables(monkeypatch, user: dict) -> None:
    monkeypatch.setattr(repository, "get_template_by_name", AsyncMock(return_value=None))
    insert = AsyncMock(return_value=_template())
    monkeypatch.setattr(repository, "insert_template", insert)

    await service.create_template(
        user,
        schemas.TemplateCreateRequest(name="  Release day ", subject="Hi {{first_name}}", body="{{link}}"),
    )

    values = insert.await_args.kwargs["values"]
    assert values["name"] == "Release day"
    assert values["variables"] == ["first_name", "link"]


def test_create_template_with_taken_name_is_conflict(client, monkeypatch) -> None:
    monkeypatch.setattr(repository, "get_template_by_name", AsyncMock(return_value=_template(5)))

    response = client.post("/email-templates", json={"name": "Release day", "subject": "s", "body": "b"})
    assert response.status_code == 409


def test_default_template_cannot_be_deleted(client, monkeypatch) -> None:
    monkeypatch.setattr(repository, "get_template", AsyncMock(return_value=_template(is_default=True)))
    delete = AsyncMock(return_value=True)
    monkeypatch.setattr(repository, "delete_template", delete)

    response = client.delete("/email-templates/1")

    assert response.status_code == 400
    delete.assert_not_awaited()


def test_duplicate_copies_content_as_non_default(client, monkeypatch) -> None:
    monkeypatch.setattr(repository, "get_template", AsyncMock(return_value=_template(is_default=True)))
    monkeypatch.setattr(repository, "get_template_by_name", AsyncMock(return_value=None))
    insert = AsyncMock(return_value=_template(2, name="Copy"))
    monkeypatch.setattr(repository, "insert_template", insert)

    response = client.post("/email-templates/1/duplicate", json={"name": "Copy"})

    assert response.status_code == 201
    values = insert.await_args.kwargs["values"]
    assert values["name"] == "Copy"
    assert values["is_default"] is False
    assert values["body"] == _template()["body"]


def test_render_endpoint(client, monkeypatch) -> None:
    monkeypatch.setattr(repository, "get_template", AsyncMock(return_value=_template()))

    response = client.post(
        "/email-templates/1/render",
        json={"variables": {"first_name": "Ada", "track": {"title": "Midnight"}}},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["subject"] == "Hi Ada"
    assert body["body"] == "<p>Ada, Midnight is out</p>"
    assert body["preview_text"] == "New single from {{artist}}"
    assert body["missing_variables"] == []


async def test_update_recomputes_variables_when_body_changes(monkeypatch, user: dict) -> None:
    monkeypatch.setattr(repository, "get_template", AsyncMock(return_value=_template()))
    update = AsyncMock(return_value=_template())
    monkeypatch.setattr(repository, "update_template", update)

    await service.update_template(user, 1, schemas.TemplateUpdateRequest(body="{{city}} show"))

    assert update.await_args.kwargs["values"]["variables"] == ["first_name", "city"]


@pytest.mark.parametrize("name", ["Release day", "release day"])
async def test_update_same_name_skips_uniqueness_check(monkeypatch, user: dict, name: str) -> None:
    monkeypatch.setattr(repository, "get_template", AsyncMock(return_value=_template()))
    lookup = AsyncMock(return_value=None)
    monkeypatch.setattr(repository, "get_template_by_name", lookup)
    monkeypatch.setattr(repository, "update_template", AsyncMock(return_value=_template()))

    await service.update_template(user, 1, schemas.TemplateUpdateRequest(name=name))

    assert lookup.await_count == (0 if name == "Release day" else 1)


class _FakeConnection:
    def __init__(self, *rows: dict | None) -> None:
        self.rows = list(rows)
        self.calls: list[tuple[str, tuple]] = []

    async def execute(self, query: str, *args) -> str:
        self.calls.append(("execute", args))
        return "UPDATE 1"

    async def fetchrow(self, query: str, *args) -> dict | None:
        verb = query.split()[0].lower()
        self.calls.append((verb, args))
        return self.rows.pop(0)


def _use_connection(monkeypatch, conn: _FakeConnection) -> None:
    @asynccontextmanager
    async def fake_transaction():
        yield conn

    monkeypatch.setattr(repository.db, "transaction", fake_transaction)


async def test_insert_default_clears_category_default_first(monkeypatch) -> None:
    conn = _FakeConnection(_template(9, is_default=True))
    _use_connection(monkeypatch, conn)

    await repository.insert_template(user_id=1, values={"name": "Launch", "is_default": True, "category": "release"})

    assert [verb for verb, _ in conn.calls] == ["execute", "insert"]
    assert conn.calls[0][1] == (1, "release", None)


async def test_insert_non_default_leaves_other_defaults(monkeypatch) -> None:
    conn = _FakeConnection(_template(9))
    _use_connection(monkeypatch, conn)

    await repository.insert_template(user_id=1, values={"name": "Launch", "is_default": False, "category": "release"})

    assert [verb for verb, _ in conn.calls] == ["insert"]


async def test_update_to_default_clears_others_in_stored_category(monkeypatch) -> None:
    conn = _FakeConnection({"category": "release", "is_default": False}, _template(5, is_default=True))
    _use_connection(monkeypatch, conn)

    row = await repository.update_template(5, user_id=1, values={"is_default": True})

    assert row["is_default"] is True
    assert [verb for verb, _ in conn.calls] == ["select", "execute", "update"]
    assert conn.calls[1][1] == (1, "release", 5)


async def test_moving_a_default_clears_the_target_category(monkeypatch) -> None:
    conn = _FakeConnection({"category": "release", "is_default": True}, _template(5, is_default=True, category="tour"))
    _use_connection(monkeypatch, conn)

    await repository.update_template(5, user_id=1, values={"category": "tour"})

    assert conn.calls[1] == ("execute", (1, "tour", 5))


async def test_update_of_missing_template_touches_nothing(monkeypatch) -> None:
    conn = _FakeConnection(None)
    _use_connection(monkeypatch, conn)

    assert await repository.update_template(5, user_id=1, values={"is_default": True}) is None
    assert [verb for verb, _ in conn.calls] == ["select"]
