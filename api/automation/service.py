"""
Automation business logic and the rule runner.

A rule runs at most once at a time per process; its actions execute in
`order`, and a failing action is recorded without stopping the ones after it.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import BackgroundTasks, HTTPException, status

from core.pagination import offset_for, pagination_block

from . import actions, repository, schemas

logger = logging.getLogger(__name__)

RULE_CREATED = "RULE_CREATED"
RULE_TRIGGERED = "RULE_TRIGGERED"
ACTION_EXECUTED = "ACTION_EXECUTED"
ACTION_FAILED = "ACTION_FAILED"
RULE_COMPLETED = "RULE_COMPLETED"
RULE_FAILED = "RULE_FAILED"

_running_rules: set[int] = set()


def is_running(rule_id: int) -> bool:
    return rule_id in _running_rules


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Automation rule not found.")


async def record_event(rule_id: int, event_type: str, metadata: dict[str, Any] | None = None) -> None:
    try:
        await repository.insert_event(rule_id, event_type, metadata or {})
    except Exception:
        logger.exception("automation_event_log_failed rule_id=%s event_type=%s", rule_id, event_type)


def _ordered(rule_actions: list[dict[str, Any]]) -> list[dict[str, Any]]:
    # sorted() is stable, so equal orders keep their declared sequence.
    return sorted(rule_actions or [], key=lambda a: int(a.get("order") or 0))


async def _get_owned(current_user: dict, rule_id: int) -> dict:
    row = await repository.get_rule(rule_id, user_id=int(current_user["id"]))
    if row is None:
        raise _not_found()
    return row


async def create_rule(current_user: dict, payload: schemas.RuleCreateRequest) -> dict:
    user_id = int(current_user["id"])
    values = payload.model_dump(mode="json")
    values["name"] = payload.name.strip()
    row = await repository.insert_rule(user_id=user_id, values=values)
    await record_event(int(row["id"]), RULE_CREATED, {"user_id": user_id})
    logger.info("automation_rule_created rule_id=%s user_id=%s trigger=%s", row["id"], user_id, payload.trigger_type)
    return row


async def list_rules(current_user: dict, *, trigger_type: str | None, is_active: bool | None) -> list[dict]:
    return await repository.list_rules(user_id=int(current_user["id"]), trigger_type=trigger_type, is_active=is_active)


async def get_rule(current_user: dict, rule_id: int) -> dict:
    return await _get_owned(current_user, rule_id)


async def update_rule(current_user: dict, rule_id: int, payload: schemas.RuleUpdateRequest) -> dict:
    values = {k: v for k, v in payload.model_dump(mode="json", exclude_unset=True).items() if v is not None}
    if "name" in values:
        values["name"] = values["name"].strip()
    row = await repository.update_rule(rule_id, user_id=int(current_user["id"]), values=values)
    if row is None:
        raise _not_found()
    return row


async def delete_rule(current_user: dict, rule_id: int) -> None:
    if is_running(rule_id):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Automation rule is running.")
    if not await repository.delete_rule(rule_id, user_id=int(current_user["id"])):
        raise _not_found()


async def list_events(current_user: dict, rule_id: int, *, page: int, limit: int) -> dict:
    await _get_owned(current_user, rule_id)
    rows, total = await repository.list_events(rule_id, limit=limit, offset=offset_for(page, limit))
    return {"events": rows, "pagination": pagination_block(total=total, page=page, limit=limit)}


async def execute_rule(rule_id: int, trigger_data: dict[str, Any] | None = None) -> str:
    """
    Run a rule's actions. Returns "skipped", "completed" or "failed".
    """
    if rule_id in _running_rules:
        logger.warning("automation_rule_already_running rule_id=%s", rule_id)
        return "skipped"

    context = dict(trigger_data or {})
    _running_rules.add(rule_id)
    try:
        rule = await repository.get_rule(rule_id)
        if rule is None or not rule["is_active"]:
            return "skipped"

        owner_id = int(rule["user_id"])
        await record_event(rule_id, RULE_TRIGGERED, {"trigger_data": context})
        failed = 0
        for index, action in enumerate(_ordered(rule["actions"])):
            try:
                result = await actions.execute(owner_id, action, context)
            except Exception as exc:
                failed += 1
                logger.warning(
                    "automation_action_failed rule_id=%s index=%s type=%s error=%s",
                    rule_id,
                    index,
                    action.get("type"),
                    exc,
                )
                await record_event(
                    rule_id,
                    ACTION_FAILED,
                    {"index": index, "action_type": action.get("type"), "error": str(exc), "success": False},
                )
                continue
            await record_event(
                rule_id,
                ACTION_EXECUTED,
                {"index": index, "action_type": action.get("type"), "result": result, "success": True},
            )

        await record_event(rule_id, RULE_COMPLETED, {"failed_actions": failed})
        logger.info("automation_rule_completed rule_id=%s failed_actions=%s", rule_id, failed)
        return "completed"
    except Exception as exc:
        logger.exception("automation_rule_failed rule_id=%s", rule_id)
        await record_event(rule_id, RULE_FAILED, {"error": str(exc), "success": False})
        return "failed"
    finally:
        _running_rules.discard(rule_id)


async def trigger_rule(
    current_user: dict,
    rule_id: int,
    payload: schemas.TriggerRequest,
    background_tasks: BackgroundTasks,
) -> dict:
    rule = await _get_owned(current_user, rule_id)
    if not rule["is_active"]:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Automation rule is inactive.")
    if is_running(rule_id):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Automation rule is already running.")
    background_tasks.add_task(execute_rule, rule_id, payload.data)
    return {"rule_id": rule_id, "status": "triggered"}
