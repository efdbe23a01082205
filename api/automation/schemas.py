"""
Pydantic schemas for automation endpoints.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

TriggerType = Literal["EVENT", "SCHEDULE", "WEBHOOK", "MANUAL"]
ActionType = Literal["SEND_EMAIL", "UPDATE_CONTACT", "ADD_TAG", "CALL_WEBHOOK", "DELAY"]

REQUIRED_ACTION_CONFIG: dict[str, tuple[str, ...]] = {
    "SEND_EMAIL": ("template_id",),
    "UPDATE_CONTACT": ("fields",),
    "ADD_TAG": ("tag",),
    "CALL_WEBHOOK": ("webhook_url",),
    "DELAY": ("delay_seconds",),
}


class AutomationAction(BaseModel):
    type: ActionType
    config: dict[str, Any] = Field(default_factory=dict)
    order: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _check_config(self) -> "AutomationAction":
        missing = [k for k in REQUIRED_ACTION_CONFIG[self.type] if self.config.get(k) in (None, "", {})]
        if missing:
            raise ValueError(f"{self.type} action requires config keys: {', '.join(missing)}")
        if self.type == "UPDATE_CONTACT" and not isinstance(self.config["fields"], dict):
            raise ValueError("UPDATE_CONTACT fields must be an object")
        if self.type == "DELAY":
            delay = self.config["delay_seconds"]
            if not isinstance(delay, (int, float)) or delay < 0:
                raise ValueError("delay_seconds must be a non-negative number")
        if self.type == "CALL_WEBHOOK" and not str(self.config["webhook_url"]).startswith(("http://", "https://")):
            raise ValueError("webhook_url must be an http(s) URL")
        return self


class RuleCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    trigger_type: TriggerType
    trigger_config: dict[str, Any] = Field(default_factory=dict)
    actions: list[AutomationAction] = Field(..., min_length=1, max_length=50)
    is_active: bool = True


class RuleUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    trigger_type: TriggerType | None = None
    trigger_config: dict[str, Any] | None = None
    actions: list[AutomationAction] | None = Field(default=None, min_length=1, max_length=50)
    is_active: bool | None = None


class TriggerRequest(BaseModel):
    data: dict[str, Any] = Field(default_factory=dict)
