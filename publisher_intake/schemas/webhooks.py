"""
schemas/webhooks.py — Pydantic models for the inbound email webhook and review queue API

Business Rules:
- email_from must look like an address; it is lowercased on the way in
- body or html_body must be present; html_body is used when body is blank
- campaign_type is one of outreach, follow_up, bulk

Called by: routers/webhooks.py, routers/review_queue.py
Depends on: pydantic
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class PublisherEmailPayload(BaseModel):
    email_from: str = Field(..., max_length=255)
    subject: str | None = Field(None, max_length=500)
    body: str = ""
    html_body: str | None = None
    message_id: str | None = Field(None, max_length=255)
    campaign_id: str | None = None
    campaign_type: Literal["outreach", "follow_up", "bulk"] = "outreach"
    received_at: datetime | None = None

    @field_validator("email_from")
    @classmethod
    def _email_shape(cls, v: str) -> str:
        v = v.strip().lower()
        local, _, domain = v.partition("@")
        if not local or "." not in domain:
            raise ValueError("email_from must be an email address")
        return v

    @model_validator(mode="after")
    def _has_content(self):
        if not self.body.strip() and not (self.html_body or "").strip():
            raise ValueError("body or html_body is required")
        return self

    @property
    def content(self) -> str:
        return self.body if self.body.strip() else (self.html_body or "")


class WebhookAccepted(BaseModel):
    status: str = "accepted"
    email_log_id: str


class WebhookHealth(BaseModel):
    status: str = "ok"
    service: str = "publisher-email-webhook"
    extraction_strategy: str
    match_policy: str


class ReviewQueueItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    log_id: str
    publisher_id: str | None = None
    priority: int | None = None
    status: str | None = None
    queue_reason: str | None = None
    missing_fields: list[str] | None = None
    suggested_actions: dict[str, Any] | None = None
    auto_approve_at: datetime | None = None
    created_at: datetime | None = None


class ReviewQueueResponse(BaseModel):
    items: list[ReviewQueueItem]
    total: int
