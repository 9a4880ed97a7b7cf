"""
Usage event and webhook schemas.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from infrastructure.database.models import Webhook


class EventInput(BaseModel):
    transaction_id: str = Field(..., min_length=1, max_length=255, description="Idempotency key of the event")
    external_subscription_id: str = Field(..., min_length=1)
    code: str = Field(..., min_length=1, description="Billable metric code")
    timestamp: int | float | datetime | None = Field(None, description="Unix timestamp, defaults to now")
    properties: dict[str, Any] = Field(default_factory=dict)


class EventRequest(BaseModel):
    event: EventInput


class EventObject(BaseModel):
    lago_id: str
    transaction_id: str
    lago_subscription_id: str
    external_subscription_id: str
    code: str
    timestamp: datetime
    properties: dict[str, Any]
    created_at: datetime


class EventResponse(BaseModel):
    event: EventObject


class WebhookObject(BaseModel):
    lago_id: str
    webhook_type: str | None = None
    object_type: str | None = None
    status: str
    retries: int
    http_status: int | None = None
    endpoint: str | None = None
    last_retried_at: datetime | None = None

    @classmethod
    def from_model(cls, webhook: Webhook) -> "WebhookObject":
        return cls(
            lago_id=webhook.id,
            webhook_type=webhook.webhook_type,
            object_type=webhook.object_type,
            status=webhook.status,
            retries=webhook.retries,
            http_status=webhook.http_status,
            endpoint=webhook.endpoint,
            last_retried_at=webhook.last_retried_at,
        )


class WebhookResponse(BaseModel):
    webhook: WebhookObject
