"""
Outgoing webhook database models.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, uuid_pk


class SignatureAlgo(str, Enum):
    """How outgoing webhook payloads are signed."""

    JWT = "jwt"
    HMAC = "hmac"


class WebhookStatus(str, Enum):
    """Delivery status of an outgoing webhook."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class WebhookEndpoint(Base, TimestampMixin):
    """URL an organization receives webhooks on."""

    __tablename__ = "webhook_endpoints"

    id: Mapped[str] = uuid_pk()

    organization_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    webhook_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    signature_algo: Mapped[str] = mapped_column(
        String(20),
        default=SignatureAlgo.JWT.value,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<WebhookEndpoint(url={self.webhook_url!r}, algo={self.signature_algo!r})>"


class Webhook(Base, TimestampMixin):
    """One delivery (and its retries) of a webhook to an endpoint."""

    __tablename__ = "webhooks"

    id: Mapped[str] = uuid_pk()

    webhook_endpoint_id: Mapped[Optional[str]] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("webhook_endpoints.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    # Object the webhook is about
    object_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    object_id: Mapped[Optional[str]] = mapped_column(UUID(as_uuid=False), nullable=True)

    webhook_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    endpoint: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    # Older rows stored the payload as a JSON string, see payload_data
    payload: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    response: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    http_status: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        default=WebhookStatus.PENDING.value,
        nullable=False,
    )
    retries: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_retried_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def payload_data(self) -> Any:
        """Payload as a dict, whether it was stored as JSON or as a JSON string."""
        if isinstance(self.payload, str):
            return json.loads(self.payload)
        return self.payload

    def __repr__(self) -> str:
        return f"<Webhook(type={self.webhook_type!r}, status={self.status!r}, retries={self.retries})>"
