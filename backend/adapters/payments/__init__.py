"""Payment adapters for the Moneyhash gateway."""

from .moneyhash_adapter import (
    ALLOWED_WEBHOOK_EVENTS,
    MoneyhashAdapter,
    MoneyhashAPIError,
    MoneyhashAuthError,
    MoneyhashError,
    MoneyhashWebhookEvent,
)

__all__ = [
    "MoneyhashAdapter",
    "MoneyhashWebhookEvent",
    "MoneyhashError",
    "MoneyhashAPIError",
    "MoneyhashAuthError",
    "ALLOWED_WEBHOOK_EVENTS",
]
