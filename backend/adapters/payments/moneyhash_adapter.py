"""
Moneyhash payment adapter.

Provides integration with the Moneyhash API for customer creation and
payment intents, and parsing of the webhook events Moneyhash sends back.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from infrastructure.config.settings import settings

logger = logging.getLogger(__name__)


INTENT_WEBHOOK_EVENTS = ("intent.processed", "intent.time_expired")
TRANSACTION_WEBHOOK_EVENTS = (
    "transaction.purchase.failed",
    "transaction.purchase.pending",
    "transaction.purchase.successful",
)
CARD_WEBHOOK_EVENTS = ("card_token.created", "card_token.updated", "card_token.deleted")

ALLOWED_WEBHOOK_EVENTS = INTENT_WEBHOOK_EVENTS + TRANSACTION_WEBHOOK_EVENTS + CARD_WEBHOOK_EVENTS

DEFAULT_PAYABLE_TYPE = "Invoice"


# Custom Exceptions
class MoneyhashError(Exception):
    """Base exception for Moneyhash adapter errors."""

    pass


class MoneyhashAPIError(MoneyhashError):
    """Raised when the Moneyhash API returns an error."""

    def __init__(self, message: str, error_code: str | None = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class MoneyhashAuthError(MoneyhashError):
    """Raised when no API key is available."""

    pass


# Dataclasses
@dataclass
class MoneyhashWebhookEvent:
    """Moneyhash webhook event data."""

    event_code: str
    payment_id: str | None  # intent id for intent and transaction events
    card_token_id: str | None
    customer_id: str | None  # internal customer id echoed back in custom fields
    metadata: dict[str, Any] = field(default_factory=dict)
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def payable_type(self) -> str:
        return self.metadata.get("lago_payable_type") or DEFAULT_PAYABLE_TYPE

    @classmethod
    def from_webhook_payload(cls, payload: dict[str, Any]) -> "MoneyhashWebhookEvent":
        """Create webhook event from payload."""
        event_code = payload.get("type") or ""
        data = payload.get("data") or {}

        payment_id = None
        card_token_id = None
        customer_id = None
        metadata: dict[str, Any] = {}

        if event_code in INTENT_WEBHOOK_EVENTS:
            payment_id = data.get("intent_id")
            metadata = (data.get("intent") or {}).get("custom_fields") or {}
        elif event_code in TRANSACTION_WEBHOOK_EVENTS:
            intent = payload.get("intent") or {}
            payment_id = intent.get("id")
            metadata = intent.get("custom_fields") or {}
        elif event_code in CARD_WEBHOOK_EVENTS:
            card_token = data.get("card_token") or {}
            card_token_id = card_token.get("id")
            metadata = card_token.get("custom_fields") or {}
            customer_id = metadata.get("lago_customer_id")

        return cls(
            event_code=event_code,
            payment_id=payment_id,
            card_token_id=card_token_id,
            customer_id=customer_id,
            metadata=metadata,
            data=payload,
        )


def _error_message(response: httpx.Response) -> str:
    """Pull a readable message out of a Moneyhash error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"

    if isinstance(body, dict):
        status = body.get("status")
        if isinstance(status, dict) and status.get("message"):
            return str(status["message"])
        if body.get("message"):
            return str(body["message"])
        if body.get("errors"):
            return str(body["errors"])
    return response.text or f"HTTP {response.status_code}"


class MoneyhashAdapter:
    """
    Moneyhash API adapter.

    One instance per payment provider: the API key belongs to the
    organization's provider configuration, not to global settings.
    """

    CUSTOMERS_PATH = "/api/v1.1/customers/"
    PAYMENT_INTENTS_PATH = "/api/v1.1/payments/intent/"
    CARD_INTENTS_PATH = "/api/v1.1/tokens/cards/"

    def __init__(self, api_key: str | None, base_url: str | None = None):
        """
        Initialize Moneyhash adapter.

        Args:
            api_key: Provider API key (sent as x-Api-Key)
            base_url: API host (defaults to settings.moneyhash_base_url)
        """
        self.api_key = api_key
        self.base_url = (base_url or settings.moneyhash_base_url).rstrip("/")

    def _get_headers(self) -> dict[str, str]:
        """Get HTTP headers for API requests."""
        if not self.api_key:
            raise MoneyhashAuthError("Moneyhash API key not configured for this payment provider.")

        return {
            "Content-Type": "application/json",
            "x-Api-Key": self.api_key,
        }

    async def _post(self, path: str, data: dict[str, Any]) -> dict[str, Any]:
        """
        POST to the Moneyhash API.

        Raises:
            MoneyhashAPIError: If the request fails or returns a non-2xx status
        """
        url = f"{self.base_url}{path}"
        headers = self._get_headers()

        try:
            async with httpx.AsyncClient(timeout=settings.moneyhash_timeout) as client:
                logger.info(f"Making POST request to {path}")
                response = await client.post(url, headers=headers, json=data)
                response.raise_for_status()

                if not response.content:
                    return {}
                return response.json()

        except httpx.HTTPStatusError as e:
            message = _error_message(e.response)
            logger.error(f"Moneyhash API error ({e.response.status_code}): {message}")
            raise MoneyhashAPIError(message, error_code=str(e.response.status_code)) from e
        except httpx.RequestError as e:
            logger.error(f"Moneyhash request error: {e}")
            raise MoneyhashAPIError(f"Request failed: {e}", error_code="connection_error") from e
        except ValueError as e:
            logger.error(f"Invalid JSON from Moneyhash: {e}")
            raise MoneyhashAPIError(f"Invalid response body: {e}", error_code="invalid_response") from e

    async def create_customer(self, params: dict[str, Any]) -> dict[str, Any]:
        """
        Create a Moneyhash customer.

        Returns:
            Parsed response; the customer id is at data.id
        """
        logger.info("Creating Moneyhash customer")
        return await self._post(self.CUSTOMERS_PATH, params)

    async def create_payment_intent(self, params: dict[str, Any]) -> dict[str, Any]:
        """
        Create a payment intent.

        Returns:
            Parsed response; data carries id, status and embed_url
        """
        logger.info(f"Creating Moneyhash payment intent ({params.get('operation')})")
        return await self._post(self.PAYMENT_INTENTS_PATH, params)

    async def create_card_intent(self, params: dict[str, Any]) -> dict[str, Any]:
        """
        Create a card tokenization intent (checkout page that saves a card).

        Returns:
            Parsed response; data carries id and embed_url
        """
        logger.info("Creating Moneyhash card intent")
        return await self._post(self.CARD_INTENTS_PATH, params)
