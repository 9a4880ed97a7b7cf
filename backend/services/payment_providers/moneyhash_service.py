"""
Reconciliation of Moneyhash webhook events.

Events arrive out of order and may be replayed; every handler goes through
the idempotent update_payment_status / update_payment_method operations.
"""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from adapters.payments import ALLOWED_WEBHOOK_EVENTS, MoneyhashWebhookEvent
from core.errors import InvalidPayableTypeError, ServiceFailure
from infrastructure.database.models import Organization
from services.payment_provider_customers import MoneyhashCustomerService
from services.payment_providers.finder import get_moneyhash_customer
from services.payments.invoice_payments import InvoicePaymentService
from services.payments.payment_request_payments import PaymentRequestPaymentService

logger = logging.getLogger(__name__)

PAYMENT_SERVICE_CLASS_MAP = {
    "Invoice": InvoicePaymentService,
    "PaymentRequest": PaymentRequestPaymentService,
}

INTENT_PAYMENT_STATUSES = {
    "intent.time_expired": "failed",
}

TRANSACTION_PAYMENT_STATUSES = {
    "transaction.purchase.failed": "failed",
    "transaction.purchase.pending": "processing",
    "transaction.purchase.successful": "succeeded",
}


def payment_service_class(event: MoneyhashWebhookEvent):
    """Payment service for the payable type carried in the event metadata."""
    try:
        return PAYMENT_SERVICE_CLASS_MAP[event.payable_type]
    except KeyError:
        raise InvalidPayableTypeError(event.payable_type) from None


class MoneyhashEventService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def handle_event(self, organization: Organization, event_json: dict[str, Any]) -> Any:
        """
        Apply one Moneyhash webhook event.

        Raises:
            ServiceFailure: Unknown event code, or allowed code without handler
            InvalidPayableTypeError: Unknown lago_payable_type in the metadata
        """
        event = MoneyhashWebhookEvent.from_webhook_payload(event_json)

        if event.event_code not in ALLOWED_WEBHOOK_EVENTS:
            raise ServiceFailure("webhook_error", f"Invalid moneyhash event code: {event.event_code}")

        handler = self._event_handlers().get(event.event_code)
        if handler is None:
            raise ServiceFailure("webhook_error", f"No handler for event code: {event.event_code}")

        logger.info(
            "Handling Moneyhash event %s",
            event.event_code,
            extra={"organization_id": organization.id, "event_code": event.event_code},
        )
        return await handler(organization, event)

    def _event_handlers(self):
        return {
            "intent.time_expired": self._handle_intent_event,
            "transaction.purchase.failed": self._handle_transaction_event,
            "transaction.purchase.pending": self._handle_transaction_event,
            "transaction.purchase.successful": self._handle_transaction_event,
            "card_token.created": self._handle_card_event,
            "card_token.updated": self._handle_card_event,
            "card_token.deleted": self._handle_card_deleted,
        }

    async def _handle_intent_event(self, organization: Organization, event: MoneyhashWebhookEvent):
        service = payment_service_class(event)(self.db)
        return await service.update_payment_status(
            organization_id=organization.id,
            provider_payment_id=event.payment_id,
            status=INTENT_PAYMENT_STATUSES[event.event_code],
            metadata=event.metadata,
        )

    async def _handle_transaction_event(self, organization: Organization, event: MoneyhashWebhookEvent):
        service = payment_service_class(event)(self.db)
        return await service.update_payment_status(
            organization_id=organization.id,
            provider_payment_id=event.payment_id,
            status=TRANSACTION_PAYMENT_STATUSES[event.event_code],
            metadata=event.metadata,
        )

    async def _handle_card_event(self, organization: Organization, event: MoneyhashWebhookEvent):
        return await MoneyhashCustomerService(self.db).update_payment_method(
            organization_id=organization.id,
            customer_id=event.customer_id,
            payment_method_id=event.card_token_id,
            metadata=event.metadata,
        )

    async def _handle_card_deleted(self, organization: Organization, event: MoneyhashWebhookEvent):
        moneyhash_customer = await get_moneyhash_customer(self.db, event.customer_id)
        current_method = moneyhash_customer.payment_method_id if moneyhash_customer else None

        # Deleting another card leaves the current payment method in place
        payment_method_id = None if current_method == event.card_token_id else current_method

        return await MoneyhashCustomerService(self.db).update_payment_method(
            organization_id=organization.id,
            customer_id=event.customer_id,
            payment_method_id=payment_method_id,
            metadata=event.metadata,
        )
