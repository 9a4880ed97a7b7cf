"""
Outgoing webhooks to the organization's endpoints.

Every delivery is stored as a Webhook row, signed according to the
endpoint's signature algorithm and posted as JSON.
"""

import json
import logging
from datetime import UTC, datetime
from typing import Any

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import NotFoundFailure, ServiceFailure
from core.security import hmac_signature, jwt_signature
from infrastructure.config.settings import settings
from infrastructure.database.models import (
    Customer,
    Invoice,
    Organization,
    PaymentProvider,
    PaymentRequest,
    SignatureAlgo,
    Webhook,
    WebhookEndpoint,
    WebhookStatus,
)
from services.payment_providers.finder import PaymentProviderFinder, get_moneyhash_customer
from services.payments.payment_request_payments import get_payment_request_invoices

logger = logging.getLogger(__name__)

# Key under which the object is sent, per webhook type
WEBHOOK_OBJECT_TYPES: dict[str, str] = {
    "invoice.payment_status_updated": "invoice",
    "invoice.payment_failure": "payment_provider_invoice_payment_error",
    "payment_request.payment_status_updated": "payment_request",
    "payment_request.payment_failure": "payment_provider_payment_request_payment_error",
    "customer.payment_provider_created": "customer",
    "customer.payment_provider_error": "payment_provider_customer_error",
    "customer.checkout_url_generated": "payment_provider_customer_checkout_url",
}

SOURCE_MODELS = {
    "invoice": Invoice,
    "payment_request": PaymentRequest,
    "customer": Customer,
}


def _iso(value: Any) -> str | None:
    return value.isoformat() if value is not None else None


class WebhookSerializer:
    """Builds webhook bodies for invoices, payment requests and customers."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _provider_details(self, customer: Customer) -> dict[str, Any]:
        provider: PaymentProvider | None = await PaymentProviderFinder(self.db).for_customer(customer)
        moneyhash_customer = await get_moneyhash_customer(self.db, customer.id)
        return {
            "payment_provider": customer.payment_provider,
            "payment_provider_code": provider.code if provider else customer.payment_provider_code,
            "provider_customer_id": moneyhash_customer.provider_customer_id if moneyhash_customer else None,
        }

    async def customer(self, customer: Customer) -> dict[str, Any]:
        return {
            "lago_id": customer.id,
            "external_id": customer.external_id,
            "name": customer.name,
            "firstname": customer.firstname,
            "lastname": customer.lastname,
            "email": customer.email,
            "phone": customer.phone,
            "country": customer.country,
            "currency": customer.currency,
            "created_at": _iso(customer.created_at),
            "billing_configuration": await self._provider_details(customer),
        }

    async def invoice(self, invoice: Invoice) -> dict[str, Any]:
        customer = await self.db.get(Customer, invoice.customer_id)
        return {
            "lago_id": invoice.id,
            "status": invoice.status,
            "payment_status": invoice.payment_status,
            "currency": invoice.currency,
            "fees_amount_cents": invoice.fees_amount_cents,
            "vat_amount_cents": invoice.vat_amount_cents,
            "total_amount_cents": invoice.total_amount_cents,
            "payment_attempts": invoice.payment_attempts,
            "from_date": _iso(invoice.from_date),
            "to_date": _iso(invoice.to_date),
            "lago_customer_id": invoice.customer_id,
            "external_customer_id": customer.external_id if customer else None,
            "created_at": _iso(invoice.created_at),
        }

    async def payment_request(self, payment_request: PaymentRequest) -> dict[str, Any]:
        customer = await self.db.get(Customer, payment_request.customer_id)
        invoices = await get_payment_request_invoices(self.db, payment_request.id)
        return {
            "lago_id": payment_request.id,
            "email": payment_request.email,
            "amount_cents": payment_request.amount_cents,
            "amount_currency": payment_request.amount_currency,
            "payment_status": payment_request.payment_status,
            "payment_attempts": payment_request.payment_attempts,
            "lago_customer_id": payment_request.customer_id,
            "external_customer_id": customer.external_id if customer else None,
            "lago_invoice_ids": [invoice.id for invoice in invoices],
            "created_at": _iso(payment_request.created_at),
        }

    async def payment_error(self, object_type: str, record: Any, options: dict[str, Any]) -> dict[str, Any]:
        """Body of *.payment_failure and customer.payment_provider_error webhooks."""
        customer = record if isinstance(record, Customer) else await self.db.get(Customer, record.customer_id)
        details = await self._provider_details(customer)
        body = {
            "lago_customer_id": customer.id,
            "external_customer_id": customer.external_id,
            "provider_customer_id": options.get("provider_customer_id") or details["provider_customer_id"],
            "payment_provider": details["payment_provider"],
            "payment_provider_code": details["payment_provider_code"],
            "provider_error": options.get("provider_error"),
        }
        if object_type == "invoice":
            body["lago_invoice_id"] = record.id
        elif object_type == "payment_request":
            body["lago_payment_request_id"] = record.id
            body["lago_invoice_ids"] = [invoice.id for invoice in await get_payment_request_invoices(self.db, record.id)]
        return body

    async def checkout_url(self, customer: Customer, options: dict[str, Any]) -> dict[str, Any]:
        details = await self._provider_details(customer)
        return {
            "lago_customer_id": customer.id,
            "external_customer_id": customer.external_id,
            "payment_provider": details["payment_provider"],
            "payment_provider_code": details["payment_provider_code"],
            "checkout_url": options.get("checkout_url"),
        }

    async def serialize(
        self,
        webhook_type: str,
        object_type: str,
        record: Any,
        options: dict[str, Any],
    ) -> dict[str, Any]:
        payload_key = WEBHOOK_OBJECT_TYPES[webhook_type]

        if webhook_type.endswith(".payment_failure") or webhook_type == "customer.payment_provider_error":
            body = await self.payment_error(object_type, record, options)
        elif webhook_type == "customer.checkout_url_generated":
            body = await self.checkout_url(record, options)
        else:
            body = await getattr(self, object_type)(record)

        return {
            "webhook_type": webhook_type,
            "object_type": payload_key,
            payload_key: body,
        }


class SendWebhookService:
    """Deliver a webhook to every endpoint of an organization."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _load_record(self, object_type: str, object_id: str) -> Any:
        model = SOURCE_MODELS.get(object_type)
        if model is None:
            raise ServiceFailure("invalid_object_type", f"Unsupported webhook object: {object_type}")
        record = await self.db.get(model, object_id)
        if record is None:
            raise NotFoundFailure(object_type)
        return record

    async def call(
        self,
        webhook_type: str,
        object_type: str,
        object_id: str,
        options: dict[str, Any] | None = None,
    ) -> list[Webhook]:
        """
        Build, store and send the webhook.

        Returns the stored Webhook rows, one per endpoint.
        """
        if webhook_type not in WEBHOOK_OBJECT_TYPES:
            raise ServiceFailure("invalid_webhook_type", f"Unsupported webhook type: {webhook_type}")

        record = await self._load_record(object_type, object_id)
        endpoints = (
            await self.db.execute(
                select(WebhookEndpoint).where(WebhookEndpoint.organization_id == record.organization_id)
            )
        ).scalars().all()
        if not endpoints:
            logger.debug("No webhook endpoint for organization %s, skipping %s", record.organization_id, webhook_type)
            return []

        payload = await WebhookSerializer(self.db).serialize(webhook_type, object_type, record, options or {})
        organization = await self.db.get(Organization, record.organization_id)

        webhooks = []
        for endpoint in endpoints:
            webhook = Webhook(
                webhook_endpoint_id=endpoint.id,
                object_type=object_type,
                object_id=object_id,
                webhook_type=webhook_type,
                endpoint=endpoint.webhook_url,
                payload=payload,
                status=WebhookStatus.PENDING.value,
            )
            self.db.add(webhook)
            await self.db.flush()
            await self._deliver(webhook, endpoint, organization)
            webhooks.append(webhook)

        await self.db.commit()
        return webhooks

    async def retry(self, webhook_id: str, organization_id: str | None = None) -> Webhook:
        """
        Re-send a failed webhook.

        Raises:
            NotFoundFailure: Unknown webhook (or endpoint of another organization)
            ServiceFailure: The webhook did not fail
        """
        webhook = await self.db.get(Webhook, webhook_id)
        endpoint = await self.db.get(WebhookEndpoint, webhook.webhook_endpoint_id) if webhook else None
        if webhook is None or endpoint is None:
            raise NotFoundFailure("webhook")
        if organization_id is not None and endpoint.organization_id != organization_id:
            raise NotFoundFailure("webhook")
        if webhook.status != WebhookStatus.FAILED.value:
            raise ServiceFailure("is_not_failed", "Only failed webhooks can be retried")

        organization = await self.db.get(Organization, endpoint.organization_id)
        webhook.retries = (webhook.retries or 0) + 1
        webhook.last_retried_at = datetime.now(UTC)
        await self._deliver(webhook, endpoint, organization)
        await self.db.commit()
        return webhook

    def _headers(self, webhook: Webhook, endpoint: WebhookEndpoint, organization: Organization, body: str) -> dict[str, str]:
        if endpoint.signature_algo == SignatureAlgo.HMAC.value:
            signature = hmac_signature(body, organization.api_key)
        else:
            if not settings.webhook_jwt_private_key:
                raise ServiceFailure("webhook_signature_error", "Webhook signing key is not configured")
            signature = jwt_signature(body, settings.webhook_jwt_private_key, settings.api_url)

        return {
            "Content-Type": "application/json",
            "X-Lago-Signature": signature,
            "X-Lago-Signature-Algorithm": endpoint.signature_algo,
            "X-Lago-Unique-Key": webhook.id,
        }

    async def _deliver(self, webhook: Webhook, endpoint: WebhookEndpoint, organization: Organization) -> None:
        body = json.dumps(webhook.payload_data)

        try:
            headers = self._headers(webhook, endpoint, organization, body)
            async with httpx.AsyncClient(timeout=settings.webhook_timeout_seconds) as client:
                response = await client.post(endpoint.webhook_url, content=body, headers=headers)
        except ServiceFailure as e:
            logger.error("Webhook %s not signed: %s", webhook.id, e.message)
            webhook.status = WebhookStatus.FAILED.value
            webhook.response = {"error": e.message}
            return
        except httpx.RequestError as e:
            logger.warning("Webhook %s to %s failed: %s", webhook.id, endpoint.webhook_url, e)
            webhook.status = WebhookStatus.FAILED.value
            webhook.http_status = None
            webhook.response = {"error": str(e)}
            return

        webhook.http_status = response.status_code
        if response.is_success:
            webhook.status = WebhookStatus.SUCCEEDED.value
            webhook.response = None
            logger.info("Webhook %s delivered to %s", webhook.webhook_type, endpoint.webhook_url)
        else:
            webhook.status = WebhookStatus.FAILED.value
            webhook.response = {"body": response.text[:2000]}
            logger.warning(
                "Webhook %s to %s returned %s", webhook.webhook_type, endpoint.webhook_url, response.status_code
            )
