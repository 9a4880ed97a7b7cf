"""
Background jobs.

Each `*_later` helper enqueues a job on the in-process job queue; the job
bodies open their own database session and reload records by id.
"""

import logging
from typing import Any
from uuid import uuid4

from adapters.payments import MoneyhashAPIError
from infrastructure.database.connection import get_db_context
from services.task_queue import job_queue

logger = logging.getLogger(__name__)

MONEYHASH_CUSTOMER_MAX_ATTEMPTS = 6


# ── Job bodies ────────────────────────────────────────────────────────────────


async def send_webhook(
    webhook_type: str,
    object_type: str,
    object_id: str,
    options: dict[str, Any] | None = None,
) -> int:
    from services.outgoing_webhooks import SendWebhookService

    async with get_db_context() as db:
        webhooks = await SendWebhookService(db).call(webhook_type, object_type, object_id, options)
        return len(webhooks)


async def create_invoice_payment(invoice_id: str) -> str | None:
    from infrastructure.database.models import Invoice
    from services.payments.invoice_payments import InvoicePaymentService

    async with get_db_context() as db:
        invoice = await db.get(Invoice, invoice_id)
        if invoice is None:
            logger.warning("create_invoice_payment: invoice %s not found", invoice_id)
            return None
        result = await InvoicePaymentService(db, invoice).create()
        return result.payable.payment_status if result.payable else None


async def create_payment_request_payment(payment_request_id: str) -> str | None:
    """Collect a payment request; mail the customer when the collection failed."""
    from adapters.email.resend_adapter import payment_email_service
    from infrastructure.database.models import Customer, PaymentRequest
    from services.payments.payment_request_payments import (
        PaymentRequestPaymentService,
        get_payment_request_invoices,
    )

    async with get_db_context() as db:
        payment_request = await db.get(PaymentRequest, payment_request_id)
        if payment_request is None:
            logger.warning("create_payment_request_payment: payment request %s not found", payment_request_id)
            return None

        result = await PaymentRequestPaymentService(db, payment_request).create()
        if result.payable is not None and result.payable.payment_failed:
            customer = await db.get(Customer, payment_request.customer_id)
            invoices = await get_payment_request_invoices(db, payment_request.id)
            await payment_email_service.send_payment_requested_email(
                to_email=payment_request.email or (customer.email if customer else None),
                customer_name=customer.name if customer else None,
                amount_cents=payment_request.amount_cents,
                currency=payment_request.amount_currency,
                invoice_ids=[invoice.id for invoice in invoices],
            )
        return result.payable.payment_status if result.payable else None


async def create_moneyhash_customer(moneyhash_customer_id: str) -> str | None:
    from infrastructure.database.models import MoneyhashCustomer
    from services.payment_provider_customers import MoneyhashCustomerService

    async with get_db_context() as db:
        moneyhash_customer = await db.get(MoneyhashCustomer, moneyhash_customer_id)
        if moneyhash_customer is None:
            logger.warning("create_moneyhash_customer: record %s not found", moneyhash_customer_id)
            return None
        result = await MoneyhashCustomerService(db, moneyhash_customer).create()
        return result.moneyhash_customer.provider_customer_id


async def generate_moneyhash_checkout_url(moneyhash_customer_id: str) -> str | None:
    from infrastructure.database.models import MoneyhashCustomer
    from services.payment_provider_customers import MoneyhashCustomerService

    async with get_db_context() as db:
        moneyhash_customer = await db.get(MoneyhashCustomer, moneyhash_customer_id)
        if moneyhash_customer is None:
            return None
        result = await MoneyhashCustomerService(db, moneyhash_customer).generate_checkout_url()
        return result.checkout_url


# ── Enqueue helpers ───────────────────────────────────────────────────────────


async def send_webhook_later(
    webhook_type: str,
    object_type: str,
    object_id: str,
    options: dict[str, Any] | None = None,
) -> str:
    return await job_queue.enqueue(
        f"send_webhook:{webhook_type}:{object_id}:{uuid4().hex}",
        lambda: send_webhook(webhook_type, object_type, object_id, options),
    )


async def create_invoice_payment_later(invoice_id: str) -> str:
    return await job_queue.enqueue(
        f"create_invoice_payment:{invoice_id}",
        lambda: create_invoice_payment(invoice_id),
    )


async def create_payment_request_payment_later(payment_request_id: str) -> str:
    return await job_queue.enqueue(
        f"create_payment_request_payment:{payment_request_id}",
        lambda: create_payment_request_payment(payment_request_id),
    )


async def create_moneyhash_customer_later(moneyhash_customer_id: str) -> str:
    return await job_queue.enqueue(
        f"create_moneyhash_customer:{moneyhash_customer_id}",
        lambda: create_moneyhash_customer(moneyhash_customer_id),
        max_attempts=MONEYHASH_CUSTOMER_MAX_ATTEMPTS,
        retry_on=(MoneyhashAPIError,),
    )


async def generate_moneyhash_checkout_url_later(moneyhash_customer_id: str) -> str:
    return await job_queue.enqueue(
        f"generate_moneyhash_checkout_url:{moneyhash_customer_id}",
        lambda: generate_moneyhash_checkout_url(moneyhash_customer_id),
    )
