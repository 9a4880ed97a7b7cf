"""
Moneyhash payments of payment requests.

A payment request collects several invoices at once; its payment status is
mirrored onto each of those invoices.
"""

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from adapters.payments import MoneyhashAPIError
from infrastructure.database.models import (
    Invoice,
    PayableType,
    Payment,
    PaymentRequest,
    PaymentStatus,
    payment_request_invoices,
)
from services import jobs
from services.payments.base import MoneyhashPayableService, PaymentResult
from services.payments.payable_updates import InvoiceUpdateService, PaymentRequestUpdateService
from services.payments.statuses import DEFAULT_INTENT_STATUS, payable_payment_status, ready_for_payment_processing

logger = logging.getLogger(__name__)


async def get_payment_request_invoices(db: AsyncSession, payment_request_id: str) -> list[Invoice]:
    result = await db.execute(
        select(Invoice)
        .join(payment_request_invoices, payment_request_invoices.c.invoice_id == Invoice.id)
        .where(payment_request_invoices.c.payment_request_id == payment_request_id)
        .order_by(Invoice.created_at)
    )
    return list(result.scalars().all())


class PaymentRequestPaymentService(MoneyhashPayableService):
    payable_model = PaymentRequest
    payable_type = PayableType.PAYMENT_REQUEST.value
    failure_webhook_type = "payment_request.payment_failure"
    object_type = "payment_request"

    def __init__(self, db: AsyncSession, payable: PaymentRequest | None = None):
        super().__init__(db, payable)

    async def _update_payable_status(
        self,
        payment_status: str | None,
        processing: bool = False,
        deliver_webhook: bool = True,
    ) -> None:
        ready = ready_for_payment_processing(payment_status, processing)
        await PaymentRequestUpdateService(self.db).update(
            self.payable,
            payment_status=payment_status,
            ready_for_payment_processing=ready,
            webhook_notification=deliver_webhook,
        )
        await self._update_invoices_status(payment_status, ready, deliver_webhook)

    async def _update_invoices_status(self, payment_status: str | None, ready: bool, deliver_webhook: bool) -> None:
        update_service = InvoiceUpdateService(self.db)
        for invoice in await get_payment_request_invoices(self.db, self.payable.id):
            await update_service.update(
                invoice,
                payment_status=payment_status,
                ready_for_payment_processing=ready,
                webhook_notification=deliver_webhook,
            )

    def _billing_data(self) -> dict[str, Any]:
        billing_data = super()._billing_data()
        billing_data.update(
            {
                "city": self.customer.city,
                "state": self.customer.state,
                "country": self.customer.country.upper() if self.customer.country else None,
            }
        )
        return billing_data

    async def create(self) -> PaymentResult:
        """
        Collect the payment request through a Moneyhash payment intent.

        Provider errors mark the payment request as failed; they are not raised.
        """
        result = PaymentResult(payable=self.payable)
        if not await self.should_process_payment():
            return result

        if self.payable.total_amount_cents <= 0:
            await self._update_payable_status(PaymentStatus.SUCCEEDED.value)
            return result

        self.payable.increment_payment_attempts()

        try:
            response = await self._adapter().create_payment_intent(self._intent_params())
        except MoneyhashAPIError as e:
            logger.warning("Moneyhash payment failed for payment request %s: %s", self.payable.id, e.message)
            await self._deliver_error_webhook(e)
            await PaymentRequestUpdateService(self.db).update(
                self.payable,
                payment_status=PaymentStatus.FAILED.value,
                ready_for_payment_processing=True,
                webhook_notification=False,
            )
            return result

        data = response.get("data") or {}
        payment = Payment(
            payable_type=self.payable_type,
            payable_id=self.payable.id,
            payment_provider_id=self.payment_provider.id,
            payment_provider_customer_id=self.moneyhash_customer.id,
            amount_cents=self.payable.amount_cents,
            amount_currency=self.payable.currency.upper() if self.payable.currency else None,
            provider_payment_id=data.get("id"),
            status=data.get("status") or DEFAULT_INTENT_STATUS,
        )
        self.db.add(payment)

        await self._update_payable_status(payable_payment_status(payment.status))

        checkout_url = data.get("embed_url")
        if checkout_url:
            await jobs.send_webhook_later(
                "customer.checkout_url_generated",
                "customer",
                self.customer.id,
                {"checkout_url": checkout_url},
            )

        result.payment = payment
        result.payment_url = checkout_url
        return result
