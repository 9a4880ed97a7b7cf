"""
Moneyhash payments of invoices.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from adapters.payments import MoneyhashAPIError
from core.errors import ServiceFailure
from infrastructure.database.models import Invoice, PayableType, Payment, PaymentStatus
from services.payments.base import MoneyhashPayableService, PaymentResult
from services.payments.payable_updates import InvoiceUpdateService
from services.payments.statuses import DEFAULT_INTENT_STATUS, payable_payment_status, ready_for_payment_processing

logger = logging.getLogger(__name__)


class InvoicePaymentService(MoneyhashPayableService):
    payable_model = Invoice
    payable_type = PayableType.INVOICE.value
    failure_webhook_type = "invoice.payment_failure"
    object_type = "invoice"

    def __init__(self, db: AsyncSession, invoice: Invoice | None = None):
        super().__init__(db, invoice)

    @property
    def invoice(self) -> Invoice | None:
        return self.payable

    def _payable_not_processable(self) -> bool:
        return self.payable.payment_succeeded or self.payable.voided

    async def _update_payable_status(
        self,
        payment_status: str | None,
        processing: bool = False,
        deliver_webhook: bool = True,
    ) -> None:
        await InvoiceUpdateService(self.db).update(
            self.payable,
            payment_status=payment_status,
            ready_for_payment_processing=ready_for_payment_processing(payment_status, processing),
            webhook_notification=deliver_webhook,
        )

    async def create(self) -> PaymentResult:
        """
        Collect the invoice through a Moneyhash payment intent.

        Raises:
            ServiceFailure: If Moneyhash rejects the intent
        """
        result = PaymentResult(payable=self.invoice)
        if not await self.should_process_payment():
            return result

        if self.invoice.total_amount_cents <= 0:
            await self._update_payable_status(PaymentStatus.SUCCEEDED.value)
            return result

        self.invoice.increment_payment_attempts()

        try:
            response = await self._adapter().create_payment_intent(self._intent_params())
        except MoneyhashAPIError as e:
            logger.warning("Moneyhash payment failed for invoice %s: %s", self.invoice.id, e.message)
            await self._deliver_error_webhook(e)
            await self._update_payable_status(PaymentStatus.FAILED.value, deliver_webhook=False)
            raise ServiceFailure(e.error_code or "moneyhash_error", e.message) from e

        data = response.get("data") or {}
        payment = Payment(
            payable_type=self.payable_type,
            payable_id=self.invoice.id,
            payment_provider_id=self.payment_provider.id,
            payment_provider_customer_id=self.moneyhash_customer.id,
            amount_cents=self.invoice.total_amount_cents,
            amount_currency=self.invoice.currency.upper(),
            provider_payment_id=data.get("id"),
            status=data.get("status") or DEFAULT_INTENT_STATUS,
        )
        self.db.add(payment)

        await self._update_payable_status(payable_payment_status(payment.status))

        result.payment = payment
        result.payment_url = data.get("embed_url")
        return result

    async def generate_payment_url(self) -> PaymentResult:
        """
        Create a checkout intent for the invoice and return its embed URL.

        Raises:
            ServiceFailure: If Moneyhash rejects the intent
        """
        result = PaymentResult(payable=self.invoice)
        if not await self.should_process_payment():
            return result

        try:
            response = await self._adapter().create_payment_intent(self._intent_params())
        except MoneyhashAPIError as e:
            await self._deliver_error_webhook(e)
            raise ServiceFailure(e.error_code or "moneyhash_error", e.message) from e

        result.payment_url = (response.get("data") or {}).get("embed_url")
        return result
