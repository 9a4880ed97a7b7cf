"""
Payment status updates of invoices and payment requests.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import ValidationFailure
from infrastructure.database.models import Invoice, PaymentRequest, PaymentStatus
from services import jobs

logger = logging.getLogger(__name__)

VALID_PAYMENT_STATUSES = {status.value for status in PaymentStatus}


class _PayableUpdateService:
    webhook_type: str = ""
    object_type: str = ""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def update(
        self,
        payable: Invoice | PaymentRequest,
        payment_status: str | None,
        ready_for_payment_processing: bool,
        webhook_notification: bool = True,
    ) -> Invoice | PaymentRequest:
        """
        Persist a new payment status.

        Raises:
            ValidationFailure: If payment_status is not a known payable status
        """
        if payment_status not in VALID_PAYMENT_STATUSES:
            raise ValidationFailure.single("payment_status", "value_is_invalid")

        changed = payable.payment_status != payment_status
        payable.payment_status = payment_status
        payable.ready_for_payment_processing = ready_for_payment_processing
        await self.db.commit()

        if changed:
            logger.info(
                "%s %s payment status set to %s", self.object_type, payable.id, payment_status
            )
            if webhook_notification:
                await jobs.send_webhook_later(self.webhook_type, self.object_type, payable.id)

        return payable


class InvoiceUpdateService(_PayableUpdateService):
    webhook_type = "invoice.payment_status_updated"
    object_type = "invoice"


class PaymentRequestUpdateService(_PayableUpdateService):
    webhook_type = "payment_request.payment_status_updated"
    object_type = "payment_request"
