"""
Shared Moneyhash payment flow for payables (invoices and payment requests).
"""

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from adapters.payments import MoneyhashAdapter, MoneyhashAPIError
from core.errors import NotFoundFailure
from core.security import decrypt_credential
from infrastructure.config.settings import settings
from infrastructure.database.models import (
    Customer,
    Invoice,
    MoneyhashCustomer,
    Payment,
    PaymentProvider,
    PaymentRequest,
)
from services import jobs
from services.payment_providers.finder import PaymentProviderFinder, get_moneyhash_customer
from services.payments.statuses import PROCESSING_STATUS, payable_payment_status, ready_for_payment_processing

logger = logging.getLogger(__name__)


@dataclass
class PaymentResult:
    """Outcome of a payment operation."""

    payable: Invoice | PaymentRequest | None = None
    payment: Payment | None = None
    payment_url: str | None = None


class MoneyhashPayableService:
    """
    Base class for Moneyhash payment services.

    Subclasses bind the payable model, its update service and the
    failure webhook type.
    """

    payable_model: type[Invoice] | type[PaymentRequest]
    payable_type: str
    failure_webhook_type: str
    object_type: str

    def __init__(self, db: AsyncSession, payable: Invoice | PaymentRequest | None = None):
        self.db = db
        self.payable = payable
        self._customer: Customer | None = None
        self._provider: PaymentProvider | None = None
        self._moneyhash_customer: MoneyhashCustomer | None = None
        self._context_loaded_for: str | None = None

    # ── Context ───────────────────────────────────────────────────────────────

    async def _load_context(self) -> None:
        if self.payable is None or self._context_loaded_for == self.payable.id:
            return
        self._customer = await self.db.get(Customer, self.payable.customer_id)
        self._provider = await PaymentProviderFinder(self.db).for_customer(self._customer)
        self._moneyhash_customer = await get_moneyhash_customer(self.db, self.payable.customer_id)
        self._context_loaded_for = self.payable.id

    @property
    def customer(self) -> Customer | None:
        return self._customer

    @property
    def payment_provider(self) -> PaymentProvider | None:
        return self._provider

    @property
    def moneyhash_customer(self) -> MoneyhashCustomer | None:
        return self._moneyhash_customer

    def _adapter(self) -> MoneyhashAdapter:
        api_key = decrypt_credential(self._provider.encrypted_api_key, settings.secret_key)
        return MoneyhashAdapter(api_key=api_key)

    def _payable_not_processable(self) -> bool:
        return self.payable.payment_succeeded

    async def should_process_payment(self) -> bool:
        await self._load_context()
        if self._payable_not_processable():
            return False
        if self._provider is None:
            return False
        return bool(self._moneyhash_customer and self._moneyhash_customer.provider_customer_id)

    # ── Status updates ────────────────────────────────────────────────────────

    async def _update_payable_status(
        self,
        payment_status: str | None,
        processing: bool = False,
        deliver_webhook: bool = True,
    ) -> None:
        raise NotImplementedError

    async def _find_payable(self, organization_id: str, payable_id: Any) -> Invoice | PaymentRequest | None:
        if not payable_id:
            return None
        result = await self.db.execute(
            select(self.payable_model).where(
                self.payable_model.id == str(payable_id),
                self.payable_model.organization_id == organization_id,
            )
        )
        return result.scalar_one_or_none()

    async def _find_payment(self, provider_payment_id: str | None) -> Payment | None:
        if not provider_payment_id:
            return None
        result = await self.db.execute(
            select(Payment).where(Payment.provider_payment_id == provider_payment_id)
        )
        return result.scalar_one_or_none()

    async def _build_payment(
        self,
        organization_id: str,
        provider_payment_id: str | None,
        metadata: dict[str, Any],
    ) -> Payment | None:
        payable = await self._find_payable(organization_id, metadata.get("lago_payable_id"))
        if payable is None:
            return None

        self.payable = payable
        await self._load_context()
        if self._provider is None:
            return None

        payable.increment_payment_attempts()
        payment = Payment(
            payable_type=self.payable_type,
            payable_id=payable.id,
            payment_provider_id=self._provider.id,
            payment_provider_customer_id=self._moneyhash_customer.id if self._moneyhash_customer else None,
            amount_cents=payable.total_amount_cents,
            amount_currency=payable.currency.upper() if payable.currency else None,
            provider_payment_id=provider_payment_id,
        )
        return payment

    async def _handle_missing_payment(self, organization_id: str, metadata: dict[str, Any]) -> PaymentResult:
        """Ignore events that cannot be tied to a live payable, fail otherwise."""
        if "lago_payable_id" not in metadata:
            return PaymentResult()

        payable = await self._find_payable(organization_id, metadata["lago_payable_id"])
        if payable is None or payable.payment_failed:
            return PaymentResult(payable=payable)

        raise NotFoundFailure("moneyhash_payment")

    async def update_payment_status(
        self,
        organization_id: str,
        provider_payment_id: str | None,
        status: str,
        metadata: dict[str, Any] | None = None,
    ) -> PaymentResult:
        """
        Apply a provider status to the payment and its payable.

        Late events never override a payable that has already succeeded.
        """
        metadata = metadata or {}

        payment = await self._find_payment(provider_payment_id)
        if payment is not None and payment.payable_type == self.payable_type:
            self.payable = await self.db.get(self.payable_model, payment.payable_id)
            if self.payable is None:
                payment = None
        elif payment is not None:
            logger.warning(
                "Payment %s belongs to a %s, not a %s",
                provider_payment_id,
                payment.payable_type,
                self.payable_type,
            )
            payment = None
        else:
            payment = await self._build_payment(organization_id, provider_payment_id, metadata)

        if payment is None:
            return await self._handle_missing_payment(organization_id, metadata)

        result = PaymentResult(payable=self.payable, payment=payment)
        if self.payable.payment_succeeded:
            await self.db.commit()
            return result

        self.db.add(payment)
        payment.status = status
        await self._update_payable_status(
            payable_payment_status(status),
            processing=status == PROCESSING_STATUS,
        )
        return result

    # ── Moneyhash calls ───────────────────────────────────────────────────────

    def _billing_data(self) -> dict[str, Any]:
        customer = self._customer
        return {
            "first_name": customer.firstname,
            "last_name": customer.lastname,
            "phone_number": customer.phone,
            "email": customer.email,
        }

    def _intent_params(self) -> dict[str, Any]:
        """Payment intent body shared by payment URLs and payment creation."""
        payable = self.payable
        provider = self._provider
        return {
            "amount": payable.total_amount_cents,
            "amount_currency": payable.currency.upper(),
            "expires_after_seconds": settings.moneyhash_intent_expiry_seconds,
            "operation": "purchase",
            "billing_data": self._billing_data(),
            "customer": self._moneyhash_customer.provider_customer_id,
            "successful_redirect_url": provider.success_redirect_url,
            "failed_redirect_url": provider.failed_redirect_url,
            "pending_external_action_redirect_url": provider.pending_redirect_url,
            "webhook_url": provider.webhook_redirect_url,
            "merchant_initiated": False,
            "tokenize_card": True,
            "payment_type": "UNSCHEDULED",
            "recurring_data": {"agreement_id": payable.id},
            "custom_fields": {
                "lago_customer_id": self._customer.id,
                "lago_payable_id": payable.id,
                "lago_payable_type": self.payable_type,
            },
        }

    async def _deliver_error_webhook(self, error: MoneyhashAPIError) -> None:
        await self.db.commit()
        await jobs.send_webhook_later(
            self.failure_webhook_type,
            self.object_type,
            self.payable.id,
            {
                "provider_customer_id": self._moneyhash_customer.provider_customer_id
                if self._moneyhash_customer
                else None,
                "provider_error": {
                    "message": error.message,
                    "error_code": error.error_code,
                },
            },
        )
