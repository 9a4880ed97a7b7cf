"""
Provisioning of customers at Moneyhash.
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
from infrastructure.database.models import Customer, MoneyhashCustomer, PaymentProvider
from services import jobs
from services.payment_providers.finder import PaymentProviderFinder

logger = logging.getLogger(__name__)


@dataclass
class CustomerResult:
    moneyhash_customer: MoneyhashCustomer | None = None
    checkout_url: str | None = None


class MoneyhashCustomerService:
    def __init__(self, db: AsyncSession, moneyhash_customer: MoneyhashCustomer | None = None):
        self.db = db
        self.moneyhash_customer = moneyhash_customer

    async def _customer(self) -> Customer:
        customer = await self.db.get(Customer, self.moneyhash_customer.customer_id)
        if customer is None:
            raise NotFoundFailure("customer")
        return customer

    async def _provider(self, customer: Customer) -> PaymentProvider:
        provider = None
        if self.moneyhash_customer.payment_provider_id:
            provider = await self.db.get(PaymentProvider, self.moneyhash_customer.payment_provider_id)
        if provider is None:
            provider = await PaymentProviderFinder(self.db).for_customer(customer)
        if provider is None:
            raise NotFoundFailure("moneyhash_payment_provider")
        return provider

    @staticmethod
    def _adapter(provider: PaymentProvider) -> MoneyhashAdapter:
        return MoneyhashAdapter(api_key=decrypt_credential(provider.encrypted_api_key, settings.secret_key))

    @staticmethod
    def _customer_params(customer: Customer) -> dict[str, Any]:
        params = {
            "first_name": customer.firstname,
            "last_name": customer.lastname,
            "email": customer.email,
            "phone_number": customer.phone,
            "tax_id": customer.tax_identification_number,
            "address": customer.address_line1,
            "contact_person_name": customer.legal_name,
        }
        return {key: value for key, value in params.items() if value is not None}

    async def create(self) -> CustomerResult:
        """
        Create the customer at Moneyhash unless it already exists there.

        Raises:
            MoneyhashAPIError: If Moneyhash rejects the customer
        """
        result = CustomerResult(moneyhash_customer=self.moneyhash_customer)
        if self.moneyhash_customer.provider_customer_id:
            return result

        customer = await self._customer()
        provider = await self._provider(customer)

        try:
            response = await self._adapter(provider).create_customer(self._customer_params(customer))
        except MoneyhashAPIError as e:
            logger.warning("Moneyhash customer creation failed for %s: %s", customer.id, e.message)
            await jobs.send_webhook_later(
                "customer.payment_provider_error",
                "customer",
                customer.id,
                {"provider_error": {"message": e.message, "error_code": e.error_code}},
            )
            raise

        self.moneyhash_customer.provider_customer_id = (response.get("data") or {}).get("id")
        self.moneyhash_customer.payment_provider_id = provider.id
        await self.db.commit()

        logger.info("Moneyhash customer %s created for %s", self.moneyhash_customer.provider_customer_id, customer.id)
        await jobs.send_webhook_later("customer.payment_provider_created", "customer", customer.id)
        await jobs.generate_moneyhash_checkout_url_later(self.moneyhash_customer.id)
        return result

    async def update(self) -> CustomerResult:
        """Moneyhash customers are not updated after creation."""
        return CustomerResult(moneyhash_customer=self.moneyhash_customer)

    async def update_payment_method(
        self,
        organization_id: str,
        customer_id: str | None,
        payment_method_id: str | None,
        metadata: dict[str, Any] | None = None,
    ) -> CustomerResult:
        """
        Store the card token Moneyhash charges for the customer.

        Raises:
            NotFoundFailure: The customer exists but has no Moneyhash record
        """
        metadata = metadata or {}

        moneyhash_customer = None
        if customer_id:
            result = await self.db.execute(
                select(MoneyhashCustomer)
                .join(Customer, Customer.id == MoneyhashCustomer.customer_id)
                .where(
                    MoneyhashCustomer.customer_id == customer_id,
                    Customer.organization_id == organization_id,
                )
            )
            moneyhash_customer = result.scalar_one_or_none()

        if moneyhash_customer is None:
            return await self._handle_missing_customer(organization_id, metadata)

        moneyhash_customer.payment_method_id = payment_method_id
        await self.db.commit()

        self.moneyhash_customer = moneyhash_customer
        return CustomerResult(moneyhash_customer=moneyhash_customer)

    async def _handle_missing_customer(self, organization_id: str, metadata: dict[str, Any]) -> CustomerResult:
        if "lago_customer_id" not in metadata:
            return CustomerResult()

        result = await self.db.execute(
            select(Customer.id).where(
                Customer.id == str(metadata["lago_customer_id"]),
                Customer.organization_id == organization_id,
            )
        )
        if result.scalar_one_or_none() is None:
            return CustomerResult()

        raise NotFoundFailure("moneyhash_customer")

    async def generate_checkout_url(self, send_webhook: bool = True) -> CustomerResult:
        """
        Create a card tokenization page for the customer.

        Raises:
            MoneyhashAPIError: If Moneyhash rejects the intent
        """
        customer = await self._customer()
        provider = await self._provider(customer)

        params = {
            "customer": self.moneyhash_customer.provider_customer_id,
            "webhook_url": provider.webhook_redirect_url,
            "successful_redirect_url": provider.success_redirect_url,
            "failed_redirect_url": provider.failed_redirect_url,
            "pending_external_action_redirect_url": provider.pending_redirect_url,
            "custom_fields": {"lago_customer_id": customer.id},
        }
        response = await self._adapter(provider).create_card_intent(params)
        checkout_url = (response.get("data") or {}).get("embed_url")

        if send_webhook and checkout_url:
            await jobs.send_webhook_later(
                "customer.checkout_url_generated",
                "customer",
                customer.id,
                {"checkout_url": checkout_url},
            )
        return CustomerResult(moneyhash_customer=self.moneyhash_customer, checkout_url=checkout_url)
