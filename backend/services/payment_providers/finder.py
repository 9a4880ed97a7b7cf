"""
Lookup of an organization's payment provider.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import NotFoundFailure, ServiceFailure
from infrastructure.database.models import Customer, MoneyhashCustomer, PaymentProvider, PaymentProviderType


class PaymentProviderFinder:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find(
        self,
        organization_id: str,
        code: str | None = None,
        provider_type: str = PaymentProviderType.MONEYHASH.value,
    ) -> PaymentProvider:
        """
        Find a provider by code, or the only provider of that type when no code is given.

        Raises:
            NotFoundFailure: No matching provider
            ServiceFailure: Several providers of that type and no code to pick one
        """
        query = select(PaymentProvider).where(
            PaymentProvider.organization_id == organization_id,
            PaymentProvider.provider_type == provider_type,
        )
        if code:
            query = query.where(PaymentProvider.code == code)

        providers = list((await self.db.execute(query.limit(2))).scalars().all())
        if not providers:
            raise NotFoundFailure("payment_provider")
        if len(providers) > 1:
            raise ServiceFailure(
                "payment_provider_code_error",
                "Code is missing",
            )
        return providers[0]

    async def for_customer(self, customer: Customer | None) -> PaymentProvider | None:
        """Moneyhash provider attached to the customer, if any."""
        if customer is None or customer.payment_provider != PaymentProviderType.MONEYHASH.value:
            return None

        query = select(PaymentProvider).where(
            PaymentProvider.organization_id == customer.organization_id,
            PaymentProvider.provider_type == PaymentProviderType.MONEYHASH.value,
        )
        if customer.payment_provider_code:
            query = query.where(PaymentProvider.code == customer.payment_provider_code)

        result = await self.db.execute(query.order_by(PaymentProvider.created_at).limit(1))
        return result.scalar_one_or_none()


async def get_moneyhash_customer(db: AsyncSession, customer_id: str | None) -> MoneyhashCustomer | None:
    if not customer_id:
        return None
    result = await db.execute(select(MoneyhashCustomer).where(MoneyhashCustomer.customer_id == customer_id))
    return result.scalar_one_or_none()
