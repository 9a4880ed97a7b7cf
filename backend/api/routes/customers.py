"""
Customer API routes.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import CurrentOrganization
from api.schemas.customers import (
    BillingConfiguration,
    BillingConfigurationInput,
    CustomerObject,
    CustomerRequest,
    CustomerResponse,
)
from core.errors import NotFoundFailure, ValidationFailure
from infrastructure.database.connection import get_db
from infrastructure.database.models import Customer, MoneyhashCustomer, PaymentProviderType
from services import jobs
from services.payment_provider_customers import MoneyhashCustomerService
from services.payment_providers.finder import PaymentProviderFinder, get_moneyhash_customer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/customers", tags=["customers"])

CUSTOMER_FIELDS = (
    "name",
    "firstname",
    "lastname",
    "legal_name",
    "email",
    "phone",
    "address_line1",
    "city",
    "state",
    "country",
    "tax_identification_number",
    "currency",
    "vat_rate",
)


async def _get_customer(db: AsyncSession, organization_id: str, external_id: str) -> Customer | None:
    result = await db.execute(
        select(Customer).where(
            Customer.organization_id == organization_id,
            Customer.external_id == external_id,
        )
    )
    return result.scalar_one_or_none()


async def _customer_response(db: AsyncSession, customer: Customer) -> CustomerResponse:
    moneyhash_customer = await get_moneyhash_customer(db, customer.id)
    return CustomerResponse(
        customer=CustomerObject(
            lago_id=customer.id,
            external_id=customer.external_id,
            **{field: getattr(customer, field) for field in CUSTOMER_FIELDS},
            billing_configuration=BillingConfiguration(
                payment_provider=customer.payment_provider,
                payment_provider_code=customer.payment_provider_code,
                provider_customer_id=moneyhash_customer.provider_customer_id if moneyhash_customer else None,
                provider_payment_method_id=moneyhash_customer.payment_method_id if moneyhash_customer else None,
            ),
            created_at=customer.created_at,
        )
    )


async def _apply_billing_configuration(
    db: AsyncSession,
    organization_id: str,
    customer: Customer,
    config: BillingConfigurationInput,
) -> tuple[MoneyhashCustomer | None, bool]:
    """
    Attach the customer to its Moneyhash provider.

    Returns the provider customer record and whether the Moneyhash side
    changed in a way that needs background work.
    """
    if config.payment_provider is None:
        customer.payment_provider = None
        customer.payment_provider_code = None
        return None, False

    provider = await PaymentProviderFinder(db).find(
        organization_id=organization_id,
        code=config.payment_provider_code,
        provider_type=PaymentProviderType.MONEYHASH.value,
    )
    customer.payment_provider = PaymentProviderType.MONEYHASH.value
    customer.payment_provider_code = provider.code

    moneyhash_customer = await get_moneyhash_customer(db, customer.id)
    if moneyhash_customer is None:
        moneyhash_customer = MoneyhashCustomer(customer_id=customer.id)
        db.add(moneyhash_customer)
    moneyhash_customer.payment_provider_id = provider.id

    provider_customer_changed = False
    if config.provider_customer_id and config.provider_customer_id != moneyhash_customer.provider_customer_id:
        moneyhash_customer.provider_customer_id = config.provider_customer_id
        provider_customer_changed = True

    return moneyhash_customer, provider_customer_changed


@router.post("", response_model=CustomerResponse)
async def upsert_customer(
    body: CustomerRequest,
    organization: CurrentOrganization,
    db: AsyncSession = Depends(get_db),
):
    """
    Create a customer, or update the one with the same external_id.

    With a Moneyhash billing configuration the customer is linked to the
    provider; sync_with_provider creates the customer at Moneyhash in the
    background.
    """
    params = body.customer
    values = params.model_dump(exclude_unset=True, exclude={"external_id", "billing_configuration"})

    customer = await _get_customer(db, organization.id, params.external_id)
    if customer is None:
        customer = Customer(organization_id=organization.id, external_id=params.external_id)
        db.add(customer)
        created = True
    else:
        created = False

    for field, value in values.items():
        setattr(customer, field, value)
    await db.flush()

    moneyhash_customer = None
    provider_customer_changed = False
    config = params.billing_configuration
    if config is not None:
        moneyhash_customer, provider_customer_changed = await _apply_billing_configuration(
            db, organization.id, customer, config
        )

    await db.commit()
    logger.info("Customer %s %s", customer.external_id, "created" if created else "updated")

    if moneyhash_customer is not None:
        if provider_customer_changed:
            await jobs.generate_moneyhash_checkout_url_later(moneyhash_customer.id)
        elif config.sync_with_provider and not moneyhash_customer.provider_customer_id:
            await jobs.create_moneyhash_customer_later(moneyhash_customer.id)

    return await _customer_response(db, customer)


@router.get("/{external_id}", response_model=CustomerResponse)
async def get_customer(
    external_id: str,
    organization: CurrentOrganization,
    db: AsyncSession = Depends(get_db),
):
    """Get a customer by its external id."""
    customer = await _get_customer(db, organization.id, external_id)
    if customer is None:
        raise NotFoundFailure("customer")
    return await _customer_response(db, customer)


@router.get("/{external_id}/checkout_url")
async def get_checkout_url(
    external_id: str,
    organization: CurrentOrganization,
    db: AsyncSession = Depends(get_db),
):
    """Generate a Moneyhash page where the customer registers a card."""
    customer = await _get_customer(db, organization.id, external_id)
    if customer is None:
        raise NotFoundFailure("customer")

    moneyhash_customer = await get_moneyhash_customer(db, customer.id)
    if customer.payment_provider != PaymentProviderType.MONEYHASH.value or moneyhash_customer is None:
        raise ValidationFailure.single("base", "no_linked_payment_provider")
    if not moneyhash_customer.provider_customer_id:
        raise ValidationFailure.single("base", "customer_not_synced_with_provider")

    result = await MoneyhashCustomerService(db, moneyhash_customer).generate_checkout_url(send_webhook=False)
    return {
        "customer": {
            "lago_customer_id": customer.id,
            "external_customer_id": customer.external_id,
            "payment_provider": customer.payment_provider,
            "payment_provider_code": customer.payment_provider_code,
            "checkout_url": result.checkout_url,
        }
    }
