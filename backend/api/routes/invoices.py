"""
Invoice API routes.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import CurrentOrganization
from api.schemas.invoices import (
    InvoiceObject,
    InvoicePaymentDetails,
    InvoicePaymentUrlResponse,
    InvoiceResponse,
)
from core.errors import NotFoundFailure, ValidationFailure
from infrastructure.database.connection import get_db
from infrastructure.database.models import Customer, Fee, Invoice, InvoiceStatus
from services import jobs
from services.fees.charge_service import InvoiceFeesService
from services.payment_providers.finder import PaymentProviderFinder
from services.payments.invoice_payments import InvoicePaymentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invoices", tags=["invoices"])


async def _get_invoice(db: AsyncSession, organization_id: str, invoice_id: str) -> Invoice:
    result = await db.execute(
        select(Invoice).where(Invoice.id == invoice_id, Invoice.organization_id == organization_id)
    )
    invoice = result.scalar_one_or_none()
    if invoice is None:
        raise NotFoundFailure("invoice")
    return invoice


async def _invoice_fees(db: AsyncSession, invoice_id: str) -> list[Fee]:
    result = await db.execute(select(Fee).where(Fee.invoice_id == invoice_id).order_by(Fee.created_at))
    return list(result.scalars().all())


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: str,
    organization: CurrentOrganization,
    db: AsyncSession = Depends(get_db),
):
    """Get an invoice with its fees."""
    invoice = await _get_invoice(db, organization.id, invoice_id)
    fees = await _invoice_fees(db, invoice.id)
    return InvoiceResponse(invoice=InvoiceObject.from_model(invoice, fees))


@router.post("/{invoice_id}/payment_url", response_model=InvoicePaymentUrlResponse)
async def generate_payment_url(
    invoice_id: str,
    organization: CurrentOrganization,
    db: AsyncSession = Depends(get_db),
):
    """
    Generate a Moneyhash checkout URL for an invoice.

    The customer must be linked to a Moneyhash provider and the invoice must
    still be payable.
    """
    invoice = await _get_invoice(db, organization.id, invoice_id)
    customer = await db.get(Customer, invoice.customer_id)

    if await PaymentProviderFinder(db).for_customer(customer) is None:
        raise ValidationFailure.single("base", "no_linked_payment_provider")
    if invoice.payment_succeeded or invoice.voided:
        raise ValidationFailure.single("base", "invalid_invoice_status_or_payment_status")

    result = await InvoicePaymentService(db, invoice).generate_payment_url()
    if not result.payment_url:
        raise ValidationFailure.single("base", "payment_url_unavailable")

    return InvoicePaymentUrlResponse(
        invoice_payment_details=InvoicePaymentDetails(
            lago_customer_id=customer.id,
            lago_invoice_id=invoice.id,
            external_customer_id=customer.external_id,
            payment_url=result.payment_url,
        )
    )


@router.post("/{invoice_id}/retry_payment", response_model=InvoiceResponse)
async def retry_payment(
    invoice_id: str,
    organization: CurrentOrganization,
    db: AsyncSession = Depends(get_db),
):
    """Schedule a new payment attempt for a finalized, unpaid invoice."""
    invoice = await _get_invoice(db, organization.id, invoice_id)

    if invoice.status != InvoiceStatus.FINALIZED.value:
        raise ValidationFailure.single("invoice", "invalid_status")
    if invoice.payment_succeeded:
        raise ValidationFailure.single("invoice", "invalid_payment_status")

    invoice.ready_for_payment_processing = True
    await db.commit()

    await jobs.create_invoice_payment_later(invoice.id)
    logger.info("Payment retry scheduled for invoice %s", invoice.id)

    fees = await _invoice_fees(db, invoice.id)
    return InvoiceResponse(invoice=InvoiceObject.from_model(invoice, fees))


@router.post("/{invoice_id}/refresh_fees", response_model=InvoiceResponse)
async def refresh_fees(
    invoice_id: str,
    organization: CurrentOrganization,
    db: AsyncSession = Depends(get_db),
):
    """Compute the usage-based fees of an invoice and update its totals."""
    invoice = await _get_invoice(db, organization.id, invoice_id)
    fees = await InvoiceFeesService(db, invoice).call()
    return InvoiceResponse(invoice=InvoiceObject.from_model(invoice, fees))
