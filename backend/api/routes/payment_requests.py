"""
Payment request API routes.

A payment request bundles a customer's overdue invoices into one amount
collected through Moneyhash in the background.
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import CurrentOrganization
from api.schemas.invoices import PaymentRequestCreate, PaymentRequestObject, PaymentRequestResponse
from core.errors import NotFoundFailure, ValidationFailure
from infrastructure.database.connection import get_db
from infrastructure.database.models import (
    Customer,
    Invoice,
    InvoiceStatus,
    PaymentRequest,
    PaymentStatus,
    payment_request_invoices,
)
from services import jobs
from services.payments.payment_request_payments import get_payment_request_invoices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payment_requests", tags=["payment_requests"])


def _overdue(invoice: Invoice) -> bool:
    return invoice.status == InvoiceStatus.FINALIZED.value and invoice.payment_status != PaymentStatus.SUCCEEDED.value


@router.post("", response_model=PaymentRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_payment_request(
    body: PaymentRequestCreate,
    organization: CurrentOrganization,
    db: AsyncSession = Depends(get_db),
):
    """
    Request payment of overdue invoices.

    Without lago_invoice_ids every overdue invoice of the customer is
    included. The amount is the sum of the invoice totals.
    """
    params = body.payment_request

    result = await db.execute(
        select(Customer).where(
            Customer.organization_id == organization.id,
            Customer.external_id == params.external_customer_id,
        )
    )
    customer = result.scalar_one_or_none()
    if customer is None:
        raise NotFoundFailure("customer")

    query = select(Invoice).where(Invoice.customer_id == customer.id).order_by(Invoice.created_at)
    if params.lago_invoice_ids:
        query = query.where(Invoice.id.in_(params.lago_invoice_ids))
    invoices = list((await db.execute(query)).scalars().all())

    if params.lago_invoice_ids:
        if len(invoices) != len(set(params.lago_invoice_ids)):
            raise NotFoundFailure("invoice")
        if not all(_overdue(invoice) for invoice in invoices):
            raise ValidationFailure.single("invoices", "invoices_not_overdue")
    else:
        invoices = [invoice for invoice in invoices if _overdue(invoice)]

    if not invoices:
        raise ValidationFailure.single("invoices", "no_overdue_invoices")
    if len({invoice.currency for invoice in invoices}) > 1:
        raise ValidationFailure.single("invoices", "invoices_have_different_currencies")

    payment_request = PaymentRequest(
        organization_id=organization.id,
        customer_id=customer.id,
        email=params.email or customer.email,
        amount_cents=sum(invoice.total_amount_cents for invoice in invoices),
        amount_currency=invoices[0].currency,
    )
    db.add(payment_request)
    await db.flush()

    await db.execute(
        insert(payment_request_invoices),
        [{"payment_request_id": payment_request.id, "invoice_id": invoice.id} for invoice in invoices],
    )
    await db.commit()

    logger.info(
        "Payment request %s created for customer %s (%d invoices)",
        payment_request.id,
        customer.id,
        len(invoices),
    )
    await jobs.create_payment_request_payment_later(payment_request.id)

    return PaymentRequestResponse(
        payment_request=PaymentRequestObject.from_model(payment_request, [invoice.id for invoice in invoices])
    )


@router.get("/{payment_request_id}", response_model=PaymentRequestResponse)
async def get_payment_request(
    payment_request_id: str,
    organization: CurrentOrganization,
    db: AsyncSession = Depends(get_db),
):
    """Get a payment request and the invoices it collects."""
    result = await db.execute(
        select(PaymentRequest).where(
            PaymentRequest.id == payment_request_id,
            PaymentRequest.organization_id == organization.id,
        )
    )
    payment_request = result.scalar_one_or_none()
    if payment_request is None:
        raise NotFoundFailure("payment_request")

    invoices = await get_payment_request_invoices(db, payment_request.id)
    return PaymentRequestResponse(
        payment_request=PaymentRequestObject.from_model(payment_request, [invoice.id for invoice in invoices])
    )
