"""
Invoice and payment request request/response schemas.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from infrastructure.database.models import Fee, Invoice, PaymentRequest


class FeeObject(BaseModel):
    lago_id: str
    lago_charge_id: str
    amount_cents: int
    amount_currency: str
    vat_rate: Decimal
    vat_amount_cents: int
    total_amount_cents: int
    units: Decimal
    events_count: int

    @classmethod
    def from_model(cls, fee: Fee) -> "FeeObject":
        return cls(
            lago_id=fee.id,
            lago_charge_id=fee.charge_id,
            amount_cents=fee.amount_cents,
            amount_currency=fee.amount_currency,
            vat_rate=fee.vat_rate,
            vat_amount_cents=fee.vat_amount_cents,
            total_amount_cents=fee.total_amount_cents,
            units=fee.units,
            events_count=fee.events_count,
        )


class InvoiceObject(BaseModel):
    lago_id: str
    lago_customer_id: str
    status: str
    payment_status: str
    currency: str
    fees_amount_cents: int
    vat_amount_cents: int
    total_amount_cents: int
    payment_attempts: int
    from_date: date | None = None
    to_date: date | None = None
    fees: list[FeeObject] = Field(default_factory=list)
    created_at: datetime

    @classmethod
    def from_model(cls, invoice: Invoice, fees: list[Fee] | None = None) -> "InvoiceObject":
        return cls(
            lago_id=invoice.id,
            lago_customer_id=invoice.customer_id,
            status=invoice.status,
            payment_status=invoice.payment_status,
            currency=invoice.currency,
            fees_amount_cents=invoice.fees_amount_cents,
            vat_amount_cents=invoice.vat_amount_cents,
            total_amount_cents=invoice.total_amount_cents,
            payment_attempts=invoice.payment_attempts,
            from_date=invoice.from_date,
            to_date=invoice.to_date,
            fees=[FeeObject.from_model(fee) for fee in fees or []],
            created_at=invoice.created_at,
        )


class InvoiceResponse(BaseModel):
    invoice: InvoiceObject


class InvoicePaymentDetails(BaseModel):
    lago_customer_id: str
    lago_invoice_id: str
    external_customer_id: str
    payment_provider: str = "moneyhash"
    payment_url: str | None = None


class InvoicePaymentUrlResponse(BaseModel):
    invoice_payment_details: InvoicePaymentDetails


class PaymentRequestInput(BaseModel):
    email: str | None = Field(None, description="Recipient of the payment request")
    external_customer_id: str = Field(..., min_length=1)
    lago_invoice_ids: list[str] | None = Field(None, description="Invoices to collect, default all overdue ones")


class PaymentRequestCreate(BaseModel):
    payment_request: PaymentRequestInput


class PaymentRequestObject(BaseModel):
    lago_id: str
    lago_customer_id: str
    email: str | None = None
    amount_cents: int
    amount_currency: str
    payment_status: str
    payment_attempts: int
    lago_invoice_ids: list[str]
    created_at: datetime

    @classmethod
    def from_model(cls, payment_request: PaymentRequest, invoice_ids: list[str]) -> "PaymentRequestObject":
        return cls(
            lago_id=payment_request.id,
            lago_customer_id=payment_request.customer_id,
            email=payment_request.email,
            amount_cents=payment_request.amount_cents,
            amount_currency=payment_request.amount_currency,
            payment_status=payment_request.payment_status,
            payment_attempts=payment_request.payment_attempts,
            lago_invoice_ids=invoice_ids,
            created_at=payment_request.created_at,
        )


class PaymentRequestResponse(BaseModel):
    payment_request: PaymentRequestObject
