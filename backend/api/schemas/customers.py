"""
Customer request/response schemas.
"""

from datetime import datetime
from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, Field


class PaymentProviderName(StrEnum):
    MONEYHASH = "moneyhash"


class BillingConfigurationInput(BaseModel):
    payment_provider: PaymentProviderName | None = Field(None, description="Payment provider collecting this customer")
    payment_provider_code: str | None = Field(None, description="Code of the provider when several are configured")
    sync_with_provider: bool = Field(False, description="Create the customer at the provider")
    provider_customer_id: str | None = Field(None, description="Existing customer id at the provider")


class CustomerInput(BaseModel):
    external_id: str = Field(..., min_length=1, max_length=255)
    name: str | None = None
    firstname: str | None = None
    lastname: str | None = None
    legal_name: str | None = None
    email: str | None = None
    phone: str | None = None
    address_line1: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = Field(None, min_length=2, max_length=2, description="ISO 3166 alpha-2 code")
    tax_identification_number: str | None = None
    currency: str | None = Field(None, min_length=3, max_length=3)
    vat_rate: Decimal | None = Field(None, ge=0, le=100)
    billing_configuration: BillingConfigurationInput | None = None


class CustomerRequest(BaseModel):
    customer: CustomerInput


class BillingConfiguration(BaseModel):
    payment_provider: str | None = None
    payment_provider_code: str | None = None
    provider_customer_id: str | None = None
    provider_payment_method_id: str | None = None


class CustomerObject(BaseModel):
    lago_id: str
    external_id: str
    name: str | None = None
    firstname: str | None = None
    lastname: str | None = None
    legal_name: str | None = None
    email: str | None = None
    phone: str | None = None
    address_line1: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    tax_identification_number: str | None = None
    currency: str | None = None
    vat_rate: Decimal | None = None
    billing_configuration: BillingConfiguration
    created_at: datetime


class CustomerResponse(BaseModel):
    customer: CustomerObject
