"""
API request and response schemas.
"""

from .billable_metrics import (
    BillableMetricListResponse,
    BillableMetricRequest,
    BillableMetricResponse,
    EvaluateExpressionRequest,
    EvaluateExpressionResponse,
)
from .customers import CustomerRequest, CustomerResponse
from .events import EventRequest, EventResponse, WebhookResponse
from .invoices import (
    InvoicePaymentUrlResponse,
    InvoiceResponse,
    PaymentRequestCreate,
    PaymentRequestResponse,
)
from .payment_providers import (
    MoneyhashProviderCreate,
    MoneyhashProviderListResponse,
    MoneyhashProviderResponse,
    MoneyhashProviderUpdate,
)

__all__ = [
    "BillableMetricRequest",
    "BillableMetricResponse",
    "BillableMetricListResponse",
    "EvaluateExpressionRequest",
    "EvaluateExpressionResponse",
    "CustomerRequest",
    "CustomerResponse",
    "EventRequest",
    "EventResponse",
    "WebhookResponse",
    "InvoiceResponse",
    "InvoicePaymentUrlResponse",
    "PaymentRequestCreate",
    "PaymentRequestResponse",
    "MoneyhashProviderCreate",
    "MoneyhashProviderUpdate",
    "MoneyhashProviderResponse",
    "MoneyhashProviderListResponse",
]
