"""
SQLAlchemy database models.
"""

from .base import Base, TimestampMixin
from .billable_metric import AggregationType, BillableMetric, RoundingFunction, WeightedInterval
from .customer import Customer
from .invoice import Fee, Invoice, InvoiceStatus, PaymentStatus
from .organization import Organization
from .payment import PayableType, Payment
from .payment_provider import MoneyhashCustomer, PaymentProvider, PaymentProviderType
from .payment_request import PaymentRequest, payment_request_invoices
from .plan import Charge, ChargeModel, Plan, PlanInterval
from .subscription import Event, Subscription, SubscriptionStatus
from .webhook import SignatureAlgo, Webhook, WebhookEndpoint, WebhookStatus

__all__ = [
    "Base",
    "TimestampMixin",
    "Organization",
    "Customer",
    "PaymentProvider",
    "PaymentProviderType",
    "MoneyhashCustomer",
    "Invoice",
    "InvoiceStatus",
    "PaymentStatus",
    "Fee",
    "PaymentRequest",
    "payment_request_invoices",
    "Payment",
    "PayableType",
    "WebhookEndpoint",
    "Webhook",
    "WebhookStatus",
    "SignatureAlgo",
    "BillableMetric",
    "AggregationType",
    "RoundingFunction",
    "WeightedInterval",
    "Plan",
    "PlanInterval",
    "Charge",
    "ChargeModel",
    "Subscription",
    "SubscriptionStatus",
    "Event",
]
