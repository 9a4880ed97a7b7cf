"""
Translation of provider payment statuses into payable payment statuses.

Moneyhash reports lower-case statuses on transaction webhooks and upper-case
intent statuses on intent creation; both map onto the same three states.
"""

from infrastructure.database.models import PaymentStatus

PENDING_STATUSES = ("processing", "UNPROCESSED")
SUCCESS_STATUSES = ("succeeded", "PROCESSED")
FAILED_STATUSES = ("failed", "FAILED")

# Status given to a freshly created intent whose response carries no status
DEFAULT_INTENT_STATUS = "UNPROCESSED"

PROCESSING_STATUS = "processing"


def payable_payment_status(provider_status: str | None) -> str | None:
    """Return the payable status for a provider status, or the input when unknown."""
    if provider_status in PENDING_STATUSES:
        return PaymentStatus.PENDING.value
    if provider_status in SUCCESS_STATUSES:
        return PaymentStatus.SUCCEEDED.value
    if provider_status in FAILED_STATUSES:
        return PaymentStatus.FAILED.value
    return provider_status


def ready_for_payment_processing(payment_status: str | None, processing: bool = False) -> bool:
    """A payable can be collected again unless it is paid or a payment is in flight."""
    return not processing and payment_status != PaymentStatus.SUCCEEDED.value
