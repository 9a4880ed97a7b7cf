"""
Resend email service adapter.
"""

import logging
from decimal import Decimal
from html import escape

import resend

from infrastructure.config.settings import settings

logger = logging.getLogger(__name__)


def format_amount(amount_cents: int, currency: str) -> str:
    amount = (Decimal(amount_cents) / Decimal(100)).quantize(Decimal("0.01"))
    return f"{amount} {currency.upper()}"


class ResendEmailService:
    """Email service using Resend API."""

    def __init__(self):
        if settings.resend_api_key:
            resend.api_key = settings.resend_api_key
        self._from_email = settings.resend_from_email

    async def send_payment_requested_email(
        self,
        to_email: str | None,
        customer_name: str | None,
        amount_cents: int,
        currency: str,
        invoice_ids: list[str],
    ) -> bool:
        """
        Ask a customer to pay overdue invoices after an automatic collection failed.

        Args:
            to_email: Recipient email address (payment request email)
            customer_name: Name used in the greeting
            amount_cents: Amount due
            currency: ISO currency code
            invoice_ids: Invoices covered by the payment request

        Returns:
            True if sent successfully, False otherwise
        """
        if not to_email:
            logger.warning("Payment requested email skipped: no recipient")
            return False

        if not settings.resend_api_key:
            logger.info("[DEV] Payment requested email for %s: %s", to_email, format_amount(amount_cents, currency))
            return True

        try:
            resend.Emails.send({
                "from": self._from_email,
                "to": to_email,
                "subject": f"Payment requested: {format_amount(amount_cents, currency)}",
                "html": self._get_payment_requested_email_html(customer_name, amount_cents, currency, invoice_ids),
            })
            return True
        except Exception as e:
            logger.error("Failed to send payment requested email to %s: %s", to_email, e)
            return False

    def _get_payment_requested_email_html(
        self,
        customer_name: str | None,
        amount_cents: int,
        currency: str,
        invoice_ids: list[str],
    ) -> str:
        invoice_rows = "".join(
            f'<li style="font-family: monospace;">{escape(invoice_id)}</li>' for invoice_id in invoice_ids
        )
        return f"""
        <!DOCTYPE html>
        <html>
        <head>
            <meta charset="utf-8">
            <meta name="viewport" content="width=device-width, initial-scale=1.0">
        </head>
        <body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
            <h1 style="font-size: 22px;">Payment requested</h1>
            <p>Hi {escape(customer_name or "there")},</p>
            <p>We could not collect <strong>{escape(format_amount(amount_cents, currency))}</strong> automatically.
            Please settle the following invoices:</p>
            <ul>{invoice_rows}</ul>
            <p style="color: #666; font-size: 14px;">If you already paid, you can ignore this email.</p>
        </body>
        </html>
        """


payment_email_service = ResendEmailService()
