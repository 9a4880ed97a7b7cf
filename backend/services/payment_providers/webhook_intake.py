"""
Entry point for webhooks posted by Moneyhash.
"""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import ServiceFailure
from infrastructure.database.models import Organization, PaymentProviderType
from services.payment_providers.finder import PaymentProviderFinder
from services.payment_providers.moneyhash_service import MoneyhashEventService

logger = logging.getLogger(__name__)


class HandleIncomingWebhookService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def call(self, organization_id: str, body: dict[str, Any], code: str | None = None) -> dict[str, Any]:
        """
        Resolve the organization and provider, then apply the event right away.

        Raises:
            ServiceFailure: webhook_error for unknown organizations or ambiguous providers
            NotFoundFailure: No Moneyhash provider (with that code)
        """
        organization = await self.db.get(Organization, organization_id)
        if organization is None:
            raise ServiceFailure("webhook_error", "Organization not found")

        try:
            await PaymentProviderFinder(self.db).find(
                organization_id=organization.id,
                code=code,
                provider_type=PaymentProviderType.MONEYHASH.value,
            )
        except ServiceFailure as e:
            raise ServiceFailure("webhook_error", e.message) from e

        await MoneyhashEventService(self.db).handle_event(organization=organization, event_json=body)
        return body
