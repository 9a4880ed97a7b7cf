"""
Configuration of an organization's Moneyhash payment providers.
"""

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import NotFoundFailure, ValidationFailure
from core.security import encrypt_credential
from infrastructure.config.settings import settings
from infrastructure.database.models import PaymentProvider, PaymentProviderType

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "code",
    "name",
    "success_redirect_url",
    "failed_redirect_url",
    "pending_redirect_url",
    "webhook_redirect_url",
)


class MoneyhashProviderService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _code_taken(self, organization_id: str, code: str, exclude_id: str | None = None) -> bool:
        query = select(PaymentProvider.id).where(
            PaymentProvider.organization_id == organization_id,
            PaymentProvider.code == code,
        )
        if exclude_id:
            query = query.where(PaymentProvider.id != exclude_id)
        return (await self.db.execute(query.limit(1))).scalar_one_or_none() is not None

    async def get(self, organization_id: str, provider_id: str) -> PaymentProvider:
        result = await self.db.execute(
            select(PaymentProvider).where(
                PaymentProvider.id == provider_id,
                PaymentProvider.organization_id == organization_id,
                PaymentProvider.provider_type == PaymentProviderType.MONEYHASH.value,
            )
        )
        provider = result.scalar_one_or_none()
        if provider is None:
            raise NotFoundFailure("payment_provider")
        return provider

    async def list_providers(self, organization_id: str) -> list[PaymentProvider]:
        result = await self.db.execute(
            select(PaymentProvider)
            .where(
                PaymentProvider.organization_id == organization_id,
                PaymentProvider.provider_type == PaymentProviderType.MONEYHASH.value,
            )
            .order_by(PaymentProvider.created_at)
        )
        return list(result.scalars().all())

    async def create(self, organization_id: str, params: dict[str, Any]) -> PaymentProvider:
        """
        Register a Moneyhash provider.

        Raises:
            ValidationFailure: The code is already used in the organization
        """
        if await self._code_taken(organization_id, params["code"]):
            raise ValidationFailure.single("code", "value_already_exist")

        provider = PaymentProvider(
            organization_id=organization_id,
            provider_type=PaymentProviderType.MONEYHASH.value,
            code=params["code"],
            name=params["name"],
            encrypted_api_key=encrypt_credential(params["api_key"], settings.secret_key),
            success_redirect_url=params.get("success_redirect_url"),
            failed_redirect_url=params.get("failed_redirect_url"),
            pending_redirect_url=params.get("pending_redirect_url"),
            webhook_redirect_url=params.get("webhook_redirect_url"),
        )
        self.db.add(provider)
        await self.db.commit()

        logger.info("Moneyhash provider %s created", provider.code, extra={"organization_id": organization_id})
        return provider

    async def update(self, organization_id: str, provider_id: str, params: dict[str, Any]) -> PaymentProvider:
        """
        Update a provider. Only keys present in params are changed.

        Raises:
            NotFoundFailure: Unknown provider
            ValidationFailure: The new code is already used in the organization
        """
        provider = await self.get(organization_id, provider_id)

        new_code = params.get("code")
        if new_code and new_code != provider.code and await self._code_taken(organization_id, new_code, provider.id):
            raise ValidationFailure.single("code", "value_already_exist")

        for field in UPDATABLE_FIELDS:
            if field in params and params[field] is not None:
                setattr(provider, field, params[field])
        if params.get("api_key"):
            provider.encrypted_api_key = encrypt_credential(params["api_key"], settings.secret_key)

        await self.db.commit()
        return provider

    async def destroy(self, organization_id: str, provider_id: str) -> PaymentProvider:
        provider = await self.get(organization_id, provider_id)
        await self.db.delete(provider)
        await self.db.commit()
        return provider
