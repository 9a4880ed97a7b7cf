"""
Moneyhash payment provider API routes.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import CurrentOrganization
from api.schemas.payment_providers import (
    MoneyhashProviderCreate,
    MoneyhashProviderListResponse,
    MoneyhashProviderResponse,
    MoneyhashProviderUpdate,
)
from infrastructure.database.connection import get_db
from services.payment_providers.moneyhash_provider import MoneyhashProviderService

router = APIRouter(prefix="/payment_providers/moneyhash", tags=["payment_providers"])


@router.get("", response_model=MoneyhashProviderListResponse)
async def list_providers(
    organization: CurrentOrganization,
    db: AsyncSession = Depends(get_db),
):
    """List the organization's Moneyhash providers."""
    providers = await MoneyhashProviderService(db).list_providers(organization.id)
    return MoneyhashProviderListResponse(
        payment_providers=[MoneyhashProviderResponse.from_model(provider) for provider in providers]
    )


@router.post("", response_model=MoneyhashProviderResponse, status_code=status.HTTP_201_CREATED)
async def create_provider(
    body: MoneyhashProviderCreate,
    organization: CurrentOrganization,
    db: AsyncSession = Depends(get_db),
):
    """Register a Moneyhash provider. The API key is stored encrypted."""
    provider = await MoneyhashProviderService(db).create(organization.id, body.model_dump())
    return MoneyhashProviderResponse.from_model(provider)


@router.get("/{provider_id}", response_model=MoneyhashProviderResponse)
async def get_provider(
    provider_id: str,
    organization: CurrentOrganization,
    db: AsyncSession = Depends(get_db),
):
    provider = await MoneyhashProviderService(db).get(organization.id, provider_id)
    return MoneyhashProviderResponse.from_model(provider)


@router.put("/{provider_id}", response_model=MoneyhashProviderResponse)
async def update_provider(
    provider_id: str,
    body: MoneyhashProviderUpdate,
    organization: CurrentOrganization,
    db: AsyncSession = Depends(get_db),
):
    """Update a provider. Omitted fields keep their value."""
    provider = await MoneyhashProviderService(db).update(
        organization.id, provider_id, body.model_dump(exclude_unset=True)
    )
    return MoneyhashProviderResponse.from_model(provider)


@router.delete("/{provider_id}", response_model=MoneyhashProviderResponse)
async def delete_provider(
    provider_id: str,
    organization: CurrentOrganization,
    db: AsyncSession = Depends(get_db),
):
    provider = await MoneyhashProviderService(db).destroy(organization.id, provider_id)
    return MoneyhashProviderResponse.from_model(provider)
