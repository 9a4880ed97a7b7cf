"""
Payment provider request/response schemas.
"""

from pydantic import BaseModel, Field

from core.security import decrypt_credential, obfuscate_secret
from infrastructure.config.settings import settings
from infrastructure.database.models import PaymentProvider


class MoneyhashProviderCreate(BaseModel):
    """Input for registering a Moneyhash provider."""

    api_key: str = Field(..., min_length=1, description="Moneyhash account API key")
    code: str = Field(..., min_length=1, max_length=255, description="Unique code within the organization")
    name: str = Field(..., min_length=1, max_length=255, description="Display name")
    success_redirect_url: str | None = Field(None, max_length=1024)
    failed_redirect_url: str | None = Field(None, max_length=1024)
    pending_redirect_url: str = Field(..., max_length=1024, description="Redirect while an external action is pending")
    webhook_redirect_url: str = Field(..., max_length=1024, description="URL Moneyhash posts webhooks to")


class MoneyhashProviderUpdate(BaseModel):
    """Input for updating a Moneyhash provider. Omitted fields are unchanged."""

    api_key: str | None = Field(None, min_length=1)
    code: str | None = Field(None, min_length=1, max_length=255)
    name: str | None = Field(None, min_length=1, max_length=255)
    success_redirect_url: str | None = Field(None, max_length=1024)
    failed_redirect_url: str | None = Field(None, max_length=1024)
    pending_redirect_url: str | None = Field(None, max_length=1024)
    webhook_redirect_url: str | None = Field(None, max_length=1024)


class MoneyhashProviderResponse(BaseModel):
    """Moneyhash provider as exposed by the API; the API key is obfuscated."""

    id: str
    code: str
    name: str
    api_key: str | None = Field(None, description="Obfuscated API key")
    success_redirect_url: str | None = None
    failed_redirect_url: str | None = None
    pending_redirect_url: str | None = None
    webhook_redirect_url: str | None = None

    @classmethod
    def from_model(cls, provider: PaymentProvider) -> "MoneyhashProviderResponse":
        return cls(
            id=provider.id,
            code=provider.code,
            name=provider.name,
            api_key=obfuscate_secret(decrypt_credential(provider.encrypted_api_key, settings.secret_key)),
            success_redirect_url=provider.success_redirect_url,
            failed_redirect_url=provider.failed_redirect_url,
            pending_redirect_url=provider.pending_redirect_url,
            webhook_redirect_url=provider.webhook_redirect_url,
        )


class MoneyhashProviderListResponse(BaseModel):
    payment_providers: list[MoneyhashProviderResponse]
