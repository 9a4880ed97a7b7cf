"""
Integration tests for Moneyhash payment provider endpoints.
"""

import pytest
from sqlalchemy import select

from core.security import decrypt_credential
from infrastructure.config.settings import settings
from infrastructure.database.models import PaymentProvider

BASE_URL = "/api/v1/payment_providers/moneyhash"

PROVIDER_PAYLOAD = {
    "api_key": "mh_live_secret_987",
    "code": "moneyhash_eu",
    "name": "Moneyhash EU",
    "success_redirect_url": "https://shop.example.com/ok",
    "pending_redirect_url": "https://shop.example.com/pending",
    "webhook_redirect_url": "https://billing.example.com/webhooks/moneyhash",
}


class TestMoneyhashProviders:
    @pytest.mark.asyncio
    async def test_create_stores_encrypted_key(self, async_client, auth_headers, db_session):
        response = await async_client.post(BASE_URL, headers=auth_headers, json=PROVIDER_PAYLOAD)

        assert response.status_code == 201
        data = response.json()
        assert data["code"] == "moneyhash_eu"
        assert data["api_key"].endswith("987")
        assert "mh_live_secret" not in data["api_key"]

        provider = (
            await db_session.execute(select(PaymentProvider).where(PaymentProvider.id == data["id"]))
        ).scalar_one()
        assert provider.encrypted_api_key != "mh_live_secret_987"
        assert decrypt_credential(provider.encrypted_api_key, settings.secret_key) == "mh_live_secret_987"

    @pytest.mark.asyncio
    async def test_duplicate_code(self, async_client, auth_headers, moneyhash_provider):
        response = await async_client.post(
            BASE_URL, headers=auth_headers, json={**PROVIDER_PAYLOAD, "code": "moneyhash_main"}
        )

        assert response.status_code == 422
        assert response.json()["error_details"] == {"code": ["value_already_exist"]}

    @pytest.mark.asyncio
    async def test_missing_webhook_url(self, async_client, auth_headers):
        payload = {key: value for key, value in PROVIDER_PAYLOAD.items() if key != "webhook_redirect_url"}

        response = await async_client.post(BASE_URL, headers=auth_headers, json=payload)

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_list_and_get(self, async_client, auth_headers, moneyhash_provider):
        response = await async_client.get(BASE_URL, headers=auth_headers)

        assert response.status_code == 200
        providers = response.json()["payment_providers"]
        assert [provider["code"] for provider in providers] == ["moneyhash_main"]
        assert providers[0]["api_key"].endswith("123")

        response = await async_client.get(f"{BASE_URL}/{moneyhash_provider.id}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["name"] == "Moneyhash"

    @pytest.mark.asyncio
    async def test_update_keeps_omitted_fields(self, async_client, auth_headers, db_session, moneyhash_provider):
        response = await async_client.put(
            f"{BASE_URL}/{moneyhash_provider.id}",
            headers=auth_headers,
            json={"name": "Moneyhash Egypt", "api_key": "mh_rotated_456"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Moneyhash Egypt"
        assert data["code"] == "moneyhash_main"
        assert data["success_redirect_url"] == "https://shop.example.com/success"
        assert data["api_key"].endswith("456")

    @pytest.mark.asyncio
    async def test_update_to_taken_code(self, async_client, auth_headers, moneyhash_provider):
        created = await async_client.post(BASE_URL, headers=auth_headers, json=PROVIDER_PAYLOAD)

        response = await async_client.put(
            f"{BASE_URL}/{created.json()['id']}",
            headers=auth_headers,
            json={"code": "moneyhash_main"},
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_delete(self, async_client, auth_headers):
        created = await async_client.post(BASE_URL, headers=auth_headers, json=PROVIDER_PAYLOAD)
        provider_id = created.json()["id"]

        response = await async_client.delete(f"{BASE_URL}/{provider_id}", headers=auth_headers)
        assert response.status_code == 200

        response = await async_client.get(f"{BASE_URL}/{provider_id}", headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["code"] == "payment_provider_not_found"

    @pytest.mark.asyncio
    async def test_provider_of_other_organization(self, async_client, other_organization, moneyhash_provider):
        response = await async_client.get(
            f"{BASE_URL}/{moneyhash_provider.id}",
            headers={"Authorization": f"Bearer {other_organization.api_key}"},
        )
        assert response.status_code == 404
