"""
Integration tests for outgoing webhooks.

Tests webhook delivery including:
- Payload serialization per webhook type
- HMAC and JWT signatures
- Failed deliveries and retries
"""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwt
from sqlalchemy import select

from core.errors import NotFoundFailure, ServiceFailure
from core.security import verify_hmac_signature
from infrastructure.config.settings import settings
from infrastructure.database.models import Webhook, WebhookEndpoint
from services import jobs
from services.outgoing_webhooks import SendWebhookService

ENDPOINT_URL = "https://hooks.example.com/lago"


def _mock_client(status_code: int = 200, error: Exception | None = None):
    client = AsyncMock()
    if error is not None:
        client.post = AsyncMock(side_effect=error)
    else:
        client.post = AsyncMock(
            return_value=httpx.Response(status_code, text="ok", request=httpx.Request("POST", ENDPOINT_URL))
        )
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=None)
    return client


def _sent(client) -> tuple[str, dict]:
    kwargs = client.post.call_args.kwargs
    return kwargs["content"], kwargs["headers"]


@pytest.fixture(scope="module")
def rsa_keys() -> tuple[str, str]:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()
    public_pem = key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()
    return private_pem, public_pem


class TestSendWebhook:
    @pytest.mark.asyncio
    async def test_invoice_status_webhook_with_hmac(self, db_session, organization, invoice, webhook_endpoint):
        client = _mock_client()
        with patch("services.outgoing_webhooks.httpx.AsyncClient", return_value=client):
            webhooks = await SendWebhookService(db_session).call(
                "invoice.payment_status_updated", "invoice", invoice.id
            )

        assert len(webhooks) == 1
        webhook = webhooks[0]
        assert webhook.status == "succeeded"
        assert webhook.http_status == 200

        body, headers = _sent(client)
        payload = json.loads(body)
        assert payload["webhook_type"] == "invoice.payment_status_updated"
        assert payload["object_type"] == "invoice"
        assert payload["invoice"]["lago_id"] == invoice.id
        assert payload["invoice"]["external_customer_id"] == "cust_ext_001"

        assert headers["X-Lago-Signature-Algorithm"] == "hmac"
        assert headers["X-Lago-Unique-Key"] == webhook.id
        assert verify_hmac_signature(body, organization.api_key, headers["X-Lago-Signature"])

    @pytest.mark.asyncio
    async def test_jwt_signature(self, db_session, monkeypatch, rsa_keys, invoice, webhook_endpoint):
        private_pem, public_pem = rsa_keys
        monkeypatch.setattr(settings, "webhook_jwt_private_key", private_pem)
        webhook_endpoint.signature_algo = "jwt"
        await db_session.commit()

        client = _mock_client()
        with patch("services.outgoing_webhooks.httpx.AsyncClient", return_value=client):
            await SendWebhookService(db_session).call("invoice.payment_status_updated", "invoice", invoice.id)

        body, headers = _sent(client)
        claims = jwt.decode(headers["X-Lago-Signature"], public_pem, algorithms=["RS256"], issuer=settings.api_url)
        assert claims["data"] == body

    @pytest.mark.asyncio
    async def test_jwt_without_signing_key(self, db_session, monkeypatch, invoice, webhook_endpoint):
        monkeypatch.setattr(settings, "webhook_jwt_private_key", None)
        webhook_endpoint.signature_algo = "jwt"
        await db_session.commit()

        client = _mock_client()
        with patch("services.outgoing_webhooks.httpx.AsyncClient", return_value=client):
            webhooks = await SendWebhookService(db_session).call(
                "invoice.payment_status_updated", "invoice", invoice.id
            )

        client.post.assert_not_called()
        assert webhooks[0].status == "failed"

    @pytest.mark.asyncio
    async def test_payment_failure_payload(self, db_session, invoice, moneyhash_customer, webhook_endpoint):
        client = _mock_client()
        options = {"provider_error": {"message": "Card declined", "error_code": "card_declined"}}
        with patch("services.outgoing_webhooks.httpx.AsyncClient", return_value=client):
            await SendWebhookService(db_session).call("invoice.payment_failure", "invoice", invoice.id, options)

        payload = json.loads(_sent(client)[0])
        assert payload["object_type"] == "payment_provider_invoice_payment_error"
        body = payload["payment_provider_invoice_payment_error"]
        assert body["lago_invoice_id"] == invoice.id
        assert body["provider_customer_id"] == "mh_cus_001"
        assert body["payment_provider_code"] == "moneyhash_main"
        assert body["provider_error"]["error_code"] == "card_declined"

    @pytest.mark.asyncio
    async def test_payment_request_payload(self, db_session, payment_request, invoice, webhook_endpoint):
        client = _mock_client()
        with patch("services.outgoing_webhooks.httpx.AsyncClient", return_value=client):
            await SendWebhookService(db_session).call(
                "payment_request.payment_status_updated", "payment_request", payment_request.id
            )

        payload = json.loads(_sent(client)[0])
        assert payload["payment_request"]["lago_invoice_ids"] == [invoice.id]
        assert payload["payment_request"]["amount_cents"] == 10000

    @pytest.mark.asyncio
    async def test_checkout_url_payload(self, db_session, customer, moneyhash_customer, webhook_endpoint):
        client = _mock_client()
        with patch("services.outgoing_webhooks.httpx.AsyncClient", return_value=client):
            await SendWebhookService(db_session).call(
                "customer.checkout_url_generated",
                "customer",
                customer.id,
                {"checkout_url": "https://embed.moneyhash.io/card_1"},
            )

        payload = json.loads(_sent(client)[0])
        assert payload["object_type"] == "payment_provider_customer_checkout_url"
        assert payload["payment_provider_customer_checkout_url"]["checkout_url"] == "https://embed.moneyhash.io/card_1"

    @pytest.mark.asyncio
    async def test_every_endpoint_receives_webhook(self, db_session, organization, invoice, webhook_endpoint):
        db_session.add(
            WebhookEndpoint(organization_id=organization.id, webhook_url="https://other.example.com/hook", signature_algo="hmac")
        )
        await db_session.commit()

        client = _mock_client()
        with patch("services.outgoing_webhooks.httpx.AsyncClient", return_value=client):
            webhooks = await SendWebhookService(db_session).call(
                "invoice.payment_status_updated", "invoice", invoice.id
            )

        assert len(webhooks) == 2
        assert client.post.call_count == 2

    @pytest.mark.asyncio
    async def test_no_endpoint(self, db_session, invoice):
        client = _mock_client()
        with patch("services.outgoing_webhooks.httpx.AsyncClient", return_value=client):
            webhooks = await SendWebhookService(db_session).call(
                "invoice.payment_status_updated", "invoice", invoice.id
            )

        assert webhooks == []
        client.post.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_webhook_type(self, db_session, invoice, webhook_endpoint):
        with pytest.raises(ServiceFailure) as exc_info:
            await SendWebhookService(db_session).call("invoice.created", "invoice", invoice.id)
        assert exc_info.value.code == "invalid_webhook_type"

    @pytest.mark.asyncio
    async def test_missing_object(self, db_session, webhook_endpoint):
        with pytest.raises(NotFoundFailure):
            await SendWebhookService(db_session).call(
                "invoice.payment_status_updated", "invoice", "00000000-0000-0000-0000-000000000000"
            )


class TestDeliveryFailures:
    @pytest.mark.asyncio
    async def test_error_status(self, db_session, invoice, webhook_endpoint):
        with patch("services.outgoing_webhooks.httpx.AsyncClient", return_value=_mock_client(500)):
            webhooks = await SendWebhookService(db_session).call(
                "invoice.payment_status_updated", "invoice", invoice.id
            )

        assert webhooks[0].status == "failed"
        assert webhooks[0].http_status == 500
        assert webhooks[0].response == {"body": "ok"}

    @pytest.mark.asyncio
    async def test_connection_error(self, db_session, invoice, webhook_endpoint):
        error = httpx.ConnectError("connection refused", request=httpx.Request("POST", ENDPOINT_URL))
        with patch("services.outgoing_webhooks.httpx.AsyncClient", return_value=_mock_client(error=error)):
            webhooks = await SendWebhookService(db_session).call(
                "invoice.payment_status_updated", "invoice", invoice.id
            )

        assert webhooks[0].status == "failed"
        assert webhooks[0].http_status is None


class TestRetryWebhook:
    @pytest.fixture
    async def failed_webhook(self, db_session, invoice, webhook_endpoint) -> Webhook:
        with patch("services.outgoing_webhooks.httpx.AsyncClient", return_value=_mock_client(503)):
            webhooks = await SendWebhookService(db_session).call(
                "invoice.payment_status_updated", "invoice", invoice.id
            )
        return webhooks[0]

    @pytest.mark.asyncio
    async def test_retry_succeeds(self, db_session, organization, failed_webhook):
        client = _mock_client()
        with patch("services.outgoing_webhooks.httpx.AsyncClient", return_value=client):
            webhook = await SendWebhookService(db_session).retry(failed_webhook.id, organization.id)

        assert webhook.status == "succeeded"
        assert webhook.retries == 1
        assert webhook.last_retried_at is not None
        payload = json.loads(_sent(client)[0])
        assert payload["webhook_type"] == "invoice.payment_status_updated"

    @pytest.mark.asyncio
    async def test_payload_stored_as_string_is_resent(self, db_session, organization, failed_webhook):
        failed_webhook.payload = json.dumps(failed_webhook.payload)
        await db_session.commit()

        client = _mock_client()
        with patch("services.outgoing_webhooks.httpx.AsyncClient", return_value=client):
            await SendWebhookService(db_session).retry(failed_webhook.id, organization.id)

        assert json.loads(_sent(client)[0])["object_type"] == "invoice"

    @pytest.mark.asyncio
    async def test_only_failed_webhooks(self, db_session, organization, invoice, webhook_endpoint):
        with patch("services.outgoing_webhooks.httpx.AsyncClient", return_value=_mock_client()):
            webhooks = await SendWebhookService(db_session).call(
                "invoice.payment_status_updated", "invoice", invoice.id
            )

        with pytest.raises(ServiceFailure) as exc_info:
            await SendWebhookService(db_session).retry(webhooks[0].id, organization.id)
        assert exc_info.value.code == "is_not_failed"

    @pytest.mark.asyncio
    async def test_retry_endpoint(self, async_client, auth_headers, failed_webhook):
        with patch("services.outgoing_webhooks.httpx.AsyncClient", return_value=_mock_client()):
            response = await async_client.post(f"/api/v1/webhooks/{failed_webhook.id}/retry", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()["webhook"]
        assert data["lago_id"] == failed_webhook.id
        assert data["status"] == "succeeded"
        assert data["retries"] == 1

    @pytest.mark.asyncio
    async def test_retry_endpoint_other_organization(self, async_client, other_organization, failed_webhook):
        response = await async_client.post(
            f"/api/v1/webhooks/{failed_webhook.id}/retry",
            headers={"Authorization": f"Bearer {other_organization.api_key}"},
        )
        assert response.status_code == 404


class TestSendWebhookJob:
    @pytest.mark.asyncio
    async def test_job_delivers_webhook(self, job_db, invoice, webhook_endpoint):
        with patch("services.outgoing_webhooks.httpx.AsyncClient", return_value=_mock_client()):
            delivered = await jobs.send_webhook("invoice.payment_status_updated", "invoice", invoice.id)

        assert delivered == 1
        stored = (await job_db.execute(select(Webhook))).scalars().all()
        assert [webhook.status for webhook in stored] == ["succeeded"]
