"""
Webhook API routes.

Incoming: Moneyhash posts payment, transaction and card events per
organization. Outgoing: failed deliveries to the organization's endpoints
can be retried.
"""

import hashlib
import json
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import CurrentOrganization
from api.middleware.rate_limit import get_rate_limit, limiter
from api.schemas.events import WebhookObject, WebhookResponse
from core.errors import ServiceFailure
from infrastructure.config.settings import settings
from infrastructure.database.connection import get_db
from services.outgoing_webhooks import SendWebhookService
from services.payment_providers.webhook_intake import HandleIncomingWebhookService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def _dedup_key(body: bytes) -> str:
    return f"moneyhash:webhook:{hashlib.sha256(body).hexdigest()}"


async def _already_processed(body: bytes) -> bool:
    """
    Tell whether this exact webhook body was already handled.

    Skipped when no Redis is configured. Redis errors degrade to processing
    the webhook again.
    """
    if not settings.redis_url:
        return False

    try:
        import redis.asyncio as aioredis

        r = aioredis.from_url(settings.redis_url)
        already_processed = await r.exists(_dedup_key(body))
        await r.aclose()
        return bool(already_processed)
    except Exception as redis_err:
        logger.warning("Webhook idempotency check unavailable (Redis error): %s", redis_err)
        return False


async def _mark_processed(body: bytes) -> None:
    """Remember a handled webhook body; failed ones stay open to Moneyhash retries."""
    if not settings.redis_url:
        return

    try:
        import redis.asyncio as aioredis

        r = aioredis.from_url(settings.redis_url)
        await r.setex(_dedup_key(body), settings.webhook_dedup_ttl_seconds, "1")
        await r.aclose()
    except Exception as redis_err:
        logger.warning("Could not record processed webhook (Redis error): %s", redis_err)


@router.post("/moneyhash/{organization_id}")
@limiter.limit(get_rate_limit("moneyhash_webhook"))
async def moneyhash_webhook(
    request: Request,
    organization_id: str,
    code: Annotated[str | None, Query(description="Provider code when several are configured")] = None,
    db: AsyncSession = Depends(get_db),
):
    """
    Receive a Moneyhash webhook for an organization.

    The event is applied synchronously: payment statuses and customer
    payment methods are up to date once this returns 200.
    """
    body = await request.body()

    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, ValueError) as e:
        logger.error("Invalid JSON in Moneyhash webhook payload: %s", e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid webhook payload: {e}")

    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook payload")

    if await _already_processed(body):
        logger.info("Duplicate Moneyhash webhook for organization %s, skipping", organization_id)
        return {"status": "ok", "message": "already processed"}

    logger.info(
        "Moneyhash webhook received: organization_id=%s, type=%s",
        organization_id,
        payload.get("type"),
    )

    try:
        await HandleIncomingWebhookService(db).call(organization_id=organization_id, body=payload, code=code)
    except ServiceFailure as e:
        logger.warning("Moneyhash webhook rejected: %s (%s)", e.message, e.code)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"code": e.code, "message": e.message},
        )

    await _mark_processed(body)
    return {"status": "ok"}


@router.post("/{webhook_id}/retry", response_model=WebhookResponse)
async def retry_webhook(
    webhook_id: str,
    organization: CurrentOrganization,
    db: AsyncSession = Depends(get_db),
):
    """Deliver a failed outgoing webhook again."""
    webhook = await SendWebhookService(db).retry(webhook_id, organization_id=organization.id)
    return WebhookResponse(webhook=WebhookObject.from_model(webhook))
