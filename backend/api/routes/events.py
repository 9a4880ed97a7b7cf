"""
Usage event API routes.
"""

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import CurrentOrganization
from api.schemas.events import EventInput, EventObject, EventRequest, EventResponse
from core.errors import NotFoundFailure
from infrastructure.database.connection import get_db
from infrastructure.database.models import Customer, Event, Subscription

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["events"])


def _event_time(value: int | float | datetime | None) -> datetime:
    if value is None:
        return datetime.now(UTC)
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    return datetime.fromtimestamp(value, UTC)


def _response(event: Event, subscription: Subscription) -> EventResponse:
    return EventResponse(
        event=EventObject(
            lago_id=event.id,
            transaction_id=event.transaction_id,
            lago_subscription_id=subscription.id,
            external_subscription_id=subscription.external_id,
            code=event.code,
            timestamp=event.timestamp,
            properties=event.properties or {},
            created_at=event.created_at,
        )
    )


@router.post("", response_model=EventResponse)
async def create_event(
    body: EventRequest,
    organization: CurrentOrganization,
    db: AsyncSession = Depends(get_db),
):
    """
    Record a usage event for a subscription.

    Posting the same transaction_id again returns the stored event.
    """
    params: EventInput = body.event

    result = await db.execute(
        select(Subscription)
        .join(Customer, Customer.id == Subscription.customer_id)
        .where(
            Customer.organization_id == organization.id,
            Subscription.external_id == params.external_subscription_id,
        )
        .order_by(Subscription.created_at.desc())
        .limit(1)
    )
    subscription = result.scalar_one_or_none()
    if subscription is None:
        raise NotFoundFailure("subscription")

    result = await db.execute(
        select(Event).where(
            Event.subscription_id == subscription.id,
            Event.transaction_id == params.transaction_id,
        )
    )
    event = result.scalar_one_or_none()
    if event is not None:
        logger.info("Event %s already recorded, returning it", params.transaction_id)
        return _response(event, subscription)

    event = Event(
        organization_id=organization.id,
        subscription_id=subscription.id,
        code=params.code,
        transaction_id=params.transaction_id,
        timestamp=_event_time(params.timestamp),
        properties=params.properties,
    )
    db.add(event)
    await db.commit()
    return _response(event, subscription)
