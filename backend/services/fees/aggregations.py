"""
Aggregation of usage events into billable units.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import ServiceFailure
from core.expressions import ExpressionError, evaluate_expression, round_value
from infrastructure.database.models import AggregationType, BillableMetric, Event, Subscription

logger = logging.getLogger(__name__)


@dataclass
class AggregationResult:
    aggregation: Decimal
    count: int


def _event_context(event: Event) -> dict[str, Any]:
    timestamp = event.timestamp
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=UTC)
    return {
        "code": event.code,
        "timestamp": int(timestamp.timestamp()),
        "properties": event.properties or {},
    }


class BaseAggregator:
    """Loads the metric's events for a subscription and reduces them to one value."""

    numeric = True

    def __init__(self, db: AsyncSession, billable_metric: BillableMetric, subscription: Subscription):
        self.db = db
        self.billable_metric = billable_metric
        self.subscription = subscription

    async def events(self, from_date: date, to_date: date) -> list[Event]:
        """Events of the metric between both dates, both days included."""
        start = datetime.combine(from_date, time.min, tzinfo=UTC)
        end = datetime.combine(to_date, time.max, tzinfo=UTC)
        result = await self.db.execute(
            select(Event)
            .where(
                Event.subscription_id == self.subscription.id,
                Event.code == self.billable_metric.code,
                Event.timestamp >= start,
                Event.timestamp <= end,
            )
            .order_by(Event.timestamp)
        )
        return list(result.scalars().all())

    def event_value(self, event: Event) -> Any:
        if self.billable_metric.expression:
            try:
                return evaluate_expression(self.billable_metric.expression, _event_context(event))
            except ExpressionError as e:
                raise ServiceFailure("aggregation_failure", f"Expression failed on event {event.transaction_id}: {e}") from e
        return (event.properties or {}).get(self.billable_metric.field_name)

    def numeric_value(self, event: Event) -> Decimal | None:
        value = self.event_value(event)
        if value is None:
            return None
        if isinstance(value, bool):
            raise ServiceFailure("aggregation_failure", f"Value {value!r} is not numeric")
        try:
            return Decimal(str(value))
        except InvalidOperation as e:
            raise ServiceFailure("aggregation_failure", f"Value {value!r} is not numeric") from e

    def reduce(self, events: list[Event]) -> Decimal:
        raise NotImplementedError

    def apply_rounding(self, value: Decimal) -> Decimal:
        function = self.billable_metric.rounding_function
        if not function:
            return value
        return round_value(value, function, self.billable_metric.rounding_precision or 0)

    async def aggregate(self, from_date: date, to_date: date) -> AggregationResult:
        events = await self.events(from_date, to_date)
        aggregation = self.apply_rounding(self.reduce(events))
        logger.debug(
            "Aggregated %d %s events to %s", len(events), self.billable_metric.code, aggregation
        )
        return AggregationResult(aggregation=aggregation, count=len(events))


class CountAggregator(BaseAggregator):
    def reduce(self, events: list[Event]) -> Decimal:
        return Decimal(len(events))


class SumAggregator(BaseAggregator):
    def reduce(self, events: list[Event]) -> Decimal:
        values = (self.numeric_value(event) for event in events)
        return sum((value for value in values if value is not None), Decimal(0))


class MaxAggregator(BaseAggregator):
    def reduce(self, events: list[Event]) -> Decimal:
        values = [value for value in (self.numeric_value(event) for event in events) if value is not None]
        return max(values) if values else Decimal(0)


class UniqueCountAggregator(BaseAggregator):
    def reduce(self, events: list[Event]) -> Decimal:
        values = {str(value) for value in (self.event_value(event) for event in events) if value is not None}
        return Decimal(len(values))


AGGREGATORS: dict[str, type[BaseAggregator]] = {
    AggregationType.COUNT.value: CountAggregator,
    AggregationType.MAX.value: MaxAggregator,
    AggregationType.SUM.value: SumAggregator,
    AggregationType.UNIQUE_COUNT.value: UniqueCountAggregator,
}


def aggregator_for(
    db: AsyncSession,
    billable_metric: BillableMetric,
    subscription: Subscription,
) -> BaseAggregator:
    """Aggregator for the metric's aggregation type; other types are not billable yet."""
    aggregator_class = AGGREGATORS.get(billable_metric.aggregation_type)
    if aggregator_class is None:
        raise NotImplementedError(f"Aggregation type {billable_metric.aggregation_type} is not supported")
    return aggregator_class(db, billable_metric, subscription)
