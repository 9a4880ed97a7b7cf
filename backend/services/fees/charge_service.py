"""
Fees for usage-based charges of an invoice.
"""

import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import NotFoundFailure, ServiceFailure
from infrastructure.database.models import (
    BillableMetric,
    Charge,
    Customer,
    Fee,
    Invoice,
    Organization,
    Plan,
    PlanInterval,
    Subscription,
)
from services.fees.aggregations import aggregator_for
from services.fees.charge_models import charge_model_for

logger = logging.getLogger(__name__)


def _upgraded(previous_plan: Plan, plan: Plan) -> bool:
    return previous_plan.yearly_amount_cents <= plan.yearly_amount_cents


class ChargeFeeService:
    def __init__(self, db: AsyncSession, invoice: Invoice, charge: Charge):
        self.db = db
        self.invoice = invoice
        self.charge = charge

    async def _existing_fee(self) -> Fee | None:
        result = await self.db.execute(
            select(Fee).where(Fee.invoice_id == self.invoice.id, Fee.charge_id == self.charge.id)
        )
        return result.scalar_one_or_none()

    async def _from_date(self, subscription: Subscription, plan: Plan) -> date:
        """
        Start of the aggregation window.

        After an upgrade the usage of the replaced subscription in the current
        period is billed on the new one, so the window starts with the period.
        """
        if not subscription.previous_subscription_id:
            return self.invoice.from_date

        previous = await self.db.get(Subscription, subscription.previous_subscription_id)
        previous_plan = await self.db.get(Plan, previous.plan_id) if previous else None
        if previous_plan is None or not _upgraded(previous_plan, plan):
            return self.invoice.from_date

        if plan.interval == PlanInterval.MONTHLY.value:
            return self.invoice.from_date.replace(day=1)
        if plan.interval == PlanInterval.YEARLY.value:
            return self.invoice.from_date.replace(month=1, day=1)
        raise NotImplementedError(f"Plan interval {plan.interval} is not supported")

    async def create(self) -> Fee:
        """
        Compute and store the fee, or return the one already billed.

        Raises:
            ServiceFailure: Aggregation or charge model failure, or an invoice without a billing period
            NotImplementedError: Unsupported aggregation type, charge model or interval
        """
        existing = await self._existing_fee()
        if existing is not None:
            return existing

        if self.invoice.from_date is None or self.invoice.to_date is None:
            raise ServiceFailure("invoice_period_missing", f"Invoice {self.invoice.id} has no billing period")

        subscription = await self.db.get(Subscription, self.invoice.subscription_id)
        billable_metric = await self.db.get(BillableMetric, self.charge.billable_metric_id)
        if subscription is None:
            raise NotFoundFailure("subscription")
        if billable_metric is None:
            raise NotFoundFailure("billable_metric")
        plan = await self.db.get(Plan, subscription.plan_id)

        aggregator = aggregator_for(self.db, billable_metric, subscription)
        charge_model = charge_model_for(self.charge)

        from_date = await self._from_date(subscription, plan)
        aggregation = await aggregator.aggregate(from_date=from_date, to_date=self.invoice.to_date)
        amount = charge_model.apply(aggregation.aggregation)

        customer = await self.db.get(Customer, self.invoice.customer_id)
        organization = await self.db.get(Organization, self.invoice.organization_id)

        fee = Fee(
            invoice_id=self.invoice.id,
            subscription_id=subscription.id,
            charge_id=self.charge.id,
            amount_cents=amount.amount_cents,
            amount_currency=self.charge.amount_currency,
            vat_rate=customer.applicable_vat_rate(organization.vat_rate),
            units=amount.units,
            events_count=aggregation.count,
        )
        fee.compute_vat()
        self.db.add(fee)
        await self.db.flush()

        logger.info(
            "Fee of %s cents for charge %s on invoice %s", fee.amount_cents, self.charge.id, self.invoice.id
        )
        return fee


class InvoiceFeesService:
    """Compute the fee of every charge of the invoice's plan and refresh invoice totals."""

    def __init__(self, db: AsyncSession, invoice: Invoice):
        self.db = db
        self.invoice = invoice

    async def call(self) -> list[Fee]:
        subscription = await self.db.get(Subscription, self.invoice.subscription_id)
        if subscription is None:
            raise NotFoundFailure("subscription")

        charges = (
            await self.db.execute(
                select(Charge).where(Charge.plan_id == subscription.plan_id).order_by(Charge.created_at)
            )
        ).scalars().all()

        fees = [await ChargeFeeService(self.db, self.invoice, charge).create() for charge in charges]

        self.invoice.fees_amount_cents = sum(fee.amount_cents for fee in fees)
        self.invoice.vat_amount_cents = sum(fee.vat_amount_cents for fee in fees)
        self.invoice.total_amount_cents = self.invoice.fees_amount_cents + self.invoice.vat_amount_cents
        await self.db.commit()
        return fees
