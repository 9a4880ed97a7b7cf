"""
Integration tests for usage aggregation and charge fees.

Tests fee computation including:
- Aggregation types over the invoice period
- Metric expressions and rounding
- VAT and invoice totals
- Aggregation window after a plan upgrade
"""

from datetime import UTC, date, datetime
from decimal import Decimal

import pytest
from sqlalchemy import select

from core.errors import ServiceFailure
from infrastructure.database.models import BillableMetric, Charge, Fee, Plan, Subscription
from services.fees.charge_service import ChargeFeeService, InvoiceFeesService


async def _fee(db_session, invoice, charge) -> Fee:
    return await ChargeFeeService(db_session, invoice, charge).create()


class TestSumAggregation:
    @pytest.mark.asyncio
    async def test_standard_charge(self, db_session, create_events, organization, subscription, usage_invoice, charge):
        await create_events(db_session, organization, subscription, "api_calls", [{"calls": 10}, {"calls": 20}, {"calls": 5}])

        fee = await _fee(db_session, usage_invoice, charge)

        assert fee.units == Decimal("35")
        assert fee.events_count == 3
        assert fee.amount_cents == 1750
        assert fee.amount_currency == "USD"

    @pytest.mark.asyncio
    async def test_events_outside_period_or_metric_are_ignored(
        self, db_session, create_events, organization, subscription, usage_invoice, charge
    ):
        await create_events(db_session, organization, subscription, "api_calls", [{"calls": 10}])
        await create_events(
            db_session, organization, subscription, "api_calls", [{"calls": 99}],
            timestamp=datetime(2026, 2, 28, 23, 59, tzinfo=UTC),
        )
        await create_events(db_session, organization, subscription, "storage", [{"calls": 50}])

        fee = await _fee(db_session, usage_invoice, charge)

        assert fee.units == Decimal("10")
        assert fee.events_count == 1

    @pytest.mark.asyncio
    async def test_last_day_of_period_is_included(self, db_session, create_events, organization, subscription, usage_invoice, charge):
        await create_events(
            db_session, organization, subscription, "api_calls", [{"calls": 4}],
            timestamp=datetime(2026, 3, 31, 23, 30, tzinfo=UTC),
        )

        fee = await _fee(db_session, usage_invoice, charge)

        assert fee.units == Decimal("4")

    @pytest.mark.asyncio
    async def test_events_without_field_count_as_nothing(
        self, db_session, create_events, organization, subscription, usage_invoice, charge
    ):
        await create_events(db_session, organization, subscription, "api_calls", [{"calls": 3}, {"other": 1}])

        fee = await _fee(db_session, usage_invoice, charge)

        assert fee.units == Decimal("3")
        assert fee.events_count == 2

    @pytest.mark.asyncio
    async def test_non_numeric_value(self, db_session, create_events, organization, subscription, usage_invoice, charge):
        await create_events(db_session, organization, subscription, "api_calls", [{"calls": "many"}])

        with pytest.raises(ServiceFailure) as exc_info:
            await _fee(db_session, usage_invoice, charge)
        assert exc_info.value.code == "aggregation_failure"

    @pytest.mark.asyncio
    async def test_fee_is_computed_once(self, db_session, create_events, organization, subscription, usage_invoice, charge):
        await create_events(db_session, organization, subscription, "api_calls", [{"calls": 2}])

        first = await _fee(db_session, usage_invoice, charge)
        await create_events(db_session, organization, subscription, "api_calls", [{"calls": 8}])
        second = await _fee(db_session, usage_invoice, charge)

        assert second.id == first.id
        assert second.units == Decimal("2")


class TestOtherAggregations:
    async def _charge_for(self, db_session, organization, plan, **metric_values) -> Charge:
        metric = BillableMetric(organization_id=organization.id, name="Metric", code="usage", **metric_values)
        db_session.add(metric)
        await db_session.flush()
        charge = Charge(
            plan_id=plan.id,
            billable_metric_id=metric.id,
            charge_model="standard",
            amount_currency="USD",
            properties={"amount": "1"},
        )
        db_session.add(charge)
        await db_session.commit()
        return charge

    @pytest.mark.asyncio
    async def test_count(self, db_session, create_events, organization, plan, subscription, usage_invoice):
        charge = await self._charge_for(db_session, organization, plan, aggregation_type="count_agg")
        await create_events(db_session, organization, subscription, "usage", [{}, {}, {}, {}])

        fee = await _fee(db_session, usage_invoice, charge)

        assert fee.units == Decimal("4")
        assert fee.amount_cents == 400

    @pytest.mark.asyncio
    async def test_max(self, db_session, create_events, organization, plan, subscription, usage_invoice):
        charge = await self._charge_for(db_session, organization, plan, aggregation_type="max_agg", field_name="seats")
        await create_events(db_session, organization, subscription, "usage", [{"seats": 3}, {"seats": "12"}, {"seats": 7}])

        fee = await _fee(db_session, usage_invoice, charge)

        assert fee.units == Decimal("12")

    @pytest.mark.asyncio
    async def test_unique_count(self, db_session, create_events, organization, plan, subscription, usage_invoice):
        charge = await self._charge_for(
            db_session, organization, plan, aggregation_type="unique_count_agg", field_name="user_id"
        )
        await create_events(
            db_session, organization, subscription, "usage",
            [{"user_id": "u1"}, {"user_id": "u2"}, {"user_id": "u1"}, {}],
        )

        fee = await _fee(db_session, usage_invoice, charge)

        assert fee.units == Decimal("2")
        assert fee.events_count == 4

    @pytest.mark.asyncio
    async def test_expression_with_rounding(self, db_session, create_events, organization, plan, subscription, usage_invoice):
        charge = await self._charge_for(
            db_session,
            organization,
            plan,
            aggregation_type="sum_agg",
            field_name="duration",
            expression="event.properties.duration / 60",
            rounding_function="ceil",
            rounding_precision=0,
        )
        await create_events(db_session, organization, subscription, "usage", [{"duration": 90}, {"duration": 45}])

        fee = await _fee(db_session, usage_invoice, charge)

        # 1.5 + 0.75 rounded up
        assert fee.units == Decimal("3")

    @pytest.mark.asyncio
    async def test_unsupported_aggregation(self, db_session, organization, plan, subscription, usage_invoice):
        charge = await self._charge_for(
            db_session, organization, plan,
            aggregation_type="weighted_sum_agg", field_name="gb", weighted_interval="seconds",
        )

        with pytest.raises(NotImplementedError):
            await _fee(db_session, usage_invoice, charge)


class TestInvoiceFees:
    @pytest.mark.asyncio
    async def test_totals_include_vat(self, db_session, create_events, organization, customer, subscription, usage_invoice, charge):
        customer.vat_rate = Decimal("20")
        await db_session.commit()
        await create_events(db_session, organization, subscription, "api_calls", [{"calls": 35}])

        fees = await InvoiceFeesService(db_session, usage_invoice).call()

        assert len(fees) == 1
        assert fees[0].vat_amount_cents == 350
        assert usage_invoice.fees_amount_cents == 1750
        assert usage_invoice.vat_amount_cents == 350
        assert usage_invoice.total_amount_cents == 2100

    @pytest.mark.asyncio
    async def test_organization_vat_rate_applies_by_default(
        self, db_session, create_events, organization, subscription, usage_invoice, charge
    ):
        organization.vat_rate = Decimal("14")
        await db_session.commit()
        await create_events(db_session, organization, subscription, "api_calls", [{"calls": 200}])

        await InvoiceFeesService(db_session, usage_invoice).call()

        assert usage_invoice.fees_amount_cents == 10000
        assert usage_invoice.vat_amount_cents == 1400

    @pytest.mark.asyncio
    async def test_fees_are_not_duplicated(self, db_session, create_events, organization, subscription, usage_invoice, charge):
        await create_events(db_session, organization, subscription, "api_calls", [{"calls": 1}])

        await InvoiceFeesService(db_session, usage_invoice).call()
        await InvoiceFeesService(db_session, usage_invoice).call()

        fees = (await db_session.execute(select(Fee))).scalars().all()
        assert len(fees) == 1

    @pytest.mark.asyncio
    async def test_invoice_without_period(self, db_session, subscription, usage_invoice, charge):
        usage_invoice.to_date = None
        await db_session.commit()

        with pytest.raises(ServiceFailure) as exc_info:
            await InvoiceFeesService(db_session, usage_invoice).call()

        assert exc_info.value.code == "invoice_period_missing"
        assert (await db_session.execute(select(Fee))).scalars().all() == []


class TestUpgradeWindow:
    async def _upgrade(self, db_session, organization, customer, subscription, plan, new_amount_cents) -> Subscription:
        new_plan = Plan(
            organization_id=organization.id,
            name="Next",
            code=f"next_{new_amount_cents}",
            interval="monthly",
            amount_cents=new_amount_cents,
            amount_currency="USD",
        )
        db_session.add(new_plan)
        await db_session.flush()

        charge = (await db_session.execute(select(Charge).where(Charge.plan_id == plan.id))).scalar_one()
        db_session.add(
            Charge(
                plan_id=new_plan.id,
                billable_metric_id=charge.billable_metric_id,
                charge_model="standard",
                amount_currency="USD",
                properties={"amount": "0.50"},
            )
        )
        subscription.status = "terminated"
        new_subscription = Subscription(
            customer_id=customer.id,
            plan_id=new_plan.id,
            external_id="sub_ext_001",
            status="active",
            previous_subscription_id=subscription.id,
            started_at=datetime(2026, 3, 10, tzinfo=UTC),
        )
        db_session.add(new_subscription)
        await db_session.commit()
        return new_subscription

    async def _mid_period_invoice(self, db_session, usage_invoice, new_subscription):
        usage_invoice.subscription_id = new_subscription.id
        usage_invoice.from_date = date(2026, 3, 10)
        await db_session.commit()

    @pytest.mark.asyncio
    async def test_upgrade_bills_whole_period(
        self, db_session, create_events, organization, customer, subscription, plan, charge, usage_invoice
    ):
        new_subscription = await self._upgrade(db_session, organization, customer, subscription, plan, 20000)
        await self._mid_period_invoice(db_session, usage_invoice, new_subscription)
        await create_events(
            db_session, organization, new_subscription, "api_calls", [{"calls": 6}],
            timestamp=datetime(2026, 3, 5, tzinfo=UTC),
        )
        await create_events(db_session, organization, new_subscription, "api_calls", [{"calls": 4}])

        fees = await InvoiceFeesService(db_session, usage_invoice).call()

        assert fees[0].units == Decimal("10")

    @pytest.mark.asyncio
    async def test_downgrade_starts_at_invoice_period(
        self, db_session, create_events, organization, customer, subscription, plan, charge, usage_invoice
    ):
        new_subscription = await self._upgrade(db_session, organization, customer, subscription, plan, 5000)
        await self._mid_period_invoice(db_session, usage_invoice, new_subscription)
        await create_events(
            db_session, organization, new_subscription, "api_calls", [{"calls": 6}],
            timestamp=datetime(2026, 3, 5, tzinfo=UTC),
        )
        await create_events(db_session, organization, new_subscription, "api_calls", [{"calls": 4}])

        fees = await InvoiceFeesService(db_session, usage_invoice).call()

        assert fees[0].units == Decimal("4")
