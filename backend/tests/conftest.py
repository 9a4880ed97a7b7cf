"""
Pytest configuration and shared fixtures for backend tests.
"""

import sys
from pathlib import Path

# Add backend directory to path for imports
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from contextlib import asynccontextmanager
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any, AsyncGenerator
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Import after path is set
from core.security import encrypt_credential
from infrastructure.config import get_settings
from infrastructure.database.connection import get_db
from infrastructure.database.models import (
    Base,
    BillableMetric,
    Charge,
    Customer,
    Event,
    Invoice,
    MoneyhashCustomer,
    Organization,
    PaymentProvider,
    PaymentRequest,
    Plan,
    Subscription,
    WebhookEndpoint,
    payment_request_invoices,
)
from services.task_queue import job_queue

settings = get_settings()

# Database URL for testing (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

MONEYHASH_API_KEY = "mh_test_api_key_123"


@pytest.fixture
async def db_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async_session = sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def async_client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing."""
    # Import app here to avoid circular imports
    from main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    # Reset rate limiter state between tests to prevent cross-test 429s
    app.state.limiter.reset()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


class RecordedJobs(list):
    """Jobs enqueued during a test."""

    def ids(self, prefix: str) -> list[str]:
        return [job["job_id"] for job in self if job["job_id"].startswith(prefix)]


@pytest.fixture(autouse=True)
def enqueued_jobs(monkeypatch) -> RecordedJobs:
    """
    Record background jobs instead of running them.

    Each entry has the job id, the job factory and the enqueue options.
    """
    jobs = RecordedJobs()

    async def _record(job_id, job, *, max_attempts=1, retry_on=()):
        jobs.append({"job_id": job_id, "job": job, "max_attempts": max_attempts, "retry_on": retry_on})
        return job_id

    monkeypatch.setattr(job_queue, "enqueue", _record)
    return jobs


@pytest.fixture
def job_db(monkeypatch, db_session: AsyncSession) -> AsyncSession:
    """Make job bodies run against the test session."""

    @asynccontextmanager
    async def _context():
        yield db_session
        await db_session.commit()

    monkeypatch.setattr("services.jobs.get_db_context", _context)
    return db_session


# ============================================================================
# Organization / provider fixtures
# ============================================================================


@pytest.fixture
async def organization(db_session: AsyncSession) -> Organization:
    org = Organization(name="Acme Billing", api_key="org_test_api_key", vat_rate=Decimal("0"))
    db_session.add(org)
    await db_session.commit()
    return org


@pytest.fixture
async def other_organization(db_session: AsyncSession) -> Organization:
    org = Organization(name="Other Org", api_key="other_org_api_key")
    db_session.add(org)
    await db_session.commit()
    return org


@pytest.fixture
def auth_headers(organization: Organization) -> dict:
    """Bearer header carrying the organization API key."""
    return {"Authorization": f"Bearer {organization.api_key}"}


@pytest.fixture
async def moneyhash_provider(db_session: AsyncSession, organization: Organization) -> PaymentProvider:
    provider = PaymentProvider(
        organization_id=organization.id,
        provider_type="moneyhash",
        code="moneyhash_main",
        name="Moneyhash",
        encrypted_api_key=encrypt_credential(MONEYHASH_API_KEY, settings.secret_key),
        success_redirect_url="https://shop.example.com/success",
        failed_redirect_url="https://shop.example.com/failed",
        pending_redirect_url="https://shop.example.com/pending",
        webhook_redirect_url="https://billing.example.com/webhooks/moneyhash",
    )
    db_session.add(provider)
    await db_session.commit()
    return provider


@pytest.fixture
async def customer(
    db_session: AsyncSession,
    organization: Organization,
    moneyhash_provider: PaymentProvider,
) -> Customer:
    customer = Customer(
        organization_id=organization.id,
        external_id="cust_ext_001",
        name="Jane Doe",
        firstname="Jane",
        lastname="Doe",
        email="jane@example.com",
        phone="+201000000000",
        address_line1="1 Nile St",
        city="Cairo",
        state="Cairo",
        country="eg",
        currency="USD",
        payment_provider="moneyhash",
        payment_provider_code=moneyhash_provider.code,
    )
    db_session.add(customer)
    await db_session.commit()
    return customer


@pytest.fixture
async def moneyhash_customer(
    db_session: AsyncSession,
    customer: Customer,
    moneyhash_provider: PaymentProvider,
) -> MoneyhashCustomer:
    moneyhash_customer = MoneyhashCustomer(
        customer_id=customer.id,
        payment_provider_id=moneyhash_provider.id,
        provider_customer_id="mh_cus_001",
        payment_method_id="card_token_001",
    )
    db_session.add(moneyhash_customer)
    await db_session.commit()
    return moneyhash_customer


@pytest.fixture
async def invoice(db_session: AsyncSession, organization: Organization, customer: Customer) -> Invoice:
    invoice = Invoice(
        organization_id=organization.id,
        customer_id=customer.id,
        status="finalized",
        payment_status="pending",
        currency="USD",
        fees_amount_cents=10000,
        total_amount_cents=10000,
    )
    db_session.add(invoice)
    await db_session.commit()
    return invoice


@pytest.fixture
async def payment_request(
    db_session: AsyncSession,
    organization: Organization,
    customer: Customer,
    invoice: Invoice,
) -> PaymentRequest:
    payment_request = PaymentRequest(
        organization_id=organization.id,
        customer_id=customer.id,
        email=customer.email,
        amount_cents=invoice.total_amount_cents,
        amount_currency="USD",
    )
    db_session.add(payment_request)
    await db_session.flush()
    await db_session.execute(
        insert(payment_request_invoices).values(payment_request_id=payment_request.id, invoice_id=invoice.id)
    )
    await db_session.commit()
    return payment_request


@pytest.fixture
async def webhook_endpoint(db_session: AsyncSession, organization: Organization) -> WebhookEndpoint:
    endpoint = WebhookEndpoint(
        organization_id=organization.id,
        webhook_url="https://hooks.example.com/lago",
        signature_algo="hmac",
    )
    db_session.add(endpoint)
    await db_session.commit()
    return endpoint


# ============================================================================
# Usage billing fixtures
# ============================================================================


@pytest.fixture
async def plan(db_session: AsyncSession, organization: Organization) -> Plan:
    plan = Plan(
        organization_id=organization.id,
        name="Pro",
        code="pro",
        interval="monthly",
        amount_cents=10000,
        amount_currency="USD",
    )
    db_session.add(plan)
    await db_session.commit()
    return plan


@pytest.fixture
async def billable_metric(db_session: AsyncSession, organization: Organization) -> BillableMetric:
    metric = BillableMetric(
        organization_id=organization.id,
        name="API calls",
        code="api_calls",
        aggregation_type="sum_agg",
        field_name="calls",
    )
    db_session.add(metric)
    await db_session.commit()
    return metric


@pytest.fixture
async def charge(db_session: AsyncSession, plan: Plan, billable_metric: BillableMetric) -> Charge:
    charge = Charge(
        plan_id=plan.id,
        billable_metric_id=billable_metric.id,
        charge_model="standard",
        amount_currency="USD",
        properties={"amount": "0.50"},
    )
    db_session.add(charge)
    await db_session.commit()
    return charge


@pytest.fixture
async def subscription(db_session: AsyncSession, customer: Customer, plan: Plan) -> Subscription:
    subscription = Subscription(
        customer_id=customer.id,
        plan_id=plan.id,
        external_id="sub_ext_001",
        status="active",
        started_at=datetime(2026, 1, 1, tzinfo=UTC),
    )
    db_session.add(subscription)
    await db_session.commit()
    return subscription


@pytest.fixture
async def usage_invoice(
    db_session: AsyncSession,
    organization: Organization,
    customer: Customer,
    subscription: Subscription,
) -> Invoice:
    invoice = Invoice(
        organization_id=organization.id,
        customer_id=customer.id,
        subscription_id=subscription.id,
        status="finalized",
        payment_status="pending",
        currency="USD",
        from_date=date(2026, 3, 1),
        to_date=date(2026, 3, 31),
    )
    db_session.add(invoice)
    await db_session.commit()
    return invoice


async def _create_events(
    db: AsyncSession,
    organization: Organization,
    subscription: Subscription,
    code: str,
    properties_list: list[dict[str, Any]],
    timestamp: datetime | None = None,
) -> list[Event]:
    """Store one event per properties dict."""
    events = []
    for properties in properties_list:
        event = Event(
            organization_id=organization.id,
            subscription_id=subscription.id,
            code=code,
            transaction_id=f"tr_{uuid4().hex}",
            timestamp=timestamp or datetime(2026, 3, 15, 12, 0, tzinfo=UTC),
            properties=properties,
        )
        db.add(event)
        events.append(event)
    await db.commit()
    return events


@pytest.fixture
def create_events():
    """Helper storing usage events for a subscription."""
    return _create_events
