"""API Routes."""

from fastapi import APIRouter

from .billable_metrics import router as billable_metrics_router
from .customers import router as customers_router
from .events import router as events_router
from .health import router as health_router
from .invoices import router as invoices_router
from .payment_providers import router as payment_providers_router
from .payment_requests import router as payment_requests_router
from .webhooks import router as webhooks_router

# Create main API router
api_router = APIRouter()

# Include route modules
api_router.include_router(health_router, tags=["Health"])
api_router.include_router(webhooks_router)
api_router.include_router(payment_providers_router)
api_router.include_router(customers_router)
api_router.include_router(invoices_router)
api_router.include_router(payment_requests_router)
api_router.include_router(billable_metrics_router)
api_router.include_router(events_router)
