"""
Billable metric API routes.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import CurrentOrganization
from api.schemas.billable_metrics import (
    BillableMetricListResponse,
    BillableMetricObject,
    BillableMetricRequest,
    BillableMetricResponse,
    EvaluateExpressionRequest,
    EvaluateExpressionResponse,
    ExpressionResult,
    PaginationMeta,
)
from infrastructure.database.connection import get_db
from services.billable_metrics import BillableMetricService, evaluate_metric_expression

router = APIRouter(prefix="/billable_metrics", tags=["billable_metrics"])


def _response(metric) -> BillableMetricResponse:
    return BillableMetricResponse(billable_metric=BillableMetricObject.from_model(metric))


@router.post("", response_model=BillableMetricResponse)
async def create_billable_metric(
    body: BillableMetricRequest,
    organization: CurrentOrganization,
    db: AsyncSession = Depends(get_db),
):
    metric = await BillableMetricService(db).create(organization.id, body.billable_metric.model_dump())
    return _response(metric)


@router.get("", response_model=BillableMetricListResponse)
async def list_billable_metrics(
    organization: CurrentOrganization,
    page: Annotated[int, Query(ge=1)] = 1,
    per_page: Annotated[int, Query(ge=1, le=100)] = 20,
    db: AsyncSession = Depends(get_db),
):
    """List active metrics, newest first."""
    metrics, meta = await BillableMetricService(db).list_metrics(organization.id, page=page, per_page=per_page)
    return BillableMetricListResponse(
        billable_metrics=[BillableMetricObject.from_model(metric) for metric in metrics],
        meta=PaginationMeta(**meta),
    )


@router.post("/evaluate_expression", response_model=EvaluateExpressionResponse)
async def evaluate_expression(
    body: EvaluateExpressionRequest,
    organization: CurrentOrganization,
):
    """Evaluate a metric expression against a sample event."""
    value = evaluate_metric_expression(body.expression, body.event.model_dump())
    return EvaluateExpressionResponse(expression_result=ExpressionResult(value=value))


@router.get("/{code}", response_model=BillableMetricResponse)
async def get_billable_metric(
    code: str,
    organization: CurrentOrganization,
    db: AsyncSession = Depends(get_db),
):
    metric = await BillableMetricService(db).get_by_code(organization.id, code)
    return _response(metric)


@router.put("/{code}", response_model=BillableMetricResponse)
async def update_billable_metric(
    code: str,
    body: BillableMetricRequest,
    organization: CurrentOrganization,
    db: AsyncSession = Depends(get_db),
):
    """Update a metric. Omitted fields keep their value."""
    metric = await BillableMetricService(db).update(
        organization.id, code, body.billable_metric.model_dump(exclude_unset=True)
    )
    return _response(metric)


@router.delete("/{code}", response_model=BillableMetricResponse, status_code=status.HTTP_200_OK)
async def delete_billable_metric(
    code: str,
    organization: CurrentOrganization,
    db: AsyncSession = Depends(get_db),
):
    metric = await BillableMetricService(db).destroy(organization.id, code)
    return _response(metric)
