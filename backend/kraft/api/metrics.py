# backend/kraft/api/metrics.py
"""Metric ingestion and query, scoped to an existing instance."""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from kraft.api.deps import CurrentCaller, DBSession, Gate, authorize_instance
from kraft.models.metric import MetricType
from kraft.schemas.metric import MetricCreate, MetricResponse
from kraft.services.authorization import Action
from kraft.services.metrics_service import MetricsService

router = APIRouter(prefix="/metrics", tags=["Metrics"])

ACCESS_DENIED = "Access denied"


@router.post("", response_model=MetricResponse, status_code=status.HTTP_201_CREATED)
def record_metric(metric_data: MetricCreate, db: DBSession, gate: Gate, caller: CurrentCaller):
    authorize_instance(db, gate, caller, metric_data.instance_id, Action.MUTATE,
                       hide_existence=False, denied_message=ACCESS_DENIED)
    return MetricsService(db).record(
        metric_data.instance_id,
        metric_data.metric_type,
        metric_data.value,
        unit=metric_data.unit,
        timestamp=metric_data.timestamp,
    )


@router.get("", response_model=List[MetricResponse])
def query_metrics(
    db: DBSession,
    gate: Gate,
    caller: CurrentCaller,
    instance_id: UUID,
    metric_type: Optional[MetricType] = None,
    limit: int = Query(100, ge=1),
):
    """Most recent samples first; ``limit`` is capped at the platform maximum."""
    authorize_instance(db, gate, caller, instance_id, Action.READ,
                       hide_existence=False, denied_message=ACCESS_DENIED)
    return MetricsService(db).query(instance_id, metric_type=metric_type, limit=limit)
