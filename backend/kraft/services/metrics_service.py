# backend/kraft/services/metrics_service.py
import logging
import math
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy import desc
from sqlalchemy.orm import Session

from kraft.config import Settings, get_settings
from kraft.exceptions import NotFoundError, ValidationError
from kraft.models.base import utcnow
from kraft.models.instance import Instance
from kraft.models.metric import DEFAULT_UNITS, MetricSample, MetricType

logger = logging.getLogger(__name__)


def normalize_timestamp(value: Optional[datetime]) -> datetime:
    if value is None:
        return utcnow()
    if value.tzinfo is None:
        # Naive timestamps are taken as UTC
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class MetricsService:
    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    def record(
        self,
        instance_id: UUID,
        metric_type: MetricType,
        value: float,
        unit: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> MetricSample:
        if self.db.get(Instance, instance_id) is None:
            raise NotFoundError("Instance")
        if isinstance(value, bool) or not math.isfinite(value):
            raise ValidationError("value must be a finite number")

        sample = MetricSample(
            instance_id=instance_id,
            metric_type=metric_type,
            value=float(value),
            unit=(unit or DEFAULT_UNITS[metric_type])[:20],
            timestamp=normalize_timestamp(timestamp),
        )
        self.db.add(sample)
        self.db.commit()
        self.db.refresh(sample)
        return sample

    def clamp_limit(self, limit: Optional[int]) -> int:
        if limit is None:
            return self.settings.metrics_default_limit
        return max(1, min(limit, self.settings.metrics_max_limit))

    def query(
        self,
        instance_id: UUID,
        metric_type: Optional[MetricType] = None,
        limit: Optional[int] = None,
    ) -> List[MetricSample]:
        """Most recent samples first."""
        query = self.db.query(MetricSample).filter(MetricSample.instance_id == instance_id)
        if metric_type is not None:
            query = query.filter(MetricSample.metric_type == metric_type)
        return query.order_by(
            desc(MetricSample.timestamp), desc(MetricSample.id)
        ).limit(self.clamp_limit(limit)).all()
