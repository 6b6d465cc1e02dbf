# backend/kraft/schemas/metric.py
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from kraft.models.metric import MetricType


class MetricCreate(BaseModel):
    instance_id: UUID
    metric_type: MetricType
    value: float
    unit: Optional[str] = Field(None, max_length=20)
    timestamp: Optional[datetime] = None


class MetricResponse(BaseModel):
    id: UUID
    instance_id: UUID
    metric_type: MetricType
    value: float
    unit: str
    timestamp: datetime

    class Config:
        from_attributes = True
