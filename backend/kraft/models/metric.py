# backend/kraft/models/metric.py
from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import String, Float, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column

from kraft.models.base import Base, UUIDMixin, utcnow


class MetricType(str, Enum):
    CPU_USAGE = "cpu_usage"
    MEMORY_USAGE = "memory_usage"
    DISK_USAGE = "disk_usage"
    NETWORK_IN = "network_in"
    NETWORK_OUT = "network_out"
    RESPONSE_TIME = "response_time"


DEFAULT_UNITS = {
    MetricType.CPU_USAGE: "percent",
    MetricType.MEMORY_USAGE: "MB",
    MetricType.DISK_USAGE: "MB",
    MetricType.NETWORK_IN: "bytes",
    MetricType.NETWORK_OUT: "bytes",
    MetricType.RESPONSE_TIME: "ms",
}


class MetricSample(Base, UUIDMixin):
    __tablename__ = "metric_samples"
    __table_args__ = (
        Index("ix_metric_samples_instance_timestamp", "instance_id", "timestamp"),
    )

    # Samples are kept after the instance is deleted; retention prunes them
    instance_id: Mapped[UUID] = mapped_column(index=True)
    metric_type: Mapped[MetricType] = mapped_column(index=True)
    value: Mapped[float] = mapped_column(Float)
    unit: Mapped[str] = mapped_column(String(20))
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
