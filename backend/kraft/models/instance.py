# backend/kraft/models/instance.py
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from sqlalchemy import String, Text, Integer, Boolean, DateTime, ForeignKey, JSON
from sqlalchemy.orm import Mapped, mapped_column

from kraft.models.base import Base, TimestampMixin, UUIDMixin, utcnow


class InstanceKind(str, Enum):
    MICROVM = "microvm"
    CONTAINER = "container"


class InstanceStatus(str, Enum):
    PROVISIONING = "provisioning"
    RUNNING = "running"
    STOPPED = "stopped"
    TERMINATING = "terminating"
    FAILED = "failed"


class Instance(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "instances"

    workspace_id: Mapped[UUID] = mapped_column(ForeignKey("workspaces.id"), index=True)
    user_id: Mapped[UUID] = mapped_column(index=True)
    kind: Mapped[InstanceKind] = mapped_column(default=InstanceKind.MICROVM)

    image: Mapped[str] = mapped_column(String(255))
    memory_mb: Mapped[int] = mapped_column(Integer)
    cpu_count: Mapped[int] = mapped_column(Integer)
    disk_mb: Mapped[int] = mapped_column(Integer)
    vnc_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    environment: Mapped[dict] = mapped_column(JSON, default=dict)
    # "metadata" is reserved on declarative classes
    meta: Mapped[dict] = mapped_column("metadata", JSON, default=dict)

    status: Mapped[InstanceStatus] = mapped_column(default=InstanceStatus.PROVISIONING, index=True)
    status_changed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Handle assigned by the driver (container id, microVM id)
    backend_ref: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    source_snapshot_id: Mapped[Optional[UUID]] = mapped_column(nullable=True)
