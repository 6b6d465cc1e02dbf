# backend/kraft/models/template.py
from typing import Optional
from uuid import UUID

from sqlalchemy import String, Text, Integer, ForeignKey, JSON
from sqlalchemy.orm import Mapped, mapped_column

from kraft.models.base import Base, TimestampMixin, UUIDMixin
from kraft.models.instance import InstanceKind


class Template(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "templates"

    organization_id: Mapped[UUID] = mapped_column(ForeignKey("organizations.id"), index=True)
    name: Mapped[str] = mapped_column(String(100))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Weak reference, the snapshot may be deleted later
    snapshot_id: Mapped[Optional[UUID]] = mapped_column(nullable=True, index=True)

    kind: Mapped[InstanceKind] = mapped_column(default=InstanceKind.MICROVM)
    image: Mapped[str] = mapped_column(String(255))
    memory_mb: Mapped[int] = mapped_column(Integer)
    cpu_count: Mapped[int] = mapped_column(Integer)
    disk_mb: Mapped[int] = mapped_column(Integer)
    environment: Mapped[dict] = mapped_column(JSON, default=dict)
    meta: Mapped[dict] = mapped_column("metadata", JSON, default=dict)
