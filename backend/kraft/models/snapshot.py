# backend/kraft/models/snapshot.py
from typing import Optional
from uuid import UUID

from sqlalchemy import String, Text, Integer, BigInteger, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from kraft.models.base import Base, TimestampMixin, UUIDMixin
from kraft.models.instance import InstanceKind


class Snapshot(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "snapshots"

    # No foreign key: snapshots outlive the instance they were captured from
    source_instance_id: Mapped[UUID] = mapped_column(index=True)
    workspace_id: Mapped[UUID] = mapped_column(ForeignKey("workspaces.id"), index=True)
    name: Mapped[str] = mapped_column(String(100))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    storage_locator: Mapped[str] = mapped_column(String(512))
    size_bytes: Mapped[int] = mapped_column(BigInteger, default=0)

    # Resource profile recorded at capture time, used for restore
    kind: Mapped[InstanceKind] = mapped_column()
    image: Mapped[str] = mapped_column(String(255))
    memory_mb: Mapped[int] = mapped_column(Integer)
    cpu_count: Mapped[int] = mapped_column(Integer)
    disk_mb: Mapped[int] = mapped_column(Integer)
