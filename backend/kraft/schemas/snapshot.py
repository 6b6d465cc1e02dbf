# backend/kraft/schemas/snapshot.py
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field
from uuid import UUID

from kraft.models.instance import InstanceKind


class SnapshotBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)


class SnapshotCreate(SnapshotBase):
    instance_id: UUID


class SnapshotRestore(BaseModel):
    vnc: bool = False


class SnapshotResponse(SnapshotBase):
    id: UUID
    source_instance_id: UUID
    workspace_id: UUID
    kind: InstanceKind
    size_bytes: int
    image: str
    memory_mb: int
    cpu_count: int
    disk_mb: int
    created_at: datetime

    class Config:
        from_attributes = True
