# backend/kraft/schemas/instance.py
from datetime import datetime
from typing import Any, Dict, Optional, Union
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field

from kraft.models.instance import InstanceKind, InstanceStatus

# Integer megabytes or a string such as "512M", "2GB", "1Gi"
SizeValue = Union[int, str]


class InstanceCreate(BaseModel):
    user_id: UUID
    workspace_id: UUID
    kind: Optional[InstanceKind] = None
    template_id: Optional[UUID] = None
    image: Optional[str] = Field(None, min_length=1, max_length=255)
    memory: Optional[SizeValue] = None
    cpu_count: Optional[int] = None
    disk_size: Optional[SizeValue] = None
    vnc: bool = False
    environment: Dict[str, str] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class InstanceResponse(BaseModel):
    id: UUID
    workspace_id: UUID
    user_id: UUID
    kind: InstanceKind
    image: str
    memory_mb: int
    cpu_count: int
    disk_mb: int
    vnc_enabled: bool
    environment: Dict[str, str] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("meta", "metadata")
    )
    status: InstanceStatus
    status_changed_at: datetime
    failure_reason: Optional[str] = None
    source_snapshot_id: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ExecRequest(BaseModel):
    command: str = Field(..., min_length=1)
    timeout: int = Field(30000, ge=1000, le=300000, description="Timeout in milliseconds")


class ExecResponse(BaseModel):
    instance_id: UUID
    execution_id: str
    command: str
    exit_code: int
    stdout: str
    stderr: str
    output: str
    duration_ms: int


class LogsResponse(BaseModel):
    instance_id: UUID
    logs: list[str]


class MessageResponse(BaseModel):
    message: str
