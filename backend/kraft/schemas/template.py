# backend/kraft/schemas/template.py
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field

from kraft.models.instance import InstanceKind
from kraft.schemas.instance import SizeValue


class TemplateCreate(BaseModel):
    organization_id: UUID
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=50)
    snapshot_id: Optional[UUID] = None
    kind: Optional[InstanceKind] = None
    image: Optional[str] = Field(None, min_length=1, max_length=255)
    memory: Optional[SizeValue] = None
    cpu_count: Optional[int] = None
    disk_size: Optional[SizeValue] = None
    environment: Dict[str, str] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class TemplateResponse(BaseModel):
    id: UUID
    organization_id: UUID
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    snapshot_id: Optional[UUID] = None
    kind: InstanceKind
    image: str
    memory_mb: int
    cpu_count: int
    disk_mb: int
    environment: Dict[str, str] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("meta", "metadata")
    )
    created_at: datetime

    class Config:
        from_attributes = True
