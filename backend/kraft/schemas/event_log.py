# backend/kraft/schemas/event_log.py
from datetime import datetime
from typing import Optional
from uuid import UUID
from pydantic import BaseModel

from kraft.models.event_log import EventType


class EventLogResponse(BaseModel):
    id: UUID
    instance_id: UUID
    event_type: EventType
    message: str
    extra_data: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
