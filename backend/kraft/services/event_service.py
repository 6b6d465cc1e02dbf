# backend/kraft/services/event_service.py
import json
import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import desc
from sqlalchemy.orm import Session

from kraft.models.event_log import EventLog, EventType

logger = logging.getLogger(__name__)


class EventService:
    def __init__(self, db: Session):
        self.db = db

    def log_event(
        self,
        instance_id: UUID,
        event_type: EventType,
        message: str,
        extra_data: Optional[Dict[str, Any]] = None
    ) -> EventLog:
        event = EventLog(
            instance_id=instance_id,
            event_type=event_type,
            message=message,
            extra_data=json.dumps(extra_data, default=str) if extra_data else None
        )
        self.db.add(event)
        self.db.commit()
        self.db.refresh(event)
        logger.debug(f"[{event_type.value}] {instance_id}: {message}")
        return event

    def get_instance_events(
        self,
        instance_id: UUID,
        limit: int = 50,
        event_types: Optional[List[EventType]] = None
    ) -> List[EventLog]:
        query = self.db.query(EventLog).filter(EventLog.instance_id == instance_id)

        if event_types:
            query = query.filter(EventLog.event_type.in_(event_types))

        return query.order_by(desc(EventLog.created_at)).limit(limit).all()
