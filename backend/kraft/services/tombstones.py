# backend/kraft/services/tombstones.py
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from kraft.models.tombstone import Tombstone

INSTANCE = "instance"
SNAPSHOT = "snapshot"
TEMPLATE = "template"


class TombstoneRepository:
    def __init__(self, db: Session):
        self.db = db

    def find(self, entity_type: str, entity_id: UUID) -> Optional[Tombstone]:
        return self.db.get(Tombstone, (entity_type, entity_id))

    def record(self, entity_type: str, entity_id: UUID, organization_id: UUID) -> None:
        """Stage a tombstone; committed together with the delete."""
        if self.find(entity_type, entity_id) is None:
            self.db.add(Tombstone(
                entity_type=entity_type,
                entity_id=entity_id,
                organization_id=organization_id,
            ))
