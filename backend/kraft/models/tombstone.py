# backend/kraft/models/tombstone.py
from datetime import datetime
from uuid import UUID

from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from kraft.models.base import Base, utcnow


class Tombstone(Base):
    """Marker left behind by a delete so a repeated delete can succeed."""
    __tablename__ = "tombstones"

    entity_type: Mapped[str] = mapped_column(String(20), primary_key=True)
    entity_id: Mapped[UUID] = mapped_column(primary_key=True)
    organization_id: Mapped[UUID] = mapped_column(index=True)
    deleted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
