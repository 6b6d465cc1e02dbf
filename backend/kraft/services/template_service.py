# backend/kraft/services/template_service.py
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from kraft.config import Settings, get_settings
from kraft.exceptions import DanglingReferenceError, NotFoundError, ValidationError
from kraft.models.instance import InstanceKind
from kraft.models.organization import OrganizationMember
from kraft.models.snapshot import Snapshot
from kraft.models.template import Template
from kraft.services.locks import KeyedLock, resource_locks
from kraft.services.resources import ResourceProfile, SizeValue, build_profile
from kraft.services import tombstones

logger = logging.getLogger(__name__)


@dataclass
class TemplateDefaults:
    """What a template contributes to a provisioning request."""
    kind: InstanceKind
    profile: ResourceProfile
    restore_from: Optional[str] = None
    snapshot_id: Optional[UUID] = None


class TemplateService:
    def __init__(self, db: Session, settings: Optional[Settings] = None, locks: KeyedLock = resource_locks):
        self.db = db
        self.settings = settings or get_settings()
        self.locks = locks
        self.tombstones = tombstones.TombstoneRepository(db)

    def get(self, template_id: UUID) -> Template:
        template = self.db.get(Template, template_id)
        if template is None:
            raise NotFoundError("Template")
        return template

    def list(self, caller_id: UUID, category: Optional[str] = None) -> List[Template]:
        query = self.db.query(Template).join(
            OrganizationMember, OrganizationMember.organization_id == Template.organization_id
        ).filter(OrganizationMember.user_id == caller_id)
        if category:
            query = query.filter(Template.category == category)
        return query.order_by(Template.name).all()

    def create(
        self,
        organization_id: UUID,
        name: str,
        kind: Optional[InstanceKind] = None,
        image: Optional[str] = None,
        memory: Optional[SizeValue] = None,
        cpu_count: Optional[int] = None,
        disk_size: Optional[SizeValue] = None,
        environment: Optional[Dict[str, str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        description: Optional[str] = None,
        category: Optional[str] = None,
        snapshot_id: Optional[UUID] = None,
    ) -> Template:
        name = (name or "").strip()
        if not name:
            raise ValidationError("name must not be empty")

        base = None
        if snapshot_id is not None:
            snapshot = self.db.get(Snapshot, snapshot_id)
            if snapshot is None:
                raise NotFoundError("Snapshot")
            kind = kind or snapshot.kind
            if kind != snapshot.kind:
                raise ValidationError("Template kind must match the snapshot kind")
            base = ResourceProfile(
                image=snapshot.image,
                memory_mb=snapshot.memory_mb,
                cpu_count=snapshot.cpu_count,
                disk_mb=snapshot.disk_mb,
            )

        profile = build_profile(
            self.settings, image=image, memory=memory, cpu_count=cpu_count,
            disk_size=disk_size, environment=environment, metadata=metadata, base=base,
        )
        template = Template(
            organization_id=organization_id,
            name=name,
            description=description,
            category=category,
            snapshot_id=snapshot_id,
            kind=kind or InstanceKind.MICROVM,
            image=profile.image,
            memory_mb=profile.memory_mb,
            cpu_count=profile.cpu_count,
            disk_mb=profile.disk_mb,
            environment=profile.environment,
            meta=profile.metadata,
        )
        self.db.add(template)
        self.db.commit()
        self.db.refresh(template)
        logger.info(f"Created template {template.name} ({template.id})")
        return template

    def resolve(self, template: Template) -> TemplateDefaults:
        """Defaults for provisioning from ``template``; fails if its snapshot is gone."""
        restore_from = None
        if template.snapshot_id is not None:
            snapshot = self.db.get(Snapshot, template.snapshot_id)
            if snapshot is None:
                raise DanglingReferenceError(
                    f"Template '{template.name}' references a snapshot that no longer exists"
                )
            restore_from = snapshot.storage_locator

        return TemplateDefaults(
            kind=template.kind,
            profile=ResourceProfile(
                image=template.image,
                memory_mb=template.memory_mb,
                cpu_count=template.cpu_count,
                disk_mb=template.disk_mb,
                environment=dict(template.environment or {}),
                metadata=dict(template.meta or {}),
            ),
            restore_from=restore_from,
            snapshot_id=template.snapshot_id,
        )

    def delete(self, template_id: UUID, organization_id: UUID) -> None:
        with self.locks.hold(("template", template_id), self.settings.instance_lock_timeout_seconds):
            template = self.db.get(Template, template_id)
            if template is None:
                if self.tombstones.find(tombstones.TEMPLATE, template_id) is not None:
                    return
                raise NotFoundError("Template")
            self.tombstones.record(tombstones.TEMPLATE, template_id, organization_id)
            self.db.delete(template)
            try:
                self.db.commit()
            except (IntegrityError, StaleDataError):
                # Another worker finished the same delete first
                self.db.rollback()
                if self.tombstones.find(tombstones.TEMPLATE, template_id) is None:
                    raise
                logger.info(f"Template {template_id} was already deleted")
                return
        logger.info(f"Deleted template {template_id}")
