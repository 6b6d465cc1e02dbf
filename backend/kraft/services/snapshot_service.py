# backend/kraft/services/snapshot_service.py
import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from kraft.config import Settings, get_settings
from kraft.exceptions import (
    DriverError, DriverNotFoundError, InvalidStateError, NotFoundError,
    OperationTimeoutError, ValidationError,
)
from kraft.models.event_log import EventType
from kraft.models.instance import Instance, InstanceStatus
from kraft.models.organization import OrganizationMember, Project, Workspace
from kraft.models.snapshot import Snapshot
from kraft.services.deadline import run_bounded
from kraft.services.drivers import DriverSet
from kraft.services.event_service import EventService
from kraft.services.instance_service import InstanceService, InstanceSpec
from kraft.services.locks import KeyedLock, resource_locks
from kraft.services.registry import InstanceRepository
from kraft.services.resources import ResourceProfile
from kraft.services import tombstones

logger = logging.getLogger(__name__)

CAPTURABLE = frozenset({InstanceStatus.RUNNING, InstanceStatus.STOPPED})


class SnapshotService:
    def __init__(
        self,
        db: Session,
        drivers: DriverSet,
        settings: Optional[Settings] = None,
        locks: KeyedLock = resource_locks,
    ):
        self.db = db
        self.drivers = drivers
        self.settings = settings or get_settings()
        self.locks = locks
        self.instances = InstanceRepository(db)
        self.events = EventService(db)
        self.tombstones = tombstones.TombstoneRepository(db)

    def get(self, snapshot_id: UUID) -> Snapshot:
        snapshot = self.db.get(Snapshot, snapshot_id)
        if snapshot is None:
            raise NotFoundError("Snapshot")
        return snapshot

    def list(self, caller_id: UUID, instance_id: Optional[UUID] = None) -> List[Snapshot]:
        query = self.db.query(Snapshot).join(
            Workspace, Workspace.id == Snapshot.workspace_id
        ).join(
            Project, Project.id == Workspace.project_id
        ).join(
            OrganizationMember, OrganizationMember.organization_id == Project.organization_id
        ).filter(OrganizationMember.user_id == caller_id)

        if instance_id:
            query = query.filter(Snapshot.source_instance_id == instance_id)
        return query.order_by(Snapshot.created_at.desc()).all()

    def create(self, instance_id: UUID, name: str, description: Optional[str] = None) -> Snapshot:
        name = (name or "").strip()
        if not name:
            raise ValidationError("name must not be empty")

        timeout = self.settings.driver_timeout_seconds
        with self.locks.hold(("instance", instance_id), self.settings.instance_lock_timeout_seconds):
            instance = self.instances.get(instance_id)
            if instance is None:
                raise NotFoundError("Instance")
            if instance.status not in CAPTURABLE or not instance.backend_ref:
                raise InvalidStateError(f"Cannot snapshot instance in {instance.status.value} state")
            backend_ref = instance.backend_ref

            driver = self.drivers.for_kind(instance.kind)
            try:
                captured = run_bounded(lambda: driver.capture(backend_ref, name, timeout), timeout, "snapshot")
            except DriverNotFoundError:
                raise NotFoundError("Instance")
            except (DriverError, OperationTimeoutError) as e:
                logger.error(f"Failed to snapshot instance {instance_id}: {e.message}")
                raise

            snapshot = self._record(instance, name, description, captured.storage_locator, captured.size_bytes)

        self.events.log_event(instance_id, EventType.SNAPSHOT_CREATED, f"Snapshot '{name}' created",
                              {"snapshot_id": str(snapshot.id)})
        return snapshot

    def _record(self, instance: Instance, name: str, description: Optional[str],
                storage_locator: str, size_bytes: int) -> Snapshot:
        snapshot = Snapshot(
            source_instance_id=instance.id,
            workspace_id=instance.workspace_id,
            name=name,
            description=description,
            storage_locator=storage_locator,
            size_bytes=size_bytes,
            kind=instance.kind,
            image=instance.image,
            memory_mb=instance.memory_mb,
            cpu_count=instance.cpu_count,
            disk_mb=instance.disk_mb,
        )
        self.db.add(snapshot)
        self.db.commit()
        self.db.refresh(snapshot)
        logger.info(f"Recorded snapshot {snapshot.id} of instance {instance.id}")
        return snapshot

    def restore(self, snapshot_id: UUID, user_id: UUID, vnc_enabled: bool = False) -> Instance:
        """Provision a new instance booted from the snapshot's captured state."""
        snapshot = self.get(snapshot_id)
        spec = InstanceSpec(
            user_id=user_id,
            workspace_id=snapshot.workspace_id,
            kind=snapshot.kind,
            profile=ResourceProfile(
                image=snapshot.image,
                memory_mb=snapshot.memory_mb,
                cpu_count=snapshot.cpu_count,
                disk_mb=snapshot.disk_mb,
            ),
            vnc_enabled=vnc_enabled,
            restore_from=snapshot.storage_locator,
            source_snapshot_id=snapshot.id,
        )
        instance = InstanceService(self.db, self.drivers, self.settings, self.locks).create(spec)
        self.events.log_event(instance.id, EventType.SNAPSHOT_RESTORED,
                              f"Restored from snapshot '{snapshot.name}'",
                              {"snapshot_id": str(snapshot_id)})
        return instance

    def delete(self, snapshot_id: UUID, organization_id: UUID) -> None:
        with self.locks.hold(("snapshot", snapshot_id), self.settings.instance_lock_timeout_seconds):
            snapshot = self.db.get(Snapshot, snapshot_id)
            if snapshot is None:
                if self.tombstones.find(tombstones.SNAPSHOT, snapshot_id) is not None:
                    return
                raise NotFoundError("Snapshot")

            locator = snapshot.storage_locator
            source_instance_id = snapshot.source_instance_id
            timeout = self.settings.driver_timeout_seconds
            driver = self.drivers.for_kind(snapshot.kind)
            try:
                run_bounded(lambda: driver.delete_capture(locator, timeout), timeout, "delete snapshot")
            except DriverNotFoundError:
                logger.warning(f"Snapshot storage {locator} already gone")

            self.tombstones.record(tombstones.SNAPSHOT, snapshot_id, organization_id)
            self.db.delete(snapshot)
            self.db.commit()

        self.events.log_event(source_instance_id, EventType.SNAPSHOT_DELETED, "Snapshot deleted",
                              {"snapshot_id": str(snapshot_id)})
