# backend/kraft/services/instance_service.py
"""
Instance lifecycle: create, start, stop, restart, delete and logs.

Operations on one instance are serialized with a per-instance lock; driver
calls are bounded by ``run_bounded`` so the lock is never held forever.
Driver calls run on pool threads and receive plain values, never ORM objects.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from kraft.config import Settings, get_settings
from kraft.exceptions import (
    ControlPlaneError, DriverError, DriverNotFoundError, InvalidStateError,
    NotFoundError, OperationTimeoutError, QuotaExceededError, ConflictError,
)
from kraft.models.base import utcnow
from kraft.models.event_log import EventType
from kraft.models.instance import Instance, InstanceKind, InstanceStatus
from kraft.services.deadline import run_bounded
from kraft.services.drivers import BootRequest, DriverSet, InstanceDriver
from kraft.services.event_service import EventService
from kraft.services.locks import KeyedLock, resource_locks
from kraft.services.registry import InstanceRepository
from kraft.services.resources import ResourceProfile
from kraft.services import tombstones

logger = logging.getLogger(__name__)

S = InstanceStatus


@dataclass
class InstanceSpec:
    """Validated request to provision an instance."""
    user_id: UUID
    workspace_id: UUID
    kind: InstanceKind
    profile: ResourceProfile
    vnc_enabled: bool = False
    restore_from: Optional[str] = None
    source_snapshot_id: Optional[UUID] = None
    extra: Dict[str, Any] = field(default_factory=dict)


class InstanceService:
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
        self.repo = InstanceRepository(db)
        self.events = EventService(db)
        self.tombstones = tombstones.TombstoneRepository(db)

    def _lock(self, instance_id: UUID):
        return self.locks.hold(("instance", instance_id), self.settings.instance_lock_timeout_seconds)

    def get(self, instance_id: UUID) -> Instance:
        instance = self.repo.get(instance_id)
        if instance is None:
            raise NotFoundError("Instance")
        return instance

    def list(self, caller_id: UUID, owner_id: Optional[UUID] = None,
             workspace_id: Optional[UUID] = None, page: int = 1, limit: int = 20) -> List[Instance]:
        return self.repo.list_visible(
            caller_id, owner_id=owner_id, workspace_id=workspace_id,
            offset=(page - 1) * limit, limit=limit,
        )

    # Create

    def create(self, spec: InstanceSpec) -> Instance:
        # Quota count and insert are atomic per user
        with self.locks.hold(("user", spec.user_id), self.settings.instance_lock_timeout_seconds):
            instance_id = self._admit(spec)
        self.events.log_event(instance_id, EventType.INSTANCE_PROVISIONING,
                              f"Provisioning {spec.kind.value} instance from {spec.profile.image}")
        return self._boot(instance_id, spec)

    def _admit(self, spec: InstanceSpec) -> UUID:
        active = self.repo.count_active_for_user(spec.user_id)
        if active >= self.settings.max_instances_per_user:
            raise QuotaExceededError(
                f"User has reached maximum instance limit: {self.settings.max_instances_per_user}"
            )

        profile = spec.profile
        instance = Instance(
            workspace_id=spec.workspace_id,
            user_id=spec.user_id,
            kind=spec.kind,
            image=profile.image,
            memory_mb=profile.memory_mb,
            cpu_count=profile.cpu_count,
            disk_mb=profile.disk_mb,
            vnc_enabled=spec.vnc_enabled,
            environment=profile.environment,
            meta=profile.metadata,
            status=S.PROVISIONING,
            status_changed_at=utcnow(),
            source_snapshot_id=spec.source_snapshot_id,
        )
        self.repo.add(instance)
        return instance.id

    def _boot(self, instance_id: UUID, spec: InstanceSpec) -> Instance:
        profile = spec.profile
        request = BootRequest(
            instance_id=instance_id,
            kind=spec.kind,
            image=profile.image,
            memory_mb=profile.memory_mb,
            cpu_count=profile.cpu_count,
            disk_mb=profile.disk_mb,
            vnc_enabled=spec.vnc_enabled,
            environment=dict(profile.environment),
            metadata=dict(profile.metadata),
            restore_from=spec.restore_from,
        )
        timeout = self.settings.driver_timeout_seconds

        with self._lock(instance_id):
            try:
                driver = self.drivers.for_kind(spec.kind)
                result = run_bounded(
                    lambda: driver.boot(request, timeout), timeout, "create",
                    # A boot that finishes after the deadline still owns a backend
                    on_late_result=lambda late: driver.teardown(late.backend_ref, timeout),
                )
            except (DriverError, OperationTimeoutError) as e:
                logger.error(f"Failed to boot instance {instance_id}: {e.message}")
                self._mark_failed(instance_id, {S.PROVISIONING}, e.message)
                raise

            if not self.repo.transition(instance_id, {S.PROVISIONING}, S.RUNNING,
                                        backend_ref=result.backend_ref, failure_reason=None):
                # Deleted or failed while booting; release what the backend created
                logger.warning(f"Instance {instance_id} left provisioning during boot")
                self._discard_backend(driver, result.backend_ref)
                raise ConflictError("Instance changed state while provisioning")

        self.events.log_event(instance_id, EventType.INSTANCE_RUNNING,
                              f"Instance running on {driver.name}",
                              {"backend_ref": result.backend_ref})
        return self.get(instance_id)

    def _discard_backend(self, driver: InstanceDriver, backend_ref: str) -> None:
        timeout = self.settings.driver_timeout_seconds
        try:
            run_bounded(lambda: driver.teardown(backend_ref, timeout), timeout, "delete")
        except ControlPlaneError as e:
            logger.error(f"Could not discard orphaned backend {backend_ref}: {e.message}")

    def _mark_failed(self, instance_id: UUID, expected: FrozenSet[InstanceStatus], reason: str) -> None:
        if self.repo.transition(instance_id, expected, S.FAILED, failure_reason=reason[:2000]):
            self.events.log_event(instance_id, EventType.INSTANCE_FAILED, reason[:2000])

    # Power operations

    def start(self, instance_id: UUID) -> Instance:
        return self._power(instance_id, "start", frozenset({S.STOPPED}), S.RUNNING,
                           lambda d, ref, t: d.start(ref, t),
                           self.settings.driver_timeout_seconds, EventType.INSTANCE_STARTED)

    def stop(self, instance_id: UUID) -> Instance:
        return self._power(instance_id, "stop", frozenset({S.RUNNING}), S.STOPPED,
                           lambda d, ref, t: d.stop(ref, t),
                           self.settings.driver_timeout_seconds, EventType.INSTANCE_STOPPED)

    def restart(self, instance_id: UUID) -> Instance:
        return self._power(instance_id, "restart", frozenset({S.RUNNING, S.STOPPED}), S.RUNNING,
                           lambda d, ref, t: d.restart(ref, t),
                           min(self.settings.restart_timeout_seconds, 300.0),
                           EventType.INSTANCE_RESTARTED)

    def _power(
        self,
        instance_id: UUID,
        operation: str,
        allowed: FrozenSet[InstanceStatus],
        target: InstanceStatus,
        call: Callable[[InstanceDriver, str, float], None],
        timeout: float,
        event_type: EventType,
    ) -> Instance:
        with self._lock(instance_id):
            instance = self.get(instance_id)
            prior = instance.status
            if prior not in allowed or not instance.backend_ref:
                raise InvalidStateError(f"Cannot {operation} instance in {prior.value} state")
            backend_ref = instance.backend_ref

            driver = self.drivers.for_kind(instance.kind)
            try:
                run_bounded(lambda: call(driver, backend_ref, timeout), timeout, operation)
            except DriverNotFoundError:
                # Registry entry is stale; the backend no longer has it
                self._mark_failed(instance_id, frozenset({prior}), "Backend instance no longer exists")
                raise NotFoundError("Instance")
            except (DriverError, OperationTimeoutError) as e:
                logger.error(f"Failed to {operation} instance {instance_id}: {e.message}")
                raise

            if not self.repo.transition(instance_id, {prior}, target, failure_reason=None):
                raise ConflictError("Instance changed state during operation")

        self.events.log_event(instance_id, event_type, f"Instance {operation} completed")
        return self.get(instance_id)

    # Delete

    def delete(self, instance_id: UUID, organization_id: UUID) -> None:
        """Tear down and purge. Deleting an already deleted instance is a no-op."""
        with self._lock(instance_id):
            instance = self.repo.get(instance_id)
            if instance is None:
                if self.tombstones.find(tombstones.INSTANCE, instance_id) is not None:
                    return
                raise NotFoundError("Instance")

            prior = instance.status
            if prior == S.TERMINATING:
                raise InvalidStateError("Instance is already being deleted")
            backend_ref = instance.backend_ref
            kind = instance.kind

            if not self.repo.transition(instance_id, {prior}, S.TERMINATING):
                raise ConflictError("Instance changed state during delete")

            if backend_ref:
                timeout = self.settings.driver_timeout_seconds
                try:
                    driver = self.drivers.for_kind(kind)
                    run_bounded(lambda: driver.teardown(backend_ref, timeout), timeout, "delete")
                except DriverNotFoundError:
                    logger.warning(f"Backend for {instance_id} already gone, purging record")
                except (DriverError, OperationTimeoutError) as e:
                    logger.error(f"Failed to delete instance {instance_id}: {e.message}")
                    self.repo.transition(instance_id, {S.TERMINATING}, prior)
                    raise

            instance = self.get(instance_id)
            self.tombstones.record(tombstones.INSTANCE, instance_id, organization_id)
            self.repo.purge(instance)

        self.events.log_event(instance_id, EventType.INSTANCE_DELETED, "Instance deleted")

    # Logs

    def logs(self, instance_id: UUID, lines: int) -> List[str]:
        instance = self.get(instance_id)
        if instance.status not in (S.RUNNING, S.STOPPED) or not instance.backend_ref:
            raise InvalidStateError(f"Cannot read logs of instance in {instance.status.value} state")
        backend_ref = instance.backend_ref
        timeout = self.settings.driver_timeout_seconds

        driver = self.drivers.for_kind(instance.kind)
        try:
            return run_bounded(lambda: driver.logs(backend_ref, lines, timeout), timeout, "read logs for")
        except DriverNotFoundError:
            raise NotFoundError("Instance")
