# backend/kraft/api/instances.py
"""API endpoints for instance lifecycle, commands and logs."""
from typing import List, Optional
from uuid import UUID
import logging

from fastapi import APIRouter, Query, status

from kraft.api.deps import (
    CurrentCaller, DBSession, Drivers, Gate, authorize_delete, authorize_instance,
    authorize_snapshot_in_organization, authorize_template,
)
from kraft.config import get_settings
from kraft.exceptions import NotFoundError, ValidationError
from kraft.models.instance import InstanceKind
from kraft.schemas.event_log import EventLogResponse
from kraft.schemas.instance import (
    ExecRequest, ExecResponse, InstanceCreate, InstanceResponse, LogsResponse, MessageResponse,
)
from kraft.services import tombstones
from kraft.services.authorization import Action, enforce
from kraft.services.event_service import EventService
from kraft.services.executor import CommandExecutor
from kraft.services.instance_service import InstanceService, InstanceSpec
from kraft.services.resources import build_profile
from kraft.services.template_service import TemplateService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/instances", tags=["Instances"])


@router.get("", response_model=List[InstanceResponse])
def list_instances(
    db: DBSession,
    drivers: Drivers,
    caller: CurrentCaller,
    user_id: Optional[UUID] = None,
    workspace_id: Optional[UUID] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    """List instances in the caller's organizations."""
    service = InstanceService(db, drivers)
    return service.list(caller.user_id, owner_id=user_id, workspace_id=workspace_id, page=page, limit=limit)


@router.post("", response_model=InstanceResponse, status_code=status.HTTP_201_CREATED)
def create_instance(
    instance_data: InstanceCreate,
    db: DBSession,
    drivers: Drivers,
    gate: Gate,
    caller: CurrentCaller,
):
    verdict = enforce(
        gate.evaluate_workspace(caller, instance_data.workspace_id, Action.ADMIN_MUTATE), "Workspace"
    )
    settings = get_settings()

    kind = instance_data.kind
    base = None
    restore_from = None
    source_snapshot_id = None
    if instance_data.template_id:
        template = authorize_template(db, gate, caller, instance_data.template_id, Action.READ)
        if template.organization_id != verdict.organization_id:
            raise NotFoundError("Template")
        defaults = TemplateService(db, settings).resolve(template)
        if kind and defaults.restore_from and kind != defaults.kind:
            raise ValidationError("kind must match the template's snapshot kind")
        kind = kind or defaults.kind
        base = defaults.profile
        restore_from = defaults.restore_from
        source_snapshot_id = defaults.snapshot_id
        if defaults.snapshot_id is not None:
            authorize_snapshot_in_organization(db, gate, caller, defaults.snapshot_id, verdict.organization_id)

    profile = build_profile(
        settings,
        image=instance_data.image,
        memory=instance_data.memory,
        cpu_count=instance_data.cpu_count,
        disk_size=instance_data.disk_size,
        environment=instance_data.environment,
        metadata=instance_data.metadata,
        base=base,
    )
    spec = InstanceSpec(
        user_id=instance_data.user_id,
        workspace_id=instance_data.workspace_id,
        kind=kind or InstanceKind.MICROVM,
        profile=profile,
        vnc_enabled=instance_data.vnc,
        restore_from=restore_from,
        source_snapshot_id=source_snapshot_id,
    )
    instance = InstanceService(db, drivers, settings).create(spec)
    logger.info(f"Created instance {instance.id} for user {instance_data.user_id}")
    return instance


@router.get("/{instance_id}", response_model=InstanceResponse)
def get_instance(instance_id: UUID, db: DBSession, gate: Gate, caller: CurrentCaller):
    return authorize_instance(db, gate, caller, instance_id, Action.READ)


@router.delete("/{instance_id}", response_model=MessageResponse)
def delete_instance(instance_id: UUID, db: DBSession, drivers: Drivers, gate: Gate, caller: CurrentCaller):
    """Delete an instance. Deleting it again reports success."""
    service = InstanceService(db, drivers)
    instance = service.repo.get(instance_id)
    organization_id = None
    if instance is not None:
        organization_id = gate.directory.organization_for_workspace(instance.workspace_id)
        if organization_id is None:
            raise NotFoundError("Instance")
    verdict = authorize_delete(db, gate, caller, tombstones.INSTANCE, instance_id, organization_id, "Instance")

    service.delete(instance_id, verdict.organization_id)
    return {"message": "Instance deleted successfully"}


@router.post("/{instance_id}/start", response_model=InstanceResponse)
def start_instance(instance_id: UUID, db: DBSession, drivers: Drivers, gate: Gate, caller: CurrentCaller):
    authorize_instance(db, gate, caller, instance_id, Action.ADMIN_MUTATE)
    return InstanceService(db, drivers).start(instance_id)


@router.post("/{instance_id}/stop", response_model=InstanceResponse)
def stop_instance(instance_id: UUID, db: DBSession, drivers: Drivers, gate: Gate, caller: CurrentCaller):
    authorize_instance(db, gate, caller, instance_id, Action.ADMIN_MUTATE)
    return InstanceService(db, drivers).stop(instance_id)


@router.post("/{instance_id}/restart", response_model=InstanceResponse)
def restart_instance(instance_id: UUID, db: DBSession, drivers: Drivers, gate: Gate, caller: CurrentCaller):
    """Restart a running or stopped instance."""
    authorize_instance(db, gate, caller, instance_id, Action.ADMIN_MUTATE)
    return InstanceService(db, drivers).restart(instance_id)


@router.post("/{instance_id}/exec", response_model=ExecResponse)
def execute_command(
    instance_id: UUID,
    exec_data: ExecRequest,
    db: DBSession,
    drivers: Drivers,
    gate: Gate,
    caller: CurrentCaller,
):
    executor = CommandExecutor(db, drivers)
    # Reject bad input before touching the registry or the driver
    executor.validate(exec_data.command, exec_data.timeout)
    authorize_instance(db, gate, caller, instance_id, Action.ADMIN_MUTATE)

    outcome = executor.execute(instance_id, exec_data.command, exec_data.timeout)
    return ExecResponse(
        instance_id=outcome.instance_id,
        execution_id=outcome.execution_id,
        command=outcome.command,
        exit_code=outcome.exit_code,
        stdout=outcome.stdout,
        stderr=outcome.stderr,
        output=outcome.stdout + outcome.stderr,
        duration_ms=outcome.duration_ms,
    )


@router.get("/{instance_id}/logs", response_model=LogsResponse)
def get_instance_logs(
    instance_id: UUID,
    db: DBSession,
    drivers: Drivers,
    gate: Gate,
    caller: CurrentCaller,
    lines: int = Query(100, ge=1, le=1000),
):
    authorize_instance(db, gate, caller, instance_id, Action.ADMIN_MUTATE)
    logs = InstanceService(db, drivers).logs(instance_id, lines)
    return LogsResponse(instance_id=instance_id, logs=logs)


@router.get("/{instance_id}/events", response_model=List[EventLogResponse])
def get_instance_events(
    instance_id: UUID,
    db: DBSession,
    gate: Gate,
    caller: CurrentCaller,
    limit: int = Query(50, ge=1, le=500),
):
    authorize_instance(db, gate, caller, instance_id, Action.READ)
    return EventService(db).get_instance_events(instance_id, limit=limit)
