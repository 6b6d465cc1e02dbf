# backend/kraft/api/snapshots.py
"""API endpoints for instance snapshots."""
from typing import List, Optional
from uuid import UUID
import logging

from fastapi import APIRouter, status

from kraft.api.deps import (
    CurrentCaller, DBSession, Drivers, Gate, authorize_delete, authorize_instance, authorize_snapshot,
)
from kraft.exceptions import NotFoundError
from kraft.models.snapshot import Snapshot
from kraft.schemas.instance import InstanceResponse, MessageResponse
from kraft.schemas.snapshot import SnapshotCreate, SnapshotResponse, SnapshotRestore
from kraft.services import tombstones
from kraft.services.authorization import Action
from kraft.services.snapshot_service import SnapshotService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/snapshots", tags=["Snapshots"])


@router.post("", response_model=SnapshotResponse, status_code=status.HTTP_201_CREATED)
def create_snapshot(
    snapshot_data: SnapshotCreate,
    db: DBSession,
    drivers: Drivers,
    gate: Gate,
    caller: CurrentCaller,
):
    """Capture the state of a running or stopped instance."""
    authorize_instance(db, gate, caller, snapshot_data.instance_id, Action.ADMIN_MUTATE)
    return SnapshotService(db, drivers).create(
        snapshot_data.instance_id, snapshot_data.name, snapshot_data.description
    )


@router.get("", response_model=List[SnapshotResponse])
def list_snapshots(
    db: DBSession,
    drivers: Drivers,
    caller: CurrentCaller,
    instance_id: Optional[UUID] = None,
):
    """List snapshots, including those whose source instance has been deleted."""
    return SnapshotService(db, drivers).list(caller.user_id, instance_id=instance_id)


@router.get("/{snapshot_id}", response_model=SnapshotResponse)
def get_snapshot(snapshot_id: UUID, db: DBSession, gate: Gate, caller: CurrentCaller):
    return authorize_snapshot(db, gate, caller, snapshot_id, Action.READ)


@router.post("/{snapshot_id}/restore", response_model=InstanceResponse, status_code=status.HTTP_201_CREATED)
def restore_snapshot(
    snapshot_id: UUID,
    db: DBSession,
    drivers: Drivers,
    gate: Gate,
    caller: CurrentCaller,
    restore_data: Optional[SnapshotRestore] = None,
):
    """Provision a new instance from a snapshot."""
    authorize_snapshot(db, gate, caller, snapshot_id, Action.ADMIN_MUTATE)
    vnc = restore_data.vnc if restore_data else False
    instance = SnapshotService(db, drivers).restore(snapshot_id, caller.user_id, vnc_enabled=vnc)
    logger.info(f"Restored snapshot {snapshot_id} into instance {instance.id}")
    return instance


@router.delete("/{snapshot_id}", response_model=MessageResponse)
def delete_snapshot(snapshot_id: UUID, db: DBSession, drivers: Drivers, gate: Gate, caller: CurrentCaller):
    snapshot = db.get(Snapshot, snapshot_id)
    organization_id = None
    if snapshot is not None:
        organization_id = gate.directory.organization_for_workspace(snapshot.workspace_id)
        if organization_id is None:
            raise NotFoundError("Snapshot")
    verdict = authorize_delete(db, gate, caller, tombstones.SNAPSHOT, snapshot_id, organization_id, "Snapshot")

    SnapshotService(db, drivers).delete(snapshot_id, verdict.organization_id)
    return {"message": "Snapshot deleted successfully"}
