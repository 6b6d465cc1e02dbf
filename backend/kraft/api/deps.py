# backend/kraft/api/deps.py
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from kraft.database import get_db
from kraft.exceptions import AuthenticationError, NotFoundError
from kraft.models.instance import Instance
from kraft.models.snapshot import Snapshot
from kraft.models.template import Template
from kraft.services.authorization import (
    Action, AuthorizationGate, Caller, SqlOrganizationDirectory, Verdict, enforce,
)
from kraft.services.drivers import DriverSet, get_drivers
from kraft.services.tombstones import TombstoneRepository
from kraft.utils.security import decode_access_token

# Missing credentials are reported as 401 by get_current_caller, not 403
security = HTTPBearer(auto_error=False)


def get_current_caller(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> Caller:
    """Resolve the caller identity from the bearer token."""
    if credentials is None:
        raise AuthenticationError("Missing bearer token")

    user_id = decode_access_token(credentials.credentials)
    if user_id is None:
        raise AuthenticationError("Invalid or expired token")
    return Caller(user_id=user_id)


def get_gate(db: Annotated[Session, Depends(get_db)]) -> AuthorizationGate:
    return AuthorizationGate(SqlOrganizationDirectory(db))


CurrentCaller = Annotated[Caller, Depends(get_current_caller)]
DBSession = Annotated[Session, Depends(get_db)]
Gate = Annotated[AuthorizationGate, Depends(get_gate)]
Drivers = Annotated[DriverSet, Depends(get_drivers)]


def authorize_instance(
    db: Session,
    gate: AuthorizationGate,
    caller: Caller,
    instance_id: UUID,
    action: Action,
    hide_existence: bool = True,
    denied_message: Optional[str] = None,
) -> Instance:
    """Load an instance and check the caller may perform ``action`` on it."""
    instance = db.get(Instance, instance_id)
    if instance is None:
        raise NotFoundError("Instance")
    verdict = gate.evaluate_workspace(caller, instance.workspace_id, action)
    enforce(verdict, "Instance", hide_existence=hide_existence, denied_message=denied_message)
    return instance


def authorize_delete(
    db: Session,
    gate: AuthorizationGate,
    caller: Caller,
    entity_type: str,
    entity_id: UUID,
    organization_id: Optional[UUID],
    resource: str,
) -> Verdict:
    """
    Authorize a delete of a live entity (``organization_id`` resolved) or of
    one already removed, in which case its tombstone names the organization.
    """
    if organization_id is None:
        tombstone = TombstoneRepository(db).find(entity_type, entity_id)
        if tombstone is None:
            raise NotFoundError(resource)
        organization_id = tombstone.organization_id
    verdict = gate.evaluate(caller, organization_id, Action.ADMIN_MUTATE)
    return enforce(verdict, resource)


def authorize_snapshot(db: Session, gate: AuthorizationGate, caller: Caller,
                       snapshot_id: UUID, action: Action) -> Snapshot:
    snapshot = db.get(Snapshot, snapshot_id)
    if snapshot is None:
        raise NotFoundError("Snapshot")
    enforce(gate.evaluate_workspace(caller, snapshot.workspace_id, action), "Snapshot")
    return snapshot


def authorize_template(db: Session, gate: AuthorizationGate, caller: Caller,
                       template_id: UUID, action: Action) -> Template:
    template = db.get(Template, template_id)
    if template is None:
        raise NotFoundError("Template")
    enforce(gate.evaluate(caller, template.organization_id, action), "Template")
    return template


def authorize_snapshot_in_organization(db: Session, gate: AuthorizationGate, caller: Caller,
                                       snapshot_id: UUID, organization_id: UUID) -> Snapshot:
    """Readable snapshot owned by ``organization_id``; any other snapshot is not found."""
    snapshot = authorize_snapshot(db, gate, caller, snapshot_id, Action.READ)
    if gate.directory.organization_for_workspace(snapshot.workspace_id) != organization_id:
        raise NotFoundError("Snapshot")
    return snapshot
