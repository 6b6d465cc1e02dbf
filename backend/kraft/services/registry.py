# backend/kraft/services/registry.py
"""
Instance registry and lifecycle state machine.

Status changes go through ``transition``, a compare-and-set UPDATE that
only applies when the row is still in one of the expected states. Two
racing writers can therefore never both win.
"""
import logging
from typing import Dict, FrozenSet, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import update, func
from sqlalchemy.orm import Session

from kraft.models.base import utcnow
from kraft.models.instance import Instance, InstanceStatus
from kraft.models.organization import OrganizationMember, Project, Workspace

logger = logging.getLogger(__name__)

S = InstanceStatus

ALLOWED_TRANSITIONS: Dict[InstanceStatus, FrozenSet[InstanceStatus]] = {
    S.PROVISIONING: frozenset({S.RUNNING, S.FAILED, S.TERMINATING}),
    S.RUNNING: frozenset({S.RUNNING, S.STOPPED, S.TERMINATING, S.FAILED}),
    S.STOPPED: frozenset({S.RUNNING, S.TERMINATING, S.FAILED}),
    S.FAILED: frozenset({S.TERMINATING}),
    # A failed teardown rolls back to the state it left
    S.TERMINATING: frozenset({S.PROVISIONING, S.RUNNING, S.STOPPED, S.FAILED}),
}

# Instances counted against the per-user quota
ACTIVE_STATUSES = frozenset({S.PROVISIONING, S.RUNNING, S.STOPPED, S.TERMINATING})


def can_transition(current: InstanceStatus, new: InstanceStatus) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, frozenset())


class InstanceRepository:
    def __init__(self, db: Session):
        self.db = db

    def add(self, instance: Instance) -> Instance:
        self.db.add(instance)
        self.db.commit()
        self.db.refresh(instance)
        return instance

    def get(self, instance_id: UUID) -> Optional[Instance]:
        return self.db.get(Instance, instance_id, populate_existing=True)

    def list_visible(
        self,
        user_id: UUID,
        owner_id: Optional[UUID] = None,
        workspace_id: Optional[UUID] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> List[Instance]:
        """Instances in organizations where ``user_id`` holds any role."""
        query = self.db.query(Instance).join(
            Workspace, Workspace.id == Instance.workspace_id
        ).join(
            Project, Project.id == Workspace.project_id
        ).join(
            OrganizationMember, OrganizationMember.organization_id == Project.organization_id
        ).filter(OrganizationMember.user_id == user_id)

        if owner_id:
            query = query.filter(Instance.user_id == owner_id)
        if workspace_id:
            query = query.filter(Instance.workspace_id == workspace_id)

        return query.order_by(Instance.created_at.desc()).offset(offset).limit(limit).all()

    def count_active_for_user(self, user_id: UUID) -> int:
        return self.db.query(func.count(Instance.id)).filter(
            Instance.user_id == user_id,
            Instance.status.in_(ACTIVE_STATUSES),
        ).scalar() or 0

    def transition(
        self,
        instance_id: UUID,
        expected: Iterable[InstanceStatus],
        new: InstanceStatus,
        **changes,
    ) -> bool:
        """
        Move the instance to ``new`` if it is currently in one of ``expected``.
        Extra column values in ``changes`` are written in the same statement.
        Returns False when the row was missing or in another state.
        """
        expected = frozenset(expected)
        for current in expected:
            if not can_transition(current, new):
                raise ValueError(f"Illegal transition {current.value} -> {new.value}")

        now = utcnow()
        result = self.db.execute(
            update(Instance)
            .where(Instance.id == instance_id, Instance.status.in_(expected))
            .values(status=new, status_changed_at=now, updated_at=now, **changes)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

        if result.rowcount != 1:
            logger.info(f"Transition of {instance_id} to {new.value} lost a race or row missing")
            return False
        logger.info(f"Instance {instance_id} -> {new.value}")
        return True

    def purge(self, instance: Instance) -> None:
        self.db.delete(instance)
        self.db.commit()
