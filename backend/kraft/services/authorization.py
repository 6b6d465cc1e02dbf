# backend/kraft/services/authorization.py
"""
Authorization gate.

Every protected operation is classified as read, mutate or admin-mutate and
evaluated against the caller's role in the organization that owns the
resource (instance -> workspace -> project -> organization). The gate only
decides; enforcement is done by ``enforce`` at the API boundary.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from kraft.exceptions import AuthenticationError, AuthorizationError, NotFoundError
from kraft.models.organization import OrgRole, OrganizationMember, Project, Workspace

logger = logging.getLogger(__name__)


class Action(str, Enum):
    READ = "read"
    MUTATE = "mutate"
    ADMIN_MUTATE = "admin-mutate"


class Decision(str, Enum):
    ALLOW = "allow"
    DENY_UNAUTHENTICATED = "deny-unauthenticated"
    DENY_FORBIDDEN = "deny-forbidden"


ADMIN_ROLES = frozenset({OrgRole.OWNER, OrgRole.ADMIN})


@dataclass(frozen=True)
class Caller:
    user_id: UUID


@dataclass(frozen=True)
class Verdict:
    decision: Decision
    organization_id: Optional[UUID] = None
    role: Optional[OrgRole] = None
    reason: str = ""

    @property
    def allowed(self) -> bool:
        return self.decision is Decision.ALLOW


class OrganizationDirectory(ABC):
    """Source of organization membership and ownership facts."""

    @abstractmethod
    def organization_for_workspace(self, workspace_id: UUID) -> Optional[UUID]:
        ...

    @abstractmethod
    def role_of(self, user_id: UUID, organization_id: UUID) -> Optional[OrgRole]:
        ...

    @abstractmethod
    def organizations_of(self, user_id: UUID) -> List[UUID]:
        ...


class SqlOrganizationDirectory(OrganizationDirectory):
    def __init__(self, db: Session):
        self.db = db

    def organization_for_workspace(self, workspace_id: UUID) -> Optional[UUID]:
        row = self.db.query(Project.organization_id).join(
            Workspace, Workspace.project_id == Project.id
        ).filter(Workspace.id == workspace_id).first()
        return row[0] if row else None

    def role_of(self, user_id: UUID, organization_id: UUID) -> Optional[OrgRole]:
        row = self.db.query(OrganizationMember.role).filter(
            OrganizationMember.user_id == user_id,
            OrganizationMember.organization_id == organization_id,
        ).first()
        return row[0] if row else None

    def organizations_of(self, user_id: UUID) -> List[UUID]:
        rows = self.db.query(OrganizationMember.organization_id).filter(
            OrganizationMember.user_id == user_id
        ).all()
        return [row[0] for row in rows]


class AuthorizationGate:
    def __init__(self, directory: OrganizationDirectory):
        self.directory = directory

    def evaluate(self, caller: Optional[Caller], organization_id: Optional[UUID], action: Action) -> Verdict:
        if caller is None:
            return Verdict(Decision.DENY_UNAUTHENTICATED, reason="no caller identity")
        if organization_id is None:
            return Verdict(Decision.DENY_FORBIDDEN, reason="owning organization could not be resolved")

        role = self.directory.role_of(caller.user_id, organization_id)
        if role is None:
            return Verdict(Decision.DENY_FORBIDDEN, organization_id, reason="no role in organization")
        if action is Action.ADMIN_MUTATE and role not in ADMIN_ROLES:
            return Verdict(Decision.DENY_FORBIDDEN, organization_id, role, reason="owner or admin role required")
        return Verdict(Decision.ALLOW, organization_id, role)

    def evaluate_workspace(self, caller: Optional[Caller], workspace_id: UUID, action: Action) -> Verdict:
        return self.evaluate(caller, self.directory.organization_for_workspace(workspace_id), action)

    def visible_organizations(self, caller: Caller) -> List[UUID]:
        return self.directory.organizations_of(caller.user_id)


def enforce(verdict: Verdict, resource: str = "Resource", hide_existence: bool = True,
            denied_message: Optional[str] = None) -> Verdict:
    """
    Turn a verdict into an exception. Callers without any role in the owning
    organization see not-found when ``hide_existence`` is set.
    """
    if verdict.allowed:
        return verdict
    if verdict.decision is Decision.DENY_UNAUTHENTICATED:
        raise AuthenticationError()

    logger.info(f"Access denied to {resource}: {verdict.reason}")
    if verdict.organization_id is None:
        raise NotFoundError(resource)
    if verdict.role is None and hide_existence:
        raise NotFoundError(resource)
    raise AuthorizationError(denied_message)
