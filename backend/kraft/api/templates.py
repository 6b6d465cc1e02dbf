# backend/kraft/api/templates.py
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, status

from kraft.api.deps import (
    CurrentCaller, DBSession, Gate, authorize_delete, authorize_snapshot_in_organization, authorize_template,
)
from kraft.models.template import Template
from kraft.schemas.instance import MessageResponse
from kraft.schemas.template import TemplateCreate, TemplateResponse
from kraft.services import tombstones
from kraft.services.authorization import Action, enforce
from kraft.services.template_service import TemplateService

router = APIRouter(prefix="/templates", tags=["Templates"])


@router.get("", response_model=List[TemplateResponse])
def list_templates(db: DBSession, caller: CurrentCaller, category: Optional[str] = None):
    return TemplateService(db).list(caller.user_id, category=category)


@router.post("", response_model=TemplateResponse, status_code=status.HTTP_201_CREATED)
def create_template(template_data: TemplateCreate, db: DBSession, gate: Gate, caller: CurrentCaller):
    enforce(gate.evaluate(caller, template_data.organization_id, Action.ADMIN_MUTATE), "Organization")
    if template_data.snapshot_id is not None:
        authorize_snapshot_in_organization(db, gate, caller, template_data.snapshot_id,
                                           template_data.organization_id)
    return TemplateService(db).create(
        organization_id=template_data.organization_id,
        name=template_data.name,
        kind=template_data.kind,
        image=template_data.image,
        memory=template_data.memory,
        cpu_count=template_data.cpu_count,
        disk_size=template_data.disk_size,
        environment=template_data.environment,
        metadata=template_data.metadata,
        description=template_data.description,
        category=template_data.category,
        snapshot_id=template_data.snapshot_id,
    )


@router.get("/{template_id}", response_model=TemplateResponse)
def get_template(template_id: UUID, db: DBSession, gate: Gate, caller: CurrentCaller):
    return authorize_template(db, gate, caller, template_id, Action.READ)


@router.delete("/{template_id}", response_model=MessageResponse)
def delete_template(template_id: UUID, db: DBSession, gate: Gate, caller: CurrentCaller):
    """Delete a template. Snapshots and instances are left untouched."""
    template = db.get(Template, template_id)
    organization_id = template.organization_id if template is not None else None
    verdict = authorize_delete(db, gate, caller, tombstones.TEMPLATE, template_id, organization_id, "Template")

    TemplateService(db).delete(template_id, verdict.organization_id)
    return {"message": "Template deleted successfully"}
