from fastapi import APIRouter, Depends, status, Query
from typing import List
from uuid import UUID
from sqlalchemy.orm import Session

from app.database.database import get_db, run_with_retry
from app.modules.auth.dependencies import AuthDependencies, build_scope
from app.modules.auth.schemas import AuthContext
from app.modules.service_templates.service import ServiceTemplateService
from app.modules.service_templates.schemas import (
    ServiceTemplateCreate, ServiceTemplateUpdate, ServiceTemplateOut,
    DefaultPartCreate, TicketFromTemplateCreate, TicketFromTemplateOut
)

router = APIRouter(prefix="/service-templates", tags=["Service Templates"])


@router.post("", response_model=ServiceTemplateOut, status_code=status.HTTP_201_CREATED)
def create_template(
    data: ServiceTemplateCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_owner_or_admin())
):
    return ServiceTemplateService(build_scope(auth_context, db)).create_template(data)


@router.get("", response_model=List[ServiceTemplateOut])
def list_templates(
    active_only: bool = Query(True),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return ServiceTemplateService(build_scope(auth_context, db)).list_templates(active_only)


@router.get("/{template_id}", response_model=ServiceTemplateOut)
def get_template(
    template_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return ServiceTemplateService(build_scope(auth_context, db)).get_template(template_id)


@router.patch("/{template_id}", response_model=ServiceTemplateOut)
def update_template(
    template_id: UUID,
    data: ServiceTemplateUpdate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_owner_or_admin())
):
    return ServiceTemplateService(build_scope(auth_context, db)).update_template(template_id, data)


@router.post("/{template_id}/parts", response_model=ServiceTemplateOut)
def add_default_part(
    template_id: UUID,
    data: DefaultPartCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_owner_or_admin())
):
    return ServiceTemplateService(build_scope(auth_context, db)).add_default_part(template_id, data)


@router.delete("/{template_id}/parts/{part_id}", response_model=ServiceTemplateOut)
def remove_default_part(
    template_id: UUID,
    part_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_owner_or_admin())
):
    return ServiceTemplateService(build_scope(auth_context, db)).remove_default_part(template_id, part_id)


@router.post("/{template_id}/tickets", response_model=TicketFromTemplateOut, status_code=status.HTTP_201_CREATED)
def create_ticket_from_template(
    template_id: UUID,
    data: TicketFromTemplateCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(["owner", "admin", "technician", "seller"]))
):
    """
    Crear un ticket desde una plantilla.

    - Consume automáticamente los repuestos requeridos (todos o ninguno)
    - 409 insufficient_stock enumera todos los repuestos faltantes
    - Los repuestos opcionales se devuelven como sugerencias
    """
    service = ServiceTemplateService(build_scope(auth_context, db))
    return run_with_retry(
        lambda: service.create_ticket_from_template(template_id, data, auth_context.user_role)
    )
