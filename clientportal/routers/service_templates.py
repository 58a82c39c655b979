from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session
from clientportal.db import get_db
from clientportal.models import User
from clientportal.schemas import ServiceTemplateCreate, ServiceTemplateUpdate, ServiceTemplateResponse
from clientportal.deps import require_permission
from clientportal.services import template_service
from typing import List
from uuid import UUID

router = APIRouter(prefix="/api/service-templates", tags=["service-templates"])

can_manage_services = require_permission("can_manage_services")


@router.get("", response_model=List[ServiceTemplateResponse])
def list_templates(
    active_only: bool = Query(False),
    db: Session = Depends(get_db),
    current_user: User = Depends(can_manage_services)
):
    return template_service.list_templates(db, active_only=active_only)


@router.post("", response_model=ServiceTemplateResponse, status_code=status.HTTP_201_CREATED)
def create_template(
    data: ServiceTemplateCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(can_manage_services)
):
    """Create a template; tasks and milestones are ordered as submitted"""
    return template_service.create_template(db, data)


@router.get("/{template_id}", response_model=ServiceTemplateResponse)
def get_template(
    template_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(can_manage_services)
):
    return template_service.get_template_detail(db, template_id)


@router.patch("/{template_id}", response_model=ServiceTemplateResponse)
def update_template(
    template_id: UUID,
    data: ServiceTemplateUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(can_manage_services)
):
    return template_service.update_template(db, template_id, data)


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_template(
    template_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(can_manage_services)
):
    """Delete a template that no service was created from"""
    template_service.delete_template(db, template_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
