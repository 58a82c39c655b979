from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session
from clientportal.db import get_db
from clientportal.models import User
from clientportal.schemas import (
    ServiceCreate, ServiceUpdate, ServiceResponse, BatchUpdateRequest, BatchUpdateResponse,
    TaskStatusUpdate, ServiceTaskResponse, MilestoneUpdate, ServiceMilestoneResponse,
)
from clientportal.deps import get_current_user, require_permission
from clientportal.services import service_instance_service, progress_service
from typing import List
from uuid import UUID

router = APIRouter(prefix="/api/services", tags=["services"])

can_assign_services = require_permission("can_assign_services")


@router.get("", response_model=List[ServiceResponse])
def list_services(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """All services for staff, own services for clients"""
    return service_instance_service.list_services(db, current_user)


@router.post("", response_model=ServiceResponse, status_code=status.HTTP_201_CREATED)
def create_service(
    data: ServiceCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(can_assign_services)
):
    """Assign a service template to a client"""
    service = service_instance_service.create_service(db, data)
    return service_instance_service.service_projection(service)


@router.get("/{service_id}", response_model=ServiceResponse)
def get_service(
    service_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return service_instance_service.get_service_detail(db, service_id, current_user)


@router.patch("/{service_id}", response_model=ServiceResponse)
def update_service(
    service_id: UUID,
    data: ServiceUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(can_assign_services)
):
    service = service_instance_service.update_service(db, service_id, data)
    return service_instance_service.service_projection(service)


@router.delete("/{service_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_service(
    service_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(can_assign_services)
):
    service_instance_service.delete_service(db, service_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{service_id}/batch-update", response_model=BatchUpdateResponse)
def batch_update(
    service_id: UUID,
    data: BatchUpdateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Update several tasks and milestones of one service in a single transaction"""
    return progress_service.batch_update(db, service_id, data, current_user)


@router.patch("/{service_id}/tasks/{task_id}", response_model=ServiceTaskResponse)
def update_task(
    service_id: UUID,
    task_id: UUID,
    data: TaskStatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return progress_service.update_task(db, service_id, task_id, data, current_user)


@router.patch("/{service_id}/milestones/{milestone_id}", response_model=ServiceMilestoneResponse)
def update_milestone(
    service_id: UUID,
    milestone_id: UUID,
    data: MilestoneUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(can_assign_services)
):
    return progress_service.update_milestone(db, service_id, milestone_id, data, current_user)
