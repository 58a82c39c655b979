from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from clientportal.db import get_db
from clientportal.models import User
from clientportal.schemas import ServiceRequestCreate, ServiceRequestUpdate, ServiceRequestResponse
from clientportal.deps import get_current_user, require_permission
from clientportal.services import request_service
from typing import List
from uuid import UUID

router = APIRouter(prefix="/api/service-requests", tags=["service-requests"])


@router.get("", response_model=List[ServiceRequestResponse])
def list_requests(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return request_service.list_requests(db, current_user)


@router.post("", response_model=ServiceRequestResponse, status_code=status.HTTP_201_CREATED)
def create_request(
    data: ServiceRequestCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("can_submit_requests"))
):
    """Open a request; service_id "general" (or none) leaves it unlinked"""
    return request_service.create_request(db, data, current_user)


@router.patch("/{request_id}", response_model=ServiceRequestResponse)
def update_request_status(
    request_id: UUID,
    data: ServiceRequestUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("can_assign_services", "can_manage_services"))
):
    return request_service.update_status(db, request_id, data)
