import logging
from datetime import datetime
from sqlalchemy.orm import Session, selectinload
from clientportal.models import ServiceRequest, RequestStatus, Service, User
from clientportal.schemas import ServiceRequestCreate, ServiceRequestUpdate
from clientportal.exceptions import NotFoundError, AuthorizationError, ValidationError
from clientportal.rbac import has_permission
from typing import List, Optional
from uuid import UUID

logger = logging.getLogger(__name__)

GENERAL_SERVICE = "general"


def _query(db: Session):
    return db.query(ServiceRequest).options(
        selectinload(ServiceRequest.client),
        selectinload(ServiceRequest.service),
    )


def _resolve_service_id(db: Session, raw: Optional[str], user: User) -> Optional[UUID]:
    if raw is None or not raw.strip() or raw.strip().lower() == GENERAL_SERVICE:
        return None
    try:
        service_id = UUID(raw.strip())
    except ValueError:
        raise ValidationError("service_id must be a service id or 'general'", details={"service_id": raw})

    service = db.query(Service).filter(Service.id == service_id).first()
    if not service:
        raise NotFoundError("Service", str(service_id))
    if service.client_id != user.id:
        raise AuthorizationError("Requests can only be linked to your own services")
    return service.id


def create_request(db: Session, data: ServiceRequestCreate, user: User) -> ServiceRequest:
    service_id = _resolve_service_id(db, data.service_id, user)
    request = ServiceRequest(
        title=data.title,
        description=data.description,
        priority=data.priority,
        status=RequestStatus.OPEN,
        client_id=user.id,
        service_id=service_id,
    )
    db.add(request)
    db.commit()
    logger.info(
        f"Service request created with priority {request.priority.value}",
        extra={"user_id": str(user.id), "service_id": str(service_id) if service_id else None},
    )
    return _query(db).filter(ServiceRequest.id == request.id).first()


def list_requests(db: Session, user: User) -> List[ServiceRequest]:
    query = _query(db)
    if not has_permission(user.role, "can_view_all_services"):
        query = query.filter(ServiceRequest.client_id == user.id)
    return query.order_by(ServiceRequest.created_at.desc()).all()


def update_status(db: Session, request_id: UUID, data: ServiceRequestUpdate) -> ServiceRequest:
    """Move a request to a new status. RESOLVED stamps resolved_at."""
    request = _query(db).filter(ServiceRequest.id == request_id).first()
    if not request:
        raise NotFoundError("Service request", str(request_id))

    request.status = data.status
    if data.status == RequestStatus.RESOLVED:
        request.resolved_at = datetime.utcnow()
    db.commit()
    db.refresh(request)
    return request
