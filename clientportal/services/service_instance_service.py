"""
Service instances: creation from a template, projections and deletion.

A service's tasks and milestones are snapshots of the template rows taken at
assignment time. Later template edits never reach existing services.
"""
import logging
from datetime import datetime
from sqlalchemy.orm import Session, selectinload
from clientportal.models import (
    Service, ServiceStatus, ServiceTask, ServiceMilestone, TaskStatus, AssignedForm,
    ServiceTemplate, ServiceRequest, RequestStatus, FormSubmission, User, Role,
)
from clientportal.schemas import ServiceCreate, ServiceUpdate
from clientportal.exceptions import NotFoundError, ValidationError, AuthorizationError
from clientportal.rbac import has_permission
from clientportal.services import template_service
from typing import List, Dict, Any, Optional
from uuid import UUID

logger = logging.getLogger(__name__)

OPEN_REQUEST_STATUSES = (RequestStatus.OPEN, RequestStatus.IN_PROGRESS)


def _query(db: Session):
    return db.query(Service).options(
        selectinload(Service.client),
        selectinload(Service.template),
        selectinload(Service.tasks),
        selectinload(Service.milestones),
        selectinload(Service.assigned_forms).selectinload(AssignedForm.form),
        selectinload(Service.requests),
    )


def service_projection(
    service: Service,
    requests: Optional[List[ServiceRequest]] = None,
    submitted_form_ids: Optional[set] = None,
) -> Dict[str, Any]:
    """Shape a service for the API. ``requests`` defaults to its open requests."""
    open_requests = [r for r in service.requests if r.status in OPEN_REQUEST_STATUSES]
    assigned_forms = [
        {
            "id": assignment.id,
            "service_id": assignment.service_id,
            "form_id": assignment.form_id,
            "required": assignment.required,
            "form": assignment.form,
            "submitted": (assignment.form_id in submitted_form_ids) if submitted_form_ids is not None else None,
        }
        for assignment in service.assigned_forms
    ]
    return {
        "id": service.id,
        "name": service.name,
        "description": service.description,
        "status": service.status,
        "start_date": service.start_date,
        "end_date": service.end_date,
        "template_id": service.template_id,
        "client_id": service.client_id,
        "client": service.client,
        "template": service.template,
        "tasks": service.tasks,
        "milestones": service.milestones,
        "assigned_forms": assigned_forms,
        "requests": requests if requests is not None else open_requests,
        "counts": {
            "tasks": len(service.tasks),
            "completed_tasks": sum(1 for t in service.tasks if t.status == TaskStatus.COMPLETED),
            "milestones": len(service.milestones),
            "achieved_milestones": sum(1 for m in service.milestones if m.achieved),
            "assigned_forms": len(service.assigned_forms),
            "open_requests": len(open_requests),
        },
        "created_at": service.created_at,
        "updated_at": service.updated_at,
    }


def get_service(db: Session, service_id: UUID) -> Service:
    service = _query(db).filter(Service.id == service_id).first()
    if not service:
        raise NotFoundError("Service", str(service_id))
    return service


def can_view_service(user: User, service: Service) -> bool:
    return service.client_id == user.id or has_permission(user.role, "can_view_all_services")


def list_services(db: Session, user: User) -> List[Dict[str, Any]]:
    query = _query(db)
    if not has_permission(user.role, "can_view_all_services"):
        query = query.filter(Service.client_id == user.id)
    services = query.order_by(Service.created_at.desc()).all()
    return [service_projection(service) for service in services]


def get_service_detail(db: Session, service_id: UUID, user: User) -> Dict[str, Any]:
    service = get_service(db, service_id)
    if not can_view_service(user, service):
        raise AuthorizationError("You do not have access to this service")

    recent_requests = (
        db.query(ServiceRequest)
        .filter(ServiceRequest.service_id == service.id)
        .order_by(ServiceRequest.created_at.desc())
        .limit(10)
        .all()
    )
    form_ids = [assignment.form_id for assignment in service.assigned_forms]
    submitted = set()
    if form_ids:
        rows = (
            db.query(FormSubmission.form_id)
            .filter(FormSubmission.form_id.in_(form_ids), FormSubmission.user_id == service.client_id)
            .distinct()
            .all()
        )
        submitted = {row.form_id for row in rows}
    return service_projection(service, requests=recent_requests, submitted_form_ids=submitted)


# ============= Instantiation =============

def _copy_tasks(db: Session, service: Service, template: ServiceTemplate) -> None:
    for task in template.tasks:
        db.add(ServiceTask(
            service_id=service.id,
            template_task_id=task.id,
            title=task.title,
            description=task.description,
            order=task.order,
            status=TaskStatus.PENDING,
        ))


def _copy_milestones(db: Session, service: Service, template: ServiceTemplate) -> None:
    for milestone in template.milestones:
        db.add(ServiceMilestone(
            service_id=service.id,
            template_milestone_id=milestone.id,
            title=milestone.title,
            description=milestone.description,
            order=milestone.order,
            achieved=False,
        ))


def _assign_forms(db: Session, service: Service, template: ServiceTemplate) -> None:
    for form in template.required_forms:
        db.add(AssignedForm(service_id=service.id, form_id=form.id, required=True))


def create_service(db: Session, data: ServiceCreate) -> Service:
    """Instantiate a template for a client.

    Every validation happens before the first write; the service and all of
    its tasks, milestones and form assignments commit together or not at all.
    """
    template = template_service.get_template(db, data.template_id)
    if not template:
        raise NotFoundError("Template", str(data.template_id))
    if not template.is_active:
        raise ValidationError("Template is not active", details={"template_id": str(template.id)})

    client = db.query(User).filter(User.id == data.client_id).first()
    if not client:
        raise NotFoundError("Client", str(data.client_id))
    if client.role != Role.CLIENT:
        raise ValidationError("Services can only be assigned to clients", details={"client_id": str(client.id)})

    start_date = data.start_date or datetime.utcnow()
    if data.end_date and data.end_date < start_date:
        raise ValidationError("end_date must not be before start_date")

    try:
        service = Service(
            name=(data.name or "").strip() or template.name,
            description=data.description if data.description is not None else template.description,
            template_id=template.id,
            client_id=client.id,
            status=ServiceStatus.ACTIVE,
            start_date=start_date,
            end_date=data.end_date,
        )
        db.add(service)
        db.flush()

        _copy_tasks(db, service, template)
        _copy_milestones(db, service, template)
        _assign_forms(db, service, template)
        db.commit()
    except Exception:
        db.rollback()
        logger.error(f"Service instantiation from template {template.id} rolled back", exc_info=True)
        raise

    logger.info(
        f"Assigned template {template.id} to client: {len(template.tasks)} tasks, "
        f"{len(template.milestones)} milestones, {len(template.required_forms)} forms",
        extra={"service_id": str(service.id), "user_id": str(client.id)},
    )
    db.expire_all()
    return get_service(db, service.id)


# ============= Update / delete =============

def update_service(db: Session, service_id: UUID, data: ServiceUpdate) -> Service:
    service = get_service(db, service_id)
    update_data = data.model_dump(exclude_unset=True)
    if update_data.get("status", service.status) is None:
        raise ValidationError("status cannot be null")
    if "name" in update_data and not (update_data["name"] or "").strip():
        raise ValidationError("name cannot be empty")
    end_date = update_data.get("end_date", service.end_date)
    if end_date and end_date < service.start_date:
        raise ValidationError("end_date must not be before start_date")

    for key, value in update_data.items():
        setattr(service, key, value)
    db.commit()
    db.expire_all()
    return get_service(db, service_id)


def delete_service_rows(db: Session, service_ids: List[UUID]) -> None:
    """Delete services and their children in dependency order. Does not commit."""
    if not service_ids:
        return
    db.query(ServiceTask).filter(ServiceTask.service_id.in_(service_ids)).delete(synchronize_session=False)
    db.query(ServiceMilestone).filter(ServiceMilestone.service_id.in_(service_ids)).delete(synchronize_session=False)
    db.query(AssignedForm).filter(AssignedForm.service_id.in_(service_ids)).delete(synchronize_session=False)
    db.query(ServiceRequest).filter(ServiceRequest.service_id.in_(service_ids)).delete(synchronize_session=False)
    db.query(Service).filter(Service.id.in_(service_ids)).delete(synchronize_session=False)


def delete_service(db: Session, service_id: UUID) -> None:
    if not db.query(Service.id).filter(Service.id == service_id).first():
        raise NotFoundError("Service", str(service_id))
    try:
        delete_service_rows(db, [service_id])
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.expire_all()
    logger.info("Deleted service", extra={"service_id": str(service_id)})
