import logging
from datetime import datetime
from sqlalchemy.orm import Session
from clientportal.models import Service, ServiceStatus, ServiceTask, ServiceMilestone, TaskStatus, User
from clientportal.schemas import BatchUpdateRequest, TaskStatusUpdate, MilestoneUpdate
from clientportal.exceptions import NotFoundError, AuthorizationError, ConflictError
from clientportal.rbac import has_permission
from clientportal.services import service_instance_service
from typing import Dict, Any, List, Optional
from uuid import UUID

logger = logging.getLogger(__name__)


def _load_service(db: Session, service_id: UUID) -> Service:
    service = db.query(Service).filter(Service.id == service_id).first()
    if not service:
        raise NotFoundError("Service", str(service_id))
    return service


def _check_task_access(user: User, service: Service) -> None:
    can_assign = has_permission(user.role, "can_assign_services")
    if not can_assign and service.client_id != user.id:
        raise AuthorizationError("Only the service owner or staff can update tasks", required=["can_assign_services"])
    # Clients only work on running services; staff can correct any service
    if not can_assign and service.status != ServiceStatus.ACTIVE:
        raise ConflictError(
            f"Tasks cannot be updated while the service is {service.status.value}",
            details={"service_id": str(service.id), "status": service.status.value},
        )


def _check_milestone_access(user: User) -> None:
    if not has_permission(user.role, "can_assign_services"):
        raise AuthorizationError("Only staff can update milestones", required=["can_assign_services"])


def apply_task_status(task: ServiceTask, status: TaskStatus, completed_at: Optional[datetime] = None) -> None:
    """COMPLETED stamps completed_at; any other status clears it."""
    task.status = status
    task.completed_at = (completed_at or datetime.utcnow()) if status == TaskStatus.COMPLETED else None


def apply_milestone(milestone: ServiceMilestone, achieved: bool, achieved_at: Optional[datetime] = None) -> None:
    milestone.achieved = achieved
    milestone.achieved_at = (achieved_at or datetime.utcnow()) if achieved else None


def _rows_in_service(db: Session, model, service_id: UUID, ids: List[UUID], label: str) -> Dict[UUID, Any]:
    if not ids:
        return {}
    rows = db.query(model).filter(model.service_id == service_id, model.id.in_(ids)).all()
    found = {row.id: row for row in rows}
    missing = [str(i) for i in ids if i not in found]
    if missing:
        raise NotFoundError(label, ", ".join(missing))
    return found


def batch_update(db: Session, service_id: UUID, data: BatchUpdateRequest, user: User) -> Dict[str, Any]:
    """Apply task and milestone changes to one service atomically.

    Authorization and row ownership are checked for the whole batch before
    anything is written; a row outside the service fails the batch.
    """
    service = _load_service(db, service_id)
    if data.tasks:
        _check_task_access(user, service)
    if data.milestones:
        _check_milestone_access(user)

    tasks = _rows_in_service(db, ServiceTask, service.id, [t.id for t in data.tasks], "Service task")
    milestones = _rows_in_service(db, ServiceMilestone, service.id, [m.id for m in data.milestones], "Service milestone")

    try:
        for change in data.tasks:
            apply_task_status(tasks[change.id], change.status, change.completed_at)
        for change in data.milestones:
            apply_milestone(milestones[change.id], change.achieved, change.achieved_at)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        f"Batch update: {len(data.tasks)} tasks, {len(data.milestones)} milestones",
        extra={"service_id": str(service.id), "user_id": str(user.id)},
    )
    db.expire_all()
    updated_tasks = [db.get(ServiceTask, change.id) for change in data.tasks]
    updated_milestones = [db.get(ServiceMilestone, change.id) for change in data.milestones]
    refreshed = service_instance_service.get_service(db, service.id)
    return {
        "tasks": updated_tasks,
        "milestones": updated_milestones,
        "service": service_instance_service.service_projection(refreshed),
    }


def update_task(db: Session, service_id: UUID, task_id: UUID, data: TaskStatusUpdate, user: User) -> ServiceTask:
    service = _load_service(db, service_id)
    _check_task_access(user, service)
    task = _rows_in_service(db, ServiceTask, service.id, [task_id], "Service task")[task_id]

    apply_task_status(task, data.status, data.completed_at)
    db.commit()
    db.refresh(task)
    logger.info(f"Task {task.id} set to {task.status.value}", extra={"service_id": str(service.id), "user_id": str(user.id)})
    return task


def update_milestone(db: Session, service_id: UUID, milestone_id: UUID, data: MilestoneUpdate, user: User) -> ServiceMilestone:
    service = _load_service(db, service_id)
    _check_milestone_access(user)
    milestone = _rows_in_service(db, ServiceMilestone, service.id, [milestone_id], "Service milestone")[milestone_id]

    apply_milestone(milestone, data.achieved, data.achieved_at)
    db.commit()
    db.refresh(milestone)
    return milestone
