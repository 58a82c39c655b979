from datetime import datetime
from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload
from clientportal.models import (
    User, Service, ServiceStatus, ServiceRequest, RequestStatus, RequestPriority,
    ServiceMilestone, FormTemplate, AssignedForm, FormSubmission,
)
from clientportal.rbac import has_permission
from typing import Dict, Any, List

OPEN_STATUSES = (RequestStatus.OPEN, RequestStatus.IN_PROGRESS)
RECENT_LIMIT = 5


def _latest(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(items, key=lambda item: item["timestamp"], reverse=True)[:RECENT_LIMIT]


def _service_activity(services: List[Service]) -> List[Dict[str, Any]]:
    return [
        {
            "kind": "service",
            "id": s.id,
            "title": f"Service {s.status.value.lower()}: {s.name or s.template.name}",
            "timestamp": s.updated_at,
        }
        for s in services
    ]


def get_dashboard(db: Session, user: User) -> Dict[str, Any]:
    """Counters and recent activity, scoped to the caller unless they can view all services."""
    sees_all = has_permission(user.role, "can_view_all_services")

    services_q = db.query(Service)
    requests_q = db.query(ServiceRequest)
    milestones_q = db.query(ServiceMilestone).join(Service, ServiceMilestone.service_id == Service.id)
    submissions_q = db.query(FormSubmission).options(selectinload(FormSubmission.form))
    if not sees_all:
        services_q = services_q.filter(Service.client_id == user.id)
        requests_q = requests_q.filter(ServiceRequest.client_id == user.id)
        milestones_q = milestones_q.filter(Service.client_id == user.id)
        submissions_q = submissions_q.filter(FormSubmission.user_id == user.id)

    service_total = services_q.count()
    service_active = services_q.filter(Service.status == ServiceStatus.ACTIVE).count()

    request_total = requests_q.count()
    open_requests = requests_q.filter(ServiceRequest.status.in_(OPEN_STATUSES))
    request_open = open_requests.count()
    request_urgent = open_requests.filter(ServiceRequest.priority == RequestPriority.URGENT).count()

    milestone_total = milestones_q.count()
    milestone_achieved = milestones_q.filter(ServiceMilestone.achieved.is_(True)).count()

    if sees_all:
        form_total = db.query(func.count(FormTemplate.id)).scalar()
        form_pending = form_total
    else:
        active_assignments = (
            db.query(AssignedForm)
            .join(Service, AssignedForm.service_id == Service.id)
            .filter(Service.client_id == user.id, Service.status == ServiceStatus.ACTIVE)
        )
        form_total = active_assignments.count()
        submitted = select(FormSubmission.form_id).where(FormSubmission.user_id == user.id)
        form_pending = (
            active_assignments
            .filter(AssignedForm.required.is_(True), ~AssignedForm.form_id.in_(submitted))
            .count()
        )

    recent_requests = requests_q.order_by(ServiceRequest.created_at.desc()).limit(RECENT_LIMIT).all()
    recent_services = (
        services_q.options(selectinload(Service.template)).order_by(Service.updated_at.desc()).limit(RECENT_LIMIT).all()
    )
    recent_submissions = submissions_q.order_by(FormSubmission.submitted_at.desc()).limit(RECENT_LIMIT).all()
    activity = (
        [
            {"kind": "request", "id": r.id, "title": f"Service request: {r.title}", "timestamp": r.created_at}
            for r in recent_requests
        ]
        + _service_activity(recent_services)
        + [
            {"kind": "form", "id": s.id, "title": f"Form submitted: {s.form.name}", "timestamp": s.submitted_at}
            for s in recent_submissions
        ]
    )

    return {
        "services": {"total": service_total, "active": service_active},
        "requests": {"total": request_total, "open": request_open, "urgent": request_urgent},
        "forms": {"total": form_total, "pending": form_pending},
        "milestones": {
            "total": milestone_total,
            "upcoming": milestone_total - milestone_achieved,
            "achieved": milestone_achieved,
        },
        "recent_activity": _latest(activity),
    }


def get_admin_stats(db: Session) -> Dict[str, Any]:
    now = datetime.utcnow()
    first_of_month = datetime(now.year, now.month, 1)

    total_users = db.query(func.count(User.id)).scalar()
    new_users = db.query(func.count(User.id)).filter(User.created_at >= first_of_month).scalar()
    users_by_role = {role.value: count for role, count in db.query(User.role, func.count(User.id)).group_by(User.role).all()}
    services_by_status = {
        status.value: count
        for status, count in db.query(Service.status, func.count(Service.id)).group_by(Service.status).all()
    }
    open_requests = db.query(func.count(ServiceRequest.id)).filter(ServiceRequest.status.in_(OPEN_STATUSES)).scalar()

    recent_users = db.query(User).order_by(User.created_at.desc()).limit(RECENT_LIMIT).all()
    recent_services = (
        db.query(Service).options(selectinload(Service.template)).order_by(Service.updated_at.desc()).limit(RECENT_LIMIT).all()
    )
    recent_forms = db.query(FormTemplate).order_by(FormTemplate.updated_at.desc()).limit(RECENT_LIMIT).all()
    activity = (
        [{"kind": "user", "id": u.id, "title": f"New user: {u.display_name}", "timestamp": u.created_at} for u in recent_users]
        + _service_activity(recent_services)
        + [
            {
                "kind": "form",
                "id": f.id,
                "title": f"Form {'created' if (f.updated_at - f.created_at).total_seconds() < 1 else 'updated'}: {f.name}",
                "timestamp": f.updated_at,
            }
            for f in recent_forms
        ]
    )

    return {
        "total_users": total_users,
        "new_users_this_month": new_users,
        "users_by_role": users_by_role,
        "services_by_status": services_by_status,
        "open_requests": open_requests,
        "recent_activity": _latest(activity),
    }
