import logging
from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload
from clientportal.models import (
    ServiceTemplate, TemplateTask, TemplateMilestone, FormTemplate, Service,
    ServiceTask, ServiceMilestone,
)
from clientportal.schemas import ServiceTemplateCreate, ServiceTemplateUpdate, StepIn
from clientportal.exceptions import NotFoundError, ConflictError, ValidationError
from typing import List, Dict, Any, Optional
from uuid import UUID

logger = logging.getLogger(__name__)


def _query(db: Session):
    return db.query(ServiceTemplate).options(
        selectinload(ServiceTemplate.tasks),
        selectinload(ServiceTemplate.milestones),
        selectinload(ServiceTemplate.required_forms),
    )


def _service_counts(db: Session, template_ids: List[UUID]) -> Dict[UUID, int]:
    if not template_ids:
        return {}
    rows = (
        db.query(Service.template_id, func.count(Service.id))
        .filter(Service.template_id.in_(template_ids))
        .group_by(Service.template_id)
        .all()
    )
    return {template_id: count for template_id, count in rows}


def template_projection(template: ServiceTemplate, service_count: int) -> Dict[str, Any]:
    return {
        "id": template.id,
        "name": template.name,
        "description": template.description,
        "is_active": template.is_active,
        "tasks": template.tasks,
        "milestones": template.milestones,
        "required_forms": template.required_forms,
        "counts": {
            "services": service_count,
            "tasks": len(template.tasks),
            "milestones": len(template.milestones),
        },
        "created_at": template.created_at,
        "updated_at": template.updated_at,
    }


def _load_forms(db: Session, form_ids: List[UUID]) -> List[FormTemplate]:
    unique_ids = list(dict.fromkeys(form_ids))
    if not unique_ids:
        return []
    forms = db.query(FormTemplate).filter(FormTemplate.id.in_(unique_ids)).all()
    missing = set(unique_ids) - {form.id for form in forms}
    if missing:
        raise ValidationError("Unknown form ids", details={"form_ids": sorted(str(i) for i in missing)})
    return forms


def _steps(model, steps: List[StepIn]) -> list:
    return [model(title=step.title, description=step.description, order=index) for index, step in enumerate(steps)]


def list_templates(db: Session, active_only: bool = False) -> List[Dict[str, Any]]:
    query = _query(db)
    if active_only:
        query = query.filter(ServiceTemplate.is_active.is_(True))
    templates = query.order_by(ServiceTemplate.created_at.desc()).all()
    counts = _service_counts(db, [t.id for t in templates])
    return [template_projection(t, counts.get(t.id, 0)) for t in templates]


def get_template(db: Session, template_id: UUID) -> Optional[ServiceTemplate]:
    return _query(db).filter(ServiceTemplate.id == template_id).first()


def get_template_detail(db: Session, template_id: UUID) -> Dict[str, Any]:
    template = get_template(db, template_id)
    if not template:
        raise NotFoundError("Template", str(template_id))
    return template_projection(template, _service_counts(db, [template.id]).get(template.id, 0))


def create_template(db: Session, data: ServiceTemplateCreate) -> Dict[str, Any]:
    forms = _load_forms(db, data.required_form_ids)
    template = ServiceTemplate(
        name=data.name.strip(),
        description=data.description,
        is_active=data.is_active,
        tasks=_steps(TemplateTask, data.tasks),
        milestones=_steps(TemplateMilestone, data.milestones),
        required_forms=forms,
    )
    db.add(template)
    db.commit()
    logger.info(f"Created service template {template.id} ({len(data.tasks)} tasks, {len(data.milestones)} milestones)")
    return get_template_detail(db, template.id)


def update_template(db: Session, template_id: UUID, data: ServiceTemplateUpdate) -> Dict[str, Any]:
    """Partial update. Supplied task/milestone lists replace the existing ones.

    Existing services keep their own copies; their template references are
    cleared for the rows being replaced.
    """
    template = get_template(db, template_id)
    if not template:
        raise NotFoundError("Template", str(template_id))

    update_data = data.model_dump(exclude_unset=True, include={"name", "description", "is_active"})
    if "name" in update_data and update_data["name"] is None:
        raise ValidationError("Template name cannot be null")

    try:
        for key, value in update_data.items():
            setattr(template, key, value.strip() if key == "name" else value)

        if data.required_form_ids is not None:
            template.required_forms = _load_forms(db, data.required_form_ids)

        if data.tasks is not None:
            old_ids = [task.id for task in template.tasks]
            if old_ids:
                db.query(ServiceTask).filter(ServiceTask.template_task_id.in_(old_ids)).update(
                    {ServiceTask.template_task_id: None}, synchronize_session=False
                )
            template.tasks = _steps(TemplateTask, data.tasks)

        if data.milestones is not None:
            old_ids = [milestone.id for milestone in template.milestones]
            if old_ids:
                db.query(ServiceMilestone).filter(ServiceMilestone.template_milestone_id.in_(old_ids)).update(
                    {ServiceMilestone.template_milestone_id: None}, synchronize_session=False
                )
            template.milestones = _steps(TemplateMilestone, data.milestones)

        db.commit()
    except Exception:
        db.rollback()
        raise
    db.expire_all()
    return get_template_detail(db, template_id)


def delete_template(db: Session, template_id: UUID) -> None:
    template = db.query(ServiceTemplate).filter(ServiceTemplate.id == template_id).first()
    if not template:
        raise NotFoundError("Template", str(template_id))

    service_count = db.query(func.count(Service.id)).filter(Service.template_id == template_id).scalar()
    if service_count:
        raise ConflictError(
            "Cannot delete template with services",
            details={"template_id": str(template_id), "services": service_count},
        )

    db.delete(template)
    db.commit()
    logger.info(f"Deleted service template {template_id}")
