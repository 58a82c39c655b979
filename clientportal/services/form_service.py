import logging
import pydantic
from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload
from clientportal.models import (
    FormTemplate, AssignedForm, FormSubmission, Service, User, service_template_forms,
)
from clientportal.schemas import FormTemplateCreate, FormTemplateUpdate, FormSubmissionCreate
from clientportal.exceptions import NotFoundError, ConflictError, ValidationError
from clientportal.rbac import has_permission
from clientportal.forms.schema import parse_form_document, validate_submission
from typing import List, Dict, Any, Optional
from uuid import UUID

logger = logging.getLogger(__name__)


def _document(document) -> Dict[str, Any]:
    return document.model_dump(exclude_none=True)


def _form_projection(form: FormTemplate, submission_count: Optional[int] = None, assignment_count: Optional[int] = None) -> Dict[str, Any]:
    return {
        "id": form.id,
        "name": form.name,
        "description": form.description,
        "fields": form.fields or {},
        "is_template": form.is_template,
        "submission_count": submission_count,
        "assignment_count": assignment_count,
        "created_at": form.created_at,
        "updated_at": form.updated_at,
    }


def _count_by_form(db: Session, model) -> Dict[UUID, int]:
    rows = db.query(model.form_id, func.count(model.id)).group_by(model.form_id).all()
    return {form_id: count for form_id, count in rows}


def list_forms(db: Session, user: User) -> List[Dict[str, Any]]:
    """Form managers see every form with usage counts; others see forms assigned to their services."""
    if has_permission(user.role, "can_manage_forms"):
        forms = db.query(FormTemplate).order_by(FormTemplate.created_at.desc()).all()
        submissions = _count_by_form(db, FormSubmission)
        assignments = _count_by_form(db, AssignedForm)
        return [
            _form_projection(form, submissions.get(form.id, 0), assignments.get(form.id, 0))
            for form in forms
        ]

    assigned = (
        db.query(AssignedForm)
        .join(Service, AssignedForm.service_id == Service.id)
        .options(selectinload(AssignedForm.form), selectinload(AssignedForm.service))
        .filter(Service.client_id == user.id)
        .order_by(AssignedForm.created_at.desc())
        .all()
    )
    submitted = {
        row.form_id
        for row in db.query(FormSubmission.form_id).filter(FormSubmission.user_id == user.id).distinct().all()
    }
    return [
        {
            "id": assignment.id,
            "required": assignment.required,
            "form": _form_projection(assignment.form),
            "service": assignment.service,
            "submitted": assignment.form_id in submitted,
        }
        for assignment in assigned
    ]


def get_form(db: Session, form_id: UUID) -> FormTemplate:
    form = db.query(FormTemplate).filter(FormTemplate.id == form_id).first()
    if not form:
        raise NotFoundError("Form", str(form_id))
    return form


def get_form_detail(db: Session, form_id: UUID) -> Dict[str, Any]:
    return _form_projection(get_form(db, form_id))


def create_form(db: Session, data: FormTemplateCreate) -> Dict[str, Any]:
    form = FormTemplate(
        name=data.name.strip(),
        description=data.description,
        fields=_document(data.fields),
        is_template=data.is_template,
    )
    db.add(form)
    db.commit()
    db.refresh(form)
    logger.info(f"Created form {form.id} with {len(data.fields.all_fields())} fields")
    return _form_projection(form)


def update_form(db: Session, form_id: UUID, data: FormTemplateUpdate) -> Dict[str, Any]:
    form = get_form(db, form_id)
    update_data = data.model_dump(exclude_unset=True, exclude={"fields"})
    for key, value in update_data.items():
        if value is None and key in ("name", "is_template"):
            raise ValidationError(f"{key} cannot be null")
        setattr(form, key, value)
    if data.fields is not None:
        form.fields = _document(data.fields)
    db.commit()
    db.refresh(form)
    return _form_projection(form)


def delete_form(db: Session, form_id: UUID) -> None:
    """Delete a form with its template links and submissions. Refused while assigned to a service."""
    form = get_form(db, form_id)
    assignments = db.query(func.count(AssignedForm.id)).filter(AssignedForm.form_id == form.id).scalar()
    if assignments:
        raise ConflictError(
            "Cannot delete a form that is assigned to services",
            details={"form_id": str(form.id), "assignments": assignments},
        )
    try:
        db.execute(service_template_forms.delete().where(service_template_forms.c.form_id == form.id))
        db.query(FormSubmission).filter(FormSubmission.form_id == form.id).delete(synchronize_session=False)
        db.query(FormTemplate).filter(FormTemplate.id == form.id).delete(synchronize_session=False)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.expire_all()
    logger.info(f"Deleted form {form_id}")


# ============= Submissions =============

def _submission_query(db: Session):
    return db.query(FormSubmission).options(selectinload(FormSubmission.form), selectinload(FormSubmission.user))


def submit(db: Session, data: FormSubmissionCreate, user: User) -> FormSubmission:
    assignment = (
        db.query(AssignedForm)
        .join(Service, AssignedForm.service_id == Service.id)
        .filter(AssignedForm.form_id == data.form_id, Service.client_id == user.id)
        .first()
    )
    if not assignment:
        raise NotFoundError("Form", str(data.form_id))

    form = get_form(db, data.form_id)
    try:
        document = parse_form_document(form.fields or {"sections": [{"id": "main", "fields": []}]})
    except pydantic.ValidationError:
        logger.error(f"Stored form document for {form.id} is invalid", exc_info=True)
        raise ValidationError("Form definition is invalid", details={"form_id": str(form.id)})

    errors = validate_submission(document, data.data)
    if errors:
        raise ValidationError("Submission is incomplete or invalid", details={"fields": errors})

    submission = FormSubmission(form_id=form.id, user_id=user.id, data=data.data)
    db.add(submission)
    db.commit()
    logger.info(f"Form {form.id} submitted", extra={"user_id": str(user.id)})
    return _submission_query(db).filter(FormSubmission.id == submission.id).first()


def list_submissions(db: Session, user: User, form_id: Optional[UUID] = None) -> List[FormSubmission]:
    query = _submission_query(db)
    if form_id:
        query = query.filter(FormSubmission.form_id == form_id)
    if not has_permission(user.role, "can_manage_forms"):
        query = query.filter(FormSubmission.user_id == user.id)
    return query.order_by(FormSubmission.submitted_at.desc()).all()
