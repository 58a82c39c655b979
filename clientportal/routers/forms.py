from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session
from clientportal.db import get_db
from clientportal.models import User
from clientportal.schemas import (
    FormTemplateCreate, FormTemplateUpdate, FormTemplateResponse, AssignedFormDetail,
    FormSubmissionCreate, FormSubmissionResponse,
)
from clientportal.deps import get_current_user, require_permission
from clientportal.services import form_service
from typing import List, Optional, Union
from uuid import UUID

router = APIRouter(prefix="/api/forms", tags=["forms"])

can_manage_forms = require_permission("can_manage_forms")


@router.get("", response_model=Union[List[FormTemplateResponse], List[AssignedFormDetail]])
def list_forms(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Form managers get every form; everyone else gets the forms assigned to their services"""
    return form_service.list_forms(db, current_user)


@router.post("", response_model=FormTemplateResponse, status_code=status.HTTP_201_CREATED)
def create_form(
    data: FormTemplateCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(can_manage_forms)
):
    return form_service.create_form(db, data)


# Submission routes are declared before /{form_id} so "submissions" is not read as an id

@router.post("/submissions", response_model=FormSubmissionResponse, status_code=status.HTTP_201_CREATED)
def submit_form(
    data: FormSubmissionCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Submit answers to a form assigned to one of the caller's services"""
    return form_service.submit(db, data, current_user)


@router.get("/submissions", response_model=List[FormSubmissionResponse])
def list_submissions(
    form_id: Optional[UUID] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return form_service.list_submissions(db, current_user, form_id=form_id)


@router.get("/{form_id}", response_model=FormTemplateResponse)
def get_form(
    form_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(can_manage_forms)
):
    return form_service.get_form_detail(db, form_id)


@router.put("/{form_id}", response_model=FormTemplateResponse)
def update_form(
    form_id: UUID,
    data: FormTemplateUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(can_manage_forms)
):
    return form_service.update_form(db, form_id, data)


@router.delete("/{form_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_form(
    form_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(can_manage_forms)
):
    form_service.delete_form(db, form_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
