from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from clientportal.db import get_db
from clientportal.models import User, Role
from clientportal.schemas import ClientProfileUpdate, ClientProfileResponse
from clientportal.deps import get_current_user
from clientportal.exceptions import AuthorizationError
from clientportal.services import user_service
from typing import Optional

router = APIRouter(prefix="/api/client/profile", tags=["client-profile"])


@router.get("", response_model=Optional[ClientProfileResponse])
def get_my_profile(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return user_service.get_profile(db, current_user)


@router.put("", response_model=ClientProfileResponse)
def upsert_my_profile(
    data: ClientProfileUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Create or update the caller's business profile (clients only)"""
    if current_user.role != Role.CLIENT:
        raise AuthorizationError("Only clients have a business profile")
    return user_service.upsert_profile(db, current_user, data)
