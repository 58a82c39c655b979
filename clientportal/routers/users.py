from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from clientportal.db import get_db
from clientportal.models import User
from clientportal.schemas import UserResponse, UserRoleUpdate, PermissionsResponse
from clientportal.deps import get_current_user, require_permission
from clientportal.exceptions import ValidationError
from clientportal.rbac import get_permissions, parse_role
from clientportal.services import user_service
from clientportal.services.identity_provider import IdentityProviderClient, IdentityProviderError, get_identity_provider
from typing import List, Optional
from uuid import UUID

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/me", response_model=UserResponse)
def get_current_user_info(
    current_user: User = Depends(get_current_user)
):
    """Get current authenticated user's information"""
    return user_service.user_projection(current_user)


@router.get("/me/permissions", response_model=PermissionsResponse)
def get_my_permissions(current_user: User = Depends(get_current_user)):
    """Capability record the UI uses to show or hide controls."""
    return {"role": current_user.role, "permissions": get_permissions(current_user.role)}


@router.get("", response_model=List[UserResponse])
def list_users(
    role: Optional[str] = Query(None),
    include_services: bool = Query(False),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("can_manage_users", "can_assign_services"))
):
    """List users, newest first (user managers and service assigners)"""
    role_filter = None
    if role:
        role_filter = parse_role(role)
        if role_filter is None:
            raise ValidationError(f"Unknown role: {role}")
    return user_service.list_users(db, role=role_filter, include_services=include_services)


@router.get("/{user_id}", response_model=UserResponse)
def get_user(
    user_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("can_manage_users", "can_assign_services"))
):
    return user_service.get_user_detail(db, user_id)


@router.patch("/{user_id}/role", response_model=UserResponse)
def update_user_role(
    user_id: UUID,
    data: UserRoleUpdate,
    db: Session = Depends(get_db),
    identity_provider: IdentityProviderClient = Depends(get_identity_provider),
    current_user: User = Depends(require_permission("can_manage_users"))
):
    """Change a user's role here and in the identity provider (Admin only)"""
    try:
        user = user_service.update_role(db, user_id, data.role, identity_provider)
    except IdentityProviderError as exc:
        raise ValidationError(exc.message, details={"provider_code": exc.code})
    return user_service.user_projection(user)
