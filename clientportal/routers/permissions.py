from fastapi import APIRouter
from clientportal.rbac import ROLE_PERMISSIONS
from typing import Dict

router = APIRouter(prefix="/api/permissions", tags=["permissions"])


@router.get("", response_model=Dict[str, Dict[str, bool]])
def get_permission_table():
    """The role to capability table enforced by the API."""
    return {role.value: dict(perms) for role, perms in ROLE_PERMISSIONS.items()}
