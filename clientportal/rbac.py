from typing import Dict, Optional, Union

from clientportal.models import Role


CAPABILITIES = (
    "can_view_admin_panel",
    "can_manage_users",
    "can_manage_services",
    "can_manage_forms",
    "can_assign_services",
    "can_submit_requests",
    "can_view_all_services",
    "can_view_own_data",
)

# Permission mapping for each role. This table is the single authority;
# the UI reads it from /api/permissions.
ROLE_PERMISSIONS: Dict[Role, Dict[str, bool]] = {
    Role.ADMIN: {
        "can_view_admin_panel": True,
        "can_manage_users": True,
        "can_manage_services": True,
        "can_manage_forms": True,
        "can_assign_services": True,
        "can_submit_requests": False,
        "can_view_all_services": True,
        "can_view_own_data": True,
    },
    Role.MANAGER: {
        "can_view_admin_panel": True,
        "can_manage_users": False,
        "can_manage_services": False,
        "can_manage_forms": False,
        "can_assign_services": True,
        "can_submit_requests": False,
        "can_view_all_services": True,
        "can_view_own_data": True,
    },
    Role.CLIENT: {
        "can_view_admin_panel": False,
        "can_manage_users": False,
        "can_manage_services": False,
        "can_manage_forms": False,
        "can_assign_services": False,
        "can_submit_requests": True,
        "can_view_all_services": False,
        "can_view_own_data": True,
    },
}

NO_PERMISSIONS: Dict[str, bool] = {capability: False for capability in CAPABILITIES}


def parse_role(value: Union[str, Role, None]) -> Optional[Role]:
    """Parse a role at the boundary. Unknown or empty values give None."""
    if isinstance(value, Role):
        return value
    if not value or not isinstance(value, str):
        return None
    try:
        return Role(value.strip().upper())
    except ValueError:
        return None


def get_permissions(user_role: Union[str, Role, None]) -> Dict[str, bool]:
    """Capability record for a role; unknown roles get the least-privileged set."""
    role = parse_role(user_role)
    if role is None:
        return dict(NO_PERMISSIONS)
    return dict(ROLE_PERMISSIONS[role])


def has_permission(user_role: Union[str, Role, None], permission: str) -> bool:
    """Check if a role has a specific permission"""
    return get_permissions(user_role).get(permission, False)


def has_any_permission(user_role: Union[str, Role, None], *permissions: str) -> bool:
    perms = get_permissions(user_role)
    return any(perms.get(permission, False) for permission in permissions)
