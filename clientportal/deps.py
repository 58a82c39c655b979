from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from clientportal.db import get_db
from clientportal.auth import decode_session_token
from clientportal.config import settings
from clientportal.exceptions import AuthenticationError, AuthorizationError
from clientportal.models import User
from clientportal.rbac import has_any_permission
from clientportal.services import user_service
from typing import Optional

security = HTTPBearer(auto_error=False)


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """Resolve the caller from the provider session token (header or cookie).

    The local User row is created on first sight with role CLIENT; its stored
    role is what every permission check uses, never a token claim.
    """
    token = None
    if credentials:
        token = credentials.credentials
    else:
        token = request.cookies.get(settings.IDENTITY_SESSION_COOKIE)

    if not token:
        raise AuthenticationError("Not authenticated")

    payload = decode_session_token(token)
    if payload is None:
        raise AuthenticationError("Invalid authentication credentials")

    external_id = payload.get("sub")
    if not external_id:
        raise AuthenticationError("Invalid authentication credentials")

    user = user_service.get_or_create_from_claims(db, external_id, payload)

    request.state.user_id = str(user.id)
    return user


def require_permission(*capabilities: str):
    """Dependency that requires at least one of the given capabilities."""
    def dependency(current_user: User = Depends(get_current_user)) -> User:
        if not has_any_permission(current_user.role, *capabilities):
            raise AuthorizationError(required=list(capabilities))
        return current_user
    return dependency


def ensure_permission(current_user: User, *capabilities: str) -> None:
    """Inline variant of require_permission for checks that depend on the row."""
    if not has_any_permission(current_user.role, *capabilities):
        raise AuthorizationError(required=list(capabilities))
