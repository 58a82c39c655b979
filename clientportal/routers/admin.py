from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session
from clientportal.db import get_db
from clientportal.models import User
from clientportal.schemas import ClientAction, ClientActionResponse, AdminStatsResponse, UserResponse
from clientportal.deps import require_permission
from clientportal.rate_limit import limiter, INVITE_RATE_LIMIT
from clientportal.services import client_service, dashboard_service, user_service
from clientportal.services.identity_provider import IdentityProviderClient, get_identity_provider
from typing import List

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/stats", response_model=AdminStatsResponse)
def get_admin_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("can_view_admin_panel"))
):
    return dashboard_service.get_admin_stats(db)


@router.get("/clients", response_model=List[UserResponse])
def list_clients(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("can_manage_users", "can_assign_services"))
):
    """Clients with their profile and number of active services"""
    return client_service.list_clients(db)


@router.post("/clients", response_model=ClientActionResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(INVITE_RATE_LIMIT)
def client_action(
    request: Request,
    data: ClientAction,
    db: Session = Depends(get_db),
    identity_provider: IdentityProviderClient = Depends(get_identity_provider),
    current_user: User = Depends(require_permission("can_manage_users"))
):
    """
    Onboard a client.

    - ``invite``: send a provider invitation; the local user is created by the webhook
    - ``create``: create the provider user, then the local user and profile
    """
    if data.action == "invite":
        client_service.invite_client(identity_provider, data.email)
        return {"message": "Invitation sent"}

    user = client_service.create_client(db, identity_provider, data)
    return {"message": "Client created", "user": user}
