from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from clientportal.db import get_db
from clientportal.models import User
from clientportal.schemas import DashboardResponse
from clientportal.deps import get_current_user
from clientportal.services import dashboard_service

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("", response_model=DashboardResponse)
def get_dashboard(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return dashboard_service.get_dashboard(db, current_user)
