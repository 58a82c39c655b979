import logging
from sqlalchemy.orm import Session
from clientportal.config import settings
from clientportal.models import User, Role, ClientProfile
from clientportal.schemas import ClientAction, ClientProfileUpdate
from clientportal.exceptions import ValidationError, ConflictError
from clientportal.services import user_service
from clientportal.services.identity_provider import IdentityProviderClient, IdentityProviderError

logger = logging.getLogger(__name__)


def invite_client(identity_provider: IdentityProviderClient, email: str) -> None:
    """Send a provider invitation; the local user appears when the webhook fires."""
    redirect_url = f"{settings.FRONTEND_URL.rstrip('/')}/dashboard"
    try:
        identity_provider.create_invitation(email=email, role=Role.CLIENT.value, redirect_url=redirect_url)
    except IdentityProviderError as exc:
        raise ValidationError(exc.message, details={"provider_code": exc.code})
    logger.info(f"Invited client {email}")


def create_client(db: Session, identity_provider: IdentityProviderClient, data: ClientAction) -> User:
    """Create the provider user, then the local user and profile in one transaction."""
    first_name = (data.first_name or "").strip()
    last_name = (data.last_name or "").strip()
    if not first_name or not last_name:
        raise ValidationError("Missing first name or last name for manual creation")

    if db.query(User).filter(User.email == data.email).first():
        raise ConflictError(f"A user with email {data.email} already exists")

    try:
        created = identity_provider.create_user(
            email=data.email, first_name=first_name, last_name=last_name, role=Role.CLIENT.value
        )
    except IdentityProviderError as exc:
        raise ValidationError(exc.message, details={"provider_code": exc.code})

    # The user.created webhook may have raced us here; reuse its row.
    user = user_service.get_by_external_id(db, created["id"])
    if user is None:
        user = User(external_id=created["id"])
        db.add(user)
    user.email = data.email
    user.first_name = first_name
    user.last_name = last_name
    user.name = f"{first_name} {last_name}"
    user.role = Role.CLIENT

    profile = user.client_profile
    if profile is None:
        profile = ClientProfile(user=user)
        db.add(profile)
    user_service.apply_profile(profile, data.profile or ClientProfileUpdate())

    try:
        db.commit()
    except Exception:
        db.rollback()
        logger.error(f"Local client creation failed after provider user {created['id']} was created")
        raise
    db.refresh(user)
    logger.info("Created client", extra={"user_id": str(user.id)})
    return user


def list_clients(db: Session) -> list:
    return user_service.list_users(db, role=Role.CLIENT, include_services=True)

