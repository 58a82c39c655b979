import logging
from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload
from clientportal.models import (
    User, Role, ClientProfile, SocialMediaProfile, Service, ServiceStatus,
    FormSubmission, ServiceRequest,
)
from clientportal.rbac import parse_role
from clientportal.exceptions import NotFoundError, ConflictError, ValidationError
from clientportal.schemas import ClientProfileUpdate
from typing import Optional, List, Dict, Any
from uuid import UUID

logger = logging.getLogger(__name__)


def _full_name(first_name: Optional[str], last_name: Optional[str]) -> Optional[str]:
    return f"{first_name or ''} {last_name or ''}".strip() or None


def get_by_external_id(db: Session, external_id: str) -> Optional[User]:
    return db.query(User).filter(User.external_id == external_id).first()


def get_or_create_from_claims(db: Session, external_id: str, claims: Dict[str, Any]) -> User:
    """Find the local mirror of a provider user, creating it as CLIENT on first sight."""
    user = get_by_external_id(db, external_id)
    if user:
        return user

    first_name = claims.get("first_name")
    last_name = claims.get("last_name")
    user = User(
        external_id=external_id,
        email=claims.get("email") or "",
        first_name=first_name,
        last_name=last_name,
        name=claims.get("name") or _full_name(first_name, last_name),
        role=Role.CLIENT,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Created local user on first request", extra={"user_id": str(user.id)})
    return user


# ============= Webhook sync =============

def primary_email(data: Dict[str, Any]) -> Optional[str]:
    addresses = data.get("email_addresses") or []
    primary_id = data.get("primary_email_address_id")
    for address in addresses:
        if primary_id and address.get("id") == primary_id and address.get("email_address"):
            return address["email_address"]
    for address in addresses:
        if address.get("email_address"):
            return address["email_address"]
    return None


def role_from_metadata(data: Dict[str, Any]) -> Role:
    raw = (data.get("public_metadata") or {}).get("role")
    if raw is None:
        return Role.CLIENT
    role = parse_role(raw)
    if role is None:
        logger.warning(f"Unknown role in identity metadata: {raw!r}; defaulting to CLIENT")
        return Role.CLIENT
    return role


def upsert_from_identity(db: Session, data: Dict[str, Any]) -> User:
    """Create or update the mirror for a user.created / user.updated event."""
    external_id = data.get("id")
    if not external_id:
        raise ValidationError("Event has no user id")
    email = primary_email(data)
    if not email:
        raise ValidationError("No email found")

    first_name = data.get("first_name")
    last_name = data.get("last_name")
    role = role_from_metadata(data)

    user = get_by_external_id(db, external_id)
    if user is None:
        user = User(external_id=external_id)
        db.add(user)
    elif role != Role.CLIENT and user.client_profile is not None:
        logger.warning(
            f"Identity metadata role {role.value} ignored for a user with a client profile",
            extra={"user_id": str(user.id)},
        )
        role = Role.CLIENT
    user.email = email
    user.first_name = first_name
    user.last_name = last_name
    user.name = _full_name(first_name, last_name)
    user.role = role

    db.commit()
    db.refresh(user)
    return user


def delete_by_external_id(db: Session, external_id: str) -> bool:
    """Remove a user and everything they own in one transaction. Missing users are a no-op."""
    from clientportal.services.service_instance_service import delete_service_rows

    user = get_by_external_id(db, external_id)
    if user is None:
        return False

    try:
        service_ids = [row.id for row in db.query(Service.id).filter(Service.client_id == user.id).all()]
        delete_service_rows(db, service_ids)
        db.query(ServiceRequest).filter(ServiceRequest.client_id == user.id).delete(synchronize_session=False)
        db.query(FormSubmission).filter(FormSubmission.user_id == user.id).delete(synchronize_session=False)
        profile_ids = [row.id for row in db.query(ClientProfile.id).filter(ClientProfile.user_id == user.id).all()]
        if profile_ids:
            db.query(SocialMediaProfile).filter(SocialMediaProfile.profile_id.in_(profile_ids)).delete(synchronize_session=False)
            db.query(ClientProfile).filter(ClientProfile.id.in_(profile_ids)).delete(synchronize_session=False)
        db.query(User).filter(User.id == user.id).delete(synchronize_session=False)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.expire_all()
    return True


# ============= Queries =============

def list_users(db: Session, role: Optional[Role] = None, include_services: bool = False) -> List[Dict[str, Any]]:
    query = db.query(User).options(selectinload(User.client_profile).selectinload(ClientProfile.social_media_profiles))
    if role:
        query = query.filter(User.role == role)
    users = query.order_by(User.created_at.desc()).all()

    counts: Dict[UUID, int] = {}
    if include_services:
        rows = (
            db.query(Service.client_id, func.count(Service.id))
            .filter(Service.status == ServiceStatus.ACTIVE)
            .group_by(Service.client_id)
            .all()
        )
        counts = {client_id: count for client_id, count in rows}

    return [
        user_projection(user, active_service_count=counts.get(user.id, 0) if include_services else None)
        for user in users
    ]


def user_projection(user: User, active_service_count: Optional[int] = None, services: Optional[list] = None) -> Dict[str, Any]:
    result = {
        "id": user.id,
        "external_id": user.external_id,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "name": user.name,
        "display_name": user.display_name,
        "role": user.role,
        "created_at": user.created_at,
        "updated_at": user.updated_at,
        "client_profile": user.client_profile,
        "active_service_count": active_service_count,
    }
    if services is not None:
        result["services"] = services
    return result


def get_user_detail(db: Session, user_id: UUID) -> Dict[str, Any]:
    user = (
        db.query(User)
        .options(selectinload(User.client_profile).selectinload(ClientProfile.social_media_profiles))
        .filter(User.id == user_id)
        .first()
    )
    if not user:
        raise NotFoundError("User", str(user_id))

    services = (
        db.query(Service)
        .options(selectinload(Service.template))
        .filter(Service.client_id == user.id)
        .order_by(Service.created_at.desc())
        .all()
    )
    active = sum(1 for service in services if service.status == ServiceStatus.ACTIVE)
    return user_projection(user, active_service_count=active, services=services)


def update_role(db: Session, user_id: UUID, role: Role, identity_provider) -> User:
    """Change a user's role locally and in the provider's public metadata."""
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User", str(user_id))
    if user.role == role:
        return user

    if user.role == Role.ADMIN:
        admins = db.query(func.count(User.id)).filter(User.role == Role.ADMIN).scalar()
        if admins <= 1:
            raise ConflictError("Cannot demote the last admin")
    if user.client_profile is not None and role != Role.CLIENT:
        raise ConflictError("User has a client profile and must remain a CLIENT")

    identity_provider.update_user_role(user.external_id, role.value)

    user.role = role
    db.commit()
    db.refresh(user)
    logger.info(f"Role changed to {role.value}", extra={"user_id": str(user.id)})
    return user


# ============= Client profile =============

def get_profile(db: Session, user: User) -> Optional[ClientProfile]:
    return (
        db.query(ClientProfile)
        .options(selectinload(ClientProfile.social_media_profiles))
        .filter(ClientProfile.user_id == user.id)
        .first()
    )


def apply_profile(profile: ClientProfile, data: ClientProfileUpdate) -> None:
    """Set scalar fields and, when given, replace the social media list."""
    updates = data.model_dump(exclude_unset=True, exclude={"social_media_profiles"})
    for key, value in updates.items():
        setattr(profile, key, value)

    if data.social_media_profiles is not None:
        profile.social_media_profiles = [
            SocialMediaProfile(platform=item.platform, url=item.url)
            for item in data.social_media_profiles
        ]


def upsert_profile(db: Session, user: User, data: ClientProfileUpdate) -> ClientProfile:
    profile = get_profile(db, user)
    if profile is None:
        profile = ClientProfile(user_id=user.id)
        db.add(profile)
    apply_profile(profile, data)
    db.commit()
    db.refresh(profile)
    return profile
