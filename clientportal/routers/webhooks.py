from typing import Dict, Any
import json
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from clientportal.config import settings
from clientportal.db import get_db
from clientportal.exceptions import ValidationError, AppException
from clientportal.rate_limit import limiter, WEBHOOK_RATE_LIMIT
from clientportal.services import user_service
from clientportal.services.webhook_verifier import SIGNATURE_HEADERS, WebhookVerificationError, verify


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["Webhooks"])


@router.post("/identity-provider")
@limiter.limit(WEBHOOK_RATE_LIMIT)
async def receive_identity_webhook(request: Request, db: Session = Depends(get_db)) -> Dict[str, Any]:
    """Mirror user lifecycle events from the identity provider."""
    if not settings.IDENTITY_WEBHOOK_SECRET:
        logger.error("IDENTITY_WEBHOOK_SECRET is not configured")
        raise AppException("WEBHOOK_NOT_CONFIGURED", "Webhook secret is not configured", status_code=500)

    headers = {name: request.headers.get(name, "") for name in SIGNATURE_HEADERS}
    if not all(headers.values()):
        raise ValidationError("Missing signature headers")

    body = await request.body()
    try:
        verify(body, headers, settings.IDENTITY_WEBHOOK_SECRET, settings.WEBHOOK_TOLERANCE_SECONDS)
    except WebhookVerificationError as exc:
        logger.warning(f"Identity webhook rejected: {exc}", extra={"path": request.url.path})
        raise ValidationError("Invalid webhook signature")

    try:
        event = json.loads(body)
    except ValueError:
        raise ValidationError("Webhook body is not valid JSON")
    if not isinstance(event, dict):
        raise ValidationError("Webhook body must be a JSON object")

    event_type = event.get("type")
    data = event.get("data") or {}
    if not isinstance(data, dict):
        raise ValidationError("Webhook data must be a JSON object")

    if event_type in ("user.created", "user.updated"):
        user = user_service.upsert_from_identity(db, data)
        logger.info(f"Identity webhook {event_type} synced", extra={"user_id": str(user.id)})
    elif event_type == "user.deleted":
        external_id = data.get("id")
        if not external_id:
            raise ValidationError("Event has no user id")
        removed = user_service.delete_by_external_id(db, external_id)
        logger.info(f"Identity webhook user.deleted processed (removed={removed})")
    else:
        logger.info(f"Ignoring identity webhook event {event_type}")

    return {"received": True}
