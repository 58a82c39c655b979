"""Svix-style signature verification for identity provider webhooks."""
import base64
import binascii
import hashlib
import hmac
import logging
import time
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

SIGNATURE_HEADERS = ("svix-id", "svix-timestamp", "svix-signature")


class WebhookVerificationError(Exception):
    pass


def _secret_bytes(secret: str) -> bytes:
    if secret.startswith("whsec_"):
        encoded = secret[len("whsec_"):]
        try:
            return base64.b64decode(encoded + "=" * (-len(encoded) % 4), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise WebhookVerificationError("Malformed webhook signing secret") from exc
    return secret.encode("utf-8")


def sign(secret: str, msg_id: str, timestamp: str, body: bytes) -> str:
    """Return the base64 HMAC-SHA256 signature for a payload."""
    signed_payload = f"{msg_id}.{timestamp}.".encode("utf-8") + body
    digest = hmac.new(_secret_bytes(secret), signed_payload, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def verify(
    body: bytes,
    headers: Mapping[str, str],
    secret: str,
    tolerance_seconds: int = 300,
    now: Optional[int] = None,
) -> None:
    """Raise WebhookVerificationError unless the payload carries a valid v1 signature."""
    msg_id = headers.get("svix-id", "")
    timestamp = headers.get("svix-timestamp", "")
    signature_header = headers.get("svix-signature", "")
    if not msg_id or not timestamp or not signature_header:
        raise WebhookVerificationError("Missing signature headers")

    try:
        sent_at = int(timestamp)
    except (TypeError, ValueError) as exc:
        raise WebhookVerificationError("Malformed timestamp") from exc
    current = int(time.time()) if now is None else now
    if abs(current - sent_at) > tolerance_seconds:
        raise WebhookVerificationError("Timestamp outside tolerance")

    expected = sign(secret, msg_id, timestamp, body)
    # Header format: "v1,<sig> v1,<sig2>"
    for entry in signature_header.split(" "):
        version, _, signature = entry.partition(",")
        if version == "v1" and hmac.compare_digest(signature, expected):
            return
    raise WebhookVerificationError("No matching signature")
