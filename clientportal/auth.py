"""Verification of session tokens issued by the hosted identity provider."""
import logging
from functools import lru_cache
from typing import Optional

import jwt

from clientportal.config import settings

logger = logging.getLogger(__name__)


@lru_cache(maxsize=4)
def _jwks_client(url: str) -> jwt.PyJWKClient:
    return jwt.PyJWKClient(url)


def _signing_key(token: str):
    if settings.IDENTITY_JWT_KEY:
        return settings.IDENTITY_JWT_KEY
    if settings.IDENTITY_JWKS_URL:
        return _jwks_client(settings.IDENTITY_JWKS_URL).get_signing_key_from_jwt(token).key
    raise jwt.InvalidTokenError("No session token verification key configured")


def decode_session_token(token: str) -> Optional[dict]:
    """
    Decode and verify a provider session JWT.

    Returns the claims, or None when the token is invalid, expired or cannot
    be verified. ``sub`` carries the provider's user id.
    """
    options = {"require": ["sub", "exp"]}
    try:
        return jwt.decode(
            token,
            _signing_key(token),
            algorithms=settings.jwt_algorithms_list,
            issuer=settings.IDENTITY_JWT_ISSUER,
            audience=settings.IDENTITY_JWT_AUDIENCE,
            options={**options, "verify_aud": bool(settings.IDENTITY_JWT_AUDIENCE)},
        )
    except jwt.PyJWKClientError as e:
        logger.warning(f"Could not fetch session signing key: {e}")
        return None
    except jwt.InvalidTokenError as e:
        logger.info(f"Rejected session token: {e}")
        return None
