"""Client for the hosted identity provider's backend API."""
import logging
from typing import Optional, Dict, Any

import httpx

from clientportal.config import settings
from clientportal.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)


class IdentityProviderError(Exception):
    """The provider rejected a request (4xx). ``message`` is user-facing."""

    def __init__(self, message: str, status_code: int = 400, code: Optional[str] = None):
        self.message = message
        self.status_code = status_code
        self.code = code
        super().__init__(message)


class IdentityProviderClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        secret_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = (base_url or settings.IDENTITY_API_URL).rstrip("/")
        self.secret_key = secret_key if secret_key is not None else settings.IDENTITY_API_SECRET_KEY
        self.timeout = timeout or settings.IDENTITY_API_TIMEOUT_SECONDS
        self.transport = transport

    def _request(self, method: str, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.secret_key:
            logger.error("IDENTITY_API_SECRET_KEY is not configured")
            raise ExternalServiceError("identity_provider", "Identity provider is not configured")

        headers = {"Authorization": f"Bearer {self.secret_key}", "Content-Type": "application/json"}
        try:
            with httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=self.transport) as client:
                response = client.request(method, path, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            logger.error(f"Identity provider request failed: {method} {path}: {exc}")
            raise ExternalServiceError("identity_provider") from exc

        if response.status_code >= 500:
            logger.error(f"Identity provider error {response.status_code} on {method} {path}")
            raise ExternalServiceError("identity_provider")
        if response.status_code >= 400:
            raise self._error_from(response)
        return response.json() if response.content else {}

    @staticmethod
    def _error_from(response: httpx.Response) -> IdentityProviderError:
        try:
            body = response.json()
        except ValueError:
            body = {}
        errors = body.get("errors") if isinstance(body, dict) else None
        if errors:
            first = errors[0]
            message = first.get("long_message") or first.get("message") or "Identity provider rejected the request"
            return IdentityProviderError(message, response.status_code, first.get("code"))
        return IdentityProviderError("Identity provider rejected the request", response.status_code)

    def create_invitation(self, email: str, role: str, redirect_url: str) -> Dict[str, Any]:
        logger.info(f"Creating identity invitation for {email}")
        return self._request("POST", "/invitations", {
            "email_address": email,
            "redirect_url": redirect_url,
            "public_metadata": {"role": role},
        })

    def create_user(self, email: str, first_name: str, last_name: str, role: str) -> Dict[str, Any]:
        logger.info(f"Creating identity user for {email}")
        return self._request("POST", "/users", {
            "email_address": [email],
            "first_name": first_name,
            "last_name": last_name,
            "public_metadata": {"role": role},
            "skip_password_requirement": True,
        })

    def update_user_role(self, external_id: str, role: str) -> Dict[str, Any]:
        return self._request("PATCH", f"/users/{external_id}/metadata", {
            "public_metadata": {"role": role},
        })


def get_identity_provider() -> IdentityProviderClient:
    """FastAPI dependency; tests override it with a fake."""
    return IdentityProviderClient()
