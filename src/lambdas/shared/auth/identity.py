"""Identity provider (GoTrue) admin API helper.

Handles:
- Account lookup by email (admin token)
- Metadata updates (admin token)
- Current-user fetch (the user's own access token)

For On-Call Engineers:
    Common issues:
    1. 401 from /admin/*: admin token rotated, update IDENTITY_ADMIN_TOKEN
    2. Connection errors: check NETLIFY_IDENTITY_URL points at /.netlify/identity
    3. Empty lookup results: email is matched lower-cased

Security Notes:
    - The admin token is never logged
    - Emails are sanitized before logging
    - Metadata updates are read-modify-write; concurrent writers can lose
      updates (no etag support on the admin API)
"""

import logging
import os
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from src.lambdas.shared.errors import (
    ConfigurationError,
    IdentityRequestError,
    RequestValidationError,
)
from src.lambdas.shared.errors.activation_errors import ActivationErrorCode
from src.lambdas.shared.logging_utils import get_safe_error_info, sanitize_for_log

logger = logging.getLogger(__name__)

IDENTITY_URL_ENV_KEYS = ("NETLIFY_IDENTITY_URL", "IDENTITY_URL", "GOTRUE_ENDPOINT")
ADMIN_TOKEN_ENV_KEYS = (
    "IDENTITY_ADMIN_TOKEN",
    "NETLIFY_IDENTITY_ADMIN_TOKEN",
    "GOTRUE_ADMIN_API_TOKEN",
    "GOTRUE_ADMIN_KEY",
)
REQUEST_TIMEOUT_SECONDS = 10.0


def _first_env(keys: tuple[str, ...]) -> str:
    for key in keys:
        value = os.environ.get(key)
        if value:
            return value
    return ""


@dataclass
class IdentityConfig:
    """Identity API configuration from environment."""

    base_url: str
    admin_token: str | None = None

    @classmethod
    def from_env(cls, require_admin: bool = True) -> "IdentityConfig":
        """Create config from environment variables.

        Raises:
            ConfigurationError: If the URL (or a required admin token) is missing
        """
        base_url = _first_env(IDENTITY_URL_ENV_KEYS)
        if not base_url:
            raise ConfigurationError(
                "Missing NETLIFY_IDENTITY_URL (or IDENTITY_URL/GOTRUE_ENDPOINT) "
                "environment variable."
            )
        admin_token = _first_env(ADMIN_TOKEN_ENV_KEYS) or None
        if require_admin and not admin_token:
            raise ConfigurationError(
                "Missing identity admin token. Set one of: "
                + ", ".join(ADMIN_TOKEN_ENV_KEYS)
                + "."
            )
        return cls(base_url=base_url.rstrip("/"), admin_token=admin_token)

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"


def normalize_email(email: Any) -> str:
    """Require a non-blank email and lower-case it."""
    if not isinstance(email, str) or not email.strip():
        raise RequestValidationError(
            "Email address is required.", code=ActivationErrorCode.INVALID_EMAIL
        )
    return email.strip().lower()


def _request(
    config: IdentityConfig,
    method: str,
    path: str,
    *,
    token: str | None = None,
    json_body: dict[str, Any] | None = None,
) -> Any:
    """Send one request and decode the JSON reply.

    Returns:
        Parsed JSON, or None for 204 / empty bodies

    Raises:
        IdentityRequestError: Non-2xx status, transport failure, or bad JSON
    """
    bearer = token or config.admin_token
    headers = {"Authorization": f"Bearer {bearer}", "Accept": "application/json"}
    url = config.url(path)

    try:
        with httpx.Client(timeout=REQUEST_TIMEOUT_SECONDS) as client:
            response = client.request(method, url, headers=headers, json=json_body)
    except httpx.HTTPError as e:
        logger.error(
            "Identity request failed to connect",
            extra={"method": method, **get_safe_error_info(e)},
        )
        raise IdentityRequestError("Identity service unreachable") from e

    if response.status_code >= 400:
        logger.warning(
            "Identity request rejected",
            extra={"method": method, "status": response.status_code},
        )
        raise IdentityRequestError(
            f"Identity request failed ({response.status_code})",
            status=response.status_code,
            body=response.text,
        )

    if response.status_code == 204 or not response.text:
        return None

    try:
        return response.json()
    except ValueError as e:
        logger.error("Identity response is not valid JSON", extra={"method": method})
        raise IdentityRequestError(
            "Failed to parse identity response JSON", status=response.status_code
        ) from e


def find_user_by_email(config: IdentityConfig, email: str) -> dict[str, Any] | None:
    """Look up an account by email.

    Args:
        config: Identity configuration with admin token
        email: Email address (normalized here)

    Returns:
        The first matching user record, or None
    """
    normalized = normalize_email(email)
    data = _request(config, "GET", f"/admin/users?email={quote(normalized)}")

    # GoTrue returns {"users": [...]}; older proxies return a bare list
    users = data.get("users") if isinstance(data, dict) else data
    if not isinstance(users, list) or not users:
        logger.info(
            "Identity user not found",
            extra={"email": sanitize_for_log(normalized)},
        )
        return None
    return users[0]


def update_user(
    config: IdentityConfig, user_id: str, payload: dict[str, Any]
) -> dict[str, Any] | None:
    """Overwrite metadata on an account.

    Args:
        config: Identity configuration with admin token
        user_id: Identity user id
        payload: {"app_metadata": ..., "user_metadata": ...}

    Returns:
        Updated user record as returned by the provider
    """
    if not user_id:
        raise RequestValidationError("User ID is required")
    result = _request(
        config,
        "PUT",
        f"/admin/users/{quote(str(user_id), safe='')}",
        json_body=payload or {},
    )
    logger.info(
        "Identity user updated",
        extra={"user_id": sanitize_for_log(user_id), "fields": sorted(payload or {})},
    )
    return result


def fetch_current_user(config: IdentityConfig, access_token: str) -> dict[str, Any]:
    """Fetch the authoritative record for the token's owner.

    Raises:
        IdentityRequestError: Token rejected or provider unavailable
    """
    data = _request(config, "GET", "/user", token=access_token)
    if not isinstance(data, dict):
        raise IdentityRequestError("Identity returned no user record")
    return data
