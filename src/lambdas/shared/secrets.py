"""
Secrets Manager Helper Module
=============================

Resolves the Stripe API key and webhook signing secret when they are
deployed as Secrets Manager ARNs instead of plain environment variables.

For On-Call Engineers:
    If secrets fail to load, check:
    1. Secret exists: aws secretsmanager describe-secret --secret-id <arn>
    2. Lambda IAM role has secretsmanager:GetSecretValue permission
    3. STRIPE_SECRET_KEY_ARN / STRIPE_WEBHOOK_SECRET_ARN point at the right secret

    Cache has a 5-minute TTL (SECRETS_CACHE_TTL_SECONDS). A rotated webhook
    secret is picked up after the TTL or on the next cold start.

Security Notes:
    - Secret values are never logged, only the secret name
    - Cache is per Lambda container (memory isolation)
"""

import json
import logging
import os
import time
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 300  # 5 minutes

RETRY_CONFIG = Config(
    retries={
        "max_attempts": 3,
        "mode": "adaptive",
    },
    connect_timeout=5,
    read_timeout=10,
)

# Structure: {secret_id: {"value": <parsed_value>, "expires_at": <timestamp>}}
_secrets_cache: dict[str, dict[str, Any]] = {}


def _sanitize_secret_id_for_log(secret_id: str) -> str:
    """
    Reduce a secret ARN or path to its bare name for logging.

    Example:
        >>> _sanitize_secret_id_for_log("prod/membership/stripe")
        'stripe'
        >>> _sanitize_secret_id_for_log(
        ...     "arn:aws:secretsmanager:eu-west-1:123:secret:stripe-webhook-AbC123"
        ... )
        'stripe-webhook'
    """
    if secret_id.startswith("arn:"):
        # arn:aws:secretsmanager:region:account:secret:name-randomsuffix
        parts = secret_id.split(":")
        if len(parts) >= 7:
            name_with_suffix = parts[6]
            return (
                name_with_suffix.rsplit("-", 1)[0]
                if "-" in name_with_suffix
                else name_with_suffix
            )

    return secret_id.split("/")[-1]


def get_secrets_client(region_name: str | None = None) -> Any:
    """Get a Secrets Manager client with retry configuration."""
    region = (
        region_name
        or os.environ.get("AWS_REGION")
        or os.environ.get("AWS_DEFAULT_REGION")
    )
    if not region:
        raise ValueError("AWS_REGION environment variable must be set")

    return boto3.client(
        "secretsmanager",
        region_name=region,
        config=RETRY_CONFIG,
    )


def get_secret(
    secret_id: str,
    region_name: str | None = None,
    force_refresh: bool = False,
) -> dict[str, Any] | str:
    """
    Retrieve a secret from Secrets Manager with caching.

    JSON secrets are returned parsed; plain-string secrets (a bare
    ``sk_live_...`` value) are returned as the string.

    Args:
        secret_id: Secret name or ARN
        region_name: AWS region
        force_refresh: If True, bypass cache and fetch from Secrets Manager

    Raises:
        SecretNotFoundError: If secret doesn't exist
        SecretAccessDeniedError: If Lambda role lacks permission
        SecretRetrievalError: For other Secrets Manager errors
    """
    secret_name = _sanitize_secret_id_for_log(secret_id)

    if not force_refresh:
        cached = _get_from_cache(secret_id)
        if cached is not None:
            logger.debug("Secret retrieved from cache", extra={"secret_name": secret_name})
            return cached

    client = get_secrets_client(region_name)

    try:
        response = client.get_secret_value(SecretId=secret_id)
    except ClientError as e:
        error_code = e.response.get("Error", {}).get("Code", "Unknown")
        logger.error(
            "Failed to retrieve secret",
            extra={"secret_name": secret_name, "error_code": error_code},
        )
        if error_code == "ResourceNotFoundException":
            raise SecretNotFoundError(f"Secret not found: {secret_name}") from e
        if error_code in ("AccessDeniedException", "UnauthorizedAccess"):
            raise SecretAccessDeniedError(
                f"Access denied to secret: {secret_name}"
            ) from e
        raise SecretRetrievalError(f"Failed to retrieve secret: {secret_name}") from e

    secret_string = response.get("SecretString")
    if not secret_string:
        raise SecretRetrievalError(f"Secret is binary, not string: {secret_name}")

    try:
        secret_value: dict[str, Any] | str = json.loads(secret_string)
    except json.JSONDecodeError:
        secret_value = secret_string.strip()

    _set_in_cache(secret_id, secret_value)

    logger.info(
        "Secret retrieved from Secrets Manager", extra={"secret_name": secret_name}
    )
    return secret_value


def clear_cache() -> None:
    """Clear the secrets cache so the next lookup hits Secrets Manager."""
    global _secrets_cache
    _secrets_cache = {}
    logger.debug("Secrets cache cleared")


def _get_from_cache(secret_id: str) -> dict[str, Any] | str | None:
    if secret_id not in _secrets_cache:
        return None

    entry = _secrets_cache[secret_id]
    if time.time() > entry["expires_at"]:
        del _secrets_cache[secret_id]
        return None

    return entry["value"]


def _set_in_cache(secret_id: str, value: dict[str, Any] | str) -> None:
    ttl = int(os.environ.get("SECRETS_CACHE_TTL_SECONDS", DEFAULT_CACHE_TTL_SECONDS))

    _secrets_cache[secret_id] = {
        "value": value,
        "expires_at": time.time() + ttl,
    }


class SecretError(Exception):
    """Base exception for secret-related errors."""

    pass


class SecretNotFoundError(SecretError):
    """Raised when a secret doesn't exist."""

    pass


class SecretAccessDeniedError(SecretError):
    """Raised when access to a secret is denied."""

    pass


class SecretRetrievalError(SecretError):
    """Raised for general secret retrieval errors."""

    pass
