"""Stripe utility functions for checkout and webhook handling."""

import base64
import logging
import os
from typing import Any

import stripe

# Stripe SDK v8+: SignatureVerificationError moved from stripe.error to stripe
from stripe import SignatureVerificationError

from src.lambdas.shared.errors import ConfigurationError
from src.lambdas.shared.logging_utils import sanitize_for_log

logger = logging.getLogger(__name__)


def _resolve_secret(env_key: str, arn_env_key: str, fields: tuple[str, ...]) -> str:
    """Read a Stripe secret from the environment or Secrets Manager.

    The plain env var wins; otherwise the ARN env var is resolved through
    Secrets Manager. Missing both is a configuration error, no fallback.
    Lazy-loaded to allow module import during testing.
    """
    value = os.environ.get(env_key, "")
    if value:
        return value

    secret_arn = os.environ.get(arn_env_key, "")
    if not secret_arn:
        raise ConfigurationError(f"{env_key} (or {arn_env_key}) is not set")

    # Import here to avoid circular imports
    from src.lambdas.shared.secrets import SecretError, get_secret

    try:
        secret_data = get_secret(secret_arn)
    except SecretError as e:
        raise ConfigurationError(f"{arn_env_key} could not be resolved") from e

    # Handle both formats: {"webhook_secret": "..."} or {"STRIPE_WEBHOOK_SECRET": "..."}
    if isinstance(secret_data, dict):
        for field in fields:
            if secret_data.get(field):
                return secret_data[field]
        raise ConfigurationError(f"Secret for {env_key} has none of {list(fields)}")
    return str(secret_data)


def get_stripe_api_key() -> str:
    return _resolve_secret(
        "STRIPE_SECRET_KEY", "STRIPE_SECRET_KEY_ARN", ("secret_key", "STRIPE_SECRET_KEY")
    )


def get_webhook_secret() -> str:
    return _resolve_secret(
        "STRIPE_WEBHOOK_SECRET",
        "STRIPE_WEBHOOK_SECRET_ARN",
        ("webhook_secret", "STRIPE_WEBHOOK_SECRET"),
    )


def decode_webhook_body(event: dict[str, Any]) -> bytes:
    """Return the raw request body bytes, undoing API Gateway base64."""
    body = event.get("body") or ""
    if event.get("isBase64Encoded"):
        return base64.b64decode(body)
    return body.encode("utf-8") if isinstance(body, str) else body


def verify_stripe_signature(
    payload: bytes, signature: str, secret: str
) -> stripe.Event:
    """Verify Stripe webhook signature and construct event.

    Args:
        payload: Raw request body bytes
        signature: Value of stripe-signature header
        secret: Webhook signing secret

    Returns:
        Verified Stripe Event object

    Raises:
        SignatureVerificationError: If signature is invalid
        ValueError: If payload cannot be parsed
    """
    try:
        event = stripe.Webhook.construct_event(
            payload=payload,
            sig_header=signature,
            secret=secret,
        )
        logger.info(
            "stripe_signature_verified",
            extra={"event_id": event.id, "event_type": event.type},
        )
        return event
    except SignatureVerificationError as e:
        logger.warning(
            "stripe_signature_invalid",
            extra={"error": str(e)},
        )
        raise


def extract_checkout_email(session: Any) -> str | None:
    """Extract the purchaser's email from a Checkout Session.

    Lookup order: metadata.email, customer_details.email, customer_email.

    Args:
        session: Stripe Checkout Session object or dict

    Returns:
        Lower-cased email, or None if absent
    """
    if not session:
        return None
    metadata = session.get("metadata") or {}
    details = session.get("customer_details") or {}
    for candidate in (
        metadata.get("email"),
        details.get("email"),
        session.get("customer_email"),
    ):
        if candidate:
            return str(candidate).lower()

    logger.warning(
        "stripe_checkout_missing_email",
        extra={"session_id": sanitize_for_log(session.get("id", "unknown"))},
    )
    return None


def extract_plan_key(session: Any) -> str | None:
    """Extract the plan key stored in Checkout Session metadata."""
    metadata = (session or {}).get("metadata") or {}
    return metadata.get("plan_key") or None


def create_checkout_session(
    *,
    api_key: str,
    email: str,
    user_id: str | None,
    price_id: str,
    plan_key: str,
    success_url: str,
    cancel_url: str,
) -> stripe.checkout.Session:
    """Create a one-off payment Checkout Session for a plan."""
    session = stripe.checkout.Session.create(
        api_key=api_key,
        mode="payment",
        customer_email=email,
        client_reference_id=user_id,
        allow_promotion_codes=True,
        success_url=success_url,
        cancel_url=cancel_url,
        line_items=[{"price": price_id, "quantity": 1}],
        metadata={"email": email, "plan_key": plan_key},
    )
    logger.info(
        "stripe_checkout_created",
        extra={"session_id": session.id, "plan_key": plan_key},
    )
    return session
