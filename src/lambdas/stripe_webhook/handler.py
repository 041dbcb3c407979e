"""
Stripe Webhook Lambda Handler
=============================

Receives Stripe Checkout events and writes the resulting subscription
state onto the identity account.

For On-Call Engineers:
    Handled events:
    - checkout.session.completed: extend subscription, add 'active'
    - checkout.session.async_payment_succeeded: same as completed
    - checkout.session.expired: deactivate if it was the last session
    Everything else is acknowledged with 200 and ignored.

    Common issues:
    - 400 "signature verification failed": STRIPE_WEBHOOK_SECRET does not
      match the endpoint's signing secret in the Stripe dashboard
    - 500 responses: Stripe retries with backoff for up to 3 days. Check
      PLAN_NOT_CONFIGURED and identity API errors in the logs
    - WebhookRejected metric spiking: someone is probing the endpoint

Security Notes:
    - Nothing is written before the signature is verified
    - Raw body bytes are verified as received (base64 undone first)
"""

from datetime import UTC, datetime
from typing import Any

from aws_xray_sdk.core import patch_all, xray_recorder
from stripe import SignatureVerificationError

from src.lambdas.shared.auth.identity import (
    IdentityConfig,
    find_user_by_email,
    update_user,
)
from src.lambdas.shared.auth.stripe_utils import (
    decode_webhook_body,
    extract_checkout_email,
    extract_plan_key,
    get_stripe_api_key,
    get_webhook_secret,
    verify_stripe_signature,
)
from src.lambdas.shared.billing import (
    build_activation_update,
    build_expiry_update,
    ensure_plan,
)
from src.lambdas.shared.errors import ActivationErrorCode, ConfigurationError
from src.lambdas.shared.logging_utils import (
    get_safe_error_info,
    mask_email,
    redact_sensitive_fields,
    sanitize_for_log,
)
from src.lambdas.shared.utils.event_helpers import get_header
from src.lambdas.shared.utils.response_builder import error_response, json_response
from src.lib.logging_utils import log_expected_warning
from src.lib.metrics import (
    Timer,
    configure_lambda_logger,
    emit_metric,
    get_correlation_id,
)

# Patch boto3 for X-Ray tracing
patch_all()

logger = configure_lambda_logger(__name__)

ACTIVATING_EVENTS = frozenset(
    {"checkout.session.completed", "checkout.session.async_payment_succeeded"}
)
EXPIRED_EVENT = "checkout.session.expired"


@xray_recorder.capture("handle_checkout_paid")
def handle_checkout_paid(
    session: dict[str, Any], config: IdentityConfig, now: datetime
) -> bool:
    """Extend the purchaser's subscription for a paid session.

    Returns:
        True when the account was updated

    Raises:
        PlanNotFoundError / PlanConfigurationError: Plan metadata unusable
        IdentityRequestError: Identity API failure
    """
    email = extract_checkout_email(session)
    plan_key = extract_plan_key(session)
    if not email or not plan_key:
        log_expected_warning(
            logger,
            "Checkout session missing email or plan metadata",
            extra={"session_id": sanitize_for_log(session.get("id", ""))},
        )
        return False

    plan = ensure_plan(plan_key)

    user = find_user_by_email(config, email)
    if user is None:
        log_expected_warning(
            logger,
            "Webhook user not found",
            extra={"email": mask_email(email)},
        )
        return False

    update = build_activation_update(user, plan, session, now)
    update_user(config, user.get("id"), update)

    logger.info(
        "Subscription activated",
        extra={
            "email": mask_email(email),
            "plan_key": plan.key,
            "expires_at": update["user_metadata"]["subscription"].get("expires_at"),
        },
    )
    emit_metric("SubscriptionActivated", dimensions={"Plan": plan.key})
    return True


@xray_recorder.capture("handle_checkout_expired")
def handle_checkout_expired(session: dict[str, Any], config: IdentityConfig) -> bool:
    """Deactivate the account when its latest checkout session expired."""
    email = extract_checkout_email(session)
    if not email:
        return False
    user = find_user_by_email(config, email)
    if user is None:
        return False

    update = build_expiry_update(user, session.get("id"))
    if update is None:
        logger.debug(
            "Expired session is not the latest, ignoring",
            extra={"session_id": sanitize_for_log(session.get("id", ""))},
        )
        return False

    update_user(config, user.get("id"), update)
    logger.info("Subscription deactivated", extra={"email": mask_email(email)})
    emit_metric("SubscriptionDeactivated", dimensions={"Reason": "session_expired"})
    return True


def dispatch_event(stripe_event: Any, now: datetime) -> None:
    """Route a verified Stripe event to its handler."""
    event_type = stripe_event["type"]
    session = stripe_event["data"]["object"]

    if event_type in ACTIVATING_EVENTS:
        handle_checkout_paid(session, IdentityConfig.from_env(), now)
    elif event_type == EXPIRED_EVENT:
        handle_checkout_expired(session, IdentityConfig.from_env())
    else:
        logger.info(
            "Unhandled Stripe event type",
            extra={"event_type": sanitize_for_log(event_type)},
        )


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """Verify and process one Stripe webhook delivery.

    Returns:
        200 {"received": true} on success or for ignored event types,
        400 for a missing or invalid signature, 500 on configuration or
        processing failures (Stripe retries)
    """
    correlation_id = get_correlation_id("stripe-webhook", context)

    try:
        get_stripe_api_key()
        webhook_secret = get_webhook_secret()
    except ConfigurationError as e:
        logger.error(
            "Stripe webhook not configured",
            extra={"correlation_id": correlation_id, "error": str(e)},
        )
        return error_response(500, "Stripe not configured")

    signature = get_header(event, "stripe-signature")
    if not signature:
        return error_response(400, "Missing stripe-signature header")

    try:
        stripe_event = verify_stripe_signature(
            decode_webhook_body(event), signature, webhook_secret
        )
    except (SignatureVerificationError, ValueError) as e:
        logger.warning(
            "Stripe webhook rejected",
            extra={
                "correlation_id": correlation_id,
                "headers": redact_sensitive_fields(event.get("headers") or {}),
                **get_safe_error_info(e),
            },
        )
        emit_metric("WebhookRejected")
        return error_response(
            400,
            "Webhook signature verification failed",
            code=ActivationErrorCode.SIGNATURE_INVALID.value,
            **get_safe_error_info(e),
        )

    logger.info(
        "Stripe event received",
        extra={
            "correlation_id": correlation_id,
            "event_id": sanitize_for_log(stripe_event["id"]),
            "event_type": stripe_event["type"],
        },
    )

    try:
        with Timer("WebhookLatencyMs", dimensions={"EventType": stripe_event["type"]}):
            dispatch_event(stripe_event, datetime.now(UTC))
    except Exception as e:
        logger.error(
            "Stripe webhook handling failed",
            extra={
                "correlation_id": correlation_id,
                "event_type": stripe_event["type"],
                **get_safe_error_info(e),
            },
        )
        return error_response(500, "Internal error processing webhook")

    return json_response(200, {"received": True})
