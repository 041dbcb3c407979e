"""
Activation (Billing) Lambda Handler
===================================

Backs the activation page: members look up their subscription by email
and start a Stripe Checkout for a plan.

For On-Call Engineers:
    POST /activation {"action": "status" | "checkout", "email": ..., "plan": ...}

    Common issues:
    - 500 CONFIGURATION_ERROR: STRIPE_SECRET_KEY, identity URL/admin token,
      or ACTIVATION_BASE_URL (SITE_URL/URL) missing
    - 500 PLAN_NOT_CONFIGURED: STRIPE_PRICE_* env var missing for the plan
    - 502 IDENTITY_UNAVAILABLE: identity admin API down or token rotated
    - 409 ACCOUNT_ACTIVE: expected, the member still has time left

For Developers:
    - A status check on a lapsed subscription writes the deactivation back
    - successPath/cancelPath may be site-relative or absolute URLs
    - Stripe substitutes {CHECKOUT_SESSION_ID} in the success URL

Security Notes:
    - Only the masked email is logged
    - The Stripe key is resolved per request (env or Secrets Manager)
"""

import os
from datetime import UTC, datetime
from typing import Any

import stripe
from aws_xray_sdk.core import patch_all, xray_recorder

from src.lambdas.shared.auth.identity import (
    IdentityConfig,
    find_user_by_email,
    update_user,
)
from src.lambdas.shared.auth.stripe_utils import (
    create_checkout_session,
    get_stripe_api_key,
)
from src.lambdas.shared.billing import (
    SubscriptionState,
    build_deactivation_update,
    build_status_response,
    ensure_plan,
)
from src.lambdas.shared.errors import (
    AccountAlreadyActiveError,
    AccountNotFoundError,
    ActivationErrorCode,
    ConfigurationError,
    RequestValidationError,
)
from src.lambdas.shared.logging_utils import get_safe_error_info, mask_email
from src.lambdas.shared.models.activation import ActivationAction, ActivationRequest
from src.lambdas.shared.utils.error_handler import handle_request
from src.lambdas.shared.utils.event_helpers import get_http_method, get_json_body
from src.lambdas.shared.utils.response_builder import (
    CORS_HEADERS,
    error_response,
    json_response,
    no_content_response,
)
from src.lib.logging_utils import log_expected_warning
from src.lib.metrics import configure_lambda_logger, emit_metric

# Patch boto3 for X-Ray tracing
patch_all()

logger = configure_lambda_logger(__name__)

BASE_URL_ENV_KEYS = ("ACTIVATION_BASE_URL", "SITE_URL", "URL")


def resolve_activation_base_url() -> str:
    """Site origin used to build Stripe redirect URLs, without trailing slash.

    Raises:
        ConfigurationError: None of ACTIVATION_BASE_URL, SITE_URL, URL is set
    """
    for key in BASE_URL_ENV_KEYS:
        value = os.environ.get(key)
        if value:
            return value.rstrip("/")
    raise ConfigurationError(
        "Set ACTIVATION_BASE_URL (or SITE_URL/URL) for post-payment redirects."
    )


def join_url(base: str, path: str | None) -> str:
    """Join a site-relative path onto base; absolute URLs pass through.

    Example:
        >>> join_url("https://example.com", "activation/?cancelled=1")
        'https://example.com/activation/?cancelled=1'
        >>> join_url("https://example.com", "https://other.example/x")
        'https://other.example/x'
    """
    if not path:
        return base
    if path.startswith(("http://", "https://")):
        return path
    return f"{base}{path if path.startswith('/') else '/' + path}"


def parse_request(event: dict[str, Any]) -> ActivationRequest:
    """Parse and validate the request body.

    Raises:
        InvalidBodyError: Body is not a JSON object
        RequestValidationError: Unknown action
        ValidationError: Email (or another field) is malformed
    """
    payload = get_json_body(event)
    action = str(payload.get("action") or "").strip().lower()
    if action not in {a.value for a in ActivationAction}:
        raise RequestValidationError(
            "Unknown action",
            code=ActivationErrorCode.UNKNOWN_ACTION,
            details={"details": "Use action=status or action=checkout"},
        )
    return ActivationRequest.model_validate(payload)


@xray_recorder.capture("activation_status")
def handle_status(request: ActivationRequest, now: datetime) -> dict[str, Any]:
    config = IdentityConfig.from_env()
    user = find_user_by_email(config, request.email)
    if user is None:
        log_expected_warning(
            logger,
            "Status requested for unknown account",
            extra={"email": mask_email(request.email)},
        )
        return json_response(
            404,
            {
                "found": False,
                "email": request.email,
                "status": "missing",
                "active": False,
                "code": ActivationErrorCode.ACCOUNT_MISSING.value,
                "message": "No account found for this email address.",
            },
            CORS_HEADERS,
        )

    state = SubscriptionState.from_user(user, now)
    if state.lapsed:
        update = build_deactivation_update(user, reason="expired")
        update_user(config, user.get("id"), update)
        user = {**user, **update}
        logger.info(
            "Lapsed subscription deactivated",
            extra={"email": mask_email(request.email)},
        )
        emit_metric("SubscriptionDeactivated", dimensions={"Reason": "expired"})

    return json_response(
        200, build_status_response(user, request.email, state), CORS_HEADERS
    )


@xray_recorder.capture("activation_checkout")
def handle_checkout(request: ActivationRequest, now: datetime) -> dict[str, Any]:
    api_key = get_stripe_api_key()
    plan = ensure_plan(request.plan)

    config = IdentityConfig.from_env()
    user = find_user_by_email(config, request.email)
    if user is None:
        raise AccountNotFoundError(
            "Account missing",
            details={
                "message": "No account found for this email address. "
                "Contact the administrator."
            },
        )

    state = SubscriptionState.from_user(user, now)
    if state.running:
        raise AccountAlreadyActiveError(
            "Account is already active.",
            details={"status": build_status_response(user, request.email, state)},
        )

    base_url = resolve_activation_base_url()
    try:
        session = create_checkout_session(
            api_key=api_key,
            email=request.email,
            user_id=user.get("id"),
            price_id=plan.price_id,
            plan_key=plan.key,
            success_url=join_url(base_url, request.resolved_success_path),
            cancel_url=join_url(base_url, request.resolved_cancel_path),
        )
    except stripe.StripeError as e:
        logger.error("Stripe checkout creation failed", extra=get_safe_error_info(e))
        return error_response(502, "Payment provider error", CORS_HEADERS)

    emit_metric("CheckoutCreated", dimensions={"Plan": plan.key})
    return json_response(
        200, {"checkoutUrl": session.url, "sessionId": session.id}, CORS_HEADERS
    )


def _handle(event: dict[str, Any], context: Any) -> dict[str, Any]:
    request = parse_request(event)
    now = datetime.now(UTC)
    if request.action is ActivationAction.STATUS:
        return handle_status(request, now)
    return handle_checkout(request, now)


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """Entry point for the activation page endpoint."""
    method = get_http_method(event)
    if method == "OPTIONS":
        return no_content_response(CORS_HEADERS)
    if method != "POST":
        return error_response(405, "Use POST", CORS_HEADERS)
    return handle_request(_handle, event, context, headers=CORS_HEADERS)
