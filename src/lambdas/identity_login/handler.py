"""
Identity Login Webhook
======================

Called synchronously by the identity provider (GoTrue) during its login
transaction. Resolves the account's access state and returns a replacement
``app_metadata`` which the provider persists before issuing the token.

For On-Call Engineers:
    Common issues:
    - Members locked out after a timed role expired: expected, the injected
      'active' role is revoked. Check app_metadata.timed_access.expires_at
    - "Logged out elsewhere" loops: session_id rotates on every login; two
      devices logging in alternately will keep evicting each other
    - 500 responses: the provider aborts the login. Look for
      "Login resolution failed" in the logs

For Developers:
    Request:  {"event": "login", "user": {"app_metadata": ..., "user_metadata": ...}}
    Response: {"app_metadata": {...merged...}}

    Set ENFORCE_LOGIN_BLOCK=true to refuse logins for inactive accounts
    with 401 instead of letting the browser redirect them.

Security Notes:
    - Never echo exception text to the provider
    - The rotated session id is the single-session enforcement token
"""

import os
from datetime import UTC, datetime
from typing import Any

from aws_xray_sdk.core import patch_all, xray_recorder

from src.lambdas.shared.auth.access import AccessDecision, resolve_login_access
from src.lambdas.shared.logging_utils import get_safe_error_info, sanitize_for_log
from src.lambdas.shared.utils.event_helpers import get_json_body
from src.lambdas.shared.utils.response_builder import error_response, json_response
from src.lib.metrics import configure_lambda_logger, emit_metric, get_correlation_id

# Patch boto3 for X-Ray tracing
patch_all()

logger = configure_lambda_logger(__name__)

TRUTHY_VALUES = frozenset({"1", "true", "yes", "on"})


def login_block_enforced() -> bool:
    return os.environ.get("ENFORCE_LOGIN_BLOCK", "").strip().lower() in TRUTHY_VALUES


def _extract_user(event: dict[str, Any]) -> dict[str, Any]:
    """Pull the user record out of the webhook body.

    Raises:
        TypeError: user or app_metadata is not an object
    """
    user = get_json_body(event).get("user") or {}
    if not isinstance(user, dict):
        raise TypeError("user must be an object")
    if not isinstance(user.get("app_metadata") or {}, dict):
        raise TypeError("app_metadata must be an object")
    return user


@xray_recorder.capture("resolve_login")
def _resolve(user: dict[str, Any]) -> AccessDecision:
    return resolve_login_access(user, datetime.now(UTC))


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """Handle the identity provider's login webhook.

    Args:
        event: Proxy integration event whose body carries the user record
        context: Lambda context

    Returns:
        200 with the merged app_metadata, 401 when enforcement blocks an
        inactive account, 500 on any failure
    """
    correlation_id = get_correlation_id("login", context)

    try:
        user = _extract_user(event)
        decision = _resolve(user)
        app_metadata = decision.to_app_metadata(user.get("app_metadata") or {})
    except Exception as e:
        logger.error(
            "Login resolution failed",
            extra={"correlation_id": correlation_id, **get_safe_error_info(e)},
        )
        return error_response(500, "Login processing failed")

    user_id = sanitize_for_log(user.get("id", ""))
    source = decision.primary_source.value if decision.primary_source else "none"

    if not decision.active and login_block_enforced():
        logger.info(
            "Login blocked for inactive account",
            extra={"correlation_id": correlation_id, "user_id": user_id},
        )
        emit_metric("LoginBlocked")
        return error_response(401, "Account is not active")

    logger.info(
        "Login resolved",
        extra={
            "correlation_id": correlation_id,
            "user_id": user_id,
            "active": decision.active,
            "source": source,
            "injected_active": decision.injected_active,
            "roles": decision.roles,
        },
    )
    emit_metric("LoginResolved", dimensions={"Source": source})
    if decision.window_minted:
        emit_metric("TimedWindowMinted", dimensions={"Role": decision.timed_access.role})

    return json_response(200, {"app_metadata": app_metadata})
