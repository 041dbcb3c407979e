"""Identity signup webhook.

Adds the default role (SIGNUP_DEFAULT_ROLE, ``member`` unless set to
``pending``) to new accounts. Signup must never be blocked by this hook:
any failure answers 200 with an empty body, which the identity provider
treats as "no changes".
"""

import os
from typing import Any

from aws_xray_sdk.core import patch_all

from src.lambdas.shared.auth.enums import SIGNUP_DEFAULT_ROLES, Role
from src.lambdas.shared.logging_utils import get_safe_error_info, sanitize_for_log
from src.lambdas.shared.models.account import unique_roles
from src.lambdas.shared.utils.event_helpers import get_json_body
from src.lambdas.shared.utils.response_builder import json_response
from src.lib.logging_utils import log_expected_warning
from src.lib.metrics import configure_lambda_logger, emit_metric, get_correlation_id

patch_all()

logger = configure_lambda_logger(__name__)


def get_default_role() -> str:
    """Configured default signup role; unknown values fall back to member."""
    configured = os.environ.get("SIGNUP_DEFAULT_ROLE", "").strip().lower()
    if not configured:
        return Role.MEMBER.value
    if configured not in SIGNUP_DEFAULT_ROLES:
        log_expected_warning(
            logger,
            "Unsupported SIGNUP_DEFAULT_ROLE, using member",
            extra={"configured": sanitize_for_log(configured)},
        )
        return Role.MEMBER.value
    return configured


def build_signup_metadata(user: dict[str, Any], default_role: str) -> dict[str, Any]:
    """Existing app_metadata with the default role appended once."""
    app_meta = dict(user.get("app_metadata") or {})
    roles = unique_roles(app_meta.get("roles"))
    if default_role not in roles:
        roles.append(default_role)
    app_meta["roles"] = roles
    return app_meta


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    correlation_id = get_correlation_id("signup", context)

    try:
        user = get_json_body(event).get("user") or {}
        if not isinstance(user, dict) or not isinstance(
            user.get("app_metadata") or {}, dict
        ):
            raise TypeError("user record is not an object")

        default_role = get_default_role()
        app_metadata = build_signup_metadata(user, default_role)
    except Exception as e:
        logger.error(
            "Signup hook failed, passing through",
            extra={"correlation_id": correlation_id, **get_safe_error_info(e)},
        )
        return json_response(200, {})

    logger.info(
        "Signup role assigned",
        extra={
            "correlation_id": correlation_id,
            "user_id": sanitize_for_log(user.get("id", "")),
            "role": default_role,
        },
    )
    emit_metric("SignupRoleAssigned", dimensions={"Role": default_role})
    return json_response(200, {"app_metadata": app_metadata})
