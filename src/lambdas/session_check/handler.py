"""Session check endpoint polled by member pages.

GET with ``Authorization: Bearer <user token>`` and ``X-Session-Id`` (the
session id cached at login). Responds with the session verdict and the
timed-access summary used by the "time left" page:

    {"session": {"ok", "reason", "redirect", "verified"},
     "timed_access": {...} | null}

The verdict is always 200; the page acts on ``ok``/``redirect``.
"""

from datetime import UTC, datetime
from typing import Any

from aws_xray_sdk.core import patch_all

from src.lambdas.shared.auth.identity import IdentityConfig
from src.lambdas.shared.auth.session_guard import SessionMonitor, summarize_timed_access
from src.lambdas.shared.logging_utils import redact_sensitive_fields
from src.lambdas.shared.utils.error_handler import handle_request
from src.lambdas.shared.utils.event_helpers import get_header, get_http_method
from src.lambdas.shared.utils.response_builder import (
    error_response,
    json_response,
    no_content_response,
)
from src.lib.metrics import configure_lambda_logger, get_correlation_id

patch_all()

logger = configure_lambda_logger(__name__)

SESSION_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Authorization, X-Session-Id",
}


def extract_bearer_token(event: dict[str, Any]) -> str | None:
    header = get_header(event, "authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _handle(event: dict[str, Any], context: Any) -> dict[str, Any]:
    now = datetime.now(UTC)
    monitor = SessionMonitor(
        config=IdentityConfig.from_env(require_admin=False),
        access_token=extract_bearer_token(event),
        local_session_id=get_header(event, "x-session-id") or None,
    )
    verdict = monitor.check(now)

    if not verdict.ok:
        logger.info(
            "Session check ended session",
            extra={
                "correlation_id": get_correlation_id("session-check", context),
                "reason": verdict.reason.value,
                "headers": redact_sensitive_fields(event.get("headers") or {}),
            },
        )

    summary = None
    if monitor.last_user is not None and verdict.verified:
        summary = summarize_timed_access(monitor.last_user, now).to_dict()

    return json_response(
        200,
        {"session": verdict.to_dict(), "timed_access": summary},
        SESSION_CORS_HEADERS,
    )


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    method = get_http_method(event)
    if method == "OPTIONS":
        return no_content_response(SESSION_CORS_HEADERS)
    if method != "GET":
        return error_response(405, "Use GET", SESSION_CORS_HEADERS)
    return handle_request(_handle, event, context, headers=SESSION_CORS_HEADERS)
