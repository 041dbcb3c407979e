"""
Pytest Configuration and Shared Fixtures
=========================================

Common fixtures used across all test modules.

For On-Call Engineers:
    If tests fail with AWS credential errors:
    1. Ensure moto is properly mocking (check mock_aws usage)
    2. Verify AWS env vars are set in fixtures

    If a handler test hits the network:
    1. Identity calls must be patched at the handler module
       (e.g. patch("src.lambdas.activation.handler.find_user_by_email"))
    2. Stripe calls must be patched at stripe_utils or the handler

For Developers:
    - make_user() builds identity records in the provider's shape
    - api_event() builds proxy integration events
    - CloudWatch is replaced with a MagicMock for every test (mock_cloudwatch)
    - Use assert_error_logged / assert_warning_logged for expected logs
"""

import logging
import os
from typing import Any
from unittest.mock import MagicMock, patch

import orjson
import pytest

# Set default test environment variables at module load time
# This allows test files to import modules that read env vars at import time
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("AWS_REGION", "us-east-1")
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
os.environ.setdefault("ENVIRONMENT", "test")

# Disable X-Ray SDK in tests to suppress "cannot find the current segment" errors.
os.environ.setdefault("AWS_XRAY_SDK_ENABLED", "false")

os.environ.setdefault(
    "NETLIFY_IDENTITY_URL", "https://members.example.com/.netlify/identity"
)
os.environ.setdefault("IDENTITY_ADMIN_TOKEN", "test-admin-token")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_unit")  # pragma: allowlist secret
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret_for_unit_tests")
os.environ.setdefault("STRIPE_PRICE_1DAY", "price_day")
os.environ.setdefault("STRIPE_PRICE_1MONTH", "price_month")
os.environ.setdefault("STRIPE_PRICE_6MONTHS", "price_halfyear")
os.environ.setdefault("STRIPE_PRICE_1YEAR", "price_year")
os.environ.setdefault("ACTIVATION_BASE_URL", "https://members.example.com")


@pytest.fixture(autouse=True)
def reset_env_vars():
    """
    Reset environment variables after each test.

    Ensures tests don't pollute each other's environment.
    """
    original_env = os.environ.copy()

    yield

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture(autouse=True)
def mock_cloudwatch():
    """Replace the CloudWatch client so emit_metric never leaves the process."""
    client = MagicMock()
    with patch("src.lib.metrics.get_cloudwatch_client", return_value=client):
        yield client


@pytest.fixture
def aws_credentials():
    """
    Set up mock AWS credentials for moto.

    Use this fixture when testing AWS SDK calls.
    """
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_REGION"] = "us-east-1"

    yield


@pytest.fixture
def lambda_context():
    """Minimal Lambda context object."""
    context = MagicMock()
    context.aws_request_id = "req-test-123"
    context.function_name = "test-function"
    return context


def make_user(
    roles: list[Any] | None = None,
    status: str | None = None,
    app_status: str | None = None,
    timed_access: dict[str, Any] | None = None,
    session_id: str | None = None,
    subscription: dict[str, Any] | None = None,
    user_id: str = "user-123",
    email: str = "member@example.com",
    **app_extra: Any,
) -> dict[str, Any]:
    """
    Build an identity user record in the provider's shape.

    Example:
        make_user(roles=["member", "week"], status="active")
    """
    app_metadata: dict[str, Any] = {"roles": list(roles or []), **app_extra}
    if app_status is not None:
        app_metadata["status"] = app_status
    if timed_access is not None:
        app_metadata["timed_access"] = timed_access
    if session_id is not None:
        app_metadata["session_id"] = session_id

    user_metadata: dict[str, Any] = {}
    if status is not None:
        user_metadata["status"] = status
    if subscription is not None:
        user_metadata["subscription"] = subscription

    return {
        "id": user_id,
        "email": email,
        "app_metadata": app_metadata,
        "user_metadata": user_metadata,
    }


def api_event(
    method: str = "POST",
    body: Any = None,
    headers: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Build an API Gateway proxy integration event."""
    if body is not None and not isinstance(body, str | bytes):
        body = orjson.dumps(body).decode()
    return {
        "httpMethod": method,
        "headers": headers or {},
        "body": body,
        "isBase64Encoded": False,
    }


def response_json(response: dict[str, Any]) -> Any:
    """Decode a proxy response body."""
    return orjson.loads(response["body"])


# =============================================================================
# Log Validation Helpers
# =============================================================================
#
# Production code logs normally (never test-aware); tests assert on expected
# logs explicitly using caplog.


def assert_error_logged(caplog, pattern: str):
    """
    Helper to assert an ERROR log was captured.

    Example:
        def test_identity_down(caplog):
            result = handler(event, context)
            assert result["statusCode"] == 502
            assert_error_logged(caplog, "Identity request failed")
    """
    assert any(
        pattern in record.message
        for record in caplog.records
        if record.levelno >= logging.ERROR
    ), f"Expected ERROR log matching '{pattern}' not found"


def assert_warning_logged(caplog, pattern: str):
    """Helper to assert a WARNING log was captured."""
    assert any(
        pattern in record.message
        for record in caplog.records
        if record.levelno == logging.WARNING
    ), f"Expected WARNING log matching '{pattern}' not found"
