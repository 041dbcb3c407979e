"""
Unit Tests for the Activation (Billing) Handler
===============================================

Identity and Stripe calls are patched at the handler module; no network.

For On-Call Engineers:
    If status tests fail after a billing change, compare against
    tests/unit/shared/billing/test_subscription.py first.
"""

import os
from unittest.mock import MagicMock, patch

import pytest
import stripe
from freezegun import freeze_time

from src.lambdas.activation.handler import (
    join_url,
    lambda_handler,
    resolve_activation_base_url,
)
from src.lambdas.shared.errors import ConfigurationError, IdentityRequestError
from tests.conftest import api_event, make_user, response_json

HANDLER = "src.lambdas.activation.handler"
FROZEN_NOW = "2024-05-01T12:00:00Z"


def paid_user(expires_at: str, status: str = "active") -> dict:
    return make_user(
        roles=["member", "active"],
        status=status,
        subscription={"status": status, "plan_key": "month", "expires_at": expires_at},
    )


class TestUrlHelpers:
    def test_base_url_precedence(self):
        os.environ["ACTIVATION_BASE_URL"] = "https://a.example/"
        os.environ["SITE_URL"] = "https://b.example"

        assert resolve_activation_base_url() == "https://a.example"

        del os.environ["ACTIVATION_BASE_URL"]
        assert resolve_activation_base_url() == "https://b.example"

    def test_missing_base_url(self):
        for key in ("ACTIVATION_BASE_URL", "SITE_URL", "URL"):
            os.environ.pop(key, None)

        with pytest.raises(ConfigurationError):
            resolve_activation_base_url()

    @pytest.mark.parametrize(
        "path,expected",
        [
            ("/activation/", "https://x.example/activation/"),
            ("activation/", "https://x.example/activation/"),
            ("https://other.example/ok", "https://other.example/ok"),
            (None, "https://x.example"),
        ],
    )
    def test_join_url(self, path, expected):
        assert join_url("https://x.example", path) == expected


class TestRouting:
    def test_options_preflight(self, lambda_context):
        response = lambda_handler(api_event("OPTIONS"), lambda_context)

        assert response["statusCode"] == 204
        assert response["headers"]["Access-Control-Allow-Methods"] == "POST, OPTIONS"

    def test_get_not_allowed(self, lambda_context):
        response = lambda_handler(api_event("GET"), lambda_context)

        assert response["statusCode"] == 405
        assert response_json(response) == {"error": "Use POST"}

    def test_unknown_action(self, lambda_context):
        event = api_event("POST", {"action": "refund", "email": "a@b.co"})

        response = lambda_handler(event, lambda_context)

        assert response["statusCode"] == 400
        assert response_json(response) == {
            "error": "Unknown action",
            "code": "UNKNOWN_ACTION",
            "details": "Use action=status or action=checkout",
        }

    def test_invalid_email(self, lambda_context):
        event = api_event("POST", {"action": "status", "email": "nope"})

        response = lambda_handler(event, lambda_context)

        assert response["statusCode"] == 400
        assert response_json(response)["detail"][0]["loc"] == ["email"]
        assert response["headers"]["Access-Control-Allow-Origin"] == "*"

    def test_invalid_json(self, lambda_context):
        response = lambda_handler(api_event("POST", "{"), lambda_context)

        assert response["statusCode"] == 400


@freeze_time(FROZEN_NOW)
class TestStatusAction:
    """Tests for action=status."""

    @patch(f"{HANDLER}.find_user_by_email")
    def test_unknown_account(self, mock_find, lambda_context):
        mock_find.return_value = None
        event = api_event("POST", {"action": "status", "email": "Ghost@Example.com"})

        response = lambda_handler(event, lambda_context)

        assert response["statusCode"] == 404
        body = response_json(response)
        assert body["found"] is False
        assert body["email"] == "ghost@example.com"
        assert body["status"] == "missing"
        assert body["code"] == "ACCOUNT_MISSING"

    @patch(f"{HANDLER}.update_user")
    @patch(f"{HANDLER}.find_user_by_email")
    def test_running_subscription(self, mock_find, mock_update, lambda_context):
        mock_find.return_value = paid_user("2024-05-04T12:00:00.000Z")
        event = api_event("POST", {"action": "status", "email": "member@example.com"})

        response = lambda_handler(event, lambda_context)

        body = response_json(response)
        assert response["statusCode"] == 200
        assert body["status"] == "active"
        assert body["daysRemaining"] == 3
        assert body["planLabel"] == "1 month"
        mock_update.assert_not_called()

    @patch(f"{HANDLER}.emit_metric")
    @patch(f"{HANDLER}.update_user")
    @patch(f"{HANDLER}.find_user_by_email")
    def test_lapsed_subscription_is_deactivated(
        self, mock_find, mock_update, mock_emit, lambda_context
    ):
        mock_find.return_value = paid_user("2024-04-30T12:00:00.000Z")
        event = api_event("POST", {"action": "status", "email": "member@example.com"})

        response = lambda_handler(event, lambda_context)

        body = response_json(response)
        assert body["status"] == "inactive"
        assert body["roles"] == ["member"]
        assert body["message"] == "Subscription has expired."

        user_id, update = mock_update.call_args.args[1:]
        assert user_id == "user-123"
        assert update["app_metadata"]["roles"] == ["member"]
        assert update["user_metadata"]["subscription"]["last_inactive_reason"] == "expired"
        mock_emit.assert_called_once_with(
            "SubscriptionDeactivated", dimensions={"Reason": "expired"}
        )

    @patch(f"{HANDLER}.update_user")
    @patch(f"{HANDLER}.find_user_by_email")
    def test_already_deactivated_not_rewritten(self, mock_find, mock_update, lambda_context):
        mock_find.return_value = paid_user("2024-04-30T12:00:00.000Z", status="inactive")
        event = api_event("POST", {"action": "status", "email": "member@example.com"})

        lambda_handler(event, lambda_context)

        mock_update.assert_not_called()

    @patch(f"{HANDLER}.find_user_by_email")
    def test_identity_outage_is_502(self, mock_find, lambda_context):
        mock_find.side_effect = IdentityRequestError("Identity request failed", status=503)
        event = api_event("POST", {"action": "status", "email": "member@example.com"})

        response = lambda_handler(event, lambda_context)

        assert response["statusCode"] == 502
        assert response_json(response)["code"] == "IDENTITY_UNAVAILABLE"

    def test_missing_admin_token_is_500(self, lambda_context):
        for key in (
            "IDENTITY_ADMIN_TOKEN",
            "NETLIFY_IDENTITY_ADMIN_TOKEN",
            "GOTRUE_ADMIN_API_TOKEN",
            "GOTRUE_ADMIN_KEY",
        ):
            os.environ.pop(key, None)
        event = api_event("POST", {"action": "status", "email": "member@example.com"})

        response = lambda_handler(event, lambda_context)

        assert response["statusCode"] == 500
        assert response_json(response)["code"] == "CONFIGURATION_ERROR"


@freeze_time(FROZEN_NOW)
class TestCheckoutAction:
    """Tests for action=checkout."""

    def checkout_event(self, **extra):
        body = {"action": "checkout", "email": "member@example.com", "plan": "month"}
        body.update(extra)
        return api_event("POST", body)

    @patch(f"{HANDLER}.emit_metric")
    @patch(f"{HANDLER}.create_checkout_session")
    @patch(f"{HANDLER}.find_user_by_email")
    def test_creates_session(self, mock_find, mock_create, mock_emit, lambda_context):
        mock_find.return_value = make_user(roles=["member"])
        mock_create.return_value = MagicMock(id="cs_123", url="https://checkout/cs_123")

        response = lambda_handler(self.checkout_event(), lambda_context)

        assert response["statusCode"] == 200
        assert response_json(response) == {
            "checkoutUrl": "https://checkout/cs_123",
            "sessionId": "cs_123",
        }
        kwargs = mock_create.call_args.kwargs
        assert kwargs["price_id"] == "price_month"
        assert kwargs["user_id"] == "user-123"
        assert kwargs["success_url"] == (
            "https://members.example.com/activation/?success=1"
            "&session_id={CHECKOUT_SESSION_ID}"
        )
        assert kwargs["cancel_url"] == "https://members.example.com/activation/?cancelled=1"
        mock_emit.assert_called_once_with("CheckoutCreated", dimensions={"Plan": "month"})

    @patch(f"{HANDLER}.create_checkout_session")
    @patch(f"{HANDLER}.find_user_by_email")
    def test_custom_paths(self, mock_find, mock_create, lambda_context):
        mock_find.return_value = make_user(roles=["member"])
        mock_create.return_value = MagicMock(id="cs_1", url="u")

        lambda_handler(
            self.checkout_event(successPath="/thanks/", cancelPath="https://x.example/c"),
            lambda_context,
        )

        kwargs = mock_create.call_args.kwargs
        assert kwargs["success_url"] == "https://members.example.com/thanks/"
        assert kwargs["cancel_url"] == "https://x.example/c"

    @patch(f"{HANDLER}.create_checkout_session")
    @patch(f"{HANDLER}.find_user_by_email")
    def test_lapsed_account_may_checkout(self, mock_find, mock_create, lambda_context):
        mock_find.return_value = paid_user("2024-04-01T00:00:00.000Z")
        mock_create.return_value = MagicMock(id="cs_2", url="u")

        response = lambda_handler(self.checkout_event(), lambda_context)

        assert response["statusCode"] == 200

    @patch(f"{HANDLER}.create_checkout_session")
    @patch(f"{HANDLER}.find_user_by_email")
    def test_running_account_conflict(self, mock_find, mock_create, lambda_context):
        mock_find.return_value = paid_user("2024-06-01T00:00:00.000Z")

        response = lambda_handler(self.checkout_event(), lambda_context)

        assert response["statusCode"] == 409
        body = response_json(response)
        assert body["code"] == "ACCOUNT_ACTIVE"
        assert body["status"]["status"] == "active"
        mock_create.assert_not_called()

    @patch(f"{HANDLER}.find_user_by_email")
    def test_unknown_account(self, mock_find, lambda_context):
        mock_find.return_value = None

        response = lambda_handler(self.checkout_event(), lambda_context)

        assert response["statusCode"] == 404
        assert response_json(response)["code"] == "ACCOUNT_MISSING"

    @patch(f"{HANDLER}.find_user_by_email")
    def test_unknown_plan(self, mock_find, lambda_context):
        response = lambda_handler(self.checkout_event(plan="weekly"), lambda_context)

        assert response["statusCode"] == 400
        assert response_json(response)["code"] == "UNKNOWN_PLAN"
        mock_find.assert_not_called()

    @patch(f"{HANDLER}.find_user_by_email")
    def test_plan_without_price(self, mock_find, lambda_context):
        del os.environ["STRIPE_PRICE_1MONTH"]

        response = lambda_handler(self.checkout_event(), lambda_context)

        assert response["statusCode"] == 500
        assert response_json(response)["code"] == "PLAN_NOT_CONFIGURED"

    def test_missing_stripe_key(self, lambda_context):
        os.environ.pop("STRIPE_SECRET_KEY", None)
        os.environ.pop("STRIPE_SECRET_KEY_ARN", None)

        response = lambda_handler(self.checkout_event(), lambda_context)

        assert response["statusCode"] == 500
        assert response_json(response)["code"] == "CONFIGURATION_ERROR"

    @patch(f"{HANDLER}.create_checkout_session")
    @patch(f"{HANDLER}.find_user_by_email")
    def test_stripe_error_is_502(self, mock_find, mock_create, lambda_context):
        mock_find.return_value = make_user(roles=["member"])
        mock_create.side_effect = stripe.APIConnectionError("network down")

        response = lambda_handler(self.checkout_event(), lambda_context)

        assert response["statusCode"] == 502
        assert response_json(response) == {"error": "Payment provider error"}
