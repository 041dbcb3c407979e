"""Activation and billing error types.

Each error carries a machine-readable code so the activation page can
branch on it without parsing messages. Handlers convert these to JSON
responses through handle_request().

Status mapping:
- configuration problems: 500 (fatal for the request only)
- validation problems: 400
- unknown account: 404
- already active: 409
- identity provider failures: 502
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ActivationErrorCode(str, Enum):
    """Machine-readable error codes returned in response bodies."""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_EMAIL = "INVALID_EMAIL"
    UNKNOWN_ACTION = "UNKNOWN_ACTION"
    UNKNOWN_PLAN = "UNKNOWN_PLAN"
    PLAN_NOT_CONFIGURED = "PLAN_NOT_CONFIGURED"
    ACCOUNT_MISSING = "ACCOUNT_MISSING"
    ACCOUNT_ACTIVE = "ACCOUNT_ACTIVE"
    IDENTITY_UNAVAILABLE = "IDENTITY_UNAVAILABLE"
    SIGNATURE_INVALID = "SIGNATURE_INVALID"


ACTIVATION_ERROR_STATUS: dict[ActivationErrorCode, int] = {
    ActivationErrorCode.CONFIGURATION_ERROR: 500,
    ActivationErrorCode.VALIDATION_ERROR: 400,
    ActivationErrorCode.INVALID_EMAIL: 400,
    ActivationErrorCode.UNKNOWN_ACTION: 400,
    ActivationErrorCode.UNKNOWN_PLAN: 400,
    ActivationErrorCode.PLAN_NOT_CONFIGURED: 500,
    ActivationErrorCode.ACCOUNT_MISSING: 404,
    ActivationErrorCode.ACCOUNT_ACTIVE: 409,
    ActivationErrorCode.IDENTITY_UNAVAILABLE: 502,
    ActivationErrorCode.SIGNATURE_INVALID: 400,
}


class ActivationError(Exception):
    """Base error with a code, HTTP status and optional response details."""

    code: ActivationErrorCode = ActivationErrorCode.VALIDATION_ERROR

    def __init__(
        self,
        message: str,
        *,
        code: ActivationErrorCode | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        if code is not None:
            self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    @property
    def status_code(self) -> int:
        return ACTIVATION_ERROR_STATUS[self.code]

    def to_body(self) -> dict[str, Any]:
        """Response body for this error."""
        body: dict[str, Any] = {"error": self.message, "code": self.code.value}
        body.update(self.details)
        return body


class ConfigurationError(ActivationError):
    """Required environment configuration is missing."""

    code = ActivationErrorCode.CONFIGURATION_ERROR


class RequestValidationError(ActivationError):
    """Request input failed validation."""

    code = ActivationErrorCode.VALIDATION_ERROR


class PlanNotFoundError(RequestValidationError):
    """Plan key is not in the catalog."""

    code = ActivationErrorCode.UNKNOWN_PLAN

    def __init__(self, plan_key: str) -> None:
        self.plan_key = plan_key
        super().__init__(f"Unknown plan: {plan_key}")


class PlanConfigurationError(ConfigurationError):
    """Plan exists but has no Stripe price id configured."""

    code = ActivationErrorCode.PLAN_NOT_CONFIGURED

    def __init__(self, plan_key: str, env_key: str) -> None:
        self.plan_key = plan_key
        self.env_key = env_key
        super().__init__(f"Plan {plan_key} has no price id configured ({env_key})")


class AccountNotFoundError(ActivationError):
    """No identity account exists for the given email."""

    code = ActivationErrorCode.ACCOUNT_MISSING


class AccountAlreadyActiveError(ActivationError):
    """Checkout requested for an account that is already active."""

    code = ActivationErrorCode.ACCOUNT_ACTIVE


class IdentityRequestError(ActivationError):
    """Identity admin API returned an error or could not be reached."""

    code = ActivationErrorCode.IDENTITY_UNAVAILABLE

    def __init__(
        self, message: str, *, status: int | None = None, body: str = ""
    ) -> None:
        self.status = status
        self.body = body
        super().__init__(message)
