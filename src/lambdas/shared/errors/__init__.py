"""Shared error types for Lambda handlers."""

from src.lambdas.shared.errors.activation_errors import (
    ACTIVATION_ERROR_STATUS,
    AccountAlreadyActiveError,
    AccountNotFoundError,
    ActivationError,
    ActivationErrorCode,
    ConfigurationError,
    IdentityRequestError,
    PlanConfigurationError,
    PlanNotFoundError,
    RequestValidationError,
)

__all__ = [
    "ACTIVATION_ERROR_STATUS",
    "AccountAlreadyActiveError",
    "AccountNotFoundError",
    "ActivationError",
    "ActivationErrorCode",
    "ConfigurationError",
    "IdentityRequestError",
    "PlanConfigurationError",
    "PlanNotFoundError",
    "RequestValidationError",
]
