"""Shared models for membership access Lambdas.

This module exports the models used across Lambda functions:
- TimedAccess: Temporary access window in app_metadata
- Subscription: Paid subscription in user_metadata
- ActivationRequest: Billing status/checkout request body
"""

from src.lambdas.shared.models.account import (
    Subscription,
    TimedAccess,
    normalize_status,
    pick_status,
    unique_roles,
)
from src.lambdas.shared.models.activation import ActivationAction, ActivationRequest

__all__ = [
    # Account metadata
    "Subscription",
    "TimedAccess",
    "normalize_status",
    "pick_status",
    "unique_roles",
    # Billing requests
    "ActivationAction",
    "ActivationRequest",
]
