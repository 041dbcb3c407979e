"""Paid plan catalog and subscription transitions."""

from src.lambdas.shared.billing.plans import (
    PLAN_CATALOG,
    CalendarDuration,
    Plan,
    apply_duration,
    compute_subscription_expiry,
    ensure_plan,
    get_plan,
    list_plans,
)
from src.lambdas.shared.billing.subscription import (
    SubscriptionState,
    TimeLeft,
    build_activation_update,
    build_deactivation_update,
    build_expiry_update,
    build_status_response,
    calculate_time_left,
)

__all__ = [
    "PLAN_CATALOG",
    "CalendarDuration",
    "Plan",
    "apply_duration",
    "compute_subscription_expiry",
    "ensure_plan",
    "get_plan",
    "list_plans",
    "SubscriptionState",
    "TimeLeft",
    "build_activation_update",
    "build_deactivation_update",
    "build_expiry_update",
    "build_status_response",
    "calculate_time_left",
]
