"""Subscription state transitions for paid activation.

Pure helpers that read an identity user record and produce the metadata
payload to PUT back through the identity admin API. Callers own the I/O.

Transitions:
- activation: checkout paid -> subscription extended, 'active' role added
- expiry: checkout session expired -> deactivate if it was the last session
- lapse: status check found an expired subscription -> deactivate
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from src.lambdas.shared.auth.enums import ACTIVE_STATUS_VALUES, Role
from src.lambdas.shared.billing.plans import (
    Plan,
    compute_subscription_expiry,
    get_plan,
    list_plans,
)
from src.lambdas.shared.models.account import (
    Subscription,
    normalize_status,
    pick_status,
    unique_roles,
)
from src.lambdas.shared.utils.timestamps import format_timestamp

logger = logging.getLogger(__name__)

ACTIVE = "active"
INACTIVE = "inactive"


@dataclass(frozen=True)
class TimeLeft:
    """Remaining subscription time, floored per unit."""

    expired: bool
    milliseconds: int
    seconds: int = 0
    minutes: int = 0
    hours: int = 0
    days: int = 0


def calculate_time_left(expires_at: datetime | None, now: datetime) -> TimeLeft | None:
    """Break the time until expires_at into whole units.

    Returns:
        None when there is no expiry, an expired TimeLeft when it has passed
    """
    if expires_at is None:
        return None
    diff_ms = int((expires_at - now).total_seconds() * 1000)
    if diff_ms <= 0:
        return TimeLeft(expired=True, milliseconds=diff_ms)
    seconds = diff_ms // 1000
    minutes = seconds // 60
    hours = minutes // 60
    return TimeLeft(
        expired=False,
        milliseconds=diff_ms,
        seconds=seconds,
        minutes=minutes,
        hours=hours,
        days=hours // 24,
    )


def determine_active(status_raw: str, time_left: TimeLeft | None) -> bool:
    """A subscription is active when the status says so and it has not lapsed."""
    if normalize_status(status_raw) not in ACTIVE_STATUS_VALUES:
        return False
    if time_left is None:
        return True
    return not time_left.expired


def build_status_message(is_active: bool, time_left: TimeLeft | None) -> str:
    if not is_active:
        if time_left and time_left.expired:
            return "Subscription has expired."
        return "Account is not active."
    if time_left is None:
        return "Account is active."
    if time_left.days >= 1:
        return f"{time_left.days} days of subscription remaining."
    if time_left.hours >= 1:
        return f"{time_left.hours} hours of subscription remaining."
    return f"{time_left.minutes} minutes of subscription remaining."


@dataclass(frozen=True)
class SubscriptionState:
    """Everything the billing endpoint needs to know about one account."""

    subscription: Subscription
    status_raw: str
    time_left: TimeLeft | None
    is_active: bool

    @classmethod
    def from_user(cls, user: dict[str, Any], now: datetime) -> "SubscriptionState":
        subscription = Subscription.from_user(user)
        status_raw = pick_status(user)
        time_left = calculate_time_left(subscription.expires_at_datetime, now)
        return cls(
            subscription=subscription,
            status_raw=status_raw,
            time_left=time_left,
            is_active=determine_active(status_raw, time_left),
        )

    @property
    def lapsed(self) -> bool:
        """Expired subscription that has not been marked inactive yet."""
        if not (self.time_left and self.time_left.expired and self.status_raw):
            return False
        already_inactive = (
            normalize_status(self.status_raw) == INACTIVE
            and self.subscription.status == INACTIVE
        )
        return not already_inactive

    @property
    def running(self) -> bool:
        """Active with time still on the clock."""
        return bool(self.is_active and self.time_left and not self.time_left.expired)


def build_status_response(
    user: dict[str, Any], email: str, state: SubscriptionState
) -> dict[str, Any]:
    """Status summary returned to the activation page."""
    app_meta = user.get("app_metadata") or {}
    subscription = state.subscription
    plan = get_plan(subscription.plan_key) if subscription.plan_key else None
    time_left = state.time_left
    remaining = time_left is not None and not time_left.expired

    return {
        "found": True,
        "email": email,
        "status": ACTIVE if state.is_active else INACTIVE,
        "expiresAt": format_timestamp(subscription.expires_at_datetime),
        "plan": subscription.plan_key,
        "planLabel": plan.label if plan else None,
        "secondsRemaining": time_left.seconds if remaining else 0,
        "daysRemaining": time_left.days if remaining else 0,
        "roles": [r for r in app_meta.get("roles") or [] if isinstance(r, str)],
        "lastSession": subscription.last_session_id,
        "message": build_status_message(state.is_active, time_left),
        "availablePlans": [{"key": p.key, "label": p.label} for p in list_plans()],
    }


def _roles_without_active(app_meta: dict[str, Any]) -> list[Any]:
    roles = app_meta.get("roles")
    if not isinstance(roles, list):
        return []
    return [role for role in roles if role != Role.ACTIVE]


def build_deactivation_update(
    user: dict[str, Any], reason: str | None = "expired"
) -> dict[str, Any]:
    """Metadata payload that marks a lapsed account inactive."""
    user_meta = dict(user.get("user_metadata") or {})
    subscription = Subscription.from_user(user)
    subscription.status = INACTIVE
    if reason:
        subscription.last_inactive_reason = reason
    user_meta["subscription"] = subscription.to_metadata()
    user_meta["status"] = INACTIVE

    app_meta = dict(user.get("app_metadata") or {})
    app_meta["roles"] = _roles_without_active(app_meta)
    app_meta["status"] = INACTIVE

    return {"user_metadata": user_meta, "app_metadata": app_meta}


def build_activation_update(
    user: dict[str, Any],
    plan: Plan,
    checkout_session: dict[str, Any],
    now: datetime,
) -> dict[str, Any]:
    """Metadata payload for a paid checkout session.

    The new expiry extends an unexpired subscription rather than
    truncating it.
    """
    user_meta = dict(user.get("user_metadata") or {})
    subscription = Subscription.from_user(user)

    expires_at = compute_subscription_expiry(
        plan.key, subscription.expires_at_datetime, now
    )

    subscription.status = ACTIVE
    subscription.plan_key = plan.key
    subscription.expires_at = format_timestamp(expires_at)
    subscription.activated_at = format_timestamp(now)
    subscription.last_session_id = checkout_session.get("id")
    subscription.last_payment_intent = checkout_session.get("payment_intent") or None

    user_meta["subscription"] = subscription.to_metadata()
    user_meta["status"] = ACTIVE

    app_meta = dict(user.get("app_metadata") or {})
    roles = unique_roles(app_meta.get("roles"))
    if Role.ACTIVE.value not in roles:
        roles.append(Role.ACTIVE.value)
    app_meta["roles"] = roles
    app_meta["status"] = ACTIVE

    return {"user_metadata": user_meta, "app_metadata": app_meta}


def build_expiry_update(
    user: dict[str, Any], checkout_session_id: str | None
) -> dict[str, Any] | None:
    """Metadata payload for an expired checkout session.

    Returns:
        None unless the expired session is the one that last activated the
        account
    """
    subscription = Subscription.from_user(user)
    if subscription.last_session_id != checkout_session_id:
        return None

    subscription.status = INACTIVE
    user_meta = dict(user.get("user_metadata") or {})
    user_meta["subscription"] = subscription.to_metadata()
    if user_meta.get("status") == ACTIVE:
        user_meta["status"] = INACTIVE

    app_meta = dict(user.get("app_metadata") or {})
    if isinstance(app_meta.get("roles"), list):
        app_meta["roles"] = _roles_without_active(app_meta)
    if app_meta.get("status") == ACTIVE:
        app_meta["status"] = INACTIVE

    return {"user_metadata": user_meta, "app_metadata": app_meta}
