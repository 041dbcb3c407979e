"""Paid plan catalog and subscription expiry arithmetic.

Plans extend a subscription by a calendar duration. Month and year steps
are true calendar steps: the day of month is kept, and when the target
month is too short the surplus days roll over into the following month.

    Jan 31 2024 + 1 month  -> Mar 2 2024
    Jan 31 2023 + 1 month  -> Mar 3 2023
    Feb 29 2024 + 1 year   -> Mar 1 2025

For Developers:
    - Price ids come from environment variables (see PLAN_CATALOG)
    - Use ensure_plan() when a price id is required (checkout, webhook)
    - Use compute_subscription_expiry() for the new expiry after payment
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta

from src.lambdas.shared.errors import PlanConfigurationError, PlanNotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CalendarDuration:
    """Calendar-aware duration applied as years, then months, then days."""

    years: int = 0
    months: int = 0
    days: int = 0


@dataclass(frozen=True)
class PlanMeta:
    label: str
    env_key: str
    duration: CalendarDuration


@dataclass(frozen=True)
class Plan:
    """A purchasable plan resolved against the current environment."""

    key: str
    label: str
    price_id: str | None
    duration: CalendarDuration


PLAN_CATALOG: dict[str, PlanMeta] = {
    "day": PlanMeta("1 day", "STRIPE_PRICE_1DAY", CalendarDuration(days=1)),
    "month": PlanMeta("1 month", "STRIPE_PRICE_1MONTH", CalendarDuration(months=1)),
    "halfyear": PlanMeta(
        "6 months", "STRIPE_PRICE_6MONTHS", CalendarDuration(months=6)
    ),
    "year": PlanMeta("1 year", "STRIPE_PRICE_1YEAR", CalendarDuration(years=1)),
}


def normalize_plan_key(key: object) -> str:
    if key is None:
        return ""
    return str(key).strip().lower()


def get_plan(key: object) -> Plan | None:
    """Look up a plan by key (case-insensitive), or None if unknown."""
    normalized = normalize_plan_key(key)
    meta = PLAN_CATALOG.get(normalized)
    if meta is None:
        return None
    return Plan(
        key=normalized,
        label=meta.label,
        price_id=os.environ.get(meta.env_key) or None,
        duration=meta.duration,
    )


def list_plans() -> list[Plan]:
    """All catalog plans in display order."""
    return [get_plan(key) for key in PLAN_CATALOG]


def ensure_plan(key: object) -> Plan:
    """Resolve a plan that can be sold right now.

    Raises:
        PlanNotFoundError: Key is not in the catalog
        PlanConfigurationError: Plan has no price id configured
    """
    plan = get_plan(key)
    if plan is None:
        raise PlanNotFoundError(normalize_plan_key(key))
    if not plan.price_id:
        raise PlanConfigurationError(plan.key, PLAN_CATALOG[plan.key].env_key)
    return plan


def add_months(start: datetime, months: int) -> datetime:
    """Add calendar months, rolling a missing day over into the next month."""
    total = start.month - 1 + months
    first = start.replace(year=start.year + total // 12, month=total % 12 + 1, day=1)
    return first + timedelta(days=start.day - 1)


def apply_duration(start: datetime, duration: CalendarDuration) -> datetime:
    """Apply a calendar duration. Time of day and tzinfo are preserved."""
    result = start
    if duration.years:
        result = add_months(result, 12 * duration.years)
    if duration.months:
        result = add_months(result, duration.months)
    if duration.days:
        result = result + timedelta(days=duration.days)
    return result


def compute_subscription_expiry(
    plan_key: str,
    current_expiry: datetime | None,
    now: datetime,
) -> datetime:
    """Compute the expiry after purchasing a plan.

    Sequential purchases extend the remaining time: the plan duration is
    added to the current expiry while it is still in the future, otherwise
    to now.

    Args:
        plan_key: Catalog key (day, month, halfyear, year)
        current_expiry: Current subscription expiry, if any
        now: Current time

    Returns:
        New expiry datetime

    Raises:
        PlanNotFoundError: Key is not in the catalog

    Example:
        >>> compute_subscription_expiry(
        ...     "month", datetime(2024, 3, 1, tzinfo=UTC), datetime(2024, 2, 10, tzinfo=UTC)
        ... )
        datetime.datetime(2024, 4, 1, 0, 0, tzinfo=datetime.timezone.utc)
    """
    normalized = normalize_plan_key(plan_key)
    meta = PLAN_CATALOG.get(normalized)
    if meta is None:
        raise PlanNotFoundError(normalized)

    base = current_expiry if current_expiry and current_expiry > now else now
    expiry = apply_duration(base, meta.duration)

    logger.debug(
        "Computed subscription expiry",
        extra={
            "plan_key": normalized,
            "extended": base is not now,
            "expires_at": expiry.isoformat(),
        },
    )
    return expiry
