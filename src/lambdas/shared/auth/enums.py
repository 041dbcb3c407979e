"""Canonical enum definitions for membership access control.

This module defines the role tags stored on identity records and the
nominal durations of the timed roles. All access-related enums should be
defined here to ensure a single source of truth.
"""

from __future__ import annotations

from datetime import timedelta
from enum import StrEnum


class Role(StrEnum):
    """Permanent role tags stored in ``app_metadata.roles``.

    - admin: Administrative access (always active)
    - active: Account may enter the members area
    - member: Default role for registered accounts
    - pending: Default role when signups await approval
    - blocked / inactive: Explicit deny markers
    """

    ADMIN = "admin"
    ACTIVE = "active"
    MEMBER = "member"
    PENDING = "pending"
    BLOCKED = "blocked"
    INACTIVE = "inactive"


class TimedRole(StrEnum):
    """Role tags that grant temporary access for a fixed nominal duration."""

    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    HALFYEAR = "halfyear"
    YEAR = "year"


class GrantSource(StrEnum):
    """Provenance of an active grant, in precedence order."""

    ADMIN = "admin"
    STATUS = "status"
    TIMED = "timed"
    MANUAL = "manual"


TIMED_ROLE_DURATIONS: dict[TimedRole, timedelta] = {
    TimedRole.HOUR: timedelta(hours=1),
    TimedRole.DAY: timedelta(days=1),
    TimedRole.WEEK: timedelta(days=7),
    TimedRole.MONTH: timedelta(days=30),
    TimedRole.HALFYEAR: timedelta(days=182),
    TimedRole.YEAR: timedelta(days=365),
}

TIMED_ROLE_LABELS: dict[TimedRole, str] = {
    TimedRole.HOUR: "1 hour access",
    TimedRole.DAY: "1 day access",
    TimedRole.WEEK: "7 day access",
    TimedRole.MONTH: "1 month access",
    TimedRole.HALFYEAR: "6 month access",
    TimedRole.YEAR: "12 month access",
}

# Normalized status strings that count as an active account
ACTIVE_STATUS_VALUES: frozenset[str] = frozenset(
    {"active", "aktywny", "approved", "enabled", "admin"}
)

TIMED_ROLES: frozenset[str] = frozenset(role.value for role in TimedRole)

SIGNUP_DEFAULT_ROLES: frozenset[str] = frozenset({Role.MEMBER.value, Role.PENDING.value})
