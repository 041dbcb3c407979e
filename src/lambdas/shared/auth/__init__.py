"""Membership access control: role resolution and session enforcement."""

from src.lambdas.shared.auth.access import (
    AccessDecision,
    AccessGrant,
    evaluate_access,
    resolve_login_access,
    select_timed_role,
)
from src.lambdas.shared.auth.session_guard import (
    LogoutReason,
    SessionMonitor,
    SessionVerdict,
    check_session,
    summarize_timed_access,
)

__all__ = [
    "AccessDecision",
    "AccessGrant",
    "evaluate_access",
    "resolve_login_access",
    "select_timed_role",
    "LogoutReason",
    "SessionMonitor",
    "SessionVerdict",
    "check_session",
    "summarize_timed_access",
]
