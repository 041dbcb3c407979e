"""Hypothesis strategies for property testing.

Provides reusable composite strategies for generating identity records
in the shapes the login webhook and session check receive.
"""

from datetime import UTC, datetime, timedelta

from hypothesis import strategies as st

from src.lambdas.shared.auth.enums import TimedRole
from src.lambdas.shared.utils.timestamps import format_timestamp

TIMED_ROLE_VALUES = [role.value for role in TimedRole]
PERMANENT_ROLE_VALUES = ["admin", "active", "member", "pending", "blocked", "inactive"]
STATUS_VALUES = ["", "active", " Active ", "aktywny", "approved", "enabled", "pending", "x"]


def login_times():
    """Aware UTC datetimes at millisecond precision."""
    return st.datetimes(
        min_value=datetime(2020, 1, 1),
        max_value=datetime(2035, 1, 1),
        timezones=st.just(UTC),
    ).map(lambda dt: dt.replace(microsecond=(dt.microsecond // 1000) * 1000))


@st.composite
def stored_window(draw, role, now, live=None):
    """Generate a stored timed_access record for role relative to now.

    Args:
        role: Timed role tag for the window
        now: Reference time
        live: True for expires_at in the future, False for the past,
            None for either
    """
    if live is None:
        live = draw(st.booleans())
    offset = timedelta(seconds=draw(st.integers(min_value=1, max_value=400 * 86400)))
    expires_at = now + offset if live else now - offset
    assigned_at = expires_at - timedelta(days=draw(st.integers(min_value=0, max_value=30)))
    return {
        "role": role,
        "assigned_at": format_timestamp(assigned_at),
        "expires_at": format_timestamp(expires_at),
        "active": live,
        "injected_active": draw(st.booleans()),
    }


@st.composite
def identity_user(draw, roles=None, status=None, timed_access=None):
    """Generate an identity user record.

    Unspecified parts are drawn at random; extra app_metadata keys are
    included so pass-through can be checked.
    """
    if roles is None:
        roles = draw(
            st.lists(
                st.sampled_from(PERMANENT_ROLE_VALUES + TIMED_ROLE_VALUES),
                max_size=5,
            )
        )
    if status is None:
        status = draw(st.sampled_from(STATUS_VALUES))

    app_metadata = {"roles": roles, "plan_note": draw(st.text(max_size=10))}
    if timed_access is not None:
        app_metadata["timed_access"] = timed_access
    if draw(st.booleans()):
        app_metadata["session_id"] = draw(st.uuids().map(str))

    return {
        "id": draw(st.uuids().map(str)),
        "email": "member@example.com",
        "app_metadata": app_metadata,
        "user_metadata": {"status": status} if status else {},
    }
