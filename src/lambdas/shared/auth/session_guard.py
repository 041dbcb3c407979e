"""Single-session enforcement and read-only access re-checks.

Browser pages re-check the session on load, focus, visibility change,
network-online and a ~30 second timer. Each check:

1. Fetches the authoritative account record for the user's token
2. Compares its session_id with the one cached when this device logged in
   (a mismatch means a newer login elsewhere superseded this session)
3. Re-evaluates access without mutating anything

A logout verdict is terminal for a SessionMonitor: later checks return the
same verdict without fetching again.

If the record cannot be fetched the session is kept; a flaky network must
not log members out.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from src.lambdas.shared.auth.access import AccessDecision, evaluate_access
from src.lambdas.shared.auth.enums import TIMED_ROLE_LABELS
from src.lambdas.shared.auth.identity import IdentityConfig, fetch_current_user
from src.lambdas.shared.errors import IdentityRequestError
from src.lambdas.shared.logging_utils import sanitize_for_log
from src.lambdas.shared.utils.timestamps import format_timestamp

logger = logging.getLogger(__name__)

LOGIN_PATH = "/login/"
MEMBERS_PATH = "/members/"


class LogoutReason(StrEnum):
    """Why a session must end. Each maps to its own login-page message."""

    NO_USER = "no_user"
    SESSION_MISMATCH = "session_mismatch"
    INACTIVE = "inactive"


LOGOUT_REDIRECTS: dict[LogoutReason, str] = {
    LogoutReason.NO_USER: LOGIN_PATH,
    LogoutReason.SESSION_MISMATCH: f"{LOGIN_PATH}?elsewhere=1",
    LogoutReason.INACTIVE: f"{LOGIN_PATH}?unauthorized=1",
}


@dataclass(frozen=True)
class SessionVerdict:
    """Outcome of one session check."""

    ok: bool
    reason: LogoutReason | None = None
    verified: bool = True

    @property
    def redirect(self) -> str | None:
        return LOGOUT_REDIRECTS[self.reason] if self.reason else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "reason": self.reason.value if self.reason else None,
            "redirect": self.redirect,
            "verified": self.verified,
        }


KEEP_SESSION = SessionVerdict(ok=True)
UNVERIFIED = SessionVerdict(ok=True, verified=False)


def check_session(
    server_user: dict[str, Any] | None,
    local_session_id: str | None,
    now: datetime,
) -> SessionVerdict:
    """Decide whether the locally cached session may continue.

    Args:
        server_user: Authoritative account record (None if not logged in)
        local_session_id: Session id cached on this device at login
        now: Current time

    Returns:
        SessionVerdict; a superseded session wins over an inactive account
        so the user sees the "logged out elsewhere" message
    """
    if not server_user:
        return SessionVerdict(ok=False, reason=LogoutReason.NO_USER)

    app_meta = server_user.get("app_metadata") or {}
    server_sid = app_meta.get("session_id")
    if server_sid and local_session_id and server_sid != local_session_id:
        return SessionVerdict(ok=False, reason=LogoutReason.SESSION_MISMATCH)

    if not evaluate_access(server_user, now).active:
        return SessionVerdict(ok=False, reason=LogoutReason.INACTIVE)

    return KEEP_SESSION


def format_duration(total_seconds: int) -> str:
    """Human-readable duration, skipping empty leading units.

    Example:
        >>> format_duration(90061)
        '1 day 1 hour 1 minute 1 second'
        >>> format_duration(0)
        '0 seconds'
    """
    if total_seconds <= 0:
        return "0 seconds"
    days, rest = divmod(total_seconds, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)

    parts = []
    for value, unit in ((days, "day"), (hours, "hour"), (minutes, "minute")):
        if value:
            parts.append(f"{value} {unit}{'' if value == 1 else 's'}")
    if seconds or not parts:
        parts.append(f"{seconds} second{'' if seconds == 1 else 's'}")
    return " ".join(parts)


@dataclass(frozen=True)
class TimedAccessSummary:
    """Remaining-time view of an account for the "time left" page."""

    role: str | None = None
    label: str | None = None
    expires_at: datetime | None = None
    remaining_seconds: int = 0
    expired: bool = False
    permanent: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": self.role,
            "label": self.label,
            "expires_at": format_timestamp(self.expires_at),
            "remaining_seconds": self.remaining_seconds,
            "remaining": format_duration(self.remaining_seconds),
            "expired": self.expired,
            "permanent": self.permanent,
        }


def summarize_timed_access(
    user: dict[str, Any] | None, now: datetime
) -> TimedAccessSummary:
    """Describe how long the account's timed access has left.

    A stored window only counts while its role tag is still on the account.
    Accounts with no timed window are reported as permanent when they are
    active for another reason.
    """
    decision: AccessDecision = evaluate_access(user, now)
    window = decision.timed_access

    if window is None or window.role not in decision.roles:
        return TimedAccessSummary(permanent=decision.active and window is None)

    remaining = 0
    if window.expires_at is not None:
        remaining = max(0, int((window.expires_at - now).total_seconds()))

    return TimedAccessSummary(
        role=window.role,
        label=TIMED_ROLE_LABELS.get(window.role, window.role),
        expires_at=window.expires_at,
        remaining_seconds=remaining,
        expired=remaining == 0,
    )


@dataclass
class SessionMonitor:
    """Re-checks one browser session against the identity provider.

    Attributes:
        config: Identity configuration (no admin token needed)
        access_token: The user's own JWT
        local_session_id: Session id cached on the device at login
    """

    config: IdentityConfig
    access_token: str | None
    local_session_id: str | None
    last_user: dict[str, Any] | None = field(default=None, init=False)
    _terminal: SessionVerdict | None = field(default=None, init=False)

    @property
    def terminated(self) -> bool:
        return self._terminal is not None

    def check(self, now: datetime | None = None) -> SessionVerdict:
        """Run one fetch-compute-act cycle."""
        if self._terminal is not None:
            return self._terminal

        now = now or datetime.now(UTC)

        if not self.access_token:
            return self._terminate(SessionVerdict(ok=False, reason=LogoutReason.NO_USER))

        try:
            self.last_user = fetch_current_user(self.config, self.access_token)
        except IdentityRequestError as e:
            if e.status == 401:
                return self._terminate(
                    SessionVerdict(ok=False, reason=LogoutReason.NO_USER)
                )
            logger.warning(
                "Session check skipped, identity unavailable",
                extra={"status": e.status},
            )
            return UNVERIFIED

        verdict = check_session(self.last_user, self.local_session_id, now)
        if not verdict.ok:
            return self._terminate(verdict)
        return verdict

    def _terminate(self, verdict: SessionVerdict) -> SessionVerdict:
        self._terminal = verdict
        logger.info(
            "Session terminated",
            extra={
                "reason": verdict.reason.value if verdict.reason else None,
                "user_id": sanitize_for_log((self.last_user or {}).get("id", "")),
            },
        )
        return verdict
