"""Access state resolution for membership accounts.

Decides whether an account is allowed into the members area, and under
which roles, from three stored signals:

- explicit role tags (``app_metadata.roles``)
- a free-text status (``user_metadata.status`` / ``app_metadata.status``)
- a timed-access window (``app_metadata.timed_access``)

Every reason an account is active is modelled as an ``AccessGrant`` with a
``GrantSource``. The stored ``injected_active`` flag is derived from the
grants: it is true exactly when the timed window is the only grant, which is
the case where ``active`` must be revoked once the window expires.

Two entry points:
- resolve_login_access(): login-time resolution; may mint a fresh timed
  window and always rotates the session id.
- evaluate_access(): read-only re-check used by session polling.

Both are pure: no I/O, time is passed in.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from src.lambdas.shared.auth.enums import (
    ACTIVE_STATUS_VALUES,
    TIMED_ROLE_DURATIONS,
    TIMED_ROLES,
    GrantSource,
    Role,
    TimedRole,
)
from src.lambdas.shared.models.account import (
    TimedAccess,
    normalize_status,
    pick_status,
    unique_roles,
)


@dataclass(frozen=True)
class AccessGrant:
    """One reason an account is active."""

    source: GrantSource
    role: str | None = None
    expires_at: datetime | None = None


@dataclass(frozen=True)
class AccessDecision:
    """Result of resolving an account's access state."""

    status: str
    roles: list[str]
    grants: tuple[AccessGrant, ...]
    timed_access: TimedAccess | None = None
    session_id: str | None = None
    clear_timed_access: bool = False
    window_minted: bool = False

    @property
    def active(self) -> bool:
        return bool(self.grants)

    @property
    def injected_active(self) -> bool:
        """True when the timed window is the only grant."""
        return only_timed_grant(self.grants)

    @property
    def primary_source(self) -> GrantSource | None:
        """Highest-precedence grant source (admin > status > timed > manual)."""
        if not self.grants:
            return None
        order = list(GrantSource)
        return min((g.source for g in self.grants), key=order.index)

    def to_app_metadata(self, app_metadata: dict[str, Any]) -> dict[str, Any]:
        """Merge the decision over existing app_metadata.

        Only status, roles, session_id and timed_access are written; every
        other key passes through unchanged.
        """
        merged = dict(app_metadata)
        merged["status"] = self.status
        merged["roles"] = list(self.roles)
        if self.session_id is not None:
            merged["session_id"] = self.session_id
        if self.timed_access is not None:
            merged["timed_access"] = self.timed_access.to_metadata()
        elif self.clear_timed_access:
            merged["timed_access"] = None
        return merged


def only_timed_grant(grants: tuple[AccessGrant, ...]) -> bool:
    return len(grants) == 1 and grants[0].source is GrantSource.TIMED


def is_timed_role(role: str) -> bool:
    return role in TIMED_ROLES


def timed_role_duration(role: str) -> timedelta:
    """Nominal duration of a timed role tag."""
    return TIMED_ROLE_DURATIONS[TimedRole(role)]


def select_timed_role(roles: list[str]) -> str | None:
    """Pick the timed role with the longest nominal duration.

    Duration, not list position, decides; on equal duration the later tag
    wins.

    Example:
        >>> select_timed_role(["week", "member", "day"])
        'week'
    """
    selected: str | None = None
    for role in roles:
        if not is_timed_role(role):
            continue
        if selected is None or timed_role_duration(role) >= timed_role_duration(
            selected
        ):
            selected = role
    return selected


def new_session_id() -> str:
    """Generate an unpredictable session identifier (uuid4, os.urandom)."""
    return str(uuid.uuid4())


def _base_grants(is_admin: bool, status_active: bool) -> list[AccessGrant]:
    grants: list[AccessGrant] = []
    if is_admin:
        grants.append(AccessGrant(GrantSource.ADMIN))
    if status_active:
        grants.append(AccessGrant(GrantSource.STATUS))
    return grants


def resolve_login_access(
    user: dict[str, Any],
    now: datetime,
    session_id: str | None = None,
) -> AccessDecision:
    """Resolve access for a login event.

    An expired window whose timed tag is still on the account is re-minted
    from ``now``, so a login never revokes injected 'active' by itself.
    Revocation after expiry is evaluate_access()'s job (session checks);
    removing the timed tag is what ends timed access for good.

    Args:
        user: Identity user record with app_metadata / user_metadata
        now: Current time (aware)
        session_id: Session id to issue; generated when omitted

    Returns:
        AccessDecision carrying the replacement roles, timed window and a
        freshly rotated session id
    """
    app_meta = user.get("app_metadata") or {}
    roles = unique_roles(app_meta.get("roles"))

    status_raw = pick_status(user)
    is_admin = Role.ADMIN.value in roles
    status_active = is_admin or normalize_status(status_raw) in ACTIVE_STATUS_VALUES

    existing = TimedAccess.parse(app_meta.get("timed_access"))
    timed_tags = [role for role in roles if is_timed_role(role)]

    # An 'active' tag is manual unless a timed grant is known to have
    # injected it and timed tags are still around to re-check it against.
    manual_active_before = Role.ACTIVE.value in roles and (
        not existing.injected_active or not timed_tags
    )

    selected = select_timed_role(timed_tags)
    assigned_at: datetime | None = None
    expires_at: datetime | None = None
    minted = False

    if selected:
        reusable = (
            existing.role == selected
            and existing.has_window()
            and existing.expires_at > now
        )
        if reusable:
            assigned_at, expires_at = existing.assigned_at, existing.expires_at
        else:
            assigned_at = now
            expires_at = now + timed_role_duration(selected)
            minted = True

    timed_active = bool(selected and expires_at and expires_at > now)

    next_roles = [
        role for role in roles if not is_timed_role(role) and role != Role.ACTIVE
    ]
    if timed_active:
        next_roles.append(selected)

    grants = _base_grants(is_admin, status_active)
    if timed_active:
        grants.append(AccessGrant(GrantSource.TIMED, selected, expires_at))
    if manual_active_before:
        grants.append(AccessGrant(GrantSource.MANUAL))

    if grants:
        next_roles.append(Role.ACTIVE.value)

    decision_grants = tuple(grants)

    timed_access = None
    if selected:
        timed_access = TimedAccess(
            role=selected,
            assigned_at=assigned_at,
            expires_at=expires_at,
            active=timed_active,
            injected_active=only_timed_grant(decision_grants),
        )

    return AccessDecision(
        status=status_raw or app_meta.get("status") or "",
        roles=unique_roles(next_roles),
        grants=decision_grants,
        timed_access=timed_access,
        session_id=session_id or new_session_id(),
        clear_timed_access=selected is None and bool(app_meta.get("timed_access")),
        window_minted=minted,
    )


def evaluate_access(user: dict[str, Any] | None, now: datetime) -> AccessDecision:
    """Read-only access check for an already logged-in account.

    Never mints a window or rotates the session id. A timed grant counts
    only when the stored window belongs to the account's selected timed
    role and has not expired.
    """
    if not user:
        return AccessDecision(status="", roles=[], grants=())

    app_meta = user.get("app_metadata") or {}
    roles = unique_roles(app_meta.get("roles"))
    status_raw = pick_status(user)
    is_admin = Role.ADMIN.value in roles
    status_active = is_admin or normalize_status(status_raw) in ACTIVE_STATUS_VALUES

    existing = TimedAccess.parse(app_meta.get("timed_access"))
    selected = select_timed_role(roles)
    timed_live = bool(
        selected
        and existing.role == selected
        and existing.expires_at is not None
        and existing.expires_at > now
    )
    manual = Role.ACTIVE.value in roles and not existing.injected_active

    grants = _base_grants(is_admin, status_active)
    if timed_live:
        grants.append(AccessGrant(GrantSource.TIMED, selected, existing.expires_at))
    if manual:
        grants.append(AccessGrant(GrantSource.MANUAL))

    return AccessDecision(
        status=status_raw,
        roles=roles,
        grants=tuple(grants),
        timed_access=existing if existing.role else None,
        session_id=app_meta.get("session_id"),
    )
