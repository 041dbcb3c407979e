"""Account metadata models for identity records.

The identity provider owns the account record; these models only describe
the sub-records this service reads and writes inside ``app_metadata`` and
``user_metadata``. Unknown keys always pass through untouched.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.lambdas.shared.utils.timestamps import format_timestamp, parse_timestamp


class TimedAccess(BaseModel):
    """Temporary access window stored at ``app_metadata.timed_access``."""

    role: str = Field("", description="Timed role tag, e.g. 'week'")
    assigned_at: datetime | None = None
    expires_at: datetime | None = None
    active: bool = False
    injected_active: bool = Field(
        False, description="True when 'active' exists only because of this window"
    )

    @field_validator("role", mode="before")
    @classmethod
    def _strip_role(cls, value: Any) -> str:
        return value.strip() if isinstance(value, str) else ""

    @field_validator("assigned_at", "expires_at", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: Any) -> datetime | None:
        return parse_timestamp(value)

    @field_validator("active", "injected_active", mode="before")
    @classmethod
    def _truthy(cls, value: Any) -> bool:
        return bool(value)

    @classmethod
    def parse(cls, raw: Any) -> "TimedAccess":
        """Parse a stored window, treating absent or non-object input as empty."""
        if not isinstance(raw, dict):
            return cls()
        return cls.model_validate(raw)

    def has_window(self) -> bool:
        """Whether both ends of the window are set."""
        return self.assigned_at is not None and self.expires_at is not None

    def to_metadata(self) -> dict[str, Any]:
        """Serialize to the stored metadata shape."""
        return {
            "role": self.role,
            "assigned_at": format_timestamp(self.assigned_at),
            "expires_at": format_timestamp(self.expires_at),
            "active": self.active,
            "injected_active": self.injected_active,
        }


class Subscription(BaseModel):
    """Paid subscription stored at ``user_metadata.subscription``.

    Written only by the payment webhook and the billing status check.
    """

    model_config = ConfigDict(extra="allow")

    status: str | None = None
    plan_key: str | None = None
    expires_at: str | int | float | None = Field(
        None, description="ISO timestamp, or epoch milliseconds on older records"
    )
    activated_at: str | int | float | None = None
    last_session_id: str | None = None
    last_payment_intent: str | None = None
    last_inactive_reason: str | None = None

    @classmethod
    def from_user(cls, user: dict[str, Any]) -> "Subscription":
        """Read the subscription from an identity user record."""
        user_meta = user.get("user_metadata") or {}
        raw = user_meta.get("subscription")
        return cls.model_validate(raw if isinstance(raw, dict) else {})

    @property
    def expires_at_datetime(self) -> datetime | None:
        return parse_timestamp(self.expires_at)

    def to_metadata(self) -> dict[str, Any]:
        """Serialize, keeping explicit nulls for known keys that were set."""
        return self.model_dump(exclude_unset=True)


def pick_status(user: dict[str, Any] | None) -> str:
    """Return the first non-blank status string, user_metadata first.

    Args:
        user: Identity user record (may be None)

    Returns:
        Trimmed status string, or "" when none is set
    """
    if not user:
        return ""
    for source in (user.get("user_metadata"), user.get("app_metadata")):
        if not isinstance(source, dict):
            continue
        candidate = source.get("status")
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
    return ""


def normalize_status(value: Any) -> str:
    """Normalize a status string for comparison (trim + lower-case)."""
    if not isinstance(value, str):
        return ""
    return value.strip().lower()


def unique_roles(values: Any) -> list[str]:
    """Normalize a roles list to unique trimmed non-empty strings.

    Insertion order is preserved; non-string entries are dropped.

    Example:
        >>> unique_roles([" member", "member", "", 3, "admin"])
        ['member', 'admin']
    """
    if not isinstance(values, list | tuple):
        return []
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        if not isinstance(value, str):
            continue
        trimmed = value.strip()
        if not trimmed or trimmed in seen:
            continue
        seen.add(trimmed)
        result.append(trimmed)
    return result
