"""Request model for the billing activation endpoint."""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

DEFAULT_SUCCESS_PATH = "/activation/?success=1&session_id={CHECKOUT_SESSION_ID}"
DEFAULT_CANCEL_PATH = "/activation/?cancelled=1"


class ActivationAction(StrEnum):
    STATUS = "status"
    CHECKOUT = "checkout"


class ActivationRequest(BaseModel):
    """Body of POST /activation: {action, email, plan?, successPath?, cancelPath?}."""

    model_config = ConfigDict(populate_by_name=True)

    action: ActivationAction
    email: EmailStr
    plan: str | None = None
    success_path: str | None = Field(None, alias="successPath")
    cancel_path: str | None = Field(None, alias="cancelPath")

    @field_validator("action", mode="before")
    @classmethod
    def _normalize_action(cls, value: Any) -> str:
        return str(value or "").strip().lower()

    @field_validator("email", mode="before")
    @classmethod
    def _strip_email(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("email")
    @classmethod
    def _lower_email(cls, value: str) -> str:
        return value.lower()

    @field_validator("plan", mode="before")
    @classmethod
    def _normalize_plan(cls, value: Any) -> str | None:
        if value is None:
            return None
        return str(value).strip().lower() or None

    @property
    def resolved_success_path(self) -> str:
        return self.success_path or DEFAULT_SUCCESS_PATH

    @property
    def resolved_cancel_path(self) -> str:
        return self.cancel_path or DEFAULT_CANCEL_PATH
