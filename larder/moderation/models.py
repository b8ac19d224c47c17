"""Result and statistics models for the moderation service."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from larder.moderation.errors import ErrorKind, ModerationError

T = TypeVar("T")


@dataclass
class ModerationResult(Generic[T]):
    """Outcome of a moderation operation.

    Exactly one of ``value`` (on success) or ``error`` (on failure) is
    meaningful.  Operations that return nothing succeed with ``value=None``.
    """

    value: Optional[T] = None
    error: Optional[ModerationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error is not None else None

    @property
    def reason(self) -> str:
        return self.error.message if self.error is not None else ""

    @classmethod
    def success(cls, value: Optional[T] = None) -> "ModerationResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ModerationError) -> "ModerationResult[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        """Return the value, re-raising the error if the operation failed."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


@dataclass
class ModerationStats:
    """Dashboard counters for moderators."""

    total_users: int = 0
    active_users: int = 0
    suspended_users: int = 0
    banned_users: int = 0
    pending_users: int = 0
    verified_users: int = 0
    social_logins: int = 0
    new_this_week: int = 0
    new_this_month: int = 0
    login_attempts_blocked: int = 0
    total_recipes: int = 0
    pending_recipes: int = 0
    approved_recipes: int = 0
    rejected_recipes: int = 0
