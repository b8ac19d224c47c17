"""Auth domain models for users and login sessions."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """Role hierarchy: owner > admin > moderator > user."""

    user = "user"
    moderator = "moderator"
    admin = "admin"
    owner = "owner"

    @property
    def level(self) -> int:
        """Return numeric level for comparison (higher = more privileges)."""
        return {
            Role.user: 0,
            Role.moderator: 1,
            Role.admin: 2,
            Role.owner: 3,
        }[self]


class AccountStatus(str, Enum):
    """Moderation status of a user account."""

    active = "active"
    suspended = "suspended"
    banned = "banned"
    pending = "pending"  # awaiting verification


@dataclass
class User:
    """A registered account.

    ``suspension_reason`` is also used as the ban reason once the account is
    banned.  ``login_attempts``/``locked_until`` track failed sign-ins and are
    independent of ``status``.
    """

    id: str
    username: str
    email: str
    provider: str = "email"  # email | google | facebook | ...
    role: Role = Role.user
    status: AccountStatus = AccountStatus.active
    suspension_reason: Optional[str] = None
    suspension_expires_at: Optional[datetime] = None
    warning_count: int = 0
    is_verified: bool = False
    login_attempts: int = 0
    locked_until: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.created_at is None:
            self.created_at = utcnow()
        if self.updated_at is None:
            self.updated_at = self.created_at
        if isinstance(self.role, str):
            self.role = Role(self.role)
        if isinstance(self.status, str):
            self.status = AccountStatus(self.status)

    @property
    def is_banned(self) -> bool:
        return self.status == AccountStatus.banned

    @property
    def is_suspended(self) -> bool:
        return self.status == AccountStatus.suspended

    def is_locked(self, now: datetime) -> bool:
        return self.locked_until is not None and self.locked_until > now


@dataclass
class Session:
    """Represents an active login session."""

    id: str
    user_id: str
    token: str
    created_at: str = ""
    expires_at: str = ""

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = utcnow().isoformat()
