"""Account state machine.

States: ``pending`` -> ``active`` <-> ``suspended``, and any non-banned state
-> ``banned``.  Banned is terminal: there is no unban transition.

Every moderation transition requires the actor to strictly outrank the target
(:func:`~larder.auth.permissions.can_act_on`).  Transitions validate first and
only then mutate the target, and return the :class:`LogRecord` the caller must
append to the moderation log.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import Optional

from larder.audit.models import LogAction, LogRecord
from larder.auth.models import AccountStatus, Role, User
from larder.auth.permissions import RoleLike, can_act_on, can_assign_role, has_permission
from larder.config import Settings
from larder.moderation.errors import (
    InvalidArgument,
    InvalidStateTransition,
    ModerationError,
    PermissionDenied,
)


class AccountStateMachine:
    """Guards and applies transitions on :class:`~larder.auth.models.User`."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        settings = settings or Settings()
        self.max_suspension_days = settings.max_suspension_days
        self.max_login_attempts = settings.max_login_attempts
        self.lockout = timedelta(minutes=settings.lockout_minutes)
        self.require_verification = settings.require_verification

    # -- creation --------------------------------------------------------------

    def register(self, username: str, email: str, provider: str, now: datetime, role: Role = Role.user) -> User:
        """Build a new account. Email sign-ups start ``pending`` when verification is required."""
        if not username or not username.strip():
            raise InvalidArgument("A username is required")
        if not email or "@" not in email:
            raise InvalidArgument(f"Invalid email address: {email!r}")
        social = provider != "email"
        pending = self.require_verification and not social
        return User(
            id=uuid.uuid4().hex,
            username=username.strip(),
            email=email.strip(),
            provider=provider,
            role=role,
            status=AccountStatus.pending if pending else AccountStatus.active,
            is_verified=social,
            created_at=now,
        )

    # -- guards ----------------------------------------------------------------

    @staticmethod
    def _authorize(actor: User, target: User) -> None:
        if not can_act_on(actor.role, target.role):
            raise PermissionDenied(
                f"Role '{actor.role.value}' cannot act on a user with role '{target.role.value}'"
            )

    @staticmethod
    def _require_not_banned(target: User, verb: str) -> None:
        if target.is_banned:
            raise InvalidStateTransition(f"Cannot {verb} user '{target.id}': account is banned")

    @staticmethod
    def _require_reason(reason: Optional[str], verb: str) -> str:
        if reason is None or not reason.strip():
            raise InvalidArgument(f"A reason is required to {verb} a user")
        return reason.strip()

    # -- moderation transitions ------------------------------------------------

    def suspend(self, actor: User, target: User, reason: str, duration_days: int, now: datetime) -> LogRecord:
        self._authorize(actor, target)
        self._require_not_banned(target, "suspend")
        reason = self._require_reason(reason, "suspend")
        if (
            isinstance(duration_days, bool)
            or not isinstance(duration_days, int)
            or not 1 <= duration_days <= self.max_suspension_days
        ):
            raise InvalidArgument(
                f"Suspension duration must be a whole number of days between 1 and {self.max_suspension_days}"
            )

        target.status = AccountStatus.suspended
        target.suspension_reason = reason
        target.suspension_expires_at = now + timedelta(days=duration_days)
        target.updated_at = now
        return LogRecord(
            action=LogAction.user_suspended,
            reason=reason,
            details={
                "duration_days": duration_days,
                "expires_at": target.suspension_expires_at.isoformat(),
            },
        )

    def lift(self, actor: User, target: User, now: datetime) -> LogRecord:
        self._authorize(actor, target)
        if target.status != AccountStatus.suspended:
            raise InvalidStateTransition(
                f"Cannot lift suspension of user '{target.id}': account is {target.status.value}"
            )
        self._clear_suspension(target, now)
        return LogRecord(action=LogAction.user_unsuspended)

    def ban(self, actor: User, target: User, reason: str, now: datetime) -> LogRecord:
        self._authorize(actor, target)
        self._require_not_banned(target, "ban")
        reason = self._require_reason(reason, "ban")

        previous = target.status
        target.status = AccountStatus.banned
        target.suspension_reason = reason
        target.suspension_expires_at = None
        target.updated_at = now
        return LogRecord(
            action=LogAction.user_banned,
            reason=reason,
            details={"previous_status": previous.value},
        )

    def warn(self, actor: User, target: User, reason: str, now: datetime) -> LogRecord:
        self._authorize(actor, target)
        self._require_not_banned(target, "warn")
        reason = self._require_reason(reason, "warn")

        target.warning_count += 1
        target.updated_at = now
        return LogRecord(
            action=LogAction.user_warned,
            reason=reason,
            details={"warning_count": target.warning_count},
        )

    def change_role(self, actor: User, target: User, new_role: RoleLike, now: datetime) -> LogRecord:
        if not has_permission(actor.role, Role.admin):
            raise PermissionDenied("Changing roles requires role 'admin' or higher")
        try:
            role = new_role if isinstance(new_role, Role) else Role(new_role)
        except ValueError:
            raise InvalidArgument(f"Unknown role: {new_role!r}") from None
        if not can_assign_role(actor.role, role):
            raise PermissionDenied(f"Role '{actor.role.value}' cannot assign role '{role.value}'")
        self._authorize(actor, target)
        if target.role == role:
            raise InvalidStateTransition(f"User '{target.id}' already has role '{role.value}'")

        old_role = target.role
        target.role = role
        target.updated_at = now
        return LogRecord(
            action=LogAction.role_changed,
            details={"old_role": old_role.value, "new_role": role.value},
        )

    # -- passive expiry --------------------------------------------------------

    @staticmethod
    def _clear_suspension(user: User, now: datetime) -> None:
        user.status = AccountStatus.active
        user.suspension_reason = None
        user.suspension_expires_at = None
        user.updated_at = now

    def reconcile(self, user: User, now: datetime) -> bool:
        """Turn an expired suspension back into ``active``. Returns True if changed."""
        if (
            user.status == AccountStatus.suspended
            and user.suspension_expires_at is not None
            and now > user.suspension_expires_at
        ):
            self._clear_suspension(user, now)
            return True
        return False

    # -- verification and sign-in ----------------------------------------------

    @staticmethod
    def verify(user: User, now: datetime) -> None:
        if user.is_verified and user.status != AccountStatus.pending:
            raise InvalidStateTransition(f"User '{user.id}' is already verified")
        user.is_verified = True
        if user.status == AccountStatus.pending:
            user.status = AccountStatus.active
        user.updated_at = now

    @staticmethod
    def login_block_reason(user: User, now: datetime) -> Optional[ModerationError]:
        """Return why *user* may not sign in right now, or None."""
        if user.is_locked(now):
            return PermissionDenied("Account is temporarily locked due to too many failed login attempts")
        if user.status == AccountStatus.banned:
            return PermissionDenied("Account has been banned")
        if user.status == AccountStatus.suspended:
            return PermissionDenied("Account is currently suspended")
        return None

    def register_failed_login(self, user: User, now: datetime) -> Optional[LogRecord]:
        """Count a failed sign-in; returns a record when this locks the account."""
        if user.is_locked(now):
            return None
        user.login_attempts += 1
        user.updated_at = now
        if user.login_attempts < self.max_login_attempts:
            return None
        user.locked_until = now + self.lockout
        return LogRecord(
            action=LogAction.account_locked,
            reason="Account locked due to failed login attempts",
            details={
                "login_attempts": user.login_attempts,
                "locked_until": user.locked_until.isoformat(),
            },
        )

    @staticmethod
    def register_successful_login(user: User, now: datetime) -> None:
        user.login_attempts = 0
        user.locked_until = None
        user.last_login_at = now
        user.updated_at = now
