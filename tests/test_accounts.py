"""Tests for the account state machine."""

from datetime import datetime, timedelta, timezone

import pytest

from larder.accounts.state import AccountStateMachine
from larder.audit.models import LogAction
from larder.auth.models import AccountStatus, Role, User
from larder.config import Settings
from larder.moderation.errors import InvalidArgument, InvalidStateTransition, PermissionDenied

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _user(uid: str, role: Role = Role.user, **kwargs) -> User:
    return User(id=uid, username=uid, email=f"{uid}@example.com", role=role, created_at=NOW, **kwargs)


def test_suspend_sets_reason_and_expiry():
    machine = AccountStateMachine()
    admin, target = _user("admin", Role.admin), _user("bob")

    record = machine.suspend(admin, target, "spam", 7, NOW)

    assert target.status == AccountStatus.suspended
    assert target.suspension_reason == "spam"
    assert target.suspension_expires_at == NOW + timedelta(days=7)
    assert record.action == LogAction.user_suspended
    assert record.reason == "spam"
    assert record.details["duration_days"] == 7


@pytest.mark.parametrize("days", [0, -1, 366, 1.5, True, "7"])
def test_suspend_rejects_bad_durations(days):
    machine = AccountStateMachine()
    target = _user("bob")
    with pytest.raises(InvalidArgument):
        machine.suspend(_user("mod", Role.moderator), target, "spam", days, NOW)
    assert target.status == AccountStatus.active


def test_suspend_accepts_boundary_durations():
    machine = AccountStateMachine()
    mod = _user("mod", Role.moderator)
    machine.suspend(mod, _user("a"), "spam", 1, NOW)
    machine.suspend(mod, _user("b"), "spam", 365, NOW)


def test_suspend_limit_comes_from_settings():
    machine = AccountStateMachine(Settings(max_suspension_days=30))
    with pytest.raises(InvalidArgument):
        machine.suspend(_user("mod", Role.moderator), _user("bob"), "spam", 31, NOW)


@pytest.mark.parametrize("reason", ["", "   ", None])
def test_suspend_and_ban_require_reason(reason):
    machine = AccountStateMachine()
    mod = _user("mod", Role.moderator)
    with pytest.raises(InvalidArgument):
        machine.suspend(mod, _user("bob"), reason, 3, NOW)
    with pytest.raises(InvalidArgument):
        machine.ban(mod, _user("bob"), reason, NOW)


def test_peers_and_superiors_cannot_be_moderated():
    machine = AccountStateMachine()
    mod = _user("mod", Role.moderator)
    with pytest.raises(PermissionDenied):
        machine.suspend(mod, _user("mod2", Role.moderator), "spam", 3, NOW)
    with pytest.raises(PermissionDenied):
        machine.ban(mod, _user("admin", Role.admin), "spam", NOW)
    with pytest.raises(PermissionDenied):
        machine.warn(mod, mod, "self", NOW)


def test_permission_is_checked_before_arguments():
    machine = AccountStateMachine()
    with pytest.raises(PermissionDenied):
        machine.suspend(_user("u1"), _user("u2"), "", 0, NOW)


def test_lift_requires_suspension():
    machine = AccountStateMachine()
    mod, target = _user("mod", Role.moderator), _user("bob")
    with pytest.raises(InvalidStateTransition):
        machine.lift(mod, target, NOW)

    machine.suspend(mod, target, "spam", 3, NOW)
    record = machine.lift(mod, target, NOW)
    assert record.action == LogAction.user_unsuspended
    assert target.status == AccountStatus.active
    assert target.suspension_reason is None
    assert target.suspension_expires_at is None


def test_ban_is_terminal():
    machine = AccountStateMachine()
    owner, target = _user("owner", Role.owner), _user("bob")
    record = machine.ban(owner, target, "fraud", NOW)
    assert record.action == LogAction.user_banned
    assert target.status == AccountStatus.banned
    assert target.suspension_reason == "fraud"

    with pytest.raises(InvalidStateTransition):
        machine.suspend(owner, target, "again", 3, NOW)
    with pytest.raises(InvalidStateTransition):
        machine.lift(owner, target, NOW)
    with pytest.raises(InvalidStateTransition):
        machine.ban(owner, target, "again", NOW)
    with pytest.raises(InvalidStateTransition):
        machine.warn(owner, target, "again", NOW)
    assert target.suspension_reason == "fraud"


def test_ban_from_suspension_clears_expiry():
    machine = AccountStateMachine()
    mod, target = _user("mod", Role.moderator), _user("bob")
    machine.suspend(mod, target, "spam", 3, NOW)
    record = machine.ban(mod, target, "repeat offender", NOW)
    assert target.suspension_expires_at is None
    assert record.details["previous_status"] == "suspended"


def test_warn_increments_count():
    machine = AccountStateMachine()
    mod, target = _user("mod", Role.moderator), _user("bob")
    machine.warn(mod, target, "rude", NOW)
    record = machine.warn(mod, target, "rude again", NOW)
    assert target.warning_count == 2
    assert record.details == {"warning_count": 2}


def test_change_role_rules():
    machine = AccountStateMachine()
    owner, admin, mod = _user("owner", Role.owner), _user("admin", Role.admin), _user("mod", Role.moderator)

    with pytest.raises(PermissionDenied):
        machine.change_role(mod, _user("bob"), Role.moderator, NOW)
    with pytest.raises(PermissionDenied):
        machine.change_role(admin, _user("bob"), Role.owner, NOW)
    with pytest.raises(PermissionDenied):
        machine.change_role(admin, _user("admin2", Role.admin), Role.user, NOW)
    with pytest.raises(InvalidArgument):
        machine.change_role(admin, _user("bob"), "chef", NOW)
    with pytest.raises(InvalidStateTransition):
        machine.change_role(admin, _user("bob"), Role.user, NOW)

    target = _user("bob")
    record = machine.change_role(owner, target, "owner", NOW)
    assert target.role == Role.owner
    assert record.action == LogAction.role_changed
    assert record.details == {"old_role": "user", "new_role": "owner"}


def test_reconcile_expired_suspension():
    machine = AccountStateMachine()
    target = _user("bob")
    machine.suspend(_user("mod", Role.moderator), target, "spam", 2, NOW)

    assert machine.reconcile(target, NOW + timedelta(days=1)) is False
    assert target.status == AccountStatus.suspended

    assert machine.reconcile(target, NOW + timedelta(days=2, seconds=1)) is True
    assert target.status == AccountStatus.active
    assert target.suspension_expires_at is None
    assert machine.reconcile(target, NOW + timedelta(days=3)) is False


def test_register_account_states():
    machine = AccountStateMachine(Settings(require_verification=True))
    email_user = machine.register("alice", "alice@example.com", "email", NOW)
    social_user = machine.register("carol", "carol@example.com", "google", NOW)

    assert email_user.role == Role.user
    assert email_user.status == AccountStatus.pending
    assert email_user.is_verified is False
    assert social_user.status == AccountStatus.active
    assert social_user.is_verified is True

    machine.verify(email_user, NOW)
    assert email_user.status == AccountStatus.active
    assert email_user.is_verified
    with pytest.raises(InvalidStateTransition):
        machine.verify(email_user, NOW)

    with pytest.raises(InvalidArgument):
        machine.register("dave", "not-an-email", "email", NOW)


def test_failed_logins_lock_account():
    machine = AccountStateMachine(Settings(max_login_attempts=3, lockout_minutes=15))
    user = _user("bob")

    assert machine.register_failed_login(user, NOW) is None
    assert machine.register_failed_login(user, NOW) is None
    record = machine.register_failed_login(user, NOW)

    assert record is not None
    assert record.action == LogAction.account_locked
    assert user.locked_until == NOW + timedelta(minutes=15)
    assert machine.login_block_reason(user, NOW) is not None

    # attempts while locked are not counted
    assert machine.register_failed_login(user, NOW + timedelta(minutes=1)) is None
    assert user.login_attempts == 3

    later = NOW + timedelta(minutes=16)
    assert machine.login_block_reason(user, later) is None
    machine.register_successful_login(user, later)
    assert user.login_attempts == 0
    assert user.locked_until is None
    assert user.last_login_at == later


def test_login_blocked_for_banned_and_suspended():
    machine = AccountStateMachine()
    mod = _user("mod", Role.moderator)
    suspended, banned = _user("s"), _user("b")
    machine.suspend(mod, suspended, "spam", 1, NOW)
    machine.ban(mod, banned, "spam", NOW)

    assert isinstance(machine.login_block_reason(suspended, NOW), PermissionDenied)
    assert isinstance(machine.login_block_reason(banned, NOW), PermissionDenied)
    assert machine.login_block_reason(_user("ok"), NOW) is None
