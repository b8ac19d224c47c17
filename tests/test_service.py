"""Tests for the moderation service facade."""

from datetime import datetime, timedelta, timezone

import pytest

from larder.audit.models import SYSTEM_ACTOR, LogAction, LogFilter, TargetType
from larder.auth.models import AccountStatus, Role, User
from larder.config import Settings
from larder.moderation.commands import ApproveRecipeCommand, BanCommand, SuspendCommand
from larder.moderation.errors import ErrorKind, PersistenceFault
from larder.moderation.service import ModerationService
from larder.recipes.models import ModerationStatus, Recipe
from larder.storage.memory import MemoryStore

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingRevoker:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.revoked: list[str] = []

    def revoke_all_sessions(self, user_id: str) -> int:
        if self.fail:
            raise PersistenceFault("session store unavailable")
        self.revoked.append(user_id)
        return 1


def _setup(settings: Settings = None, revoker: RecordingRevoker = None):
    store = MemoryStore()
    clock = FakeClock()
    for uid, role in [
        ("owner", Role.owner),
        ("admin", Role.admin),
        ("mod", Role.moderator),
        ("mod2", Role.moderator),
        ("alice", Role.user),
        ("bob", Role.user),
    ]:
        store.put_user(User(id=uid, username=uid.title(), email=f"{uid}@example.com", role=role, created_at=T0))
    service = ModerationService(store, revoker or RecordingRevoker(), settings=settings, clock=clock)
    return service, store, clock


def _add_recipe(store: MemoryStore, rid: str = "r1", author: str = "alice", at: datetime = T0) -> Recipe:
    recipe = Recipe(id=rid, author_id=author, title=f"Recipe {rid}", created_at=at)
    store.put_recipe(recipe)
    return recipe


def _log(store: MemoryStore, **kwargs):
    return store.query_log(LogFilter(**kwargs))


# -- account moderation ------------------------------------------------------


def test_moderator_cannot_ban_admin():
    service, store, _ = _setup()

    result = service.ban_user("mod", "admin", "x")

    assert not result.ok
    assert result.kind == ErrorKind.permission_denied
    assert store.get_user("admin").status == AccountStatus.active
    assert _log(store) == []


def test_admin_suspends_user_for_seven_days():
    service, store, clock = _setup()

    result = service.suspend_user("admin", "bob", "spam", 7)

    assert result.ok
    bob = store.get_user("bob")
    assert bob.status == AccountStatus.suspended
    assert bob.suspension_reason == "spam"
    assert bob.suspension_expires_at == clock.now + timedelta(days=7)

    entries = _log(store)
    assert len(entries) == 1
    entry = entries[0]
    assert entry.action == LogAction.user_suspended
    assert entry.moderator_id == "admin"
    assert entry.moderator_username == "Admin"
    assert entry.target_type == TargetType.user
    assert entry.target_id == "bob"
    assert entry.reason == "spam"
    assert entry.created_at == clock.now


def test_invalid_suspension_leaves_no_trace():
    service, store, _ = _setup()
    assert service.suspend_user("admin", "bob", "spam", 0).kind == ErrorKind.invalid_argument
    assert service.suspend_user("admin", "bob", "", 3).kind == ErrorKind.invalid_argument
    assert store.get_user("bob").status == AccountStatus.active
    assert _log(store) == []


def test_only_owner_assigns_owner():
    service, store, _ = _setup()

    denied = service.change_user_role("admin", "bob", "owner")
    assert denied.kind == ErrorKind.permission_denied
    assert store.get_user("bob").role == Role.user

    granted = service.change_user_role("owner", "bob", Role.owner)
    assert granted.ok
    assert granted.value.role == Role.owner
    entry = _log(store)[0]
    assert entry.action == LogAction.role_changed
    assert entry.details == {"old_role": "user", "new_role": "owner"}


def test_moderator_cannot_change_roles():
    service, _, _ = _setup()
    assert service.change_user_role("mod", "bob", "moderator").kind == ErrorKind.permission_denied


def test_expired_suspension_reads_as_active():
    service, store, clock = _setup()
    service.suspend_user("mod", "bob", "spam", 1)
    clock.advance(days=1, seconds=1)

    viewed = service.get_user("admin", "bob").unwrap()
    listed = {u.id: u for u in service.list_users("admin").unwrap()}

    assert viewed.status == AccountStatus.active
    assert viewed.suspension_expires_at is None
    assert listed["bob"].status == AccountStatus.active
    assert service.get_statistics("admin").unwrap().suspended_users == 0

    result = service.unsuspend_user("mod", "bob")
    assert result.kind == ErrorKind.invalid_state_transition
    assert [e.action for e in _log(store)] == [LogAction.user_suspended]


def test_unsuspend_before_expiry():
    service, store, clock = _setup()
    service.suspend_user("mod", "bob", "spam", 3)
    clock.advance(days=1)

    result = service.unsuspend_user("mod", "bob")

    assert result.ok
    assert store.get_user("bob").status == AccountStatus.active
    assert [e.action for e in _log(store)] == [LogAction.user_suspended, LogAction.user_unsuspended]


def test_ban_revokes_sessions_and_is_terminal():
    revoker = RecordingRevoker()
    service, store, _ = _setup(revoker=revoker)

    assert service.ban_user("admin", "bob", "fraud").ok
    assert revoker.revoked == ["bob"]
    assert store.get_user("bob").status == AccountStatus.banned

    for result in (
        service.suspend_user("admin", "bob", "again", 3),
        service.unsuspend_user("admin", "bob"),
        service.ban_user("admin", "bob", "again"),
        service.warn_user("admin", "bob", "again"),
    ):
        assert result.kind == ErrorKind.invalid_state_transition
    assert len(_log(store)) == 1
    assert service.check_login_allowed("bob").kind == ErrorKind.permission_denied


def test_failed_session_revocation_rolls_back_ban():
    service, store, _ = _setup(revoker=RecordingRevoker(fail=True))

    with pytest.raises(PersistenceFault):
        service.ban_user("admin", "bob", "fraud")

    assert store.get_user("bob").status == AccountStatus.active
    assert _log(store) == []


def test_warn_counts_up():
    service, store, _ = _setup()
    service.warn_user("mod", "bob", "rude")
    result = service.warn_user("mod", "bob", "rude again")
    assert result.value.warning_count == 2
    assert [e.details["warning_count"] for e in _log(store)] == [1, 2]


def test_suspended_actor_is_denied():
    service, _, _ = _setup()
    service.suspend_user("admin", "mod", "abuse", 2)
    result = service.warn_user("mod", "bob", "rude")
    assert result.kind == ErrorKind.permission_denied


def test_unknown_ids_are_not_found():
    service, _, _ = _setup()
    assert service.ban_user("ghost", "bob", "x").kind == ErrorKind.not_found
    assert service.ban_user("admin", "ghost", "x").kind == ErrorKind.not_found
    assert service.approve_recipe("mod", "nope").kind == ErrorKind.not_found


# -- recipe moderation -------------------------------------------------------


def test_approve_recipe():
    service, store, clock = _setup()
    _add_recipe(store)

    result = service.approve_recipe("mod", "r1", "looks good")

    assert result.ok
    recipe = store.get_recipe("r1")
    assert recipe.moderation_status == ModerationStatus.approved
    assert recipe.is_published
    assert recipe.moderation_notes == "looks good"
    entries = _log(store)
    assert len(entries) == 1
    assert entries[0].action == LogAction.recipe_approved
    assert entries[0].target_type == TargetType.recipe
    assert entries[0].reason == "looks good"


def test_second_approval_fails():
    service, store, _ = _setup()
    _add_recipe(store)

    assert service.approve_recipe("mod", "r1").ok
    second = service.approve_recipe("mod2", "r1")

    assert second.kind == ErrorKind.invalid_state_transition
    assert len(_log(store, action=LogAction.recipe_approved)) == 1


def test_user_cannot_moderate_recipes():
    service, store, _ = _setup()
    _add_recipe(store)
    assert service.reject_recipe("alice", "r1").kind == ErrorKind.permission_denied
    assert service.delete_recipe("bob", "r1").kind == ErrorKind.permission_denied
    assert store.get_recipe("r1").moderation_status == ModerationStatus.pending


def test_delete_recipe_logs_title():
    service, store, _ = _setup()
    _add_recipe(store)
    service.approve_recipe("mod", "r1")

    result = service.delete_recipe("admin", "r1")

    assert result.ok
    assert result.value is None
    assert store.get_recipe("r1") is None
    entry = _log(store, action=LogAction.recipe_deleted)[0]
    assert entry.reason == "Deleted recipe: Recipe r1"


def test_recipe_listings():
    service, store, clock = _setup()
    _add_recipe(store, "late", at=T0 + timedelta(hours=2))
    _add_recipe(store, "early", at=T0)
    _add_recipe(store, "mine", author="bob", at=T0 + timedelta(hours=1))
    service.approve_recipe("mod", "late")

    pending = service.list_pending_recipes("mod").unwrap()
    assert [r.id for r in pending] == ["early", "mine"]
    assert service.list_pending_recipes("alice").kind == ErrorKind.permission_denied

    assert [r.id for r in service.list_visible_recipes().unwrap()] == ["late"]
    assert {r.id for r in service.list_visible_recipes("bob").unwrap()} == {"late", "mine"}


def test_submit_recipe_starts_pending():
    service, _, _ = _setup()
    recipe = service.submit_recipe("alice", "Bread", "Sourdough").unwrap()
    assert recipe.moderation_status == ModerationStatus.pending
    assert recipe.created_at == T0


# -- command dispatch --------------------------------------------------------


def test_execute_dispatches_commands():
    service, store, _ = _setup()
    _add_recipe(store)

    assert service.execute(SuspendCommand("admin", "bob", "spam", 3)).ok
    assert service.execute(ApproveRecipeCommand("mod", "r1", "ok")).ok
    assert service.execute(BanCommand("mod", "owner", "coup")).kind == ErrorKind.permission_denied
    assert [e.action for e in _log(store)] == [LogAction.user_suspended, LogAction.recipe_approved]

    with pytest.raises(TypeError):
        service.execute("ban bob")


# -- log and statistics ------------------------------------------------------


def test_log_read_permissions_and_filters():
    service, _, clock = _setup()
    service.warn_user("mod", "alice", "one")
    clock.advance(minutes=1)
    service.warn_user("mod", "bob", "two")
    clock.advance(minutes=1)
    service.suspend_user("admin", "bob", "three", 2)

    assert service.list_moderation_log("alice").kind == ErrorKind.permission_denied

    everything = service.list_moderation_log("mod").unwrap()
    assert [e.reason for e in everything] == ["one", "two", "three"]

    about_bob = service.list_moderation_log("mod", LogFilter(target_id="bob", newest_first=True)).unwrap()
    assert [e.reason for e in about_bob] == ["three", "two"]

    by_admin = service.list_moderation_log("mod", LogFilter(moderator_id="admin")).unwrap()
    assert [e.reason for e in by_admin] == ["three"]

    latest = service.list_moderation_log("mod", LogFilter(newest_first=True, limit=1)).unwrap()
    assert [e.reason for e in latest] == ["three"]


def test_get_user_visibility():
    service, _, _ = _setup()
    assert service.get_user("alice", "alice").ok
    assert service.get_user("alice", "bob").kind == ErrorKind.permission_denied
    assert service.get_user("mod", "bob").ok


def test_statistics():
    service, store, _ = _setup()
    _add_recipe(store, "r1")
    _add_recipe(store, "r2")
    service.approve_recipe("mod", "r1")
    service.suspend_user("admin", "alice", "spam", 3)
    service.ban_user("admin", "bob", "fraud")

    stats = service.get_statistics("mod").unwrap()

    assert stats.total_users == 6
    assert stats.suspended_users == 1
    assert stats.banned_users == 1
    assert stats.active_users == 4
    assert stats.total_recipes == 2
    assert stats.pending_recipes == 1
    assert stats.approved_recipes == 1
    assert service.get_statistics("alice").kind == ErrorKind.permission_denied


# -- registration and sign-in ------------------------------------------------


def test_register_user_and_duplicate_email():
    service, store, _ = _setup()

    user = service.register_user("Carol", "carol@example.com").unwrap()
    assert user.role == Role.user
    entry = _log(store, action=LogAction.user_created)[0]
    assert entry.moderator_id == SYSTEM_ACTOR.id
    assert entry.target_id == user.id

    duplicate = service.register_user("Carol2", "CAROL@example.com")
    assert duplicate.kind == ErrorKind.invalid_argument


def test_verification_flow():
    service, _, _ = _setup(settings=Settings(require_verification=True))
    user = service.register_user("Dana", "dana@example.com").unwrap()
    assert user.status == AccountStatus.pending

    verified = service.verify_user(user.id).unwrap()
    assert verified.status == AccountStatus.active
    assert service.verify_user(user.id).kind == ErrorKind.invalid_state_transition


def test_bootstrap_owner_only_once():
    store = MemoryStore()
    service = ModerationService(store, RecordingRevoker(), clock=FakeClock())

    owner = service.bootstrap_owner("Root", "root@example.com").unwrap()
    assert owner.role == Role.owner
    assert owner.is_verified

    again = service.bootstrap_owner("Root2", "root2@example.com")
    assert again.kind == ErrorKind.invalid_state_transition


def test_failed_logins_lock_account():
    service, store, clock = _setup(settings=Settings(max_login_attempts=3, lockout_minutes=30))

    for _ in range(3):
        assert service.record_failed_login("alice").ok

    entries = _log(store, action=LogAction.account_locked)
    assert len(entries) == 1
    assert entries[0].moderator_id == SYSTEM_ACTOR.id
    assert entries[0].target_id == "alice"
    assert service.check_login_allowed("alice").kind == ErrorKind.permission_denied

    clock.advance(minutes=31)
    assert service.check_login_allowed("alice").ok
    user = service.record_successful_login("alice").unwrap()
    assert user.login_attempts == 0
    assert user.last_login_at == clock.now


def test_log_details_survive_caller_edits():
    service, store, _ = _setup()
    service.suspend_user("admin", "bob", "spam", 7)

    entry = service.list_moderation_log("admin").unwrap()[0]
    entry.details["duration_days"] = 9999

    assert store.query_log(LogFilter())[0].details["duration_days"] == 7


def test_restricted_moderator_cannot_view_others():
    service, _, _ = _setup()
    service.suspend_user("admin", "mod", "abuse", 2)

    assert service.get_user("mod", "bob").kind == ErrorKind.permission_denied
    assert service.get_user("mod", "mod").unwrap().status == AccountStatus.suspended


class FlakyFlushStore(MemoryStore):
    def __init__(self) -> None:
        super().__init__()
        self.fail = False

    def _flush(self) -> None:
        if self.fail:
            raise PersistenceFault("disk full")


def test_failed_flush_rolls_back_ban():
    store = FlakyFlushStore()
    for uid, role in [("admin", Role.admin), ("bob", Role.user)]:
        store.put_user(User(id=uid, username=uid, email=f"{uid}@example.com", role=role, created_at=T0))
    revoker = RecordingRevoker()
    service = ModerationService(store, revoker, clock=FakeClock())
    store.fail = True

    with pytest.raises(PersistenceFault):
        service.ban_user("admin", "bob", "fraud")

    store.fail = False
    assert store.get_user("bob").status == AccountStatus.active
    assert store.query_log(LogFilter()) == []
    # revocation already happened before the flush
    assert revoker.revoked == ["bob"]
