"""Moderation service -- the single entry point for moderation use cases.

Each public operation runs as one unit of work on the store:

1. load the actor and the target (``NotFound``), reconciling expired
   suspensions on every user read;
2. authorise through :mod:`larder.auth.permissions` (``PermissionDenied``);
3. apply the state-machine transition;
4. write the updated entity and its moderation log entry together.

Expected failures come back as a failed :class:`ModerationResult` and leave the
store untouched.  :class:`PersistenceFault` is not caught.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional, TypeVar, Union

from larder.accounts.state import AccountStateMachine
from larder.audit.log import ModerationLog
from larder.audit.models import (
    SYSTEM_ACTOR,
    ActorRef,
    LogAction,
    LogFilter,
    LogRecord,
    ModerationLogEntry,
    TargetType,
)
from larder.auth.models import AccountStatus, Role, User, utcnow
from larder.auth.permissions import has_permission
from larder.config import Settings
from larder.moderation.commands import (
    ApproveRecipeCommand,
    BanCommand,
    ChangeRoleCommand,
    Command,
    DeleteRecipeCommand,
    RejectRecipeCommand,
    SuspendCommand,
    UnsuspendCommand,
    WarnCommand,
)
from larder.moderation.errors import (
    InvalidArgument,
    InvalidStateTransition,
    ModerationError,
    NotFound,
    PermissionDenied,
    PersistenceFault,
)
from larder.moderation.models import ModerationResult, ModerationStats
from larder.recipes.models import ModerationStatus, Recipe
from larder.recipes.state import RecipeStateMachine
from larder.storage.protocols import ModerationStore, SessionRevoker

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ModerationService:
    """Facade over the role policy, both state machines and the moderation log."""

    def __init__(
        self,
        store: ModerationStore,
        sessions: SessionRevoker,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._sessions = sessions
        self._settings = settings or Settings()
        self._clock = clock or utcnow
        self._accounts = AccountStateMachine(self._settings)
        self._recipes = RecipeStateMachine()
        self._log = ModerationLog(store)
        self._handlers: dict[type, Callable[..., ModerationResult]] = {
            SuspendCommand: lambda c: self.suspend_user(c.actor_id, c.target_id, c.reason, c.duration_days),
            UnsuspendCommand: lambda c: self.unsuspend_user(c.actor_id, c.target_id),
            BanCommand: lambda c: self.ban_user(c.actor_id, c.target_id, c.reason),
            WarnCommand: lambda c: self.warn_user(c.actor_id, c.target_id, c.reason),
            ChangeRoleCommand: lambda c: self.change_user_role(c.actor_id, c.target_id, c.new_role),
            ApproveRecipeCommand: lambda c: self.approve_recipe(c.actor_id, c.recipe_id, c.notes),
            RejectRecipeCommand: lambda c: self.reject_recipe(c.actor_id, c.recipe_id, c.notes),
            DeleteRecipeCommand: lambda c: self.delete_recipe(c.actor_id, c.recipe_id),
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _run(self, operation: str, fn: Callable[[datetime], T]) -> ModerationResult[T]:
        try:
            with self._store.atomic():
                value = fn(self._clock())
        except ModerationError as exc:
            logger.info("%s refused (%s): %s", operation, exc.kind.value, exc.message)
            return ModerationResult.failure(exc)
        except PersistenceFault:
            logger.error("%s failed: storage fault", operation, exc_info=True)
            raise
        return ModerationResult.success(value)

    def _load_user(self, user_id: str, now: datetime) -> User:
        user = self._store.get_user(user_id)
        if user is None:
            raise NotFound("user", user_id)
        self._accounts.reconcile(user, now)
        return user

    def _load_actor(self, actor_id: str, now: datetime) -> User:
        actor = self._load_user(actor_id, now)
        if actor.status in (AccountStatus.banned, AccountStatus.suspended):
            raise PermissionDenied(f"User '{actor.id}' cannot act while {actor.status.value}")
        return actor

    def _load_recipe(self, recipe_id: str) -> Recipe:
        recipe = self._store.get_recipe(recipe_id)
        if recipe is None:
            raise NotFound("recipe", recipe_id)
        return recipe

    def _require_moderator(self, actor: User, what: str) -> None:
        if not has_permission(actor.role, Role.moderator):
            raise PermissionDenied(f"{what} requires role 'moderator' or higher")

    def _commit_user(self, actor: Union[User, ActorRef], target: User, record: LogRecord, now: datetime) -> User:
        self._store.put_user(target)
        self._log.record(
            actor, TargetType.user, target.id, record.action, record.reason, now=now, details=record.details
        )
        logger.info("%s: user %s by %s", record.action.value, target.id, actor.id)
        return target

    def _commit_recipe(self, actor: User, recipe: Recipe, record: LogRecord, now: datetime) -> Recipe:
        self._store.put_recipe(recipe)
        self._log.record(
            actor, TargetType.recipe, recipe.id, record.action, record.reason, now=now, details=record.details
        )
        logger.info("%s: recipe %s by %s", record.action.value, recipe.id, actor.id)
        return recipe

    # ------------------------------------------------------------------
    # Command dispatch
    # ------------------------------------------------------------------

    def execute(self, command: Command) -> ModerationResult:
        """Run a command object through the matching typed method."""
        handler = self._handlers.get(type(command))
        if handler is None:
            raise TypeError(f"Unsupported command type: {type(command).__name__}")
        return handler(command)

    # ------------------------------------------------------------------
    # Account moderation
    # ------------------------------------------------------------------

    def suspend_user(self, actor_id: str, target_id: str, reason: str, duration_days: int) -> ModerationResult[User]:
        def op(now: datetime) -> User:
            actor = self._load_actor(actor_id, now)
            target = self._load_user(target_id, now)
            record = self._accounts.suspend(actor, target, reason, duration_days, now)
            return self._commit_user(actor, target, record, now)

        return self._run("suspend_user", op)

    def unsuspend_user(self, actor_id: str, target_id: str) -> ModerationResult[User]:
        def op(now: datetime) -> User:
            actor = self._load_actor(actor_id, now)
            target = self._load_user(target_id, now)
            record = self._accounts.lift(actor, target, now)
            return self._commit_user(actor, target, record, now)

        return self._run("unsuspend_user", op)

    def ban_user(self, actor_id: str, target_id: str, reason: str) -> ModerationResult[User]:
        """Ban *target_id* and end all of their sessions.

        Sessions are revoked before the unit of work is flushed. A failed
        revocation rolls the ban back, but a failed flush leaves the sessions
        revoked while the account stays as it was.
        """

        def op(now: datetime) -> User:
            actor = self._load_actor(actor_id, now)
            target = self._load_user(target_id, now)
            record = self._accounts.ban(actor, target, reason, now)
            user = self._commit_user(actor, target, record, now)
            # Inside the unit of work: a failed revocation rolls the ban back.
            self._sessions.revoke_all_sessions(target.id)
            return user

        return self._run("ban_user", op)

    def warn_user(self, actor_id: str, target_id: str, reason: str) -> ModerationResult[User]:
        def op(now: datetime) -> User:
            actor = self._load_actor(actor_id, now)
            target = self._load_user(target_id, now)
            record = self._accounts.warn(actor, target, reason, now)
            return self._commit_user(actor, target, record, now)

        return self._run("warn_user", op)

    def change_user_role(self, actor_id: str, target_id: str, new_role: Union[Role, str]) -> ModerationResult[User]:
        def op(now: datetime) -> User:
            actor = self._load_actor(actor_id, now)
            target = self._load_user(target_id, now)
            record = self._accounts.change_role(actor, target, new_role, now)
            return self._commit_user(actor, target, record, now)

        return self._run("change_user_role", op)

    # ------------------------------------------------------------------
    # Recipe moderation
    # ------------------------------------------------------------------

    def approve_recipe(self, actor_id: str, recipe_id: str, notes: Optional[str] = None) -> ModerationResult[Recipe]:
        def op(now: datetime) -> Recipe:
            actor = self._load_actor(actor_id, now)
            recipe = self._load_recipe(recipe_id)
            record = self._recipes.approve(actor, recipe, notes, now)
            return self._commit_recipe(actor, recipe, record, now)

        return self._run("approve_recipe", op)

    def reject_recipe(self, actor_id: str, recipe_id: str, notes: Optional[str] = None) -> ModerationResult[Recipe]:
        def op(now: datetime) -> Recipe:
            actor = self._load_actor(actor_id, now)
            recipe = self._load_recipe(recipe_id)
            record = self._recipes.reject(actor, recipe, notes, now)
            return self._commit_recipe(actor, recipe, record, now)

        return self._run("reject_recipe", op)

    def delete_recipe(self, actor_id: str, recipe_id: str) -> ModerationResult[None]:
        def op(now: datetime) -> None:
            actor = self._load_actor(actor_id, now)
            recipe = self._load_recipe(recipe_id)
            record = self._recipes.check_delete(actor, recipe)
            self._store.delete_recipe(recipe.id)
            self._log.record(
                actor, TargetType.recipe, recipe.id, record.action, record.reason, now=now, details=record.details
            )
            logger.info("%s: recipe %s by %s", record.action.value, recipe.id, actor.id)

        return self._run("delete_recipe", op)

    def list_moderation_log(
        self, actor_id: str, log_filter: Optional[LogFilter] = None
    ) -> ModerationResult[list[ModerationLogEntry]]:
        def op(now: datetime) -> list[ModerationLogEntry]:
            actor = self._load_actor(actor_id, now)
            return self._log.read(actor, log_filter)

        return self._run("list_moderation_log", op)

    # ------------------------------------------------------------------
    # Accounts: registration, verification and sign-in tracking
    # ------------------------------------------------------------------

    def register_user(self, username: str, email: str, provider: str = "email") -> ModerationResult[User]:
        def op(now: datetime) -> User:
            if email and self._store.find_user_by_email(email) is not None:
                raise InvalidArgument("User with this email already exists")
            user = self._accounts.register(username, email, provider, now)
            return self._commit_user(
                SYSTEM_ACTOR,
                user,
                LogRecord(LogAction.user_created, "New user account created", {"provider": provider}),
                now,
            )

        return self._run("register_user", op)

    def bootstrap_owner(self, username: str, email: str) -> ModerationResult[User]:
        """Create the first owner account. Refused once any owner exists."""

        def op(now: datetime) -> User:
            if any(u.role == Role.owner for u in self._store.list_users()):
                raise InvalidStateTransition("An owner account already exists")
            if self._store.find_user_by_email(email) is not None:
                raise InvalidArgument("User with this email already exists")
            user = self._accounts.register(username, email, "email", now, role=Role.owner)
            user.status = AccountStatus.active
            user.is_verified = True
            return self._commit_user(
                SYSTEM_ACTOR,
                user,
                LogRecord(LogAction.user_created, "Owner account created", {"role": Role.owner.value}),
                now,
            )

        return self._run("bootstrap_owner", op)

    def verify_user(self, user_id: str) -> ModerationResult[User]:
        def op(now: datetime) -> User:
            user = self._load_user(user_id, now)
            self._accounts.verify(user, now)
            self._store.put_user(user)
            return user

        return self._run("verify_user", op)

    def check_login_allowed(self, user_id: str) -> ModerationResult[User]:
        def op(now: datetime) -> User:
            user = self._load_user(user_id, now)
            blocked = self._accounts.login_block_reason(user, now)
            if blocked is not None:
                raise blocked
            return user

        return self._run("check_login_allowed", op)

    def record_failed_login(self, user_id: str) -> ModerationResult[User]:
        def op(now: datetime) -> User:
            user = self._load_user(user_id, now)
            record = self._accounts.register_failed_login(user, now)
            if record is None:
                self._store.put_user(user)
                return user
            logger.warning("Locking account %s after %d failed logins", user.id, user.login_attempts)
            return self._commit_user(SYSTEM_ACTOR, user, record, now)

        return self._run("record_failed_login", op)

    def record_successful_login(self, user_id: str) -> ModerationResult[User]:
        def op(now: datetime) -> User:
            user = self._load_user(user_id, now)
            blocked = self._accounts.login_block_reason(user, now)
            if blocked is not None:
                raise blocked
            self._accounts.register_successful_login(user, now)
            self._store.put_user(user)
            return user

        return self._run("record_successful_login", op)

    # ------------------------------------------------------------------
    # Read models
    # ------------------------------------------------------------------

    def get_user(self, requester_id: str, user_id: str) -> ModerationResult[User]:
        """Return *user_id* to themselves or to a moderator-or-above."""

        def op(now: datetime) -> User:
            if requester_id == user_id:
                return self._load_user(user_id, now)
            requester = self._load_actor(requester_id, now)
            self._require_moderator(requester, "Viewing other accounts")
            return self._load_user(user_id, now)

        return self._run("get_user", op)

    def list_users(self, requester_id: str, query: Optional[str] = None) -> ModerationResult[list[User]]:
        def op(now: datetime) -> list[User]:
            requester = self._load_actor(requester_id, now)
            self._require_moderator(requester, "Listing users")
            users = self._store.list_users()
            for user in users:
                self._accounts.reconcile(user, now)
            if query:
                q = query.lower()
                users = [u for u in users if q in u.username.lower() or q in u.email.lower()]
            return users

        return self._run("list_users", op)

    def submit_recipe(self, author_id: str, title: str, description: str = "") -> ModerationResult[Recipe]:
        def op(now: datetime) -> Recipe:
            author = self._load_user(author_id, now)
            recipe = self._recipes.submit(author, title, description, now)
            self._store.put_recipe(recipe)
            logger.info("Recipe %s submitted by %s", recipe.id, author.id)
            return recipe

        return self._run("submit_recipe", op)

    def list_pending_recipes(self, requester_id: str) -> ModerationResult[list[Recipe]]:
        def op(now: datetime) -> list[Recipe]:
            requester = self._load_actor(requester_id, now)
            self._require_moderator(requester, "Reviewing pending recipes")
            recipes = self._store.list_recipes(ModerationStatus.pending)
            return sorted(recipes, key=lambda r: r.created_at)

        return self._run("list_pending_recipes", op)

    def list_visible_recipes(self, requester_id: Optional[str] = None) -> ModerationResult[list[Recipe]]:
        def op(now: datetime) -> list[Recipe]:
            viewer = self._load_user(requester_id, now) if requester_id else None
            recipes = [r for r in self._store.list_recipes() if self._recipes.is_visible_to(r, viewer)]
            return sorted(recipes, key=lambda r: r.published_at or r.created_at, reverse=True)

        return self._run("list_visible_recipes", op)

    def get_statistics(self, requester_id: str) -> ModerationResult[ModerationStats]:
        def op(now: datetime) -> ModerationStats:
            requester = self._load_actor(requester_id, now)
            self._require_moderator(requester, "Viewing statistics")
            users = self._store.list_users()
            for user in users:
                self._accounts.reconcile(user, now)
            recipes = self._store.list_recipes()
            week_ago = now - timedelta(days=7)
            month_ago = now - timedelta(days=30)
            return ModerationStats(
                total_users=len(users),
                active_users=sum(1 for u in users if u.status == AccountStatus.active),
                suspended_users=sum(1 for u in users if u.status == AccountStatus.suspended),
                banned_users=sum(1 for u in users if u.status == AccountStatus.banned),
                pending_users=sum(1 for u in users if u.status == AccountStatus.pending),
                verified_users=sum(1 for u in users if u.is_verified),
                social_logins=sum(1 for u in users if u.provider != "email"),
                new_this_week=sum(1 for u in users if u.created_at >= week_ago),
                new_this_month=sum(1 for u in users if u.created_at >= month_ago),
                login_attempts_blocked=sum(
                    1 for u in users if u.login_attempts >= self._settings.max_login_attempts
                ),
                total_recipes=len(recipes),
                pending_recipes=sum(1 for r in recipes if r.moderation_status == ModerationStatus.pending),
                approved_recipes=sum(1 for r in recipes if r.moderation_status == ModerationStatus.approved),
                rejected_recipes=sum(1 for r in recipes if r.moderation_status == ModerationStatus.rejected),
            )

        return self._run("get_statistics", op)
