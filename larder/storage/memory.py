"""In-process store backed by plain dicts."""

from __future__ import annotations

import copy
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Optional

from larder.audit.models import LogFilter, ModerationLogEntry
from larder.auth.models import User
from larder.recipes.models import ModerationStatus, Recipe


class MemoryStore:
    """Dict-backed :class:`~larder.storage.protocols.ModerationStore`.

    Writes inside :meth:`atomic` are rolled back if the block raises.
    Subclasses persist state by overriding :meth:`_load` and :meth:`_flush`.
    """

    def __init__(self) -> None:
        self._users: dict[str, User] = {}
        self._recipes: dict[str, Recipe] = {}
        self._log: list[ModerationLogEntry] = []
        self._lock = threading.RLock()
        self._depth = 0
        self._dirty: set[str] = set()

    # -- unit of work ----------------------------------------------------------

    @contextmanager
    def atomic(self) -> Iterator[None]:
        with self._lock:
            outermost = self._depth == 0
            if outermost:
                self._load()
                snapshot = self._snapshot()
            self._depth += 1
            try:
                yield
                if outermost and self._dirty:
                    self._flush()
                    self._dirty.clear()
            except BaseException:
                if outermost:
                    self._restore(snapshot)
                raise
            finally:
                self._depth -= 1

    def _snapshot(self) -> dict[str, Any]:
        return {
            "users": dict(self._users),
            "recipes": dict(self._recipes),
            "log": list(self._log),
        }

    def _restore(self, snapshot: dict[str, Any]) -> None:
        self._users = snapshot["users"]
        self._recipes = snapshot["recipes"]
        self._log = snapshot["log"]
        self._dirty.clear()

    def _load(self) -> None:
        """Refresh in-memory state from the backing storage."""

    def _flush(self) -> None:
        """Write the collections named in ``self._dirty`` to backing storage."""

    # -- users -----------------------------------------------------------------

    def get_user(self, user_id: str) -> Optional[User]:
        with self.atomic():
            user = self._users.get(user_id)
            return copy.deepcopy(user) if user is not None else None

    def find_user_by_email(self, email: str) -> Optional[User]:
        with self.atomic():
            for user in self._users.values():
                if user.email.lower() == email.lower():
                    return copy.deepcopy(user)
            return None

    def list_users(self) -> list[User]:
        with self.atomic():
            return [copy.deepcopy(u) for u in self._users.values()]

    def put_user(self, user: User) -> None:
        with self.atomic():
            self._users[user.id] = copy.deepcopy(user)
            self._dirty.add("users")

    # -- recipes ---------------------------------------------------------------

    def get_recipe(self, recipe_id: str) -> Optional[Recipe]:
        with self.atomic():
            recipe = self._recipes.get(recipe_id)
            return copy.deepcopy(recipe) if recipe is not None else None

    def list_recipes(self, status: Optional[ModerationStatus] = None) -> list[Recipe]:
        with self.atomic():
            return [
                copy.deepcopy(r)
                for r in self._recipes.values()
                if status is None or r.moderation_status == status
            ]

    def put_recipe(self, recipe: Recipe) -> None:
        with self.atomic():
            self._recipes[recipe.id] = copy.deepcopy(recipe)
            self._dirty.add("recipes")

    def delete_recipe(self, recipe_id: str) -> bool:
        with self.atomic():
            if self._recipes.pop(recipe_id, None) is None:
                return False
            self._dirty.add("recipes")
            return True

    # -- moderation log --------------------------------------------------------

    def append_log_entry(self, entry: ModerationLogEntry) -> None:
        with self.atomic():
            self._log.append(copy.deepcopy(entry))
            self._dirty.add("log")

    def query_log(self, log_filter: LogFilter) -> list[ModerationLogEntry]:
        with self.atomic():
            return [copy.deepcopy(e) for e in log_filter.apply(self._log)]
