from __future__ import annotations

from contextlib import AbstractContextManager
from typing import TYPE_CHECKING, Optional, Protocol

if TYPE_CHECKING:
    from larder.audit.models import LogFilter, ModerationLogEntry
    from larder.auth.models import User
    from larder.recipes.models import ModerationStatus, Recipe


class ModerationStore(Protocol):
    """Storage used by the moderation service.

    Implementations return copies from ``get_*``/``list_*`` so that callers
    only change stored state through ``put_*``.  ``atomic()`` must hold a lock
    over the whole read-modify-write and either keep every write made inside
    it or none of them.  Storage failures are raised as ``PersistenceFault``.
    """

    def atomic(self) -> AbstractContextManager[None]: ...

    def get_user(self, user_id: str) -> Optional["User"]: ...

    def find_user_by_email(self, email: str) -> Optional["User"]: ...

    def list_users(self) -> list["User"]: ...

    def put_user(self, user: "User") -> None: ...

    def get_recipe(self, recipe_id: str) -> Optional["Recipe"]: ...

    def list_recipes(self, status: Optional["ModerationStatus"] = None) -> list["Recipe"]: ...

    def put_recipe(self, recipe: "Recipe") -> None: ...

    def delete_recipe(self, recipe_id: str) -> bool: ...

    def append_log_entry(self, entry: "ModerationLogEntry") -> None: ...

    def query_log(self, log_filter: "LogFilter") -> list["ModerationLogEntry"]: ...


class SessionRevoker(Protocol):
    def revoke_all_sessions(self, user_id: str) -> int: ...
