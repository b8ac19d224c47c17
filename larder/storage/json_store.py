"""File-based JSON storage for users, recipes and the moderation log.

Provides a DB-ready interface backed by a single JSON document under
``~/.larder/store/``.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from larder.audit.models import LogAction, ModerationLogEntry, TargetType
from larder.auth.models import User
from larder.moderation.errors import PersistenceFault
from larder.recipes.models import Recipe
from larder.storage.memory import MemoryStore

logger = logging.getLogger(__name__)


def _dt_to_str(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _dt_from_str(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class JsonStore(MemoryStore):
    """File-based storage for users, recipes and moderation log entries.

    Storage path: ``~/.larder/store/larder.json`` holding:
    - ``users`` -- list of user dicts
    - ``recipes`` -- list of recipe dicts
    - ``moderation_log`` -- list of log entry dicts, in insertion order

    The document is re-read at the start of a unit of work when it changed on
    disk, and replaced in one rename when the outermost unit of work completes,
    so an entity update and its log entry are written together or not at all.
    """

    def __init__(self, base_dir: Optional[str] = None) -> None:
        super().__init__()
        if base_dir is None:
            self._base = Path.home() / ".larder" / "store"
        else:
            self._base = Path(base_dir)
        try:
            self._base.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistenceFault(f"Cannot create store directory {self._base}: {exc}") from exc
        self._path = self._base / "larder.json"
        self._loaded_mtime: Optional[int] = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read_json(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text())
        except (json.JSONDecodeError, OSError) as exc:
            logger.error("Failed to read %s: %s", self._path, exc)
            raise PersistenceFault(f"Cannot read {self._path}: {exc}") from exc
        if not isinstance(data, dict):
            raise PersistenceFault(f"Unexpected content in {self._path}: expected an object")
        return data

    def _write_json(self, data: dict) -> None:
        tmp_path = self._path.with_suffix(".json.tmp")
        try:
            tmp_path.write_text(json.dumps(data, indent=2, default=str))
            os.replace(tmp_path, self._path)
        except OSError as exc:
            logger.error("Failed to write %s: %s", self._path, exc)
            raise PersistenceFault(f"Cannot write {self._path}: {exc}") from exc

    def _mtime(self) -> Optional[int]:
        return self._path.stat().st_mtime_ns if self._path.exists() else None

    @staticmethod
    def _user_from_dict(d: dict) -> User:
        return User(
            id=d["id"],
            username=d["username"],
            email=d["email"],
            provider=d.get("provider", "email"),
            role=d.get("role", "user"),
            status=d.get("status", "active"),
            suspension_reason=d.get("suspension_reason"),
            suspension_expires_at=_dt_from_str(d.get("suspension_expires_at")),
            warning_count=d.get("warning_count", 0),
            is_verified=d.get("is_verified", False),
            login_attempts=d.get("login_attempts", 0),
            locked_until=_dt_from_str(d.get("locked_until")),
            created_at=_dt_from_str(d.get("created_at")),
            updated_at=_dt_from_str(d.get("updated_at")),
            last_login_at=_dt_from_str(d.get("last_login_at")),
        )

    @staticmethod
    def _user_to_dict(u: User) -> dict:
        return {
            "id": u.id,
            "username": u.username,
            "email": u.email,
            "provider": u.provider,
            "role": u.role.value,
            "status": u.status.value,
            "suspension_reason": u.suspension_reason,
            "suspension_expires_at": _dt_to_str(u.suspension_expires_at),
            "warning_count": u.warning_count,
            "is_verified": u.is_verified,
            "login_attempts": u.login_attempts,
            "locked_until": _dt_to_str(u.locked_until),
            "created_at": _dt_to_str(u.created_at),
            "updated_at": _dt_to_str(u.updated_at),
            "last_login_at": _dt_to_str(u.last_login_at),
        }

    @staticmethod
    def _recipe_from_dict(d: dict) -> Recipe:
        return Recipe(
            id=d["id"],
            author_id=d["author_id"],
            title=d.get("title", ""),
            description=d.get("description", ""),
            moderation_status=d.get("moderation_status", "pending"),
            is_published=d.get("is_published", False),
            moderation_notes=d.get("moderation_notes"),
            created_at=_dt_from_str(d.get("created_at")),
            updated_at=_dt_from_str(d.get("updated_at")),
            published_at=_dt_from_str(d.get("published_at")),
        )

    @staticmethod
    def _recipe_to_dict(r: Recipe) -> dict:
        return {
            "id": r.id,
            "author_id": r.author_id,
            "title": r.title,
            "description": r.description,
            "moderation_status": r.moderation_status.value,
            "is_published": r.is_published,
            "moderation_notes": r.moderation_notes,
            "created_at": _dt_to_str(r.created_at),
            "updated_at": _dt_to_str(r.updated_at),
            "published_at": _dt_to_str(r.published_at),
        }

    @staticmethod
    def _entry_from_dict(d: dict) -> ModerationLogEntry:
        return ModerationLogEntry(
            id=d["id"],
            moderator_id=d["moderator_id"],
            moderator_username=d.get("moderator_username", ""),
            target_type=TargetType(d["target_type"]),
            target_id=d["target_id"],
            action=LogAction(d["action"]),
            reason=d.get("reason", ""),
            created_at=datetime.fromisoformat(d["created_at"]),
            details=d.get("details", {}),
        )

    @staticmethod
    def _entry_to_dict(e: ModerationLogEntry) -> dict[str, Any]:
        return {
            "id": e.id,
            "moderator_id": e.moderator_id,
            "moderator_username": e.moderator_username,
            "target_type": e.target_type.value,
            "target_id": e.target_id,
            "action": e.action.value,
            "reason": e.reason,
            "created_at": e.created_at.isoformat(),
            "details": e.details,
        }

    # ------------------------------------------------------------------
    # MemoryStore hooks
    # ------------------------------------------------------------------

    def _load(self) -> None:
        mtime = self._mtime()
        if mtime is not None and mtime == self._loaded_mtime:
            return
        data = self._read_json()
        try:
            self._users = {d["id"]: self._user_from_dict(d) for d in data.get("users", [])}
            self._recipes = {d["id"]: self._recipe_from_dict(d) for d in data.get("recipes", [])}
            self._log = [self._entry_from_dict(d) for d in data.get("moderation_log", [])]
        except (KeyError, ValueError) as exc:
            raise PersistenceFault(f"Corrupt record in {self._path}: {exc}") from exc
        self._loaded_mtime = mtime

    def _flush(self) -> None:
        self._write_json({
            "users": [self._user_to_dict(u) for u in self._users.values()],
            "recipes": [self._recipe_to_dict(r) for r in self._recipes.values()],
            "moderation_log": [self._entry_to_dict(e) for e in self._log],
        })
        self._loaded_mtime = self._mtime()
