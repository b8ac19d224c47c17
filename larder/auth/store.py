"""File-based JSON storage for login sessions.

Provides a DB-ready interface backed by a JSON file under ~/.larder/sessions/.
"""

from __future__ import annotations

import json
import logging
import secrets
import threading
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

from larder.auth.models import Session, utcnow
from larder.moderation.errors import PersistenceFault

logger = logging.getLogger(__name__)


class SessionStore:
    """File-based storage for login sessions.

    Storage path: ``~/.larder/sessions/`` with:
    - ``sessions.json`` -- list of session dicts
    """

    def __init__(self, base_dir: Optional[str] = None) -> None:
        if base_dir is None:
            self._base = Path.home() / ".larder" / "sessions"
        else:
            self._base = Path(base_dir)
        self._base.mkdir(parents=True, exist_ok=True)
        self._sessions_path = self._base / "sessions.json"
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read_json(self) -> list[dict]:
        if not self._sessions_path.exists():
            return []
        try:
            data = json.loads(self._sessions_path.read_text())
        except (json.JSONDecodeError, OSError) as exc:
            raise PersistenceFault(f"Cannot read {self._sessions_path}: {exc}") from exc
        return data if isinstance(data, list) else []

    def _write_json(self, data: list[dict]) -> None:
        try:
            self._sessions_path.write_text(json.dumps(data, indent=2, default=str))
        except OSError as exc:
            raise PersistenceFault(f"Cannot write {self._sessions_path}: {exc}") from exc

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(
        self, user_id: str, expires_in_hours: int = 7 * 24, now: Optional[datetime] = None
    ) -> Session:
        """Create a new session for a user."""
        now = now or utcnow()
        session = Session(
            id=str(uuid.uuid4()),
            user_id=user_id,
            token=secrets.token_urlsafe(48),
            created_at=now.isoformat(),
            expires_at=(now + timedelta(hours=expires_in_hours)).isoformat(),
        )
        with self._lock:
            sessions = self._read_json()
            sessions.append({
                "id": session.id,
                "user_id": session.user_id,
                "token": session.token,
                "created_at": session.created_at,
                "expires_at": session.expires_at,
            })
            self._write_json(sessions)
        return session

    def validate_session(self, token: str, now: Optional[datetime] = None) -> Optional[str]:
        """Return the user id owning *token*, or None if unknown or expired."""
        now = now or utcnow()
        for d in self._read_json():
            if d["token"] == token:
                if d.get("expires_at") and datetime.fromisoformat(d["expires_at"]) <= now:
                    # Expired -- clean it up
                    self.delete_session(token)
                    return None
                return d["user_id"]
        return None

    def delete_session(self, token: str) -> bool:
        with self._lock:
            sessions = self._read_json()
            original_len = len(sessions)
            sessions = [d for d in sessions if d["token"] != token]
            if len(sessions) < original_len:
                self._write_json(sessions)
                return True
            return False

    def revoke_all_sessions(self, user_id: str) -> int:
        """Delete every session of *user_id*. Returns how many were removed."""
        with self._lock:
            sessions = self._read_json()
            remaining = [d for d in sessions if d["user_id"] != user_id]
            removed = len(sessions) - len(remaining)
            if removed:
                self._write_json(remaining)
        logger.info("Revoked %d session(s) for user %s", removed, user_id)
        return removed

    def list_sessions(self, user_id: str) -> list[Session]:
        return [
            Session(
                id=d["id"],
                user_id=d["user_id"],
                token=d["token"],
                created_at=d.get("created_at", ""),
                expires_at=d.get("expires_at", ""),
            )
            for d in self._read_json()
            if d["user_id"] == user_id
        ]
