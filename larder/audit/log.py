"""Append-only moderation log.

Entries are kept by the store in insertion order; every state-changing
moderation action writes exactly one of them.  Ordering by ``created_at`` is
only ever a view over that sequence.
"""

from __future__ import annotations

import csv
import io
import json
import uuid
from dataclasses import asdict
from datetime import datetime
from typing import Any, Optional, Union

from larder.audit.models import ActorRef, LogAction, LogFilter, ModerationLogEntry, TargetType
from larder.auth.models import Role, User
from larder.auth.permissions import has_permission
from larder.moderation.errors import PermissionDenied
from larder.storage.protocols import ModerationStore

_CSV_FIELDS = [
    "id",
    "created_at",
    "moderator_id",
    "moderator_username",
    "target_type",
    "target_id",
    "action",
    "reason",
]


class ModerationLog:
    """Writes and reads :class:`ModerationLogEntry` records through a store."""

    def __init__(self, store: ModerationStore) -> None:
        self._store = store

    def record(
        self,
        actor: Union[User, ActorRef],
        target_type: TargetType,
        target_id: str,
        action: LogAction,
        reason: str = "",
        *,
        now: datetime,
        details: Optional[dict[str, Any]] = None,
    ) -> ModerationLogEntry:
        """Build an entry for *actor* and append it. Returns the entry."""
        entry = ModerationLogEntry(
            id=uuid.uuid4().hex,
            moderator_id=actor.id,
            moderator_username=actor.username,
            target_type=target_type,
            target_id=target_id,
            action=action,
            reason=reason or "",
            created_at=now,
            details=dict(details or {}),
        )
        self._store.append_log_entry(entry)
        return entry

    def read(self, requester: User, log_filter: Optional[LogFilter] = None) -> list[ModerationLogEntry]:
        """Return entries matching *log_filter*; moderators and above only."""
        if not has_permission(requester.role, Role.moderator):
            raise PermissionDenied("Reading the moderation log requires role 'moderator' or higher")
        return self._store.query_log(log_filter or LogFilter())


def _entry_to_dict(entry: ModerationLogEntry) -> dict:
    d = asdict(entry)
    d["target_type"] = entry.target_type.value
    d["action"] = entry.action.value
    d["created_at"] = entry.created_at.isoformat()
    return d


def export_entries(entries: list[ModerationLogEntry], fmt: str = "json") -> str:
    """Export log entries as ``json`` or ``csv`` text."""
    if fmt == "csv":
        buf = io.StringIO()
        writer = csv.DictWriter(buf, fieldnames=_CSV_FIELDS, extrasaction="ignore", lineterminator="\n")
        writer.writeheader()
        for e in entries:
            writer.writerow(_entry_to_dict(e))
        return buf.getvalue()
    if fmt != "json":
        raise ValueError(f"Unsupported export format: {fmt}")
    return json.dumps([_entry_to_dict(e) for e in entries], indent=2)
