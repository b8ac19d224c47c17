"""Data models for the moderation log."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class TargetType(str, Enum):
    user = "user"
    recipe = "recipe"


class LogAction(str, Enum):
    """Action tags recorded in the moderation log."""

    user_created = "user_created"
    user_warned = "user_warned"
    user_suspended = "user_suspended"
    user_unsuspended = "user_unsuspended"
    user_banned = "user_banned"
    role_changed = "role_changed"
    recipe_approved = "recipe_approved"
    recipe_rejected = "recipe_rejected"
    recipe_deleted = "recipe_deleted"
    account_locked = "account_locked"


@dataclass(frozen=True)
class ActorRef:
    """Identity written into log entries (denormalised at write time)."""

    id: str
    username: str


# Actor used for entries the system writes on its own behalf.
SYSTEM_ACTOR = ActorRef(id="system", username="system")


@dataclass(frozen=True)
class ModerationLogEntry:
    """A single moderation log entry. Never mutated once written."""

    id: str
    moderator_id: str
    moderator_username: str
    target_type: TargetType
    target_id: str
    action: LogAction
    reason: str
    created_at: datetime
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class LogFilter:
    """Query options for :meth:`ModerationLog.query`."""

    target_type: Optional[TargetType] = None
    target_id: Optional[str] = None
    moderator_id: Optional[str] = None
    action: Optional[LogAction] = None
    since: Optional[datetime] = None
    until: Optional[datetime] = None
    limit: Optional[int] = None
    newest_first: bool = False

    def matches(self, entry: ModerationLogEntry) -> bool:
        if self.target_type is not None and entry.target_type != self.target_type:
            return False
        if self.target_id is not None and entry.target_id != self.target_id:
            return False
        if self.moderator_id is not None and entry.moderator_id != self.moderator_id:
            return False
        if self.action is not None and entry.action != self.action:
            return False
        if self.since is not None and entry.created_at < self.since:
            return False
        if self.until is not None and entry.created_at > self.until:
            return False
        return True

    def apply(self, entries: list[ModerationLogEntry]) -> list[ModerationLogEntry]:
        """Filter *entries* (given in insertion order) and apply ordering/limit."""
        result = [e for e in entries if self.matches(e)]
        if self.newest_first:
            result.reverse()
        if self.limit is not None:
            result = result[: self.limit]
        return result


@dataclass
class LogRecord:
    """What a state-machine transition asks the service to write to the log."""

    action: LogAction
    reason: str = ""
    details: dict[str, Any] = field(default_factory=dict)
