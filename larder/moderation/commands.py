"""Command types accepted by :meth:`ModerationService.execute`.

Each moderation action is its own frozen dataclass, so callers that queue or
forward actions (dialogs, CLI, HTTP) pass a typed value instead of an action
name string.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from larder.auth.models import Role


@dataclass(frozen=True)
class SuspendCommand:
    actor_id: str
    target_id: str
    reason: str
    duration_days: int


@dataclass(frozen=True)
class UnsuspendCommand:
    actor_id: str
    target_id: str


@dataclass(frozen=True)
class BanCommand:
    actor_id: str
    target_id: str
    reason: str


@dataclass(frozen=True)
class WarnCommand:
    actor_id: str
    target_id: str
    reason: str


@dataclass(frozen=True)
class ChangeRoleCommand:
    actor_id: str
    target_id: str
    new_role: Union[Role, str]


@dataclass(frozen=True)
class ApproveRecipeCommand:
    actor_id: str
    recipe_id: str
    notes: Optional[str] = None


@dataclass(frozen=True)
class RejectRecipeCommand:
    actor_id: str
    recipe_id: str
    notes: Optional[str] = None


@dataclass(frozen=True)
class DeleteRecipeCommand:
    actor_id: str
    recipe_id: str


Command = Union[
    SuspendCommand,
    UnsuspendCommand,
    BanCommand,
    WarnCommand,
    ChangeRoleCommand,
    ApproveRecipeCommand,
    RejectRecipeCommand,
    DeleteRecipeCommand,
]
