"""Recipe moderation state machine.

``pending`` is the initial state; ``approved`` and ``rejected`` are only
reachable from it.  Moderators and above may act on any recipe regardless of
who wrote it.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from larder.audit.models import LogAction, LogRecord
from larder.auth.models import AccountStatus, Role, User
from larder.auth.permissions import has_permission
from larder.moderation.errors import InvalidArgument, InvalidStateTransition, PermissionDenied
from larder.recipes.models import ModerationStatus, Recipe


def _authorize(actor: User) -> None:
    if not has_permission(actor.role, Role.moderator):
        raise PermissionDenied("Moderating recipes requires role 'moderator' or higher")


def _require_pending(recipe: Recipe, verb: str) -> None:
    if recipe.moderation_status != ModerationStatus.pending:
        raise InvalidStateTransition(
            f"Cannot {verb} recipe '{recipe.id}': it is already {recipe.moderation_status.value}"
        )


class RecipeStateMachine:
    """Guards and applies transitions on :class:`~larder.recipes.models.Recipe`."""

    @staticmethod
    def submit(author: User, title: str, description: str, now: datetime) -> Recipe:
        """Create a new pending recipe written by *author*."""
        if author.status in (AccountStatus.banned, AccountStatus.suspended):
            raise PermissionDenied(f"User '{author.id}' cannot submit recipes while {author.status.value}")
        if not title or not title.strip():
            raise InvalidArgument("A recipe title is required")
        return Recipe(
            id=uuid.uuid4().hex,
            author_id=author.id,
            title=title.strip(),
            description=description or "",
            created_at=now,
        )

    @staticmethod
    def approve(actor: User, recipe: Recipe, notes: Optional[str], now: datetime) -> LogRecord:
        _authorize(actor)
        _require_pending(recipe, "approve")
        recipe.moderation_status = ModerationStatus.approved
        recipe.is_published = True
        recipe.moderation_notes = notes
        recipe.published_at = now
        recipe.updated_at = now
        return LogRecord(action=LogAction.recipe_approved, reason=notes or "")

    @staticmethod
    def reject(actor: User, recipe: Recipe, notes: Optional[str], now: datetime) -> LogRecord:
        _authorize(actor)
        _require_pending(recipe, "reject")
        recipe.moderation_status = ModerationStatus.rejected
        recipe.is_published = False
        recipe.moderation_notes = notes
        recipe.updated_at = now
        return LogRecord(action=LogAction.recipe_rejected, reason=notes or "")

    @staticmethod
    def check_delete(actor: User, recipe: Recipe) -> LogRecord:
        """Authorise deleting *recipe*; allowed from any moderation status."""
        _authorize(actor)
        return LogRecord(
            action=LogAction.recipe_deleted,
            reason=f"Deleted recipe: {recipe.title}",
            details={"moderation_status": recipe.moderation_status.value, "author_id": recipe.author_id},
        )

    @staticmethod
    def is_visible_to(recipe: Recipe, viewer: Optional[User]) -> bool:
        if recipe.moderation_status == ModerationStatus.approved and recipe.is_published:
            return True
        if viewer is None:
            return False
        return viewer.id == recipe.author_id or has_permission(viewer.role, Role.moderator)
