"""Moderation router -- account moderation, recipe review and the moderation log.

Prefix: ``/api/moderation``
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from larder.audit.models import LogAction, LogFilter, ModerationLogEntry, TargetType
from larder.auth.models import User
from larder.moderation.errors import ErrorKind
from larder.moderation.models import ModerationResult
from larder.moderation.service import ModerationService
from larder.recipes.models import Recipe
from web.backend.app.middleware.auth import get_current_user_id, get_optional_user_id, get_service
from web.backend.app.models.api import (
    LogEntryResponse,
    NotesRequest,
    ReasonRequest,
    RecipeResponse,
    RoleUpdateRequest,
    StatsResponse,
    SubmitRecipeRequest,
    SuspendRequest,
    UserResponse,
)

router = APIRouter(prefix="/api/moderation", tags=["moderation"])

_STATUS_FOR_KIND = {
    ErrorKind.permission_denied: status.HTTP_403_FORBIDDEN,
    ErrorKind.not_found: status.HTTP_404_NOT_FOUND,
    ErrorKind.invalid_argument: status.HTTP_400_BAD_REQUEST,
    ErrorKind.invalid_state_transition: status.HTTP_400_BAD_REQUEST,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _unwrap(result: ModerationResult):
    """Return the result value or raise the matching HTTP error."""
    if not result.ok:
        raise HTTPException(
            status_code=_STATUS_FOR_KIND[result.kind],
            detail={"error": result.kind.value, "message": result.reason},
        )
    return result.value


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _user_response(u: User) -> UserResponse:
    return UserResponse(
        id=u.id,
        username=u.username,
        email=u.email,
        provider=u.provider,
        role=u.role.value,
        status=u.status.value,
        suspension_reason=u.suspension_reason,
        suspension_expires_at=_iso(u.suspension_expires_at),
        warning_count=u.warning_count,
        is_verified=u.is_verified,
        created_at=_iso(u.created_at) or "",
        last_login_at=_iso(u.last_login_at),
    )


def _recipe_response(r: Recipe) -> RecipeResponse:
    return RecipeResponse(
        id=r.id,
        author_id=r.author_id,
        title=r.title,
        description=r.description,
        moderation_status=r.moderation_status.value,
        is_published=r.is_published,
        moderation_notes=r.moderation_notes,
        created_at=_iso(r.created_at) or "",
        published_at=_iso(r.published_at),
    )


def _entry_response(e: ModerationLogEntry) -> LogEntryResponse:
    return LogEntryResponse(
        id=e.id,
        moderator_id=e.moderator_id,
        moderator_username=e.moderator_username,
        target_type=e.target_type.value,
        target_id=e.target_id,
        action=e.action.value,
        reason=e.reason,
        created_at=e.created_at.isoformat(),
        details=e.details,
    )


# =========================================================================
# Users
# =========================================================================


@router.get("/users", response_model=list[UserResponse])
async def list_users(
    q: Optional[str] = Query(None),
    actor_id: str = Depends(get_current_user_id),
    service: ModerationService = Depends(get_service),
):
    """List or search user accounts (moderator+)."""
    return [_user_response(u) for u in _unwrap(service.list_users(actor_id, q))]


@router.get("/users/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: str,
    actor_id: str = Depends(get_current_user_id),
    service: ModerationService = Depends(get_service),
):
    """Return one account (self, or moderator+)."""
    return _user_response(_unwrap(service.get_user(actor_id, user_id)))


@router.post("/users/{user_id}/suspend", response_model=UserResponse)
async def suspend_user(
    user_id: str,
    body: SuspendRequest,
    actor_id: str = Depends(get_current_user_id),
    service: ModerationService = Depends(get_service),
):
    """Suspend a user for ``duration_days`` days."""
    return _user_response(_unwrap(service.suspend_user(actor_id, user_id, body.reason, body.duration_days)))


@router.post("/users/{user_id}/unsuspend", response_model=UserResponse)
async def unsuspend_user(
    user_id: str,
    actor_id: str = Depends(get_current_user_id),
    service: ModerationService = Depends(get_service),
):
    """Lift a suspension early."""
    return _user_response(_unwrap(service.unsuspend_user(actor_id, user_id)))


@router.post("/users/{user_id}/ban", response_model=UserResponse)
async def ban_user(
    user_id: str,
    body: ReasonRequest,
    actor_id: str = Depends(get_current_user_id),
    service: ModerationService = Depends(get_service),
):
    """Ban a user and revoke their sessions."""
    return _user_response(_unwrap(service.ban_user(actor_id, user_id, body.reason)))


@router.post("/users/{user_id}/warn", response_model=UserResponse)
async def warn_user(
    user_id: str,
    body: ReasonRequest,
    actor_id: str = Depends(get_current_user_id),
    service: ModerationService = Depends(get_service),
):
    """Record a warning against a user."""
    return _user_response(_unwrap(service.warn_user(actor_id, user_id, body.reason)))


@router.put("/users/{user_id}/role", response_model=UserResponse)
async def change_role(
    user_id: str,
    body: RoleUpdateRequest,
    actor_id: str = Depends(get_current_user_id),
    service: ModerationService = Depends(get_service),
):
    """Change a user's role (admin+; owner role only by an owner)."""
    return _user_response(_unwrap(service.change_user_role(actor_id, user_id, body.role)))


# =========================================================================
# Recipes
# =========================================================================


@router.get("/recipes", response_model=list[RecipeResponse])
async def list_visible_recipes(
    actor_id: Optional[str] = Depends(get_optional_user_id),
    service: ModerationService = Depends(get_service),
):
    """List the recipes the caller may see (published ones for anonymous callers)."""
    return [_recipe_response(r) for r in _unwrap(service.list_visible_recipes(actor_id))]


@router.post("/recipes", response_model=RecipeResponse, status_code=status.HTTP_201_CREATED)
async def submit_recipe(
    body: SubmitRecipeRequest,
    actor_id: str = Depends(get_current_user_id),
    service: ModerationService = Depends(get_service),
):
    """Submit a recipe written by the caller; it starts out pending review."""
    return _recipe_response(_unwrap(service.submit_recipe(actor_id, body.title, body.description)))


@router.get("/recipes/pending", response_model=list[RecipeResponse])
async def list_pending_recipes(
    actor_id: str = Depends(get_current_user_id),
    service: ModerationService = Depends(get_service),
):
    """List recipes waiting for review, oldest first."""
    return [_recipe_response(r) for r in _unwrap(service.list_pending_recipes(actor_id))]


@router.post("/recipes/{recipe_id}/approve", response_model=RecipeResponse)
async def approve_recipe(
    recipe_id: str,
    body: NotesRequest,
    actor_id: str = Depends(get_current_user_id),
    service: ModerationService = Depends(get_service),
):
    """Approve and publish a pending recipe."""
    return _recipe_response(_unwrap(service.approve_recipe(actor_id, recipe_id, body.notes)))


@router.post("/recipes/{recipe_id}/reject", response_model=RecipeResponse)
async def reject_recipe(
    recipe_id: str,
    body: NotesRequest,
    actor_id: str = Depends(get_current_user_id),
    service: ModerationService = Depends(get_service),
):
    """Reject a pending recipe."""
    return _recipe_response(_unwrap(service.reject_recipe(actor_id, recipe_id, body.notes)))


@router.delete("/recipes/{recipe_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_recipe(
    recipe_id: str,
    actor_id: str = Depends(get_current_user_id),
    service: ModerationService = Depends(get_service),
):
    """Delete a recipe from any moderation state."""
    _unwrap(service.delete_recipe(actor_id, recipe_id))


# =========================================================================
# Moderation log & statistics
# =========================================================================


@router.get("/log", response_model=list[LogEntryResponse])
async def list_moderation_log(
    action: Optional[LogAction] = Query(None),
    target_type: Optional[TargetType] = Query(None),
    target_id: Optional[str] = Query(None),
    moderator_id: Optional[str] = Query(None),
    limit: int = Query(200, ge=1, le=10000),
    actor_id: str = Depends(get_current_user_id),
    service: ModerationService = Depends(get_service),
):
    """List moderation log entries, newest first (moderator+)."""
    log_filter = LogFilter(
        action=action,
        target_type=target_type,
        target_id=target_id,
        moderator_id=moderator_id,
        limit=limit,
        newest_first=True,
    )
    return [_entry_response(e) for e in _unwrap(service.list_moderation_log(actor_id, log_filter))]


@router.get("/stats", response_model=StatsResponse)
async def get_statistics(
    actor_id: str = Depends(get_current_user_id),
    service: ModerationService = Depends(get_service),
):
    """Dashboard counters for moderators."""
    stats = _unwrap(service.get_statistics(actor_id))
    return StatsResponse(**vars(stats))
