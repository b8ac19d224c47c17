"""Pydantic models for API request/response serialization.

These models mirror the larder dataclasses and provide proper JSON
serialization for the FastAPI endpoints.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class SuspendRequest(BaseModel):
    """Request body for suspending a user."""

    reason: str = ""
    duration_days: int


class ReasonRequest(BaseModel):
    """Request body for bans and warnings."""

    reason: str = ""


class RoleUpdateRequest(BaseModel):
    """Request body for updating a user's role."""

    role: str


class SubmitRecipeRequest(BaseModel):
    """Request body for submitting a recipe for review."""

    title: str
    description: str = ""


class NotesRequest(BaseModel):
    """Request body for approving or rejecting a recipe."""

    notes: Optional[str] = None


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Mirrors larder.auth.models.User."""

    id: str
    username: str
    email: str
    provider: str = ""
    role: str = "user"
    status: str = "active"
    suspension_reason: Optional[str] = None
    suspension_expires_at: Optional[str] = None
    warning_count: int = 0
    is_verified: bool = False
    created_at: str = ""
    last_login_at: Optional[str] = None


class RecipeResponse(BaseModel):
    """Mirrors larder.recipes.models.Recipe."""

    id: str
    author_id: str
    title: str
    description: str = ""
    moderation_status: str = "pending"
    is_published: bool = False
    moderation_notes: Optional[str] = None
    created_at: str = ""
    published_at: Optional[str] = None


class LogEntryResponse(BaseModel):
    """Mirrors larder.audit.models.ModerationLogEntry."""

    id: str
    moderator_id: str
    moderator_username: str
    target_type: str
    target_id: str
    action: str
    reason: str = ""
    created_at: str
    details: dict[str, Any] = Field(default_factory=dict)


class StatsResponse(BaseModel):
    """Mirrors larder.moderation.models.ModerationStats."""

    total_users: int = 0
    active_users: int = 0
    suspended_users: int = 0
    banned_users: int = 0
    pending_users: int = 0
    verified_users: int = 0
    social_logins: int = 0
    new_this_week: int = 0
    new_this_month: int = 0
    login_attempts_blocked: int = 0
    total_recipes: int = 0
    pending_recipes: int = 0
    approved_recipes: int = 0
    rejected_recipes: int = 0
