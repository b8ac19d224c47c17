"""Recipe domain models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from larder.auth.models import utcnow


class ModerationStatus(str, Enum):
    """Recipe moderation status."""

    pending = "pending"
    approved = "approved"
    rejected = "rejected"


@dataclass
class Recipe:
    """A submitted recipe.

    ``is_published`` is true exactly when ``moderation_status`` is approved.
    """

    id: str
    author_id: str
    title: str
    description: str = ""
    moderation_status: ModerationStatus = ModerationStatus.pending
    is_published: bool = False
    moderation_notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    published_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.created_at is None:
            self.created_at = utcnow()
        if self.updated_at is None:
            self.updated_at = self.created_at
        if isinstance(self.moderation_status, str):
            self.moderation_status = ModerationStatus(self.moderation_status)
