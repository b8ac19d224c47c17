"""Error types for moderation and account-status operations.

The four :class:`ModerationError` subclasses are expected outcomes: state
machines raise them and :class:`~larder.moderation.service.ModerationService`
turns them into a failed :class:`~larder.moderation.models.ModerationResult`.
:class:`PersistenceFault` is an infrastructure failure and always propagates.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Kinds of expected, caller-recoverable failures."""

    permission_denied = "permission_denied"
    invalid_argument = "invalid_argument"
    invalid_state_transition = "invalid_state_transition"
    not_found = "not_found"


class ModerationError(Exception):
    """Base exception for all expected moderation failures."""

    kind: ErrorKind

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class PermissionDenied(ModerationError):
    """Raised when the actor lacks the role required for an action."""

    kind = ErrorKind.permission_denied


class InvalidArgument(ModerationError):
    """Raised when an input is malformed or out of range."""

    kind = ErrorKind.invalid_argument


class InvalidStateTransition(ModerationError):
    """Raised when the target's current state forbids the transition."""

    kind = ErrorKind.invalid_state_transition


class NotFound(ModerationError):
    """Raised when an actor, user or recipe id does not resolve."""

    kind = ErrorKind.not_found

    def __init__(self, entity: str, entity_id: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity.capitalize()} '{entity_id}' not found")


class PersistenceFault(Exception):
    """Raised by a store when the underlying storage fails."""
