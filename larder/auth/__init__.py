"""Roles, users, permission predicates and login sessions."""

from larder.auth.models import AccountStatus, Role, Session, User
from larder.auth.permissions import can_act_on, can_assign_role, has_permission, role_level

__all__ = [
    "AccountStatus",
    "Role",
    "Session",
    "User",
    "can_act_on",
    "can_assign_role",
    "has_permission",
    "role_level",
]
