"""Role-based access control (RBAC) predicates.

Role hierarchy: owner > admin > moderator > user

Every permission decision in larder goes through these functions; nothing
else compares roles directly.
"""

from __future__ import annotations

from typing import Union

from larder.auth.models import Role

RoleLike = Union[Role, str]


def _as_role(role: RoleLike) -> Role:
    return role if isinstance(role, Role) else Role(role)


def role_level(role: RoleLike) -> int:
    """Return the numeric level of *role* (``user=0`` .. ``owner=3``)."""
    return _as_role(role).level


def has_permission(actor_role: RoleLike, required_role: RoleLike) -> bool:
    """Check if *actor_role* meets or exceeds *required_role*.

    Parameters
    ----------
    actor_role:
        The role of the user attempting the action.
    required_role:
        The minimum role required.

    Returns
    -------
    bool
        True if the actor's role level >= required role level.
    """
    return role_level(actor_role) >= role_level(required_role)


def can_act_on(actor_role: RoleLike, target_role: RoleLike) -> bool:
    """Return True if *actor_role* strictly outranks *target_role*.

    Peers and superiors can never be moderated, which also rules out acting
    on oneself.
    """
    return role_level(actor_role) > role_level(target_role)


def can_assign_role(actor_role: RoleLike, new_role: RoleLike) -> bool:
    """Return True if *actor_role* may hand out *new_role*.

    Admins and above may assign any role except ``owner``, which only an
    existing owner can grant.
    """
    if not has_permission(actor_role, Role.admin):
        return False
    if _as_role(new_role) == Role.owner:
        return _as_role(actor_role) == Role.owner
    return True
