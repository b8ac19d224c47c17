"""Tests for the role policy predicates."""

from itertools import product

from larder.auth.models import Role
from larder.auth.permissions import can_act_on, can_assign_role, has_permission, role_level

ROLES = list(Role)


def test_role_levels():
    assert role_level(Role.user) == 0
    assert role_level(Role.moderator) == 1
    assert role_level(Role.admin) == 2
    assert role_level(Role.owner) == 3
    assert role_level("admin") == 2


def test_has_permission_matrix():
    for actor, required in product(ROLES, ROLES):
        assert has_permission(actor, required) == (actor.level >= required.level)


def test_can_act_on_matrix():
    for actor, target in product(ROLES, ROLES):
        assert can_act_on(actor, target) == (role_level(actor) > role_level(target))


def test_can_act_on_is_irreflexive():
    for role in ROLES:
        assert not can_act_on(role, role)


def test_can_act_on_is_antisymmetric():
    for a, b in product(ROLES, ROLES):
        assert not (can_act_on(a, b) and can_act_on(b, a))


def test_can_assign_role_matrix():
    expected = {
        Role.user: set(),
        Role.moderator: set(),
        Role.admin: {Role.user, Role.moderator, Role.admin},
        Role.owner: {Role.user, Role.moderator, Role.admin, Role.owner},
    }
    for actor, new_role in product(ROLES, ROLES):
        assert can_assign_role(actor, new_role) == (new_role in expected[actor]), (actor, new_role)


def test_predicates_accept_role_strings():
    assert has_permission("moderator", "moderator")
    assert can_act_on("owner", "admin")
    assert not can_assign_role("admin", "owner")
