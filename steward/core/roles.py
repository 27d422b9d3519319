"""Role hierarchy and permission sets.

The table is built once at import time and exposed read-only. Rank values
only matter relative to each other. Permission keys are ``resource.action``
strings; ``"*"`` grants every key. Keys do not imply one another:
``users.edit`` does not grant ``users.view``.
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Protocol

WILDCARD = "*"

# Rank given to role strings missing from the table; below every defined role.
UNKNOWN_ROLE_RANK = -1


class UserRole(str, Enum):
    """Roles a user can hold, lowest privilege first."""

    GUEST = "guest"
    MEMBER = "member"
    DATA_ENTRY = "data_entry"
    UNIT_LEADER = "unit_leader"
    STAFF = "staff"
    FINANCIAL_CONTROLLER = "financial_controller"
    BRANCH_ADMIN = "branch_admin"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


# Role assigned on self-registration.
DEFAULT_ROLE = UserRole.DATA_ENTRY


@dataclass(frozen=True)
class RoleDefinition:
    role: UserRole
    label: str
    description: str
    rank: int
    permissions: frozenset[str]


def _crud(resource: str, *actions: str) -> set[str]:
    return {f"{resource}.{action}" for action in actions}


_ALL_ACTIONS = ("view", "create", "edit", "delete")

_DEFINITIONS = (
    RoleDefinition(
        role=UserRole.GUEST,
        label="Guest",
        description="Unverified visitor with read access to public content",
        rank=0,
        permissions=frozenset(_crud("media", "view")),
    ),
    RoleDefinition(
        role=UserRole.MEMBER,
        label="Member",
        description="Regular member with limited access",
        rank=10,
        permissions=frozenset(
            _crud("churches", "view") | _crud("events", "view") | _crud("media", "view")
        ),
    ),
    RoleDefinition(
        role=UserRole.DATA_ENTRY,
        label="Data Entry",
        description="Captures member and service records",
        rank=20,
        permissions=frozenset(
            _crud("churches", "view")
            | _crud("members", "view", "create")
            | _crud("events", "view")
            | _crud("media", "view")
        ),
    ),
    RoleDefinition(
        role=UserRole.UNIT_LEADER,
        label="Unit Leader",
        description="Leads a unit and manages its members and events",
        rank=25,
        permissions=frozenset(
            _crud("churches", "view")
            | _crud("members", "view", "create", "edit")
            | _crud("events", "view", "create")
            | _crud("media", "view")
        ),
    ),
    RoleDefinition(
        role=UserRole.STAFF,
        label="Staff",
        description="Manages day-to-day church operations",
        rank=30,
        permissions=frozenset(
            _crud("churches", "view")
            | _crud("members", "view", "edit")
            | _crud("events", "view", "edit")
            | _crud("media", "view", "edit")
            | _crud("finance", "view")
        ),
    ),
    RoleDefinition(
        role=UserRole.FINANCIAL_CONTROLLER,
        label="Financial Controller",
        description="Manages remittances and financial reports",
        rank=35,
        permissions=frozenset(
            _crud("churches", "view")
            | _crud("members", "view")
            | _crud("events", "view")
            | _crud("media", "view")
            | _crud("finance", "view", "create", "edit")
        ),
    ),
    RoleDefinition(
        role=UserRole.BRANCH_ADMIN,
        label="Branch Admin",
        description="Manages a specific church branch",
        rank=40,
        permissions=frozenset(
            _crud("users", "view")
            | _crud("churches", "view")
            | _crud("members", "view", "create", "edit")
            | _crud("events", "view", "create", "edit")
            | _crud("finance", "view", "create")
            | _crud("media", "view", "create")
        ),
    ),
    RoleDefinition(
        role=UserRole.ADMIN,
        label="Admin",
        description="Administrative access across a region",
        rank=50,
        permissions=frozenset(
            set().union(
                *(
                    _crud(resource, *_ALL_ACTIONS)
                    for resource in ("users", "churches", "members", "events", "finance", "media")
                )
            )
        ),
    ),
    RoleDefinition(
        role=UserRole.SUPER_ADMIN,
        label="Super Admin",
        description="Full access to all features across all churches",
        rank=60,
        permissions=frozenset({WILDCARD}),
    ),
)

ROLE_DEFINITIONS: Mapping[UserRole, RoleDefinition] = MappingProxyType(
    {definition.role: definition for definition in _DEFINITIONS}
)


class HasRole(Protocol):
    role: str


def _coerce_role(role: UserRole | str) -> UserRole | None:
    if isinstance(role, UserRole):
        return role
    try:
        return UserRole(role)
    except ValueError:
        return None


def get_role_definition(role: UserRole | str) -> RoleDefinition | None:
    """Return the definition for a role, or None for unknown role strings."""
    known = _coerce_role(role)
    if known is None:
        return None
    return ROLE_DEFINITIONS[known]


def role_rank(role: UserRole | str) -> int:
    definition = get_role_definition(role)
    if definition is None:
        return UNKNOWN_ROLE_RANK
    return definition.rank


def has_role(user: HasRole, required_role: UserRole | str) -> bool:
    """True if the user's role ranks at least as high as required_role."""
    required = get_role_definition(required_role)
    if required is None:
        # An undefined requirement cannot be satisfied.
        return False
    return role_rank(user.role) >= required.rank


def has_permission(user: HasRole, permission: str) -> bool:
    """True if the user's role grants the permission key (or the wildcard)."""
    definition = get_role_definition(user.role)
    if definition is None:
        return False
    return WILDCARD in definition.permissions or permission in definition.permissions


def is_valid_role(role: str) -> bool:
    return _coerce_role(role) is not None
