"""
Steward Role Hierarchy

Closed role enum with an explicit total order, and the rank threshold of
each permission tier. A caller may use a tool iff
``rank(role) >= threshold(tier)``. Unknown or missing roles rank 0.
"""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """Caller roles, ordered by rank."""
    VIEWER = "viewer"
    CHATTER = "chatter"
    SMM = "smm"
    RECRUITER = "recruiter"
    SPECIALIST = "specialist"
    PALADIN = "paladin"
    GRANDMASTER = "grandmaster"
    ADMIN = "admin"
    OWNER = "owner"


ROLE_RANKS: dict[Role, int] = {
    Role.VIEWER: 0,
    Role.CHATTER: 30,
    Role.SMM: 40,
    Role.RECRUITER: 40,
    Role.SPECIALIST: 50,
    Role.PALADIN: 70,
    Role.GRANDMASTER: 80,
    Role.ADMIN: 90,
    Role.OWNER: 100,
}


class PermissionTier(str, Enum):
    """Minimum role level a tool requires."""
    ANY = "any"
    OPERATOR = "operator"
    ADMIN = "admin"
    OWNER = "owner"

    @property
    def threshold(self) -> int:
        return TIER_THRESHOLDS[self]


# operator = lowest operational role (chatter); admin = lowest admin-level role (paladin)
TIER_THRESHOLDS: dict[PermissionTier, int] = {
    PermissionTier.ANY: 0,
    PermissionTier.OPERATOR: ROLE_RANKS[Role.CHATTER],
    PermissionTier.ADMIN: ROLE_RANKS[Role.PALADIN],
    PermissionTier.OWNER: ROLE_RANKS[Role.OWNER],
}


def parse_role(role: str | Role | None) -> Role | None:
    """Map a role string onto the enum; None for unknown or missing."""
    if role is None:
        return None
    if isinstance(role, Role):
        return role
    try:
        return Role(role.strip().lower())
    except ValueError:
        return None


def rank(role: str | Role | None) -> int:
    """Rank of a role. Unknown or missing roles rank 0."""
    parsed = parse_role(role)
    return ROLE_RANKS[parsed] if parsed is not None else 0


def has_permission(role: str | Role | None, tier: PermissionTier) -> bool:
    return rank(role) >= tier.threshold
