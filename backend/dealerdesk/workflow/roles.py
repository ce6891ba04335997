# Overview: Fixed role set and the role-membership predicate.

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Iterable


logger = logging.getLogger(__name__)


class Role(str, enum.Enum):
    """
    The ten access-control tags. A user holds exactly one of them.

    Values are persisted as-is in user_roles.role (CHECK constrained).
    """
    SYS_ADMIN = "sys_admin"
    DIRECTOR = "director"
    CDV = "cdv"
    COMMERCIAL = "commercial"
    MAGASIN = "magasin"
    APV = "apv"
    GED = "ged"
    ADV = "adv"
    LIVRAISON = "livraison"
    IMMATRICULATION = "immatriculation"

    @property
    def label(self) -> str:
        return ROLE_LABELS[self]


ROLE_LABELS = {
    Role.SYS_ADMIN: "System Administrator",
    Role.DIRECTOR: "Director",
    Role.CDV: "CDV",
    Role.COMMERCIAL: "Commercial",
    Role.MAGASIN: "Magasin",
    Role.APV: "APV",
    Role.GED: "GED",
    Role.ADV: "ADV",
    Role.LIVRAISON: "Livraison",
    Role.IMMATRICULATION: "Immatriculation",
}

ROLE_VALUES = tuple(role.value for role in Role)

# Role given to accounts created without an explicit one
DEFAULT_ROLE = Role.CDV


@dataclass(frozen=True)
class ActingUser:
    """
    The caller of a workflow operation.

    Built once per request from the authenticated session and passed
    explicitly to every policy and service call.
    """
    user_id: int | None
    role: Role | None

    @classmethod
    def from_values(cls, user_id: int | None, role: str | Role | None) -> "ActingUser":
        return cls(user_id=user_id, role=parse_role(role))


def parse_role(value: str | Role | None) -> Role | None:
    """
    Resolve a stored role value. Unknown values resolve to None (fail closed)
    and are logged since they point at a data inconsistency.
    """
    if value is None:
        return None
    if isinstance(value, Role):
        return value
    try:
        return Role(str(value).strip().lower())
    except ValueError:
        logger.warning("Unknown role value %r treated as no role", value)
        return None


def validate_role(value: str | Role | None) -> Role:
    """Strict variant of parse_role for write paths."""
    role = parse_role(value)
    if role is None:
        raise ValueError(
            f"Invalid role '{value}'. Must be one of: {', '.join(ROLE_VALUES)}"
        )
    return role


def has_role(user: ActingUser | None, allowed_roles: Iterable[str | Role]) -> bool:
    """True iff the user's single role is one of allowed_roles."""
    if user is None or user.role is None:
        return False
    allowed = {parse_role(r) for r in allowed_roles}
    return user.role in allowed
