# Overview: Pure role-to-stage access predicates for the VN order workflow.

"""
Stage Access Policy

Decides what a role may do with VN orders, independently of where a given
order currently sits in the pipeline.

Design:
    - No database access and no request context here.
    - Same inputs always give the same answer.
    - Unknown roles and unknown stages are denied (and logged).
"""

from __future__ import annotations

import logging

from .roles import Role, parse_role
from .stages import (
    STAGE_NAMES,
    PROFORMA,
    COMMANDE,
    VALIDATION,
    ACCUSE,
    FACTURATION,
    ARRIVAGE,
    CARTE_JAUNE,
    LIVRAISON,
    DOSSIER_DAIRA,
    is_known_stage,
)


logger = logging.getLogger(__name__)


# Roles that see and work every stage
ALL_STAGE_ROLES = frozenset({Role.SYS_ADMIN, Role.DIRECTOR, Role.CDV})

# Functional roles limited to specific stages
ROLE_STAGE_ACCESS: dict[Role, frozenset[str]] = {
    Role.COMMERCIAL: frozenset({PROFORMA, COMMANDE}),
    Role.GED: frozenset({VALIDATION, ACCUSE}),
    Role.ADV: frozenset({FACTURATION, ARRIVAGE}),
    Role.LIVRAISON: frozenset({CARTE_JAUNE, LIVRAISON}),
    Role.IMMATRICULATION: frozenset({DOSSIER_DAIRA}),
}

ORDER_EDITOR_ROLES = frozenset({Role.SYS_ADMIN, Role.DIRECTOR, Role.CDV, Role.COMMERCIAL})

# May complete any stage regardless of its exit criteria
STAGE_BYPASS_ROLES = frozenset({Role.SYS_ADMIN, Role.DIRECTOR, Role.IMMATRICULATION})

ORDER_VIEWER_ROLES = frozenset(Role) - {Role.MAGASIN, Role.APV}

STATUS_OVERRIDE_ROLES = frozenset({Role.SYS_ADMIN, Role.DIRECTOR})

ORDER_DELETE_ROLES = frozenset({Role.SYS_ADMIN})

USER_ADMIN_ROLES = frozenset({Role.SYS_ADMIN})


def can_access_stage(role: str | Role | None, stage: str) -> bool:
    resolved = parse_role(role)
    if resolved is None:
        return False
    if not is_known_stage(stage):
        logger.warning("Stage access check on unknown stage %r (role=%s)", stage, resolved.value)
        return False
    if resolved in ALL_STAGE_ROLES:
        return True
    return stage in ROLE_STAGE_ACCESS.get(resolved, frozenset())


def accessible_stages(role: str | Role | None) -> list[str]:
    return [name for name in STAGE_NAMES if can_access_stage(role, name)]


def can_edit_order(role: str | Role | None) -> bool:
    return parse_role(role) in ORDER_EDITOR_ROLES


def can_create_order(role: str | Role | None) -> bool:
    return parse_role(role) in ORDER_EDITOR_ROLES


def can_complete_any_stage(role: str | Role | None) -> bool:
    return parse_role(role) in STAGE_BYPASS_ROLES


def can_bypass_stage_validation(role: str | Role | None) -> bool:
    return parse_role(role) in STAGE_BYPASS_ROLES


def can_work_stage(role: str | Role | None, stage: str) -> bool:
    """
    Effective gate for viewing, editing and completing a stage's content.

    Bypass roles may work stages outside their normal mapping.
    """
    if not is_known_stage(stage):
        logger.warning("Stage work check on unknown stage %r", stage)
        return False
    return can_access_stage(role, stage) or can_complete_any_stage(role)


def can_view_orders(role: str | Role | None) -> bool:
    return parse_role(role) in ORDER_VIEWER_ROLES


def can_override_status(role: str | Role | None) -> bool:
    return parse_role(role) in STATUS_OVERRIDE_ROLES


def can_delete_order(role: str | Role | None) -> bool:
    return parse_role(role) in ORDER_DELETE_ROLES


def can_manage_users(role: str | Role | None) -> bool:
    return parse_role(role) in USER_ADMIN_ROLES


def role_capabilities(role: str | Role | None) -> dict:
    """Capability summary for front-end gating of controls."""
    return {
        "stages": accessible_stages(role),
        "can_view_orders": can_view_orders(role),
        "can_create_order": can_create_order(role),
        "can_edit_order": can_edit_order(role),
        "can_delete_order": can_delete_order(role),
        "can_complete_any_stage": can_complete_any_stage(role),
        "can_bypass_stage_validation": can_bypass_stage_validation(role),
        "can_override_status": can_override_status(role),
        "can_manage_users": can_manage_users(role),
    }
