# Overview: Decides whether a stage's captured data satisfies its exit criteria.

from __future__ import annotations

import logging
from typing import Any, Mapping

from .capture import capture_for
from .policy import can_bypass_stage_validation
from .roles import Role
from .stages import is_known_stage


logger = logging.getLogger(__name__)


def can_complete_stage(stage: str, data: Mapping[str, Any] | None, role: str | Role | None) -> bool:
    """
    True when the stage may be completed with the given capture data.

    Bypass roles always pass. For FACTURATION the data must carry the
    order's own vehicle_vin.
    """
    if not is_known_stage(stage):
        logger.warning("Completion check on unknown stage %r", stage)
        return False
    if can_bypass_stage_validation(role):
        return True
    return capture_for(stage, data).is_complete()


def missing_requirements(stage: str, data: Mapping[str, Any] | None) -> list[str]:
    """Labels of the unmet exit criteria, ignoring any role bypass."""
    if not is_known_stage(stage):
        return []
    return capture_for(stage, data).missing_requirements()


def stage_warnings(stage: str, data: Mapping[str, Any] | None) -> list[str]:
    """Non-blocking data-quality flags for a stage."""
    if not is_known_stage(stage):
        return []
    return capture_for(stage, data).warnings()
