# Overview: VN order workflow package.
# Re-exports the pure stage registry, role policy and stage validator.

from .roles import (
    Role,
    ROLE_LABELS,
    ROLE_VALUES,
    DEFAULT_ROLE,
    ActingUser,
    parse_role,
    validate_role,
    has_role,
)
from .stages import (
    UnknownStageError,
    StageDescriptor,
    STAGES,
    STAGE_NAMES,
    FIRST_STAGE,
    TERMINAL_STAGE,
    is_known_stage,
    get_stage,
    index_of,
    successor,
    is_terminal,
    stages_through,
)
from .policy import (
    can_access_stage,
    accessible_stages,
    can_edit_order,
    can_create_order,
    can_complete_any_stage,
    can_bypass_stage_validation,
    can_work_stage,
    can_view_orders,
    can_override_status,
    can_delete_order,
    can_manage_users,
    role_capabilities,
)
from .capture import (
    CaptureFieldError,
    CaptureField,
    StageCapture,
    VEHICLE_LOCATIONS,
    capture_for,
    capture_type,
    read_stage_entry,
)
from .validator import can_complete_stage, missing_requirements, stage_warnings

__all__ = [
    "Role",
    "ROLE_LABELS",
    "ROLE_VALUES",
    "DEFAULT_ROLE",
    "ActingUser",
    "parse_role",
    "validate_role",
    "has_role",
    "UnknownStageError",
    "StageDescriptor",
    "STAGES",
    "STAGE_NAMES",
    "FIRST_STAGE",
    "TERMINAL_STAGE",
    "is_known_stage",
    "get_stage",
    "index_of",
    "successor",
    "is_terminal",
    "stages_through",
    "can_access_stage",
    "accessible_stages",
    "can_edit_order",
    "can_create_order",
    "can_complete_any_stage",
    "can_bypass_stage_validation",
    "can_work_stage",
    "can_view_orders",
    "can_override_status",
    "can_delete_order",
    "can_manage_users",
    "role_capabilities",
    "CaptureFieldError",
    "CaptureField",
    "StageCapture",
    "VEHICLE_LOCATIONS",
    "capture_for",
    "capture_type",
    "read_stage_entry",
    "can_complete_stage",
    "missing_requirements",
    "stage_warnings",
]
