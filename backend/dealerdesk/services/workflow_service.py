# Overview: Service-layer operations for the VN order stage workflow.

"""
Order Workflow Engine

Moves VN orders through the stage pipeline and maintains per-stage capture
data in vn_orders.stage_completion_dates.

Operations:
- complete_stage: validate the current stage and advance to its successor
- update_stage_field: edit one captured field of a reached stage
- override_status: administrative jump to any stage, isolated from the
  normal flow
- stage_overview: per-stage view model for a caller

Invariants kept here:
- status is always a registry stage name
- the snapshot only holds entries for stages at or before status
- each operation is one commit (status, snapshot, column sync, history)

The caller is always passed explicitly as an ActingUser.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field as dataclass_field
from decimal import Decimal

from ..models import VnOrder
from ..validation import ValidationError
from .order_service import (
    PersistenceError,
    commit,
    deny,
    get_order,
    record_history,
)
from dealerdesk.time_utils import utcnow, to_utc_z
from dealerdesk.workflow.capture import (
    CaptureFieldError,
    FacturationCapture,
    ArrivageCapture,
    capture_for,
    capture_type,
    read_stage_entry,
)
from dealerdesk.workflow.policy import (
    can_bypass_stage_validation,
    can_override_status,
    can_work_stage,
)
from dealerdesk.workflow.roles import ActingUser
from dealerdesk.workflow.stages import (
    FACTURATION,
    ARRIVAGE,
    STAGES,
    get_stage,
    index_of,
    is_known_stage,
    successor,
)
from dealerdesk.workflow.validator import (
    can_complete_stage,
    missing_requirements,
    stage_warnings,
)

__all__ = [
    "WorkflowError",
    "StageAccessDeniedError",
    "StageIncompleteError",
    "AlreadyTerminalError",
    "StageNotCurrentError",
    "StageNotReachedError",
    "PersistenceError",
    "StageCompletion",
    "require_stage_access",
    "complete_stage",
    "update_stage_field",
    "set_document_flag",
    "override_status",
    "stage_overview",
]


class WorkflowError(Exception):
    """Base class for stage workflow failures."""
    pass


class StageAccessDeniedError(WorkflowError):
    """Raised when the caller's role may not work the stage."""
    pass


class StageIncompleteError(WorkflowError):
    """Raised when the stage's exit criteria are not met."""

    def __init__(self, stage: str, missing: list[str]):
        self.stage = stage
        self.missing = list(missing)
        label = get_stage(stage).label
        if self.missing:
            message = f"{label} cannot be completed yet. Missing: {', '.join(self.missing)}"
        else:
            message = f"{label} cannot be completed yet"
        super().__init__(message)


class AlreadyTerminalError(WorkflowError):
    """Raised when completing the last stage; there is nothing to advance to."""
    pass


class StageNotCurrentError(WorkflowError):
    """Raised when the caller targets a stage other than the order's current one."""
    pass


class StageNotReachedError(WorkflowError):
    """Raised when editing a stage the order has not reached yet."""
    pass


@dataclass
class StageCompletion:
    order: VnOrder
    completed_stage: str
    new_stage: str
    completed_at: str
    bypassed: bool = False
    warnings: list[str] = dataclass_field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "order": self.order.to_dict(),
            "completed_stage": self.completed_stage,
            "new_stage": self.new_stage,
            "completed_at": self.completed_at,
            "bypassed": self.bypassed,
            "warnings": list(self.warnings),
        }


def _snapshot(order: VnOrder) -> dict:
    """Deep copy of the stage data; the column is reassigned, never mutated in place."""
    return copy.deepcopy(dict(order.stage_completion_dates or {}))


def require_stage_access(order: VnOrder, stage: str, acting_user: ActingUser, action: str) -> None:
    if can_work_stage(acting_user.role, stage):
        return
    role = acting_user.role.value if acting_user.role else None
    deny(acting_user, "STAGE_ACCESS_DENIED", action, f"vn_order:{order.id}:{stage}",
         f"Role {role} has no access to stage {stage}")
    raise StageAccessDeniedError(f"Your role does not have access to the {get_stage(stage).label} stage")


def _criteria_view(order: VnOrder, stage: str, data: dict) -> dict:
    """Stage data as the exit criteria see it: FACTURATION reads the order's own VIN."""
    if stage == FACTURATION:
        return dict(data, vehicle_vin=order.vehicle_vin)
    return data


def _sync_columns(order: VnOrder, stage: str, data: dict) -> None:
    """Mirror selected captured fields onto the order's own columns, clearing withdrawn values."""
    if stage == FACTURATION:
        capture = FacturationCapture(data)
        if capture.get("tropPercu") == "oui" and capture.is_set("tropPercuAmount"):
            order.trop_percu = Decimal(str(capture.get("tropPercuAmount")))
        else:
            order.trop_percu = None
    elif stage == ARRIVAGE:
        capture = ArrivageCapture(data)
        if capture.is_set("location"):
            order.location = capture.get("location")
        if capture.get("avaries") == "oui" and capture.is_set("avariesNote"):
            order.vehicle_avaries = capture.get("avariesNote").strip()
        else:
            order.vehicle_avaries = None


def complete_stage(order_id: int, *, acting_user: ActingUser, stage_index: int | None = None) -> StageCompletion:
    """
    Complete the order's current stage and advance to its immediate successor.

    stage_index, when given, must be the index of the current stage; it
    guards against acting on a stale view of the order.

    Raises:
        StageNotCurrentError, StageAccessDeniedError, StageIncompleteError,
        AlreadyTerminalError, PersistenceError, OrderNotFoundError
    """
    order = get_order(order_id)
    current = order.status

    if stage_index is not None and stage_index != index_of(current):
        raise StageNotCurrentError(
            f"Stage index {stage_index} is not the current stage "
            f"({get_stage(current).label}, index {index_of(current)})"
        )

    require_stage_access(order, current, acting_user, "COMPLETE_STAGE")

    snapshot = _snapshot(order)
    entry = read_stage_entry(snapshot, current)
    data = entry["data"]
    criteria = _criteria_view(order, current, data)

    if not can_complete_stage(current, criteria, acting_user.role):
        raise StageIncompleteError(current, missing_requirements(current, criteria))

    nxt = successor(current)
    if nxt is None:
        raise AlreadyTerminalError(f"{get_stage(current).label} is the last stage; nothing to advance to")

    bypassed = bool(missing_requirements(current, criteria))
    completed_at = to_utc_z(utcnow(), keep_microseconds=True)

    entry["completed_at"] = completed_at
    snapshot[current] = entry
    order.stage_completion_dates = snapshot
    _sync_columns(order, current, data)
    order.status = nxt.name

    warnings = stage_warnings(current, criteria)
    record_history(order, "STAGE_COMPLETED", {
        "from": current,
        "to": nxt.name,
        "completed_at": completed_at,
        "bypassed": bypassed,
        "warnings": warnings,
    }, acting_user.user_id)
    commit("stage completion")

    return StageCompletion(
        order=order,
        completed_stage=current,
        new_stage=nxt.name,
        completed_at=completed_at,
        bypassed=bypassed,
        warnings=warnings,
    )


def _apply_field(order: VnOrder, stage: str, key: str, value) -> tuple[bool, object]:
    """
    Stage one captured value on the order. Returns (changed, previous value).

    None removes the field. An identical value is not written.
    """
    if stage == FACTURATION and key == "vehicle_vin":
        value = value or None
        previous = order.vehicle_vin
        if previous == value:
            return False, previous
        order.vehicle_vin = value
        return True, previous

    snapshot = _snapshot(order)
    entry = read_stage_entry(snapshot, stage)
    data = entry["data"]
    previous = data.get(key)

    if value is None:
        if key not in data:
            return False, previous
        del data[key]
    else:
        if key in data and previous == value and isinstance(previous, bool) == isinstance(value, bool):
            return False, previous
        data[key] = value

    snapshot[stage] = entry
    order.stage_completion_dates = snapshot
    _sync_columns(order, stage, data)
    return True, previous


def update_stage_field(order_id: int, stage: str, field: str, value, *, acting_user: ActingUser) -> tuple[VnOrder, bool]:
    """
    Set one captured field of a stage the order has reached.

    Returns (order, changed). Writing the value already stored is a no-op
    with no commit and no history row.

    Raises:
        UnknownStageError, StageAccessDeniedError, StageNotReachedError,
        ValidationError, PersistenceError, OrderNotFoundError
    """
    get_stage(stage)
    order = get_order(order_id)

    require_stage_access(order, stage, acting_user, "UPDATE_STAGE_FIELD")

    if index_of(stage) > index_of(order.status):
        raise StageNotReachedError(
            f"The order is at {get_stage(order.status).label}; {get_stage(stage).label} cannot be edited yet"
        )

    try:
        field_def = capture_type(stage).get_field(field)
        coerced = field_def.coerce(value)
    except CaptureFieldError as exc:
        raise ValidationError(str(exc)) from exc

    if field_def.document_flag and not can_bypass_stage_validation(acting_user.role):
        role = acting_user.role.value if acting_user.role else None
        deny(acting_user, "STAGE_ACCESS_DENIED", "SET_DOCUMENT_FLAG", f"vn_order:{order.id}:{stage}",
             f"Role {role} tried to set {field} without a document")
        raise StageAccessDeniedError(f"{field_def.label} is set by recording the stage document")

    changed, previous = _apply_field(order, stage, field, coerced)
    if not changed:
        return order, False

    record_history(order, "STAGE_FIELD_UPDATED", {
        "stage": stage,
        "field": field,
        "old": previous,
        "new": coerced,
    }, acting_user.user_id)
    commit("stage data")
    return order, True


def set_document_flag(order: VnOrder, stage: str, flag: str, value: bool) -> bool:
    """
    Stage a document flag change without committing.

    Used by the document service so the flag and the document row share a commit.
    """
    field_def = capture_type(stage).get_field(flag)
    if not field_def.document_flag:
        raise ValidationError(f"{flag} is not a document flag of {stage}")
    changed, _ = _apply_field(order, stage, flag, field_def.coerce(value))
    return changed


def override_status(order_id: int, status: str, *, acting_user: ActingUser, reason: str | None = None) -> tuple[VnOrder, bool]:
    """
    Administrative escape hatch: move the order to any stage.

    Moving backwards drops the snapshot entries of the later stages and
    reopens the target stage (its completed_at is removed); everything
    dropped is kept in the history row.

    Returns (order, changed).
    """
    get_stage(status)
    order = get_order(order_id)

    if not can_override_status(acting_user.role):
        role = acting_user.role.value if acting_user.role else None
        deny(acting_user, "STAGE_ACCESS_DENIED", "OVERRIDE_STATUS", f"vn_order:{order.id}",
             f"Role {role} may not override order status")
        raise StageAccessDeniedError("Only directors and system administrators can override the order status")

    previous = order.status
    if status == previous:
        return order, False

    snapshot = _snapshot(order)
    dropped = {}
    target = index_of(status)
    if target < index_of(previous):
        for name in list(snapshot):
            if is_known_stage(name) and index_of(name) > target:
                dropped[name] = snapshot.pop(name)
        entry = read_stage_entry(snapshot, status)
        if "completed_at" in entry:
            dropped[f"{status}.completed_at"] = entry.pop("completed_at")
            snapshot[status] = entry

    order.stage_completion_dates = snapshot
    order.status = status

    record_history(order, "STATUS_OVERRIDDEN", {
        "from": previous,
        "to": status,
        "reason": (reason or "").strip() or None,
        "dropped": dropped,
    }, acting_user.user_id)
    commit("status override")
    return order, True


def stage_overview(order: VnOrder, acting_user: ActingUser) -> list[dict]:
    """Per-stage view of an order for the caller. Data of inaccessible stages is withheld."""
    current_index = index_of(order.status)
    snapshot = order.stage_completion_dates or {}
    overview = []

    for idx, descriptor in enumerate(STAGES):
        name = descriptor.name
        accessible = can_work_stage(acting_user.role, name)
        entry = read_stage_entry(snapshot, name)
        data = _criteria_view(order, name, entry["data"])
        is_current = idx == current_index

        if idx < current_index:
            state = "completed"
        elif is_current:
            state = "current"
        else:
            state = "upcoming"

        item = descriptor.to_dict()
        item.update({
            "state": state,
            "accessible": accessible,
            "current": is_current,
            "completed": bool(entry.get("completed_at")),
            "completed_at": entry.get("completed_at"),
            "data": data if accessible else None,
            "fields": [f.key for f in capture_for(name, None).fields],
            "can_complete": bool(
                is_current
                and accessible
                and successor(name) is not None
                and can_complete_stage(name, data, acting_user.role)
            ),
            "missing": missing_requirements(name, data) if accessible else [],
            "warnings": stage_warnings(name, data) if accessible else [],
        })
        overview.append(item)

    return overview
