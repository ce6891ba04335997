# Overview: Service-layer operations for VN orders; encapsulates business logic and database work.

"""
VN Order Service

Creation, editing, deletion and listing of VN orders, plus order numbering
and the order history trail. Stage movement lives in workflow_service.

Every write happens in a single commit together with its history row.
A failed commit is rolled back and surfaced as PersistenceError; no retry.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import update, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models import VnOrder, VnOrderHistory, OrderNumberSequence
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    validate_payload,
    enforce_rules_vn_order,
)
from . import security_service
from dealerdesk.time_utils import utcnow, to_utc_z
from dealerdesk.workflow.capture import VEHICLE_LOCATIONS
from dealerdesk.workflow.policy import (
    can_create_order,
    can_delete_order,
    can_edit_order,
    can_view_orders,
)
from dealerdesk.workflow.roles import ActingUser
from dealerdesk.workflow.stages import FIRST_STAGE, STAGE_NAMES, get_stage


ORDER_NUMBER_PREFIX = "VN"
DEFAULT_LOCATION = "PARC1"
MAX_PAGE_SIZE = 200

ORDER_FIELDS = {
    "customer_name",
    "customer_phone",
    "customer_email",
    "customer_id_number",
    "customer_address",
    "vehicle_brand",
    "vehicle_model",
    "vehicle_year",
    "vehicle_vin",
    "vehicle_color",
    "vehicle_avaries",
    "vehicle_features",
    "total_price",
    "advance_payment",
    "trop_percu",
    "invoice_number",
    "payment_status",
    "location",
}

ORDER_POLICY = ModelValidationPolicy(
    writable_fields=ORDER_FIELDS,
    required_on_create={"customer_name", "customer_phone", "vehicle_brand", "vehicle_model"},
)


class OrderNotFoundError(Exception):
    """Raised when an order id or number does not exist."""
    pass


class OrderAccessDeniedError(Exception):
    """Raised when the caller's role may not perform an order action."""
    pass


class PersistenceError(Exception):
    """Raised when a write could not be committed. Safe to retry."""
    pass


def _jsonable(value):
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, datetime):
        return to_utc_z(value)
    return value


def commit(what: str) -> None:
    """Commit the unit of work, rolling back and raising PersistenceError on failure."""
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise PersistenceError(f"Could not save {what}; please retry") from exc


def record_history(order: VnOrder, action: str, details: dict | None, user_id: int | None) -> VnOrderHistory:
    """Stage a history row; the caller's commit persists it with the change."""
    entry = VnOrderHistory(
        order=order,
        user_id=user_id,
        action=action,
        details={k: _jsonable(v) for k, v in (details or {}).items()},
    )
    db.session.add(entry)
    return entry


def deny(acting_user: ActingUser, event_type: str, action: str, resource: str, reason: str) -> None:
    """Log the denial as a security event."""
    security_service.log_security_event(
        user_id=acting_user.user_id,
        event_type=event_type,
        success=False,
        resource=resource,
        action=action,
        reason=reason,
    )


def next_order_number(year: int | None = None) -> str:
    """
    Allocate the next VN-<year>-<nnnn> number.

    Uses an UPDATE on the per-year sequence row so concurrent allocations
    serialize in the database. The first number of a year inserts the row.
    """
    year = year or utcnow().year

    stmt = (
        update(OrderNumberSequence)
        .where(OrderNumberSequence.year == year)
        .values(next_number=OrderNumberSequence.next_number + 1)
    )

    def _current() -> int:
        return (
            db.session.query(OrderNumberSequence.next_number)
            .filter_by(year=year)
            .scalar()
        )

    result = db.session.execute(stmt)
    if result.rowcount:
        number = _current() - 1
    else:
        try:
            with db.session.begin_nested():
                db.session.add(OrderNumberSequence(year=year, next_number=2))
            number = 1
        except IntegrityError:
            # Row created concurrently; take the next number from it
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            number = _current() - 1

    return f"{ORDER_NUMBER_PREFIX}-{year}-{number:04d}"


def _check_location(patch: dict) -> None:
    if "location" in patch and patch["location"] not in VEHICLE_LOCATIONS:
        raise ValidationError(f"location must be one of: {', '.join(VEHICLE_LOCATIONS)}")


def _recompute_balance(order: VnOrder) -> None:
    total = Decimal(order.total_price or 0)
    advance = Decimal(order.advance_payment or 0)
    order.remaining_balance = total - advance


def get_order(order_id: int, *, acting_user: ActingUser | None = None) -> VnOrder:
    """
    Load an order. When acting_user is given, the caller must be allowed to
    view orders.
    """
    if acting_user is not None and not can_view_orders(acting_user.role):
        deny(acting_user, "ORDER_ACCESS_DENIED", "VIEW_ORDER", f"vn_order:{order_id}",
             "Role may not view VN orders")
        raise OrderAccessDeniedError("Your role does not have access to VN orders")

    order = db.session.get(VnOrder, order_id)
    if not order:
        raise OrderNotFoundError(f"Order {order_id} not found")
    return order


def get_order_by_number(order_number: str) -> VnOrder:
    order = db.session.query(VnOrder).filter_by(order_number=order_number).first()
    if not order:
        raise OrderNotFoundError(f"Order {order_number} not found")
    return order


def create_order(payload: dict, *, acting_user: ActingUser) -> VnOrder:
    """
    Create a VN order in the first stage.

    Raises OrderAccessDeniedError, ValidationError, PersistenceError.
    """
    if not can_create_order(acting_user.role):
        deny(acting_user, "ORDER_ACCESS_DENIED", "CREATE_ORDER", "vn_orders",
             "Role may not create VN orders")
        raise OrderAccessDeniedError("Your role cannot create VN orders")

    if isinstance(payload, dict) and "status" in payload:
        raise ValidationError("New orders always start at INSCRIPTION; status cannot be set")

    patch = validate_payload(model=VnOrder, payload=payload, policy=ORDER_POLICY, partial=False)
    enforce_rules_vn_order(patch)
    patch.setdefault("location", DEFAULT_LOCATION)
    _check_location(patch)

    order = VnOrder(**patch)
    order.total_price = patch.get("total_price") or Decimal("0")
    order.advance_payment = patch.get("advance_payment") or Decimal("0")
    order.vehicle_features = patch.get("vehicle_features") or []
    order.status = FIRST_STAGE.name
    order.stage_completion_dates = {}
    order.created_by = acting_user.user_id
    _recompute_balance(order)

    try:
        order.order_number = next_order_number()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise PersistenceError("Could not allocate an order number; please retry") from exc

    db.session.add(order)
    record_history(order, "ORDER_CREATED", {"order_number": order.order_number}, acting_user.user_id)
    commit("order")
    return order


def update_order(order_id: int, payload: dict, *, acting_user: ActingUser) -> tuple[VnOrder, bool]:
    """
    Patch order attributes. Status and stage data are not editable here.

    Returns (order, changed).
    """
    if not can_edit_order(acting_user.role):
        deny(acting_user, "ORDER_ACCESS_DENIED", "UPDATE_ORDER", f"vn_order:{order_id}",
             "Role may not edit VN orders")
        raise OrderAccessDeniedError("Your role cannot edit VN orders")

    if isinstance(payload, dict):
        if "status" in payload:
            raise ValidationError("status cannot be edited directly; complete the stage or use the status override")
        if "stage_completion_dates" in payload:
            raise ValidationError("Stage data is edited per stage")

    order = get_order(order_id)
    patch = validate_payload(model=VnOrder, payload=payload, policy=ORDER_POLICY, partial=True)
    enforce_rules_vn_order(patch)
    _check_location(patch)

    for key in ("total_price", "advance_payment"):
        if key in patch and patch[key] is None:
            patch[key] = Decimal("0")

    changes = {}
    for key, value in patch.items():
        if getattr(order, key) != value:
            changes[key] = value
            setattr(order, key, value)

    if not changes:
        return order, False

    _recompute_balance(order)
    record_history(order, "ORDER_UPDATED", changes, acting_user.user_id)
    commit("order")
    return order, True


def delete_order(order_id: int, *, acting_user: ActingUser) -> None:
    """Delete an order with its documents and history. System administrators only."""
    if not can_delete_order(acting_user.role):
        deny(acting_user, "ORDER_ACCESS_DENIED", "DELETE_ORDER", f"vn_order:{order_id}",
             "Only system administrators may delete VN orders")
        raise OrderAccessDeniedError("Only system administrators can delete VN orders")

    order = get_order(order_id)
    db.session.delete(order)
    commit("order deletion")


def list_orders(
    search: str | None = None,
    status: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
) -> dict:
    """
    Orders newest first, optionally filtered.

    search matches customer name, phone, order number or VIN (case-insensitive).
    Raises UnknownStageError for a status outside the stage registry.
    """
    query = db.session.query(VnOrder)

    if status:
        get_stage(status)
        query = query.filter(VnOrder.status == status)

    term = (search or "").strip()
    if term:
        pattern = f"%{term.lower()}%"
        query = query.filter(db.or_(
            func.lower(VnOrder.customer_name).like(pattern),
            func.lower(VnOrder.customer_phone).like(pattern),
            func.lower(VnOrder.order_number).like(pattern),
            func.lower(VnOrder.vehicle_vin).like(pattern),
        ))

    total = query.count()

    limit = min(max(int(limit or 50), 1), MAX_PAGE_SIZE)
    offset = max(int(offset or 0), 0)
    items = (
        query.order_by(VnOrder.created_at.desc(), VnOrder.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )

    return {"items": items, "count": total, "limit": limit, "offset": offset}


def status_counts() -> dict[str, int]:
    """Number of orders in each stage (every stage listed, zero included)."""
    rows = (
        db.session.query(VnOrder.status, func.count(VnOrder.id))
        .group_by(VnOrder.status)
        .all()
    )
    counts = dict.fromkeys(STAGE_NAMES, 0)
    for status, count in rows:
        counts[status] = count
    return counts


def list_history(order_id: int) -> list[VnOrderHistory]:
    get_order(order_id)
    return (
        db.session.query(VnOrderHistory)
        .filter_by(order_id=order_id)
        .order_by(VnOrderHistory.id.asc())
        .all()
    )
