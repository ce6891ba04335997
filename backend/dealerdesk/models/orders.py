from __future__ import annotations

from ..extensions import db
from dealerdesk.time_utils import to_utc_z
from dealerdesk.workflow.capture import VEHICLE_LOCATIONS
from dealerdesk.workflow.stages import STAGE_NAMES, FIRST_STAGE
from .auth import _in_list


DOCUMENT_TYPES = (
    "PROFORMA_INVOICE",
    "CUSTOMER_ID",
    "PURCHASE_ORDER",
    "DELIVERY_NOTE",
    "FINAL_INVOICE",
    "OTHER",
)


def _money(value):
    return float(value) if value is not None else None


class VnOrder(db.Model):
    """
    A new-vehicle (VN) sale moving through the stage pipeline.

    status is always one of the ten stage names (CHECK constraint).
    stage_completion_dates holds, per stage at or before status:
        {"<stage>": {"data": {...capture fields...}, "completed_at": "<iso>"}}
    completed_at is present only once the stage has been completed.

    The dict is replaced (never mutated in place) on every write so the
    JSON column change is picked up by the session.
    """
    __tablename__ = "vn_orders"
    __table_args__ = (
        db.CheckConstraint(_in_list("status", STAGE_NAMES), name="ck_vn_orders_status"),
        db.CheckConstraint(_in_list("location", VEHICLE_LOCATIONS), name="ck_vn_orders_location"),
        db.Index("ix_vn_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    customer_name = db.Column(db.String(128), nullable=False)
    customer_phone = db.Column(db.String(32), nullable=False)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_id_number = db.Column(db.String(18), nullable=True)
    customer_address = db.Column(db.Text, nullable=True)

    vehicle_brand = db.Column(db.String(64), nullable=False)
    vehicle_model = db.Column(db.String(64), nullable=False)
    vehicle_year = db.Column(db.Integer, nullable=True)
    vehicle_vin = db.Column(db.String(32), nullable=True, index=True)
    vehicle_color = db.Column(db.String(32), nullable=True)
    vehicle_avaries = db.Column(db.Text, nullable=True)
    vehicle_features = db.Column(db.JSON, nullable=True, default=list)

    total_price = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    advance_payment = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    # total_price - advance_payment; negative means the customer overpaid
    remaining_balance = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    trop_percu = db.Column(db.Numeric(14, 2), nullable=True)

    invoice_number = db.Column(db.String(64), nullable=True)
    payment_status = db.Column(db.String(32), nullable=True)

    status = db.Column(db.String(32), nullable=False, default=FIRST_STAGE.name, index=True)
    location = db.Column(db.String(16), nullable=False, default="PARC1")
    stage_completion_dates = db.Column(db.JSON, nullable=False, default=dict)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    creator = db.relationship("User", foreign_keys=[created_by])
    documents = db.relationship(
        "VnOrderDocument",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="VnOrderDocument.id",
    )
    history = db.relationship(
        "VnOrderHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="VnOrderHistory.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "customer_email": self.customer_email,
            "customer_id_number": self.customer_id_number,
            "customer_address": self.customer_address,
            "vehicle_brand": self.vehicle_brand,
            "vehicle_model": self.vehicle_model,
            "vehicle_year": self.vehicle_year,
            "vehicle_vin": self.vehicle_vin,
            "vehicle_color": self.vehicle_color,
            "vehicle_avaries": self.vehicle_avaries,
            "vehicle_features": list(self.vehicle_features or []),
            "total_price": _money(self.total_price),
            "advance_payment": _money(self.advance_payment),
            "remaining_balance": _money(self.remaining_balance),
            "trop_percu": _money(self.trop_percu),
            "invoice_number": self.invoice_number,
            "payment_status": self.payment_status,
            "status": self.status,
            "location": self.location,
            "stage_completion_dates": dict(self.stage_completion_dates or {}),
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class VnOrderDocument(db.Model):
    """
    Metadata of a file attached to an order at a given stage.

    The stage is stored explicitly. Rows are never mutated; they are
    deleted individually or with their order.
    """
    __tablename__ = "vn_order_documents"
    __table_args__ = (
        db.CheckConstraint(_in_list("stage", STAGE_NAMES), name="ck_vn_order_documents_stage"),
        db.CheckConstraint(_in_list("document_type", DOCUMENT_TYPES), name="ck_vn_order_documents_type"),
        db.Index("ix_vn_order_documents_order_stage", "order_id", "stage"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("vn_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    stage = db.Column(db.String(32), nullable=False)
    kind = db.Column(db.String(32), nullable=False)
    document_type = db.Column(db.String(32), nullable=False)
    document_name = db.Column(db.String(255), nullable=False)
    document_url = db.Column(db.Text, nullable=False)
    uploaded_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("VnOrder", back_populates="documents")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "stage": self.stage,
            "kind": self.kind,
            "document_type": self.document_type,
            "document_name": self.document_name,
            "document_url": self.document_url,
            "uploaded_by": self.uploaded_by,
            "created_at": to_utc_z(self.created_at),
        }


class VnOrderHistory(db.Model):
    """
    Append-only trail of order changes.

    WHY: Stage completions, field edits and status overrides must be
    attributable after the fact. Written in the same commit as the change.
    """
    __tablename__ = "vn_order_history"
    __table_args__ = (
        db.Index("ix_vn_order_history_order_created", "order_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("vn_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    action = db.Column(db.String(64), nullable=False)  # ORDER_CREATED, STAGE_COMPLETED, STAGE_FIELD_UPDATED, ...
    details = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("VnOrder", back_populates="history")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "user_id": self.user_id,
            "action": self.action,
            "details": self.details,
            "created_at": to_utc_z(self.created_at),
        }


class OrderNumberSequence(db.Model):
    """
    Atomic per-year order number sequences.

    WHY: Prevent two orders created at the same time from getting the
    same VN-<year>-<n> number.
    """
    __tablename__ = "order_number_sequences"
    __table_args__ = (
        db.UniqueConstraint("year", name="uq_order_number_sequences_year"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    year = db.Column(db.Integer, nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
