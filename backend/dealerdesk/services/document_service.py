# Overview: Service-layer operations for VN order documents; encapsulates business logic and database work.

"""
VN Order Documents

Stage documents are recorded as metadata rows (the bytes live in external
storage). Every row stores the stage it belongs to. Recording a document
sets the stage's capture flag in the same commit.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..models import VnOrderDocument
from ..validation import ValidationError
from .order_service import commit, get_order, record_history
from .workflow_service import StageAccessDeniedError, StageNotReachedError, set_document_flag, require_stage_access
from dealerdesk.workflow.roles import ActingUser
from dealerdesk.workflow.stages import (
    PROFORMA,
    COMMANDE,
    VALIDATION,
    ACCUSE,
    ARRIVAGE,
    CARTE_JAUNE,
    LIVRAISON,
    DOSSIER_DAIRA,
    STAGE_NAMES,
    index_of,
)

__all__ = [
    "DocumentKind",
    "DOCUMENT_KINDS",
    "DocumentNotFoundError",
    "StageAccessDeniedError",
    "record_document",
    "list_documents",
    "delete_document",
]


@dataclass(frozen=True)
class DocumentKind:
    name: str
    stage: str
    document_type: str
    flag: str


DOCUMENT_KINDS: dict[str, DocumentKind] = {
    kind.name: kind
    for kind in (
        DocumentKind("proforma", PROFORMA, "PROFORMA_INVOICE", "documentUploaded"),
        DocumentKind("purchase_order", COMMANDE, "PURCHASE_ORDER", "documentUploaded"),
        DocumentKind("validation", VALIDATION, "CUSTOMER_ID", "documentUploaded"),
        DocumentKind("acknowledgement", ACCUSE, "OTHER", "documentUploaded"),
        DocumentKind("route_sheet", ARRIVAGE, "OTHER", "documentUploaded"),
        DocumentKind("invoice_scan", CARTE_JAUNE, "FINAL_INVOICE", "scanFacture"),
        DocumentKind("yellow_card", CARTE_JAUNE, "OTHER", "carteJaune"),
        DocumentKind("delivery_note", LIVRAISON, "DELIVERY_NOTE", "documentUploaded"),
        DocumentKind("daira_document", DOSSIER_DAIRA, "OTHER", "documentUploaded"),
    )
}


class DocumentNotFoundError(Exception):
    """Raised when a document id does not exist on the order."""
    pass


def _check_extension(document_name: str) -> None:
    allowed = [ext.lower() for ext in current_app.config.get("DOCUMENT_ALLOWED_EXTENSIONS", [])]
    _, dot, ext = document_name.rpartition(".")
    if not dot or ext.lower() not in allowed:
        raise ValidationError(f"Unsupported file type. Allowed: {', '.join(allowed)}")


def record_document(
    order_id: int,
    kind: str,
    document_name: str,
    document_url: str,
    *,
    acting_user: ActingUser,
) -> VnOrderDocument:
    """
    Attach a stage document to an order and raise the stage's document flag.

    Raises ValidationError, StageAccessDeniedError, StageNotReachedError,
    OrderNotFoundError, PersistenceError.
    """
    kind_def = DOCUMENT_KINDS.get(kind)
    if kind_def is None:
        raise ValidationError(f"Unknown document kind '{kind}'. Must be one of: {', '.join(DOCUMENT_KINDS)}")

    document_name = (document_name or "").strip()
    document_url = (document_url or "").strip()
    if not document_name or not document_url:
        raise ValidationError("document_name and document_url are required")
    if len(document_name) > 255:
        raise ValidationError("document_name exceeds max length 255")
    _check_extension(document_name)

    order = get_order(order_id)
    require_stage_access(order, kind_def.stage, acting_user, "RECORD_DOCUMENT")

    if index_of(kind_def.stage) > index_of(order.status):
        raise StageNotReachedError(f"The order has not reached the {kind_def.stage} stage yet")

    document = VnOrderDocument(
        order=order,
        stage=kind_def.stage,
        kind=kind_def.name,
        document_type=kind_def.document_type,
        document_name=document_name,
        document_url=document_url,
        uploaded_by=acting_user.user_id,
    )
    db.session.add(document)
    set_document_flag(order, kind_def.stage, kind_def.flag, True)
    record_history(order, "DOCUMENT_RECORDED", {
        "stage": kind_def.stage,
        "kind": kind_def.name,
        "document_name": document_name,
    }, acting_user.user_id)
    commit("document")
    return document


def list_documents(order_id: int) -> dict[str, list[VnOrderDocument]]:
    """Documents of an order grouped by stage, in pipeline order (empty stages omitted)."""
    get_order(order_id)
    documents = (
        db.session.query(VnOrderDocument)
        .filter_by(order_id=order_id)
        .order_by(VnOrderDocument.id.asc())
        .all()
    )
    grouped: dict[str, list[VnOrderDocument]] = {}
    for stage in STAGE_NAMES:
        rows = [d for d in documents if d.stage == stage]
        if rows:
            grouped[stage] = rows
    return grouped


def delete_document(order_id: int, document_id: int, *, acting_user: ActingUser) -> None:
    """
    Remove one document. The stage flag is cleared when no document of the
    same kind remains on the order.
    """
    order = get_order(order_id)
    document = (
        db.session.query(VnOrderDocument)
        .filter_by(id=document_id, order_id=order_id)
        .first()
    )
    if not document:
        raise DocumentNotFoundError(f"Document {document_id} not found on order {order_id}")

    require_stage_access(order, document.stage, acting_user, "DELETE_DOCUMENT")

    stage, kind, name = document.stage, document.kind, document.document_name
    db.session.delete(document)
    db.session.flush()

    kind_def = DOCUMENT_KINDS.get(kind)
    remaining = (
        db.session.query(VnOrderDocument)
        .filter_by(order_id=order_id, stage=stage, kind=kind)
        .count()
    )
    if kind_def is not None and remaining == 0:
        set_document_flag(order, stage, kind_def.flag, False)

    record_history(order, "DOCUMENT_DELETED", {
        "stage": stage,
        "kind": kind,
        "document_name": name,
    }, acting_user.user_id)
    commit("document deletion")
