# Overview: Flask API routes for VN orders and their stage workflow; parses input and returns JSON responses.

# backend/dealerdesk/routes/vn_orders.py
"""
VN Order API Routes

Orders:
- GET    /api/vn/orders                     list (q, status, limit, offset)
- GET    /api/vn/orders/status-counts       orders per stage
- POST   /api/vn/orders                     create (starts at INSCRIPTION)
- GET    /api/vn/orders/:id                 order + stage overview
- PATCH  /api/vn/orders/:id                 edit attributes (not status)
- DELETE /api/vn/orders/:id                 sys_admin only

Workflow:
- GET    /api/vn/stages                     stage registry and capture fields
- GET    /api/vn/orders/:id/stages          stage overview for the caller
- PATCH  /api/vn/orders/:id/stages/:stage   {field, value}
- POST   /api/vn/orders/:id/complete        {stage_index?}
- POST   /api/vn/orders/:id/status-override {status, reason?}

Documents and history:
- GET/POST /api/vn/orders/:id/documents, DELETE /api/vn/orders/:id/documents/:doc_id
- GET    /api/vn/orders/:id/history

SECURITY:
- All routes require authentication
- The caller is always g.acting_user (from the session), never the body
- Stage access is decided by the workflow policy inside the services
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import order_service, workflow_service, document_service
from ..services.order_service import OrderNotFoundError, OrderAccessDeniedError, PersistenceError
from ..services.workflow_service import (
    StageAccessDeniedError,
    StageIncompleteError,
    AlreadyTerminalError,
    StageNotCurrentError,
    StageNotReachedError,
)
from ..services.document_service import DocumentNotFoundError
from ..validation import ValidationError
from ..decorators import require_auth, require_policy
from dealerdesk.workflow.capture import capture_type
from dealerdesk.workflow.policy import can_view_orders, accessible_stages
from dealerdesk.workflow.stages import STAGES, UnknownStageError


vn_orders_bp = Blueprint("vn_orders", __name__, url_prefix="/api/vn")


def _error(message: str, status: int, **extra):
    body = {"error": message}
    body.update(extra)
    return jsonify(body), status


def _persistence_failed(e: PersistenceError):
    current_app.logger.warning("Persistence failure: %s", e)
    return _error(str(e), 503, retryable=True)


@vn_orders_bp.get("/stages")
@require_auth
def list_stages_route():
    """Stage registry with each stage's capture fields, plus the caller's accessible stages."""
    stages = []
    for descriptor in STAGES:
        item = descriptor.to_dict()
        item["fields"] = [
            {
                "key": f.key,
                "label": f.label,
                "kind": f.kind,
                "choices": list(f.choices),
                "document_flag": f.document_flag,
            }
            for f in capture_type(descriptor.name).fields
        ]
        stages.append(item)

    return jsonify({
        "stages": stages,
        "accessible_stages": accessible_stages(g.acting_user.role),
    })


@vn_orders_bp.get("/orders")
@require_auth
@require_policy(can_view_orders, "LIST_ORDERS")
def list_orders_route():
    """
    Query params:
    - q: search over customer name, phone, order number, VIN
    - status: stage name filter
    - limit (default 50, max 200), offset
    """
    try:
        result = order_service.list_orders(
            search=request.args.get("q"),
            status=request.args.get("status") or None,
            limit=request.args.get("limit", type=int),
            offset=request.args.get("offset", type=int),
        )
        return jsonify({
            "orders": [o.to_dict() for o in result["items"]],
            "count": result["count"],
            "limit": result["limit"],
            "offset": result["offset"],
        })

    except UnknownStageError as e:
        return _error(str(e), 400)
    except Exception:
        current_app.logger.exception("Failed to list VN orders")
        return _error("Internal server error", 500)


@vn_orders_bp.get("/orders/status-counts")
@require_auth
@require_policy(can_view_orders, "ORDER_STATUS_COUNTS")
def status_counts_route():
    return jsonify({"counts": order_service.status_counts()})


@vn_orders_bp.post("/orders")
@require_auth
def create_order_route():
    """Create a VN order. Requires a role allowed to create orders."""
    try:
        order = order_service.create_order(request.get_json(silent=True), acting_user=g.acting_user)
        return jsonify({"order": order.to_dict()}), 201

    except OrderAccessDeniedError as e:
        return _error(str(e), 403)
    except ValidationError as e:
        return _error(str(e), 400)
    except PersistenceError as e:
        return _persistence_failed(e)
    except Exception:
        current_app.logger.exception("Failed to create VN order")
        return _error("Internal server error", 500)


@vn_orders_bp.get("/orders/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id, acting_user=g.acting_user)
        return jsonify({
            "order": order.to_dict(),
            "stages": workflow_service.stage_overview(order, g.acting_user),
        })

    except OrderAccessDeniedError as e:
        return _error(str(e), 403)
    except OrderNotFoundError as e:
        return _error(str(e), 404)
    except Exception:
        current_app.logger.exception("Failed to load VN order")
        return _error("Internal server error", 500)


@vn_orders_bp.patch("/orders/<int:order_id>")
@require_auth
def update_order_route(order_id: int):
    """Edit order attributes. status is rejected; use complete or status-override."""
    try:
        order, changed = order_service.update_order(
            order_id, request.get_json(silent=True), acting_user=g.acting_user
        )
        return jsonify({"order": order.to_dict(), "changed": changed})

    except OrderAccessDeniedError as e:
        return _error(str(e), 403)
    except OrderNotFoundError as e:
        return _error(str(e), 404)
    except ValidationError as e:
        return _error(str(e), 400)
    except PersistenceError as e:
        return _persistence_failed(e)
    except Exception:
        current_app.logger.exception("Failed to update VN order")
        return _error("Internal server error", 500)


@vn_orders_bp.delete("/orders/<int:order_id>")
@require_auth
def delete_order_route(order_id: int):
    try:
        order_service.delete_order(order_id, acting_user=g.acting_user)
        return jsonify({"message": f"Order {order_id} deleted"})

    except OrderAccessDeniedError as e:
        return _error(str(e), 403)
    except OrderNotFoundError as e:
        return _error(str(e), 404)
    except PersistenceError as e:
        return _persistence_failed(e)
    except Exception:
        current_app.logger.exception("Failed to delete VN order")
        return _error("Internal server error", 500)


@vn_orders_bp.get("/orders/<int:order_id>/stages")
@require_auth
@require_policy(can_view_orders, "VIEW_STAGES")
def stage_overview_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
        return jsonify({
            "order_id": order.id,
            "status": order.status,
            "stages": workflow_service.stage_overview(order, g.acting_user),
        })

    except OrderNotFoundError as e:
        return _error(str(e), 404)
    except Exception:
        current_app.logger.exception("Failed to build stage overview")
        return _error("Internal server error", 500)


@vn_orders_bp.patch("/orders/<int:order_id>/stages/<stage>")
@require_auth
def update_stage_field_route(order_id: int, stage: str):
    """
    Set one captured field of a stage.

    Request body: {"field": "callResult", "value": "ok_pour_venir"}
    Sending the stored value again returns changed=false and writes nothing.
    """
    data = request.get_json(silent=True) or {}
    field = data.get("field")
    if not field or not isinstance(field, str):
        return _error("field is required", 400)
    if "value" not in data:
        return _error("value is required (null clears the field)", 400)

    try:
        order, changed = workflow_service.update_stage_field(
            order_id, stage, field, data["value"], acting_user=g.acting_user
        )
        return jsonify({
            "order": order.to_dict(),
            "changed": changed,
            "stages": workflow_service.stage_overview(order, g.acting_user),
        })

    except UnknownStageError as e:
        return _error(str(e), 404)
    except OrderNotFoundError as e:
        return _error(str(e), 404)
    except StageAccessDeniedError as e:
        return _error(str(e), 403)
    except StageNotReachedError as e:
        return _error(str(e), 409)
    except ValidationError as e:
        return _error(str(e), 400)
    except PersistenceError as e:
        return _persistence_failed(e)
    except Exception:
        current_app.logger.exception("Failed to update stage field")
        return _error("Internal server error", 500)


@vn_orders_bp.post("/orders/<int:order_id>/complete")
@require_auth
def complete_stage_route(order_id: int):
    """
    Complete the current stage and advance to the next one.

    Request body (optional): {"stage_index": 3}

    Error responses:
        400: exit criteria not met ("missing" lists them)
        403: role has no access to the current stage
        409: stage_index is not the current stage
        503: could not be saved; safe to retry
    """
    data = request.get_json(silent=True) or {}
    stage_index = data.get("stage_index")
    if stage_index is not None and (isinstance(stage_index, bool) or not isinstance(stage_index, int)):
        return _error("stage_index must be an integer", 400)

    try:
        result = workflow_service.complete_stage(
            order_id, acting_user=g.acting_user, stage_index=stage_index
        )
        body = result.to_dict()
        body["changed"] = True
        return jsonify(body), 200

    except AlreadyTerminalError as e:
        order = order_service.get_order(order_id)
        return jsonify({"changed": False, "message": str(e), "order": order.to_dict()}), 200
    except OrderNotFoundError as e:
        return _error(str(e), 404)
    except StageAccessDeniedError as e:
        return _error(str(e), 403)
    except StageIncompleteError as e:
        return _error(str(e), 400, stage=e.stage, missing=e.missing)
    except StageNotCurrentError as e:
        return _error(str(e), 409)
    except PersistenceError as e:
        return _persistence_failed(e)
    except Exception:
        current_app.logger.exception("Failed to complete stage")
        return _error("Internal server error", 500)


@vn_orders_bp.post("/orders/<int:order_id>/status-override")
@require_auth
def override_status_route(order_id: int):
    """
    Administrative status change (directors and system administrators).

    Request body: {"status": "FACTURATION", "reason": "..."}
    """
    data = request.get_json(silent=True) or {}
    status = data.get("status")
    if not status or not isinstance(status, str):
        return _error("status is required", 400)

    try:
        order, changed = workflow_service.override_status(
            order_id, status, acting_user=g.acting_user, reason=data.get("reason")
        )
        return jsonify({"order": order.to_dict(), "changed": changed})

    except UnknownStageError as e:
        return _error(str(e), 400)
    except OrderNotFoundError as e:
        return _error(str(e), 404)
    except StageAccessDeniedError as e:
        return _error(str(e), 403)
    except PersistenceError as e:
        return _persistence_failed(e)
    except Exception:
        current_app.logger.exception("Failed to override status")
        return _error("Internal server error", 500)


@vn_orders_bp.get("/orders/<int:order_id>/documents")
@require_auth
@require_policy(can_view_orders, "LIST_DOCUMENTS")
def list_documents_route(order_id: int):
    """Documents grouped by stage."""
    try:
        grouped = document_service.list_documents(order_id)
        return jsonify({
            "documents": {stage: [d.to_dict() for d in docs] for stage, docs in grouped.items()},
            "count": sum(len(docs) for docs in grouped.values()),
        })

    except OrderNotFoundError as e:
        return _error(str(e), 404)
    except Exception:
        current_app.logger.exception("Failed to list documents")
        return _error("Internal server error", 500)


@vn_orders_bp.post("/orders/<int:order_id>/documents")
@require_auth
def record_document_route(order_id: int):
    """
    Record an uploaded stage document.

    Request body: {"kind": "proforma", "document_name": "pf.pdf", "document_url": "https://..."}
    """
    data = request.get_json(silent=True) or {}
    try:
        document = document_service.record_document(
            order_id,
            data.get("kind"),
            data.get("document_name"),
            data.get("document_url"),
            acting_user=g.acting_user,
        )
        return jsonify({"document": document.to_dict()}), 201

    except OrderNotFoundError as e:
        return _error(str(e), 404)
    except StageAccessDeniedError as e:
        return _error(str(e), 403)
    except StageNotReachedError as e:
        return _error(str(e), 409)
    except ValidationError as e:
        return _error(str(e), 400)
    except PersistenceError as e:
        return _persistence_failed(e)
    except Exception:
        current_app.logger.exception("Failed to record document")
        return _error("Internal server error", 500)


@vn_orders_bp.delete("/orders/<int:order_id>/documents/<int:document_id>")
@require_auth
def delete_document_route(order_id: int, document_id: int):
    try:
        document_service.delete_document(order_id, document_id, acting_user=g.acting_user)
        return jsonify({"message": f"Document {document_id} deleted"})

    except (OrderNotFoundError, DocumentNotFoundError) as e:
        return _error(str(e), 404)
    except StageAccessDeniedError as e:
        return _error(str(e), 403)
    except PersistenceError as e:
        return _persistence_failed(e)
    except Exception:
        current_app.logger.exception("Failed to delete document")
        return _error("Internal server error", 500)


@vn_orders_bp.get("/orders/<int:order_id>/history")
@require_auth
@require_policy(can_view_orders, "VIEW_HISTORY")
def order_history_route(order_id: int):
    try:
        entries = order_service.list_history(order_id)
        return jsonify({"history": [h.to_dict() for h in entries], "count": len(entries)})

    except OrderNotFoundError as e:
        return _error(str(e), 404)
    except Exception:
        current_app.logger.exception("Failed to load order history")
        return _error("Internal server error", 500)
