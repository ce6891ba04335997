# Overview: Flask API routes for admin operations; parses input and returns JSON responses.

# backend/dealerdesk/routes/admin.py
"""
Admin routes for user and role management.

Provides endpoints for:
- User management (list, create, deactivate)
- Role assignment (one role per user)
- Bulk password reset of every non-sys_admin account
- Security event review

All endpoints require authentication and a role allowed to manage users.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import auth_service, security_service
from ..services.auth_service import PasswordValidationError, UserNotFoundError, UserAdminDeniedError
from ..decorators import require_auth, require_policy
from dealerdesk.workflow.policy import can_manage_users
from dealerdesk.workflow.roles import Role, ROLE_VALUES

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _audit(event_type: str, reason: str) -> None:
    security_service.log_security_event(
        user_id=g.acting_user.user_id,
        event_type=event_type,
        success=True,
        resource=request.path,
        action=request.method,
        reason=reason,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )


@admin_bp.get("/roles")
@require_auth
@require_policy(can_manage_users, "LIST_ROLES")
def list_roles():
    """The fixed role set with display labels."""
    return jsonify({
        "roles": [{"value": role.value, "label": role.label} for role in Role],
    })


@admin_bp.get("/users")
@require_auth
@require_policy(can_manage_users, "LIST_USERS")
def list_users():
    """
    List all users with their role.

    Query params:
    - include_inactive: bool (default true)
    """
    include_inactive = request.args.get("include_inactive", "true").lower() == "true"
    users = auth_service.list_users()
    if not include_inactive:
        users = [u for u in users if u.is_active]
    result = [u.to_dict() for u in users]
    return jsonify({"users": result, "count": len(result)})


@admin_bp.post("/users")
@require_auth
@require_policy(can_manage_users, "CREATE_USER")
def create_user():
    """
    Create a user.

    Request body:
    {
        "username": "...", "email": "...", "password": "...",
        "full_name": "...",   // optional
        "role": "ged"         // optional, defaults to cdv
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.create_user(
            username=data.get("username"),
            email=data.get("email"),
            password=data.get("password") or "",
            role=data.get("role"),
            full_name=data.get("full_name"),
            acting_user=g.acting_user,
        )
        _audit("USER_CREATED", f"Created user {user.username} with role {user.role.value}")
        return jsonify({"user": user.to_dict()}), 201

    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except UserAdminDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.put("/users/<int:user_id>/role")
@require_auth
@require_policy(can_manage_users, "SET_ROLE")
def set_user_role(user_id: int):
    """
    Replace a user's role.

    Request body: {"role": "<one of the role values>"}
    """
    data = request.get_json(silent=True) or {}
    role = data.get("role")
    if not role:
        return jsonify({"error": f"role is required. Must be one of: {', '.join(ROLE_VALUES)}"}), 400

    try:
        user = auth_service.set_user_role(user_id, role, acting_user=g.acting_user)
        _audit("ROLE_CHANGED", f"User {user.username} now has role {user.role.value}")
        return jsonify({"user": user.to_dict()}), 200

    except UserNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except UserAdminDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to set user role")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/users/<int:user_id>/deactivate")
@require_auth
@require_policy(can_manage_users, "DEACTIVATE_USER")
def deactivate_user(user_id: int):
    """Deactivate a user and revoke all of their sessions."""
    try:
        user = auth_service.deactivate_user(user_id, acting_user=g.acting_user)
        _audit("USER_DEACTIVATED", f"Deactivated user {user.username}")
        return jsonify({"user": user.to_dict()}), 200

    except UserNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except UserAdminDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to deactivate user")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/users/reset-passwords")
@require_auth
@require_policy(can_manage_users, "RESET_PASSWORDS")
def reset_passwords():
    """
    Set one new password on every account that is not a sys_admin.

    Request body: {"password": "..."}
    """
    data = request.get_json(silent=True) or {}
    try:
        count = auth_service.reset_passwords(data.get("password") or "", acting_user=g.acting_user)
        _audit("PASSWORDS_RESET", f"Reset passwords of {count} accounts")
        return jsonify({"reset_count": count}), 200

    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except UserAdminDeniedError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to reset passwords")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/security-events")
@require_auth
@require_policy(can_manage_users, "LIST_SECURITY_EVENTS")
def list_security_events():
    """Most recent security events first. Query params: user_id, limit (max 500)."""
    user_id = request.args.get("user_id", type=int)
    limit = min(request.args.get("limit", default=100, type=int) or 100, 500)
    events = security_service.list_security_events(user_id=user_id, limit=limit)
    return jsonify({"events": [e.to_dict() for e in events], "count": len(events)})
