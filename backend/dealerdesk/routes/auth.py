# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/dealerdesk/routes/auth.py
"""
Authentication API routes

- POST /api/auth/login: username/email + password -> bearer token
- POST /api/auth/logout: revoke the presented token
- GET /api/auth/me: current user, role and role capabilities

Self-registration does not exist; accounts are created by a sys_admin
(POST /api/admin/users or `flask users create`).
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service, session_service, security_service
from ..decorators import require_auth, bearer_token
from dealerdesk.workflow.policy import role_capabilities


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _user_payload(user) -> dict:
    return {
        "user": user.to_dict(),
        "capabilities": role_capabilities(user.role),
    }


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in Authorization header for protected routes.
    Failed attempts are recorded as LOGIN_FAILED security events.
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username") or data.get("email")
        password = data.get("password")

        if not username or not password:
            return jsonify({"error": "username/email and password required"}), 400

        user_agent = request.headers.get("User-Agent")
        ip_address = request.remote_addr

        user = auth_service.authenticate(username, password)

        if not user:
            security_service.log_security_event(
                user_id=None,
                event_type="LOGIN_FAILED",
                success=False,
                resource="/api/auth/login",
                action="LOGIN",
                reason=f"Invalid credentials for '{username}'",
                ip_address=ip_address,
                user_agent=user_agent,
            )
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=user_agent,
            ip_address=ip_address
        )

        payload = _user_payload(user)
        payload.update({
            "token": token,
            "session": session.to_dict(),
            "message": "Login successful",
        })
        return jsonify(payload), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    """Revoke session token (logout)."""
    try:
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authorization header required"}), 401

        if not session_service.revoke_session(token, reason="User logout"):
            return jsonify({"error": "Invalid or expired token"}), 401

        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    """
    Current user with role and capabilities.

    The front end gates its controls on "capabilities"; the API enforces
    the same rules server-side.
    """
    return jsonify(_user_payload(g.current_user)), 200
