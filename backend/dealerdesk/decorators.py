# Overview: Request and role-policy decorators for API routes.

from functools import wraps
from typing import Callable

from flask import request, jsonify, g

from .services import session_service, security_service


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user') and hasattr(g, 'acting_user')


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require authentication.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.acting_user: ActingUser(user_id, role) passed to policy and services
    - g.session_context: The full SessionContext object

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired or revoked token
    - User account deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.acting_user = context.acting_user
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_policy(predicate: Callable, action: str):
    """
    Require a role-policy predicate (e.g. can_view_orders) to hold for the
    caller's role. Denials are logged as security events.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            acting_user = g.acting_user
            if not predicate(acting_user.role):
                role = acting_user.role.value if acting_user.role else None
                security_service.log_security_event(
                    user_id=acting_user.user_id,
                    event_type="ROLE_DENIED",
                    success=False,
                    resource=request.path,
                    action=action,
                    reason=f"Role {role} fails {predicate.__name__}",
                    ip_address=request.remote_addr,
                    user_agent=request.headers.get("User-Agent"),
                )
                return jsonify({
                    "error": "Permission denied",
                    "message": "Your role does not allow this action",
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
