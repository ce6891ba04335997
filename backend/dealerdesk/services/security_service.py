# Overview: Append-only security event logging.

"""
Security Event Logging

WHY: Every denied stage or order action, failed login and administrative
role change leaves a row in security_events. Denials are also written to
the application log.

DESIGN PRINCIPLES:
- Fail closed: callers deny first, then log
- Log denials and admin actions only: routine grants are not logged
"""

from flask import current_app

from ..extensions import db
from ..models import SecurityEvent
from dealerdesk.time_utils import utcnow


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> SecurityEvent:
    """
    Log security event to audit trail.

    event_type examples:
    - STAGE_ACCESS_DENIED
    - ORDER_ACCESS_DENIED
    - LOGIN_FAILED
    - ROLE_CHANGED
    - USER_CREATED
    - USER_DEACTIVATED
    - PASSWORDS_RESET
    """
    event = SecurityEvent(
        user_id=user_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow(),
    )

    db.session.add(event)
    db.session.commit()

    if not success:
        current_app.logger.warning(
            "Security event %s: user=%s resource=%s action=%s reason=%s",
            event_type, user_id, resource, action, reason,
        )

    return event


def list_security_events(user_id: int | None = None, limit: int = 100) -> list[SecurityEvent]:
    query = db.session.query(SecurityEvent)
    if user_id is not None:
        query = query.filter(SecurityEvent.user_id == user_id)
    return query.order_by(SecurityEvent.id.desc()).limit(limit).all()
