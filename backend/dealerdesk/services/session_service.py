# Overview: Service-layer operations for session; encapsulates business logic and database work.

"""
Session Token Management Service

WHY: Secure session management with automatic timeout and revocation.
Tokens are cryptographically secure, hashed in database, and time-limited.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (fast, one-way)
- Absolute timeout (SESSION_ABSOLUTE_TIMEOUT_HOURS, default 24)
- Idle timeout (SESSION_IDLE_TIMEOUT_HOURS, default 2)
- Revocable on logout, deactivation or password reset
"""

import secrets
import hashlib
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from dealerdesk.time_utils import utcnow
from dealerdesk.workflow.roles import ActingUser


def _absolute_timeout() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24))


def _idle_timeout() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_IDLE_TIMEOUT_HOURS", 2))


@dataclass
class SessionContext:
    """Session context returned by validate_session."""
    user: User
    session: SessionToken

    @property
    def acting_user(self) -> ActingUser:
        return ActingUser(user_id=self.user.id, role=self.user.role)


def generate_token() -> str:
    """
    Generate cryptographically secure random token.

    Returns 64-character hex string (32 bytes of entropy).
    This is the plaintext token sent to client (never stored).
    """
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    Tokens are already high-entropy (unlike passwords), so a fast hash is enough.
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None
) -> tuple[SessionToken, str]:
    """
    Create new session token for user.

    Returns (session_record, plaintext_token).
    Client receives plaintext_token, database stores only the hash.
    """
    user = db.session.get(User, user_id)
    if not user:
        raise ValueError("User not found")
    if not user.is_active:
        raise ValueError("User account is deactivated")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _absolute_timeout(),
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False
    )

    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def _active_session(token: str) -> SessionToken | None:
    if not token:
        return None
    return db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()


def _mark_revoked(sessions, reason: str) -> int:
    now = utcnow()
    count = 0
    for session in sessions:
        session.is_revoked = True
        session.revoked_at = now
        session.revoked_reason = reason
        count += 1
    return count


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a bearer token to its SessionContext.

    None for unknown, revoked or expired tokens. Idle sessions and sessions
    of deactivated users are revoked on the spot. A valid token refreshes
    last_used_at.
    """
    session = _active_session(token)
    if session is None:
        return None

    now = utcnow()
    if session.expires_at < now:
        return None

    if now - session.last_used_at > _idle_timeout():
        revoked_reason = "Idle timeout"
    elif not session.user or not session.user.is_active:
        revoked_reason = "User account deactivated"
    else:
        session.last_used_at = now
        db.session.commit()
        return SessionContext(user=session.user, session=session)

    _mark_revoked([session], revoked_reason)
    db.session.commit()
    return None


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """Revoke one token. False when it was unknown or already revoked."""
    session = _active_session(token)
    if session is None:
        return False

    _mark_revoked([session], reason)
    db.session.commit()
    return True


def revoke_all_user_sessions(user_id: int, reason: str = "Revoke all sessions", *, commit: bool = True) -> int:
    """
    Revoke every open session of a user (deactivation, password reset).

    commit=False lets the caller fold the revocation into its own commit.
    """
    sessions = db.session.query(SessionToken).filter_by(user_id=user_id, is_revoked=False).all()
    count = _mark_revoked(sessions, reason)
    if commit:
        db.session.commit()
    return count


def cleanup_expired_sessions(retention_days: int = 30) -> int:
    """Delete expired or revoked sessions created more than retention_days ago."""
    now = utcnow()

    deleted = db.session.query(SessionToken).filter(
        db.or_(SessionToken.expires_at < now, SessionToken.is_revoked.is_(True)),
        SessionToken.created_at < now - timedelta(days=retention_days),
    ).delete(synchronize_session=False)

    db.session.commit()
    return deleted
