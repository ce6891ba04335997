# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication and User Administration Service

WHY: Every action must be attributable. Uses bcrypt for secure password
hashing and validates password strength.

Each user holds exactly one role (user_roles.user_id is unique).
Accounts created without a role get the default role (cdv).

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Session tokens managed separately (see session_service.py)
"""

import bcrypt
import re

from ..extensions import db
from ..models import User, UserRole
from dealerdesk.time_utils import utcnow
from dealerdesk.workflow.policy import can_manage_users
from dealerdesk.workflow.roles import ActingUser, DEFAULT_ROLE, Role, validate_role
from . import session_service


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


class UserNotFoundError(Exception):
    """Raised when a user id does not exist."""
    pass


class UserAdminDeniedError(Exception):
    """Raised when the caller may not administer users."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() is timing-safe. A malformed stored hash never matches.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def _require_admin(acting_user: ActingUser | None) -> None:
    if acting_user is not None and not can_manage_users(acting_user.role):
        raise UserAdminDeniedError("Only system administrators can manage users")


def create_user(
    username: str,
    email: str,
    password: str,
    role: str | Role | None = None,
    full_name: str | None = None,
    *,
    acting_user: ActingUser | None = None,
) -> User:
    """
    Create new user with bcrypt password hashing and a single role.

    acting_user is None for CLI/bootstrap callers; otherwise it must be
    allowed to manage users.

    Raises:
        UserAdminDeniedError: caller is not a user administrator
        ValueError: missing fields, invalid role, or username/email taken
        PasswordValidationError: password doesn't meet requirements
    """
    _require_admin(acting_user)

    username = (username or "").strip()
    email = (email or "").strip().lower()
    if not username or not email:
        raise ValueError("username and email are required")

    resolved_role = validate_role(role) if role is not None else DEFAULT_ROLE

    existing = db.session.query(User).filter(
        db.or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise ValueError("Username or email already exists")

    password_hash = hash_password(password)

    user = User(
        username=username,
        email=email,
        full_name=(full_name or "").strip() or None,
        password_hash=password_hash,
    )
    user.role_assignment = UserRole(role=resolved_role.value)

    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Authenticate user with username (or email) and password.

    Returns User if credentials valid, None otherwise.
    Updates last_login_at timestamp on successful authentication.
    """
    user = db.session.query(User).filter(
        db.or_(User.username == username, User.email == (username or "").lower()),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise UserNotFoundError(f"User {user_id} not found")
    return user


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.username.asc()).all()


def set_user_role(user_id: int, role: str | Role, *, acting_user: ActingUser | None = None) -> User:
    """Replace the user's single role."""
    _require_admin(acting_user)
    resolved_role = validate_role(role)
    user = get_user(user_id)

    if user.role_assignment is None:
        user.role_assignment = UserRole(role=resolved_role.value)
    else:
        user.role_assignment.role = resolved_role.value
        user.role_assignment.assigned_at = utcnow()

    db.session.commit()
    return user


def deactivate_user(user_id: int, *, acting_user: ActingUser | None = None) -> User:
    """Disable login and revoke every open session of the user."""
    _require_admin(acting_user)
    user = get_user(user_id)
    if acting_user is not None and acting_user.user_id == user.id:
        raise ValueError("You cannot deactivate your own account")

    user.is_active = False
    session_service.revoke_all_user_sessions(user.id, reason="User deactivated", commit=False)
    db.session.commit()
    return user


def reset_passwords(new_password: str, *, acting_user: ActingUser | None = None) -> int:
    """
    Set the same password on every non-sys_admin account.

    Returns the number of accounts updated. Their sessions are revoked.
    """
    _require_admin(acting_user)
    password_hash = hash_password(new_password)

    users = (
        db.session.query(User)
        .outerjoin(UserRole, UserRole.user_id == User.id)
        .filter(db.or_(UserRole.role.is_(None), UserRole.role != Role.SYS_ADMIN.value))
        .all()
    )
    for user in users:
        user.password_hash = password_hash
        session_service.revoke_all_user_sessions(user.id, reason="Password reset", commit=False)

    db.session.commit()
    return len(users)
