# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

WHY: Every sale and stock movement must be attributable. Uses bcrypt for
password hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters, with upper/lower case letters and a digit
- Session tokens managed separately (see session_service.py)
- The very first account registered becomes the owner
"""

import re

import bcrypt
from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import AuthenticationError, ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from ..extensions import db
from ..models import User
from ..models.auth import ROLES, ROLE_CASHIER, ROLE_OWNER
from ..time_utils import utcnow
from . import audit_service, session_service


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit

    Raises ValidationError if requirements not met.
    """
    if not isinstance(password, str) or len(password) < 8:
        raise ValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise ValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise ValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise ValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds))
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def create_user(
    username: str,
    password: str,
    name: str,
    email: str | None = None,
    role: str | None = None,
) -> User:
    """
    Create a user. The first user in an empty database is always the owner.

    Raises ConflictError on duplicate username.
    """
    username = (username or "").strip()
    name = (name or "").strip()
    if not username:
        raise ValidationError("username is required")
    if not name:
        raise ValidationError("name is required")
    if role is not None and role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")

    if db.session.query(User).filter_by(username=username).first():
        raise ConflictError("Username already exists")

    is_first = db.session.query(User.id).first() is None
    user = User(
        username=username,
        name=name,
        email=email,
        password_hash=hash_password(password),
        role=ROLE_OWNER if is_first else (role or ROLE_CASHIER),
        is_active=True,
    )
    db.session.add(user)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Username already exists")

    audit_service.append_audit_log(
        action=audit_service.ACTION_REGISTER_USER,
        entity_type="user",
        entity_id=user.id,
        user_id=user.id,
        details={"username": user.username, "role": user.role},
    )
    db.session.commit()
    return user


def authenticate(
    username: str,
    password: str,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[User, str]:
    """
    Check credentials and open a session.

    Returns (user, plaintext_token). Appends a LOGIN audit entry.
    Unknown user and wrong password give the same error.
    """
    if not username or not password:
        raise ValidationError("Username and password are required")

    user = db.session.query(User).filter_by(username=username).first()
    if not user or not verify_password(password, user.password_hash):
        raise AuthenticationError("Invalid credentials")

    if not user.is_active:
        raise PermissionDeniedError("Account is deactivated")

    user.last_login_at = utcnow()
    audit_service.append_audit_log(
        action=audit_service.ACTION_LOGIN,
        entity_type="user",
        entity_id=user.id,
        user_id=user.id,
        details={"username": user.username},
        ip_address=ip_address,
    )
    _, token = session_service.create_session(user.id, user_agent=user_agent, ip_address=ip_address)
    return user, token


def logout(user: User, token: str, ip_address: str | None = None) -> bool:
    """Revoke the token and record a LOGOUT entry in the same commit."""
    audit_service.append_audit_log(
        action=audit_service.ACTION_LOGOUT,
        entity_type="user",
        entity_id=user.id,
        user_id=user.id,
        ip_address=ip_address,
    )
    return session_service.revoke_session(token, reason="User logout")


def update_user(user_id: int, data: dict) -> User:
    """Owner-side edit of name, email, role, active flag or password."""
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise NotFoundError("User not found")

    allowed = {"name", "email", "role", "is_active", "password"}
    unknown = set(data) - allowed
    if unknown:
        raise ValidationError(f"Field not allowed: {sorted(unknown)[0]}")

    if "role" in data:
        if data["role"] not in ROLES:
            raise ValidationError(f"role must be one of: {', '.join(ROLES)}")
        user.role = data["role"]
    if "name" in data:
        if not str(data["name"] or "").strip():
            raise ValidationError("name cannot be blank")
        user.name = str(data["name"]).strip()
    if "email" in data:
        user.email = data["email"] or None
    if "is_active" in data:
        if not isinstance(data["is_active"], bool):
            raise ValidationError("is_active must be true or false")
        user.is_active = data["is_active"]
        if not user.is_active:
            session_service.revoke_all_user_sessions(user.id, reason="User deactivated", commit=False)
    if "password" in data:
        user.password_hash = hash_password(data["password"])
        session_service.revoke_all_user_sessions(user.id, reason="Password changed", commit=False)

    db.session.commit()
    return user


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.name).all()
