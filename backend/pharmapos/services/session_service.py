# Overview: Service-layer operations for session; encapsulates business logic and database work.

"""
Session Token Management Service

WHY: Bearer tokens for point-of-sale terminals with automatic timeout and
revocation. Tokens are cryptographically secure, hashed in database, and
time-limited. No other per-request state lives on the server.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (fast, one-way)
- 24-hour absolute timeout (SESSION_ABSOLUTE_TIMEOUT)
- 8-hour idle timeout (SESSION_IDLE_TIMEOUT), one cashier shift
- Revocable on logout, deactivation or password change
"""

import hashlib
import secrets
from datetime import timedelta

from ..extensions import db
from ..models import SessionToken, User
from ..time_utils import as_utc, utcnow


SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)
SESSION_IDLE_TIMEOUT = timedelta(hours=8)


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

    WHY SHA-256 not bcrypt: Tokens are already high-entropy (unlike passwords).
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None
) -> tuple[SessionToken, str]:
    """
    Create new session token for user and commit.

    Returns (session_record, plaintext_token).
    Client receives plaintext_token, database stores only the hash.
    """
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise ValueError("User not found")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + SESSION_ABSOLUTE_TIMEOUT,
        user_agent=(user_agent or "")[:255] or None,
        ip_address=ip_address,
        is_revoked=False
    )

    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()


def validate_session(token: str) -> User | None:
    """
    Validate session token and return its user if valid.

    Returns None if:
    - Token is unknown, expired, idle too long, or revoked
    - User account is deactivated (is_active=False)

    Updates last_used_at on successful validation (activity tracking).
    """
    now = utcnow()

    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not session:
        return None

    if as_utc(session.expires_at) < now:
        return None

    if now - as_utc(session.last_used_at) > SESSION_IDLE_TIMEOUT:
        _revoke(session, "Idle timeout")
        return None

    user = session.user
    if not user or not user.is_active:
        _revoke(session, "User account deactivated")
        return None

    session.last_used_at = now
    db.session.commit()
    return user


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """
    Revoke session token.

    Returns True if session was revoked, False if not found.
    """
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not session:
        return False

    _revoke(session, reason)
    return True


def revoke_all_user_sessions(user_id: int, reason: str = "Revoke all sessions", commit: bool = True) -> int:
    """Revoke all active sessions for a user. Returns count of sessions revoked."""
    now = utcnow()

    sessions = db.session.query(SessionToken).filter_by(
        user_id=user_id,
        is_revoked=False
    ).all()

    for session in sessions:
        session.is_revoked = True
        session.revoked_at = now
        session.revoked_reason = reason

    if commit:
        db.session.commit()
    return len(sessions)
