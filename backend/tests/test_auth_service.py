"""
Authentication and session tests.
"""

from datetime import timedelta

import pytest

from conftest import DEFAULT_PASSWORD
from pharmapos.errors import AuthenticationError, ConflictError, PermissionDeniedError, ValidationError
from pharmapos.extensions import db
from pharmapos.models import AuditLog, SessionToken
from pharmapos.services import auth_service, session_service


def test_first_user_becomes_owner(app):
    first = auth_service.create_user("first", DEFAULT_PASSWORD, "First", role="cashier")
    second = auth_service.create_user("second", DEFAULT_PASSWORD, "Second")
    third = auth_service.create_user("third", DEFAULT_PASSWORD, "Third", role="manager")

    assert first.role == "owner"
    assert second.role == "cashier"
    assert third.role == "manager"


def test_duplicate_username(owner):
    with pytest.raises(ConflictError):
        auth_service.create_user("owner", DEFAULT_PASSWORD, "Someone Else")


@pytest.mark.parametrize("password", ["short1A", "alllowercase1", "ALLUPPERCASE1", "NoDigitsHere"])
def test_weak_passwords_rejected(app, password):
    with pytest.raises(ValidationError):
        auth_service.create_user("weak", password, "Weak")


def test_password_is_hashed(owner):
    assert owner.password_hash != DEFAULT_PASSWORD
    assert auth_service.verify_password(DEFAULT_PASSWORD, owner.password_hash)
    assert not auth_service.verify_password("Wrong123", owner.password_hash)


def test_login_issues_token_and_audits(owner):
    user, token = auth_service.authenticate("owner", DEFAULT_PASSWORD, ip_address="10.0.0.5")

    assert user.id == owner.id
    assert session_service.validate_session(token).id == owner.id
    entry = db.session.query(AuditLog).filter_by(action="LOGIN").one()
    assert entry.user_id == owner.id
    assert entry.ip_address == "10.0.0.5"


def test_wrong_password_and_unknown_user_look_the_same(owner):
    with pytest.raises(AuthenticationError) as wrong:
        auth_service.authenticate("owner", "Wrong1234")
    with pytest.raises(AuthenticationError) as unknown:
        auth_service.authenticate("nobody", DEFAULT_PASSWORD)
    assert wrong.value.message == unknown.value.message


def test_inactive_account_cannot_log_in(owner, cashier):
    auth_service.update_user(cashier.id, {"is_active": False})
    with pytest.raises(PermissionDeniedError):
        auth_service.authenticate("cashier", DEFAULT_PASSWORD)


def test_deactivation_revokes_open_sessions(owner, cashier):
    _, token = auth_service.authenticate("cashier", DEFAULT_PASSWORD)
    auth_service.update_user(cashier.id, {"is_active": False})
    assert session_service.validate_session(token) is None


def test_logout_revokes_token(owner):
    user, token = auth_service.authenticate("owner", DEFAULT_PASSWORD)
    assert auth_service.logout(user, token) is True
    assert session_service.validate_session(token) is None
    assert db.session.query(AuditLog).filter_by(action="LOGOUT").count() == 1


def test_expired_and_idle_sessions_are_rejected(owner):
    session, token = session_service.create_session(owner.id)
    session.expires_at = session.created_at - timedelta(seconds=1)
    db.session.commit()
    assert session_service.validate_session(token) is None

    session, token = session_service.create_session(owner.id)
    session.last_used_at = session.last_used_at - session_service.SESSION_IDLE_TIMEOUT - timedelta(minutes=1)
    db.session.commit()
    assert session_service.validate_session(token) is None
    assert db.session.get(SessionToken, session.id).revoked_reason == "Idle timeout"


def test_unknown_token(app):
    assert session_service.validate_session("not-a-real-token") is None
