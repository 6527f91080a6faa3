# Overview: Service-layer operations for the audit trail; append and read only.

from __future__ import annotations

from ..extensions import db
from ..models import AuditLog
from ..time_utils import utcnow
"""
Audit trail invariants (authoritative)

- Append-only: no updates or deletes of existing rows.
- Entries are written inside the same DB transaction as the action they
  record, so a rolled back invoice leaves no CREATE_INVOICE entry behind.
- details is a small JSON object; do not denormalize domain state into it.
"""

ACTION_LOGIN = "LOGIN"
ACTION_LOGOUT = "LOGOUT"
ACTION_REGISTER_USER = "REGISTER_USER"
ACTION_CREATE_INVOICE = "CREATE_INVOICE"
ACTION_STOCK_ADJUSTMENT = "STOCK_ADJUSTMENT"
ACTION_RECEIVE_BATCH = "RECEIVE_BATCH"
ACTION_CREATE_PURCHASE_ORDER = "CREATE_PURCHASE_ORDER"
ACTION_UPDATE_PURCHASE_ORDER = "UPDATE_PURCHASE_ORDER"


def append_audit_log(
    *,
    action: str,
    entity_type: str,
    entity_id: int | None = None,
    user_id: int | None = None,
    details: dict | None = None,
    ip_address: str | None = None,
) -> AuditLog:
    """Add an audit row to the current transaction. The caller commits."""
    entry = AuditLog(
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details,
        ip_address=ip_address,
        created_at=utcnow(),
    )
    db.session.add(entry)
    db.session.flush()  # ensures entry.id is assigned without committing
    return entry


def list_audit_logs(limit: int = 100, *, action: str | None = None, entity_type: str | None = None) -> list[AuditLog]:
    """Newest first."""
    q = db.session.query(AuditLog)
    if action:
        q = q.filter(AuditLog.action == action)
    if entity_type:
        q = q.filter(AuditLog.entity_type == entity_type)
    return q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()
