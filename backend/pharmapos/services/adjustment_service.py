# Overview: Service-layer operations for stock adjustments (returns, damage, expiry write-off, corrections).

from __future__ import annotations

from flask import current_app

from ..errors import NotFoundError, ValidationError, ForeignKeyViolationError
from ..extensions import db
from ..models import Batch, StockAdjustment, User
from ..time_utils import utcnow
from ..validation import MAX_INT, require_positive_int
from . import audit_service
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
"""
Adjustment rules (authoritative)

- addition, return              -> batch.quantity += quantity
- deduction, damage, expired,
  transfer                      -> batch.quantity -= quantity
- The batch never goes below zero. An over-deduction is still recorded with
  the requested quantity, the batch is floored at 0, and the row is marked
  clamped=True with the applied_quantity that really happened. The clamp is
  logged and flagged in the audit entry.
- Adjustment row, batch update and audit entry commit together.
"""

INCREASE_TYPES = ("addition", "return")
DECREASE_TYPES = ("deduction", "damage", "expired", "transfer")
ADJUSTMENT_TYPES = INCREASE_TYPES + DECREASE_TYPES

# Older clients send these spellings
TYPE_ALIASES = {"add": "addition", "remove": "deduction", "damaged": "damage"}


def normalize_adjustment_type(value) -> str:
    adj_type = TYPE_ALIASES.get(value, value) if isinstance(value, str) else None
    if adj_type not in ADJUSTMENT_TYPES:
        raise ValidationError(f"adjustment_type must be one of: {', '.join(ADJUSTMENT_TYPES)}")
    return adj_type


def apply_delta(current: int, adjustment_type: str, quantity: int) -> tuple[int, bool]:
    """Returns (new_quantity, clamped)."""
    if adjustment_type in INCREASE_TYPES:
        target = current + quantity
        if target > MAX_INT:
            raise ValidationError(f"Resulting quantity cannot exceed {MAX_INT}")
        return target, False
    target = current - quantity
    if target < 0:
        return 0, True
    return target, False


def create_adjustment(
    *,
    batch_id: int,
    adjustment_type: str,
    quantity: int,
    reason: str,
    user_id: int,
    notes: str | None = None,
    ip_address: str | None = None,
) -> StockAdjustment:
    """
    Apply a signed quantity change to one batch outside of a sale.

    Raises ValidationError for bad input, NotFoundError for an unknown
    batch, ForeignKeyViolationError for an unknown user.
    """
    batch_id = require_positive_int(batch_id, "batch_id")
    adj_type = normalize_adjustment_type(adjustment_type)
    qty = require_positive_int(quantity, "quantity")
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("reason is required")
    if len(reason) > 255:
        raise ValidationError("reason exceeds max length 255")

    if not db.session.query(User.id).filter_by(id=user_id).first():
        raise ForeignKeyViolationError("User does not exist", details={"user_id": user_id})

    def _op() -> StockAdjustment:
        begin_write_transaction()
        batch = lock_for_update(db.session.query(Batch).filter_by(id=batch_id)).populate_existing().first()
        if not batch:
            raise NotFoundError("Batch not found", details={"batch_id": batch_id})

        before = batch.quantity
        after, clamped = apply_delta(before, adj_type, qty)
        batch.quantity = after

        adjustment = StockAdjustment(
            batch_id=batch.id,
            medicine_id=batch.medicine_id,
            adjustment_type=adj_type,
            quantity=qty,
            applied_quantity=after - before,
            quantity_before=before,
            quantity_after=after,
            clamped=clamped,
            reason=reason,
            notes=notes,
            user_id=user_id,
            created_at=utcnow(),
        )
        db.session.add(adjustment)
        db.session.flush()

        details = {"type": adj_type, "quantity": qty, "reason": reason}
        if clamped:
            details["clamped"] = True
            details["applied_quantity"] = after - before

        audit_service.append_audit_log(
            action=audit_service.ACTION_STOCK_ADJUSTMENT,
            entity_type="batch",
            entity_id=batch.id,
            user_id=user_id,
            details=details,
            ip_address=ip_address,
        )

        db.session.commit()
        return adjustment

    adjustment = run_with_retry(_op)
    if adjustment.clamped:
        current_app.logger.warning(
            "Stock adjustment %s on batch %s clamped at zero: requested %s of %s, had %s",
            adjustment.id, adjustment.batch_id, adjustment.adjustment_type,
            adjustment.quantity, adjustment.quantity_before,
        )
    return adjustment


def list_adjustments(medicine_id: int | None = None, limit: int = 200) -> list[StockAdjustment]:
    """Newest first, optionally for one medicine."""
    q = db.session.query(StockAdjustment)
    if medicine_id is not None:
        q = q.filter(StockAdjustment.medicine_id == medicine_id)
    return q.order_by(StockAdjustment.created_at.desc(), StockAdjustment.id.desc()).limit(limit).all()
