# Overview: Service-layer operations for batches; receiving stock and batch reads.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from ..errors import ForeignKeyViolationError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Batch, Medicine, Supplier
from ..time_utils import as_utc, utcnow
from ..validation import ModelValidationPolicy, enforce_rules_batch, validate_payload
from . import audit_service
"""
Batch invariants (authoritative)

- quantity >= 0 at all times.
- initial_quantity is set once when the batch is received.
- After creation, quantity moves only through invoice_service (sale
  decrements) and adjustment_service (signed changes). update_batch never
  touches it.
- FEFO eligibility: quantity > 0 AND expiry_date > as_of. A batch whose
  expiry instant equals as_of is already expired.
- FEFO order: expiry_date ascending, then id ascending (creation order).
"""

BATCH_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "medicine_id", "batch_number", "expiry_date", "manufacturing_date",
        "supplier_id", "purchase_price", "mrp", "selling_price", "gst_percent",
        "quantity", "initial_quantity",
    },
    required_on_create={
        "medicine_id", "batch_number", "expiry_date",
        "purchase_price", "mrp", "selling_price", "quantity",
    },
)

# Stock levels are deliberately absent: see adjustment_service.
BATCH_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "batch_number", "expiry_date", "manufacturing_date", "supplier_id",
        "purchase_price", "mrp", "selling_price", "gst_percent",
    },
)


def eligible_batches_query(medicine_id: int, as_of: datetime):
    """Batches FEFO may draw from, in the order it draws from them."""
    return (
        db.session.query(Batch)
        .filter(
            Batch.medicine_id == medicine_id,
            Batch.quantity > 0,
            Batch.expiry_date > as_of,
        )
        .order_by(Batch.expiry_date.asc(), Batch.id.asc())
    )


def get_batch(batch_id: int) -> Batch:
    batch = db.session.query(Batch).filter_by(id=batch_id).first()
    if not batch:
        raise NotFoundError("Batch not found")
    return batch


def list_batches_for_medicine(medicine_id: int) -> list[Batch]:
    """All batches, including empty and expired ones, by expiry."""
    return (
        db.session.query(Batch)
        .filter(Batch.medicine_id == medicine_id)
        .order_by(Batch.expiry_date.asc(), Batch.id.asc())
        .all()
    )


def list_available_batches(medicine_id: int, as_of: datetime | None = None) -> list[Batch]:
    return eligible_batches_query(medicine_id, as_utc(as_of) if as_of else utcnow()).all()


def get_available_quantity(medicine_id: int, as_of: datetime | None = None) -> int:
    """Sellable units right now; the client's per-line maximum."""
    as_of = as_utc(as_of) if as_of else utcnow()
    total = (
        db.session.query(func.coalesce(func.sum(Batch.quantity), 0))
        .filter(
            Batch.medicine_id == medicine_id,
            Batch.quantity > 0,
            Batch.expiry_date > as_of,
        )
        .scalar()
    )
    return int(total or 0)


def _check_batch_refs(patch: dict) -> None:
    if "medicine_id" in patch:
        if not db.session.query(Medicine.id).filter_by(id=patch["medicine_id"]).first():
            raise ForeignKeyViolationError(
                "Medicine does not exist", details={"medicine_id": patch["medicine_id"]}
            )
    if patch.get("supplier_id") is not None:
        if not db.session.query(Supplier.id).filter_by(id=patch["supplier_id"]).first():
            raise ForeignKeyViolationError(
                "Supplier does not exist", details={"supplier_id": patch["supplier_id"]}
            )


def create_batch(payload: dict, user_id: int | None = None) -> Batch:
    """
    Receive a new lot of stock.

    initial_quantity defaults to quantity and is frozen from here on.
    """
    patch = validate_payload(model=Batch, payload=payload, policy=BATCH_CREATE_POLICY, partial=False)
    patch.setdefault("initial_quantity", patch["quantity"])
    enforce_rules_batch(patch)
    _check_batch_refs(patch)

    batch = Batch(**patch)
    db.session.add(batch)
    db.session.flush()

    audit_service.append_audit_log(
        action=audit_service.ACTION_RECEIVE_BATCH,
        entity_type="batch",
        entity_id=batch.id,
        user_id=user_id,
        details={
            "medicine_id": batch.medicine_id,
            "batch_number": batch.batch_number,
            "quantity": batch.quantity,
        },
    )
    db.session.commit()
    return batch


def update_batch(batch_id: int, payload: dict) -> Batch:
    """
    Edit batch master data (prices, dates, supplier).

    Past invoice items keep their own price snapshot.
    """
    batch = get_batch(batch_id)
    if payload and ("quantity" in payload or "initial_quantity" in payload):
        raise ValidationError("Batch quantity changes go through stock adjustments")
    patch = validate_payload(model=Batch, payload=payload, policy=BATCH_UPDATE_POLICY, partial=True)

    merged = {
        "mrp": patch.get("mrp", batch.mrp),
        "selling_price": patch.get("selling_price", batch.selling_price),
        "expiry_date": patch.get("expiry_date", batch.expiry_date),
        "manufacturing_date": patch.get("manufacturing_date", batch.manufacturing_date),
        **{k: v for k, v in patch.items() if k not in ("mrp", "selling_price", "expiry_date", "manufacturing_date")},
    }
    enforce_rules_batch(merged)
    _check_batch_refs(patch)

    for k, v in patch.items():
        setattr(batch, k, v)
    db.session.commit()
    return batch
