# Overview: FEFO stock allocation; turns "N units of medicine M" into batch slices.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Sequence

from flask import current_app
from sqlalchemy import update

from ..errors import ConcurrencyError, InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Batch, Medicine
from ..time_utils import as_utc, utcnow
from ..validation import require_positive_int
from .batch_service import eligible_batches_query
from .concurrency import lock_for_update
"""
Allocation invariants (authoritative)

- An allocation either covers the requested quantity exactly or is not
  returned at all (InsufficientStockError). There is no partial result.
- Candidate batches: quantity > 0 and expiry_date > as_of, consumed in
  (expiry_date, id) order. Empty and expired batches are never selected.
- allocate() only reads. apply_allocation() performs the decrements with
  a guarded UPDATE (quantity >= n); a miss means another writer got there
  first and raises ConcurrencyError so the whole checkout is retried.
- Both must run inside the caller's write transaction; an Allocation is
  never reused across transactions.
"""


@dataclass(frozen=True)
class AllocationSlice:
    """Units drawn from one batch, with the price snapshot for the invoice line."""
    batch_id: int
    batch_number: str
    expiry_date: datetime
    quantity: int
    unit_price: Decimal
    gst_percent: Decimal


@dataclass(frozen=True)
class Allocation:
    medicine_id: int
    requested: int
    slices: tuple[AllocationSlice, ...]

    @property
    def allocated(self) -> int:
        return sum(s.quantity for s in self.slices)

    def to_dict(self) -> dict:
        return {
            "medicine_id": self.medicine_id,
            "requested": self.requested,
            "slices": [
                {
                    "batch_id": s.batch_id,
                    "batch_number": s.batch_number,
                    "quantity": s.quantity,
                    "unit_price": str(s.unit_price),
                    "gst_percent": str(s.gst_percent),
                }
                for s in self.slices
            ],
        }


def plan_fefo(batches: Sequence[Batch], requested: int) -> list[tuple[Batch, int]]:
    """
    Greedy FEFO over batches already sorted by (expiry_date, id).

    Returns [(batch, units)] summing to requested, or [] when the batches
    cannot cover it.
    """
    plan: list[tuple[Batch, int]] = []
    remaining = requested
    for batch in batches:
        if remaining <= 0:
            break
        if batch.quantity <= 0:
            continue
        take = min(batch.quantity, remaining)
        plan.append((batch, take))
        remaining -= take
    if remaining > 0:
        return []
    return plan


def allocate(
    medicine_id: int,
    quantity: int,
    *,
    as_of: datetime | None = None,
    lock: bool = False,
) -> Allocation:
    """
    Select stock for one sale line using First-Expiry-First-Out.

    lock=True takes row locks on the candidate batches (FOR UPDATE) and is
    what invoicing uses; lock=False is a read-only preview.

    Raises:
    - ValidationError: quantity is not a positive integer
    - NotFoundError: medicine does not exist
    - InsufficientStockError: eligible stock < quantity
    """
    requested = require_positive_int(quantity, "quantity")
    as_of = as_utc(as_of) if as_of else utcnow()

    medicine = db.session.query(Medicine).filter_by(id=medicine_id).first()
    if not medicine:
        raise NotFoundError("Medicine not found", details={"medicine_id": medicine_id})
    if not medicine.is_active:
        raise ValidationError("Medicine is inactive", details={"medicine_id": medicine_id})

    q = eligible_batches_query(medicine_id, as_of)
    if lock:
        q = lock_for_update(q)
    batches = q.all()

    plan = plan_fefo(batches, requested)
    if not plan:
        available = sum(b.quantity for b in batches)
        current_app.logger.info(
            "Allocation rejected for medicine %s: requested %d, available %d",
            medicine_id, requested, available,
        )
        raise InsufficientStockError(medicine_id, requested, available, medicine_name=medicine.name)

    return Allocation(
        medicine_id=medicine_id,
        requested=requested,
        slices=tuple(
            AllocationSlice(
                batch_id=batch.id,
                batch_number=batch.batch_number,
                expiry_date=batch.expiry_date,
                quantity=units,
                unit_price=batch.selling_price,
                gst_percent=batch.gst_percent,
            )
            for batch, units in plan
        ),
    )


def apply_allocation(allocation: Allocation) -> None:
    """
    Decrement each allocated batch inside the current transaction.

    The UPDATE only matches while the batch still holds enough units, so two
    writers can never both take the last unit even without row locks.
    """
    for s in allocation.slices:
        result = db.session.execute(
            update(Batch)
            .where(Batch.id == s.batch_id, Batch.quantity >= s.quantity)
            .values(quantity=Batch.quantity - s.quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrencyError(details={"batch_id": s.batch_id, "medicine_id": allocation.medicine_id})

    _expire_batches(s.batch_id for s in allocation.slices)


def _expire_batches(batch_ids: Iterable[int]) -> None:
    # The bulk UPDATE bypassed the identity map; reload on next access.
    ids = set(batch_ids)
    for obj in list(db.session.identity_map.values()):
        if isinstance(obj, Batch) and obj.id in ids:
            db.session.expire(obj, ["quantity", "updated_at"])
