# Overview: Service-layer operations for supplier purchase orders.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, ForeignKeyViolationError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Medicine, PurchaseOrder, PurchaseOrderItem, Supplier, User
from ..models.purchasing import PO_STATUSES
from ..money import ZERO, money2
from ..time_utils import utcnow
from ..validation import MAX_TOTAL, require_amount, require_positive_int
from . import audit_service
"""
Purchase order lifecycle

    pending -> partial -> received
       |          |
       +----------+----> cancelled

received and cancelled are terminal. Receiving a PO does not create batches;
stock arrives through batch_service.create_batch with the real batch number
and expiry printed on the goods.
"""

TERMINAL_STATUSES = ("received", "cancelled")


def generate_po_number() -> str:
    """PO + epoch milliseconds. Two orders in the same millisecond collide; the unique index catches it."""
    return f"PO{int(time.time() * 1000)}"


def _parse_items(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("A purchase order needs at least one item")

    parsed = []
    for idx, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        if raw.get("unit_price") in (None, ""):
            raise ValidationError(f"items[{idx}].unit_price is required")
        parsed.append({
            "medicine_id": require_positive_int(raw.get("medicine_id"), f"items[{idx}].medicine_id"),
            "quantity": require_positive_int(raw.get("quantity"), f"items[{idx}].quantity"),
            "unit_price": require_amount(raw.get("unit_price"), f"items[{idx}].unit_price"),
        })
    return parsed


def create_purchase_order(
    *,
    supplier_id,
    items,
    user_id: int,
    notes: str | None = None,
    ip_address: str | None = None,
) -> PurchaseOrder:
    supplier_id = require_positive_int(supplier_id, "supplier_id")
    lines = _parse_items(items)
    total = money2(sum((line["quantity"] * line["unit_price"] for line in lines), ZERO))
    if total > MAX_TOTAL:
        raise ValidationError(f"Purchase order total cannot exceed {MAX_TOTAL}")

    if not db.session.query(Supplier.id).filter_by(id=supplier_id).first():
        raise ForeignKeyViolationError("Supplier does not exist", details={"supplier_id": supplier_id})
    if not db.session.query(User.id).filter_by(id=user_id).first():
        raise ForeignKeyViolationError("User does not exist", details={"user_id": user_id})

    medicine_ids = {line["medicine_id"] for line in lines}
    found = {row[0] for row in db.session.query(Medicine.id).filter(Medicine.id.in_(medicine_ids)).all()}
    missing = sorted(medicine_ids - found)
    if missing:
        raise ForeignKeyViolationError("Medicine does not exist", details={"medicine_ids": missing})

    po = PurchaseOrder(
        po_number=generate_po_number(),
        supplier_id=supplier_id,
        status="pending",
        total_amount=total,
        notes=notes,
        user_id=user_id,
    )
    db.session.add(po)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Purchase order number already exists, please retry")

    for line in lines:
        db.session.add(PurchaseOrderItem(purchase_order_id=po.id, received_quantity=0, **line))

    audit_service.append_audit_log(
        action=audit_service.ACTION_CREATE_PURCHASE_ORDER,
        entity_type="purchase_order",
        entity_id=po.id,
        user_id=user_id,
        details={"po_number": po.po_number, "total_amount": str(total), "items": len(lines)},
        ip_address=ip_address,
    )
    db.session.commit()
    current_app.logger.info("Purchase order %s created (%d items)", po.po_number, len(lines))
    return po


def get_purchase_order(po_id: int) -> PurchaseOrder:
    po = db.session.query(PurchaseOrder).filter_by(id=po_id).first()
    if not po:
        raise NotFoundError("Purchase order not found")
    return po


def list_purchase_orders(status: str | None = None) -> list[PurchaseOrder]:
    q = db.session.query(PurchaseOrder)
    if status:
        if status not in PO_STATUSES:
            raise ValidationError("Invalid status", details={"allowed": list(PO_STATUSES)})
        q = q.filter(PurchaseOrder.status == status)
    return q.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc()).all()


def update_status(po_id: int, status: str, *, user_id: int, ip_address: str | None = None) -> PurchaseOrder:
    if status not in PO_STATUSES:
        raise ValidationError("Invalid status", details={"allowed": list(PO_STATUSES)})

    po = get_purchase_order(po_id)
    if po.status in TERMINAL_STATUSES:
        raise ConflictError(
            f"Purchase order is already {po.status}",
            details={"status": po.status, "requested": status},
        )

    previous = po.status
    po.status = status
    if status == "received":
        po.received_at = utcnow()

    audit_service.append_audit_log(
        action=audit_service.ACTION_UPDATE_PURCHASE_ORDER,
        entity_type="purchase_order",
        entity_id=po.id,
        user_id=user_id,
        details={"from": previous, "to": status},
        ip_address=ip_address,
    )
    db.session.commit()
    return po
