"""
Purchase order tests.
"""

from decimal import Decimal

import pytest

from pharmapos.errors import ConflictError, ForeignKeyViolationError, ValidationError
from pharmapos.extensions import db
from pharmapos.models import AuditLog
from pharmapos.services import catalog_service, purchase_order_service


@pytest.fixture
def supplier(app):
    return catalog_service.create_supplier({"name": "MedLine Distributors", "phone": "044-2222"})


def test_create_sums_total_and_stores_items(owner, supplier, make_medicine):
    med_a = make_medicine("Amoxicillin")
    med_b = make_medicine("Azithromycin")

    po = purchase_order_service.create_purchase_order(
        supplier_id=supplier.id,
        items=[
            {"medicine_id": med_a.id, "quantity": 10, "unit_price": "12.50"},
            {"medicine_id": med_b.id, "quantity": 3, "unit_price": "40"},
        ],
        user_id=owner.id,
    )

    assert po.po_number.startswith("PO")
    assert po.po_number[2:].isdigit()
    assert po.status == "pending"
    assert po.total_amount == Decimal("245.00")
    assert [(i.medicine_id, i.quantity, i.received_quantity) for i in po.items] == [
        (med_a.id, 10, 0),
        (med_b.id, 3, 0),
    ]
    assert db.session.query(AuditLog).filter_by(action="CREATE_PURCHASE_ORDER").count() == 1


def test_needs_items(owner, supplier):
    with pytest.raises(ValidationError):
        purchase_order_service.create_purchase_order(supplier_id=supplier.id, items=[], user_id=owner.id)


def test_total_beyond_column_range_is_rejected(owner, supplier, make_medicine):
    med = make_medicine()
    with pytest.raises(ValidationError):
        purchase_order_service.create_purchase_order(
            supplier_id=supplier.id,
            items=[{"medicine_id": med.id, "quantity": 2**31 - 1, "unit_price": "99999999.99"}],
            user_id=owner.id,
        )
    assert db.session.query(AuditLog).filter_by(action="CREATE_PURCHASE_ORDER").count() == 0

def test_unknown_supplier_and_medicine(owner, supplier, make_medicine):
    med = make_medicine()
    with pytest.raises(ForeignKeyViolationError):
        purchase_order_service.create_purchase_order(
            supplier_id=999,
            items=[{"medicine_id": med.id, "quantity": 1, "unit_price": "1.00"}],
            user_id=owner.id,
        )
    with pytest.raises(ForeignKeyViolationError) as exc:
        purchase_order_service.create_purchase_order(
            supplier_id=supplier.id,
            items=[{"medicine_id": 777, "quantity": 1, "unit_price": "1.00"}],
            user_id=owner.id,
        )
    assert exc.value.details == {"medicine_ids": [777]}


def test_po_number_collision_is_a_conflict(owner, supplier, make_medicine, monkeypatch):
    med = make_medicine()
    items = [{"medicine_id": med.id, "quantity": 1, "unit_price": "1.00"}]
    monkeypatch.setattr(purchase_order_service, "generate_po_number", lambda: "PO1700000000000")

    purchase_order_service.create_purchase_order(supplier_id=supplier.id, items=items, user_id=owner.id)
    with pytest.raises(ConflictError):
        purchase_order_service.create_purchase_order(supplier_id=supplier.id, items=items, user_id=owner.id)


def test_status_lifecycle(owner, supplier, make_medicine):
    med = make_medicine()
    po = purchase_order_service.create_purchase_order(
        supplier_id=supplier.id,
        items=[{"medicine_id": med.id, "quantity": 5, "unit_price": "2.00"}],
        user_id=owner.id,
    )

    po = purchase_order_service.update_status(po.id, "partial", user_id=owner.id)
    assert po.received_at is None

    po = purchase_order_service.update_status(po.id, "received", user_id=owner.id)
    assert po.status == "received"
    assert po.received_at is not None

    with pytest.raises(ConflictError):
        purchase_order_service.update_status(po.id, "cancelled", user_id=owner.id)

    entries = db.session.query(AuditLog).filter_by(action="UPDATE_PURCHASE_ORDER").order_by(AuditLog.id).all()
    assert [e.details for e in entries] == [
        {"from": "pending", "to": "partial"},
        {"from": "partial", "to": "received"},
    ]


def test_invalid_status(owner, supplier, make_medicine):
    med = make_medicine()
    po = purchase_order_service.create_purchase_order(
        supplier_id=supplier.id,
        items=[{"medicine_id": med.id, "quantity": 5, "unit_price": "2.00"}],
        user_id=owner.id,
    )
    with pytest.raises(ValidationError):
        purchase_order_service.update_status(po.id, "shipped", user_id=owner.id)


def test_supplier_with_orders_cannot_be_deleted(owner, supplier, make_medicine):
    med = make_medicine()
    purchase_order_service.create_purchase_order(
        supplier_id=supplier.id,
        items=[{"medicine_id": med.id, "quantity": 1, "unit_price": "1.00"}],
        user_id=owner.id,
    )
    with pytest.raises(ConflictError):
        catalog_service.delete_supplier(supplier.id)
