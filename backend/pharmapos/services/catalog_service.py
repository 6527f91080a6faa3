# Overview: Service-layer operations for the catalogue (categories, suppliers, medicines).

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, ForeignKeyViolationError, NotFoundError
from ..extensions import db
from ..models import Batch, Category, Medicine, PurchaseOrder, Supplier
from ..validation import (
    ModelValidationPolicy,
    enforce_rules_medicine,
    validate_payload,
)
"""
Catalogue rules:
- Medicines are never deleted, only deactivated (invoice items point at them).
- Categories and suppliers can be deleted while nothing references them.
- Barcodes are unique when present; category names are unique.
"""

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description"},
    required_on_create={"name"},
)

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "contact_person", "phone", "email", "address",
        "gst_number", "notes", "is_active",
    },
    required_on_create={"name"},
)

MEDICINE_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "generic_name", "brand", "category_id", "strength", "form",
        "pack_size", "barcode", "hsn_code", "schedule_drug", "storage_location",
        "reorder_level", "description", "is_active",
    },
    required_on_create={"name"},
)

SEARCH_LIMIT = 50


def _flush_or_conflict(message: str) -> None:
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(message)


# =============================================================================
# Categories
# =============================================================================

def get_category(category_id: int) -> Category:
    category = db.session.query(Category).filter_by(id=category_id).first()
    if not category:
        raise NotFoundError("Category not found")
    return category


def list_categories() -> list[Category]:
    return db.session.query(Category).order_by(Category.name).all()


def create_category(payload: dict) -> Category:
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
    if db.session.query(Category).filter_by(name=patch["name"]).first():
        raise ConflictError("Category name already exists")
    category = Category(**patch)
    db.session.add(category)
    _flush_or_conflict("Category name already exists")
    db.session.commit()
    return category


def update_category(category_id: int, payload: dict) -> Category:
    category = get_category(category_id)
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)
    for k, v in patch.items():
        setattr(category, k, v)
    _flush_or_conflict("Category name already exists")
    db.session.commit()
    return category


def delete_category(category_id: int) -> None:
    category = get_category(category_id)
    in_use = db.session.query(Medicine.id).filter_by(category_id=category_id).first()
    if in_use:
        raise ConflictError("Category is assigned to medicines")
    db.session.delete(category)
    db.session.commit()


# =============================================================================
# Suppliers
# =============================================================================

def get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.query(Supplier).filter_by(id=supplier_id).first()
    if not supplier:
        raise NotFoundError("Supplier not found")
    return supplier


def list_suppliers(include_inactive: bool = True) -> list[Supplier]:
    q = db.session.query(Supplier)
    if not include_inactive:
        q = q.filter(Supplier.is_active.is_(True))
    return q.order_by(Supplier.name).all()


def create_supplier(payload: dict) -> Supplier:
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)
    supplier = Supplier(**patch)
    db.session.add(supplier)
    db.session.commit()
    return supplier


def update_supplier(supplier_id: int, payload: dict) -> Supplier:
    supplier = get_supplier(supplier_id)
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=True)
    for k, v in patch.items():
        setattr(supplier, k, v)
    db.session.commit()
    return supplier


def delete_supplier(supplier_id: int) -> None:
    supplier = get_supplier(supplier_id)
    if db.session.query(Batch.id).filter_by(supplier_id=supplier_id).first():
        raise ConflictError("Supplier has batches on record")
    if db.session.query(PurchaseOrder.id).filter_by(supplier_id=supplier_id).first():
        raise ConflictError("Supplier has purchase orders on record")
    db.session.delete(supplier)
    db.session.commit()


# =============================================================================
# Medicines
# =============================================================================

def get_medicine(medicine_id: int) -> Medicine:
    medicine = db.session.query(Medicine).filter_by(id=medicine_id).first()
    if not medicine:
        raise NotFoundError("Medicine not found")
    return medicine


def get_medicine_by_barcode(barcode: str) -> Medicine:
    medicine = db.session.query(Medicine).filter_by(barcode=(barcode or "").strip()).first()
    if not medicine:
        raise NotFoundError("Medicine not found")
    return medicine


def list_medicines(include_inactive: bool = False, category_id: int | None = None) -> list[Medicine]:
    q = db.session.query(Medicine)
    if not include_inactive:
        q = q.filter(Medicine.is_active.is_(True))
    if category_id is not None:
        q = q.filter(Medicine.category_id == category_id)
    return q.order_by(Medicine.name, Medicine.id).all()


def search_medicines(query: str) -> list[Medicine]:
    """Case-insensitive match on name, generic name or brand, or exact barcode."""
    term = (query or "").strip()
    if not term:
        return []
    pattern = f"%{term}%"
    return (
        db.session.query(Medicine)
        .filter(
            or_(
                Medicine.name.ilike(pattern),
                Medicine.generic_name.ilike(pattern),
                Medicine.brand.ilike(pattern),
                Medicine.barcode == term,
            )
        )
        .order_by(Medicine.name, Medicine.id)
        .limit(SEARCH_LIMIT)
        .all()
    )


def _check_medicine_refs(patch: dict, medicine_id: int | None = None) -> None:
    if patch.get("category_id") is not None:
        if not db.session.query(Category.id).filter_by(id=patch["category_id"]).first():
            raise ForeignKeyViolationError(
                "Category does not exist", details={"category_id": patch["category_id"]}
            )
    if patch.get("barcode"):
        q = db.session.query(Medicine.id).filter(Medicine.barcode == patch["barcode"])
        if medicine_id is not None:
            q = q.filter(Medicine.id != medicine_id)
        if q.first():
            raise ConflictError("Barcode already assigned", details={"barcode": patch["barcode"]})


def create_medicine(payload: dict) -> Medicine:
    patch = validate_payload(model=Medicine, payload=payload, policy=MEDICINE_POLICY, partial=False)
    patch.setdefault("reorder_level", current_app.config.get("LOW_STOCK_DEFAULT_REORDER_LEVEL", 10))
    enforce_rules_medicine(patch)
    _check_medicine_refs(patch)

    medicine = Medicine(**patch)
    db.session.add(medicine)
    _flush_or_conflict("Barcode already assigned")
    db.session.commit()
    return medicine


def update_medicine(medicine_id: int, payload: dict) -> Medicine:
    medicine = get_medicine(medicine_id)
    patch = validate_payload(model=Medicine, payload=payload, policy=MEDICINE_POLICY, partial=True)
    enforce_rules_medicine(patch)
    _check_medicine_refs(patch, medicine_id=medicine_id)

    for k, v in patch.items():
        setattr(medicine, k, v)
    _flush_or_conflict("Barcode already assigned")
    db.session.commit()
    return medicine


def deactivate_medicine(medicine_id: int) -> Medicine:
    """Soft delete. Batches and invoice history stay intact."""
    medicine = get_medicine(medicine_id)
    medicine.is_active = False
    db.session.commit()
    return medicine
