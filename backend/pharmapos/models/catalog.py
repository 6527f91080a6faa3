from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }


class Supplier(db.Model):
    __tablename__ = "suppliers"
    __table_args__ = (
        db.Index("ix_suppliers_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    contact_person = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)
    gst_number = db.Column(db.String(32), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact_person": self.contact_person,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "gst_number": self.gst_number,
            "notes": self.notes,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Medicine(db.Model):
    """
    Medicine master data.

    LIFECYCLE: never hard-deleted. Invoice items reference medicines forever,
    so removal from the catalogue is is_active=False.

    BARCODE: optional but unique when present. Blank barcodes are stored as
    NULL so any number of medicines may lack one.
    """
    __tablename__ = "medicines"
    __table_args__ = (
        db.CheckConstraint("pack_size > 0", name="ck_medicines_pack_size_positive"),
        db.CheckConstraint("reorder_level >= 0", name="ck_medicines_reorder_level_nonneg"),
        db.Index("ix_medicines_name", "name"),
        db.Index("ix_medicines_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    generic_name = db.Column(db.String(255), nullable=True)
    brand = db.Column(db.String(255), nullable=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    strength = db.Column(db.String(64), nullable=True)
    form = db.Column(db.String(64), nullable=True)  # tablet, capsule, syrup, injection...
    pack_size = db.Column(db.Integer, nullable=False, default=1)
    barcode = db.Column(db.String(64), nullable=True, unique=True)
    hsn_code = db.Column(db.String(32), nullable=True)
    schedule_drug = db.Column(db.String(16), nullable=True)  # H, H1, X...
    storage_location = db.Column(db.String(128), nullable=True)  # rack/shelf
    reorder_level = db.Column(db.Integer, nullable=False, default=10)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    category = db.relationship("Category", backref=db.backref("medicines", lazy=True))

    def __repr__(self) -> str:
        return f"<Medicine id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "generic_name": self.generic_name,
            "brand": self.brand,
            "category_id": self.category_id,
            "strength": self.strength,
            "form": self.form,
            "pack_size": self.pack_size,
            "barcode": self.barcode,
            "hsn_code": self.hsn_code,
            "schedule_drug": self.schedule_drug,
            "storage_location": self.storage_location,
            "reorder_level": self.reorder_level,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
