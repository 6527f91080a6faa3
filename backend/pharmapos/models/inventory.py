from __future__ import annotations

from ..extensions import db
from ..money import as_str
from ..time_utils import to_utc_z


class Batch(db.Model):
    """
    A priced, dated lot of one medicine.

    QUANTITY RULES:
    - quantity >= 0 always (CHECK constraint; services never write below zero)
    - quantity changes only through invoicing (decrement) and stock
      adjustments (either sign). Returns may push it above initial_quantity.
    - initial_quantity is the receipt snapshot and is never edited.

    LIFECYCLE: never deleted; past invoice items point at the batch.
    """
    __tablename__ = "batches"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_batches_quantity_nonneg"),
        db.CheckConstraint("initial_quantity >= 0", name="ck_batches_initial_quantity_nonneg"),
        db.CheckConstraint("purchase_price >= 0", name="ck_batches_purchase_price_nonneg"),
        db.CheckConstraint("mrp >= 0", name="ck_batches_mrp_nonneg"),
        db.CheckConstraint("selling_price >= 0", name="ck_batches_selling_price_nonneg"),
        db.CheckConstraint("gst_percent >= 0", name="ck_batches_gst_nonneg"),
        # FEFO scan: medicine, then expiry
        db.Index("ix_batches_medicine_expiry", "medicine_id", "expiry_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    medicine_id = db.Column(db.Integer, db.ForeignKey("medicines.id"), nullable=False, index=True)
    batch_number = db.Column(db.String(64), nullable=False)

    expiry_date = db.Column(db.DateTime(timezone=True), nullable=False)
    manufacturing_date = db.Column(db.DateTime(timezone=True), nullable=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)

    purchase_price = db.Column(db.Numeric(10, 2), nullable=False)
    mrp = db.Column(db.Numeric(10, 2), nullable=False)
    selling_price = db.Column(db.Numeric(10, 2), nullable=False)
    gst_percent = db.Column(db.Numeric(5, 2), nullable=False, default="12.00")

    quantity = db.Column(db.Integer, nullable=False, default=0)
    initial_quantity = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    medicine = db.relationship("Medicine", backref=db.backref("batches", lazy=True))
    supplier = db.relationship("Supplier", backref=db.backref("batches", lazy=True))

    def __repr__(self) -> str:
        return f"<Batch id={self.id} medicine_id={self.medicine_id} batch={self.batch_number!r} qty={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "medicine_id": self.medicine_id,
            "batch_number": self.batch_number,
            "expiry_date": to_utc_z(self.expiry_date),
            "manufacturing_date": to_utc_z(self.manufacturing_date),
            "supplier_id": self.supplier_id,
            "purchase_price": as_str(self.purchase_price),
            "mrp": as_str(self.mrp),
            "selling_price": as_str(self.selling_price),
            "gst_percent": as_str(self.gst_percent),
            "quantity": self.quantity,
            "initial_quantity": self.initial_quantity,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockAdjustment(db.Model):
    """
    Append-only record of an out-of-band quantity change on one batch.

    quantity is what the user asked for; applied_quantity is the signed
    change actually made to the batch. They differ only when a deduction
    was clamped at zero (clamped=True).
    """
    __tablename__ = "stock_adjustments"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_stock_adjustments_quantity_positive"),
        db.Index("ix_stock_adjustments_medicine_created", "medicine_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    batch_id = db.Column(db.Integer, db.ForeignKey("batches.id"), nullable=False, index=True)
    medicine_id = db.Column(db.Integer, db.ForeignKey("medicines.id"), nullable=False, index=True)

    adjustment_type = db.Column(db.String(16), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    applied_quantity = db.Column(db.Integer, nullable=False)
    quantity_before = db.Column(db.Integer, nullable=False)
    quantity_after = db.Column(db.Integer, nullable=False)
    clamped = db.Column(db.Boolean, nullable=False, default=False)

    reason = db.Column(db.String(255), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    batch = db.relationship("Batch", backref=db.backref("adjustments", lazy=True))
    medicine = db.relationship("Medicine")
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "batch_id": self.batch_id,
            "medicine_id": self.medicine_id,
            "adjustment_type": self.adjustment_type,
            "quantity": self.quantity,
            "applied_quantity": self.applied_quantity,
            "quantity_before": self.quantity_before,
            "quantity_after": self.quantity_after,
            "clamped": self.clamped,
            "reason": self.reason,
            "notes": self.notes,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }
