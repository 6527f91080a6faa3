from __future__ import annotations

from ..extensions import db
from ..money import as_str
from ..time_utils import to_utc_z


class Invoice(db.Model):
    """
    A completed sale. Financial record: written once, never updated or deleted.

    total_amount == subtotal - discount_amount + tax_amount is computed by
    invoice_service; the store does not re-derive it.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.CheckConstraint("subtotal >= 0", name="ck_invoices_subtotal_nonneg"),
        db.CheckConstraint("discount_amount >= 0", name="ck_invoices_discount_nonneg"),
        db.CheckConstraint("tax_amount >= 0", name="ck_invoices_tax_nonneg"),
        db.Index("ix_invoices_created_at", "created_at"),
        db.Index("ix_invoices_customer", "customer_name", "customer_phone"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(32), nullable=False, unique=True)
    invoice_type = db.Column(db.String(16), nullable=False, default="retail")  # retail, wholesale

    # Customers are not stored entities; see reporting_service.list_customers
    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default="0.00")
    discount_percent = db.Column(db.Numeric(5, 2), nullable=False, default="0.00")
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default="0.00")
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)

    payment_method = db.Column(db.String(16), nullable=False, default="cash")  # cash, card, upi
    payment_status = db.Column(db.String(16), nullable=False, default="paid")  # paid, pending, partial
    notes = db.Column(db.Text, nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User")
    items = db.relationship("InvoiceItem", backref="invoice", lazy=True, order_by="InvoiceItem.id")

    def __repr__(self) -> str:
        return f"<Invoice id={self.id} number={self.invoice_number!r} total={self.total_amount}>"

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "invoice_type": self.invoice_type,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "subtotal": as_str(self.subtotal),
            "discount_amount": as_str(self.discount_amount),
            "discount_percent": as_str(self.discount_percent),
            "tax_amount": as_str(self.tax_amount),
            "total_amount": as_str(self.total_amount),
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "notes": self.notes,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class InvoiceItem(db.Model):
    """
    One (batch, quantity) slice of a sale.

    unit_price and gst_percent are snapshots taken at sale time; later edits
    to the batch do not change them.
    """
    __tablename__ = "invoice_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_invoice_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    medicine_id = db.Column(db.Integer, db.ForeignKey("medicines.id"), nullable=False, index=True)
    batch_id = db.Column(db.Integer, db.ForeignKey("batches.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)
    discount_percent = db.Column(db.Numeric(5, 2), nullable=False, default="0.00")
    gst_percent = db.Column(db.Numeric(5, 2), nullable=False)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False)
    total_price = db.Column(db.Numeric(12, 2), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    medicine = db.relationship("Medicine")
    batch = db.relationship("Batch")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "medicine_id": self.medicine_id,
            "medicine_name": self.medicine.name if self.medicine else None,
            "batch_id": self.batch_id,
            "batch_number": self.batch.batch_number if self.batch else None,
            "quantity": self.quantity,
            "unit_price": as_str(self.unit_price),
            "discount_percent": as_str(self.discount_percent),
            "gst_percent": as_str(self.gst_percent),
            "tax_amount": as_str(self.tax_amount),
            "total_price": as_str(self.total_price),
        }


class InvoiceSequence(db.Model):
    """
    Atomic per-day invoice counters.

    WHY: "count today's invoices + 1" hands the same number to two racing
    checkouts. The counter row is bumped with a single UPDATE inside the
    invoice transaction, so the row lock serializes writers and a rolled
    back invoice also rolls back its number.
    """
    __tablename__ = "invoice_sequences"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    sequence_date = db.Column(db.String(8), nullable=False, unique=True)  # YYYYMMDD
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sequence_date": self.sequence_date,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
