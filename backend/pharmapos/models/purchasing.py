from __future__ import annotations

from ..extensions import db
from ..money import as_str
from ..time_utils import to_utc_z


PO_STATUSES = ("pending", "partial", "received", "cancelled")


class PurchaseOrder(db.Model):
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.CheckConstraint("total_amount >= 0", name="ck_purchase_orders_total_nonneg"),
        db.Index("ix_purchase_orders_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    # "PO" + epoch milliseconds; see purchase_order_service.generate_po_number
    po_number = db.Column(db.String(32), nullable=False, unique=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="pending")
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)

    supplier = db.relationship("Supplier", backref=db.backref("purchase_orders", lazy=True))
    user = db.relationship("User")
    items = db.relationship("PurchaseOrderItem", backref="purchase_order", lazy=True, order_by="PurchaseOrderItem.id")

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "po_number": self.po_number,
            "supplier_id": self.supplier_id,
            "status": self.status,
            "total_amount": as_str(self.total_amount),
            "notes": self.notes,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "received_at": to_utc_z(self.received_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class PurchaseOrderItem(db.Model):
    __tablename__ = "purchase_order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_po_items_quantity_positive"),
        db.CheckConstraint("received_quantity >= 0", name="ck_po_items_received_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    medicine_id = db.Column(db.Integer, db.ForeignKey("medicines.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    received_quantity = db.Column(db.Integer, nullable=False, default=0)
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    medicine = db.relationship("Medicine")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "medicine_id": self.medicine_id,
            "quantity": self.quantity,
            "received_quantity": self.received_quantity,
            "unit_price": as_str(self.unit_price),
        }
