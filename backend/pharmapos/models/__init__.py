from .auth import User, SessionToken
from .catalog import Category, Supplier, Medicine
from .inventory import Batch, StockAdjustment
from .invoicing import Invoice, InvoiceItem, InvoiceSequence
from .purchasing import PurchaseOrder, PurchaseOrderItem
from .audit import AuditLog

__all__ = [
    'User', 'SessionToken',
    'Category', 'Supplier', 'Medicine',
    'Batch', 'StockAdjustment',
    'Invoice', 'InvoiceItem', 'InvoiceSequence',
    'PurchaseOrder', 'PurchaseOrderItem',
    'AuditLog',
]
