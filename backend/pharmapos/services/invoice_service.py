# Overview: Invoice transactions; cart -> FEFO allocation -> invoice, items and stock in one commit.

"""
Invoice Service - atomic point-of-sale checkout

WHY: Stock decrements, the invoice row, its items, its number and its audit
entry must land together or not at all. A checkout that fails anywhere
(allocation, totals, numbering, commit) leaves batch quantities exactly as
they were.

FLOW (one DB transaction, retried from the top on lock conflicts):
1. begin write transaction (BEGIN IMMEDIATE on SQLite, FOR UPDATE elsewhere)
2. per cart line: FEFO allocate against live rows, then guarded decrement
3. totals from the allocated price snapshots
4. next invoice number from the per-day counter row
5. insert invoice + items + audit entry, commit
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from flask import current_app

from ..errors import ForeignKeyViolationError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Invoice, InvoiceItem, User
from ..money import D, HUNDRED, ZERO, money2, percent_of
from ..time_utils import as_utc, day_bounds, utcnow
from ..validation import MAX_TOTAL, require_amount, require_percent, require_positive_int
from . import allocation_service, audit_service, sequence_service
from .concurrency import begin_write_transaction, run_with_retry


PAYMENT_METHODS = ("cash", "card", "upi")
PAYMENT_STATUSES = ("paid", "pending", "partial")
INVOICE_TYPES = ("retail", "wholesale")


@dataclass(frozen=True)
class CartLine:
    medicine_id: int
    quantity: int


@dataclass(frozen=True)
class LineAmounts:
    quantity: int
    unit_price: Decimal
    gst_percent: Decimal
    line_subtotal: Decimal
    tax_amount: Decimal
    total_price: Decimal


@dataclass(frozen=True)
class InvoiceTotals:
    lines: tuple[LineAmounts, ...]
    subtotal: Decimal
    discount_percent: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal


def parse_cart(items) -> list[CartLine]:
    """Validate the raw cart before anything touches the store."""
    if not isinstance(items, list) or not items:
        raise ValidationError("Invoice must have at least one item")

    cart: list[CartLine] = []
    for i, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{i}] must be an object")
        medicine_id = raw.get("medicine_id")
        if medicine_id is None:
            raise ValidationError(f"items[{i}].medicine_id is required")
        cart.append(
            CartLine(
                medicine_id=require_positive_int(medicine_id, f"items[{i}].medicine_id"),
                quantity=require_positive_int(raw.get("quantity"), f"items[{i}].quantity"),
            )
        )
    return cart


def line_amounts(unit_price, quantity: int, gst_percent) -> LineAmounts:
    line_subtotal = money2(D(unit_price) * quantity)
    tax = percent_of(line_subtotal, gst_percent)
    return LineAmounts(
        quantity=quantity,
        unit_price=money2(unit_price),
        gst_percent=money2(gst_percent),
        line_subtotal=line_subtotal,
        tax_amount=tax,
        total_price=line_subtotal + tax,
    )


def compute_totals(
    lines: list[LineAmounts],
    *,
    discount_percent: Decimal = ZERO,
    discount_amount: Decimal | None = None,
) -> InvoiceTotals:
    """
    subtotal = sum(unit_price * qty), before discount
    discount = explicit amount, else subtotal * discount_percent / 100
    tax      = sum over lines of line_subtotal * gst_percent / 100
               (per line: items carry different GST rates)
    total    = subtotal - discount + tax
    """
    for l in lines:
        if l.total_price > MAX_TOTAL:
            raise ValidationError(
                f"Line total cannot exceed {MAX_TOTAL}",
                details={"quantity": l.quantity, "unit_price": str(l.unit_price)},
            )
    subtotal = sum((l.line_subtotal for l in lines), ZERO)
    tax = sum((l.tax_amount for l in lines), ZERO)

    if discount_amount is not None:
        discount = money2(discount_amount)
        if discount > subtotal:
            raise ValidationError(
                "discount_amount cannot exceed subtotal",
                details={"discount_amount": str(discount), "subtotal": str(subtotal)},
            )
        pct = money2(discount * HUNDRED / subtotal) if subtotal > 0 else ZERO
    else:
        pct = money2(discount_percent)
        discount = percent_of(subtotal, pct)

    total = subtotal - discount + tax
    if subtotal > MAX_TOTAL or total > MAX_TOTAL:
        raise ValidationError(f"Invoice total cannot exceed {MAX_TOTAL}")

    return InvoiceTotals(
        lines=tuple(lines),
        subtotal=subtotal,
        discount_percent=pct,
        discount_amount=discount,
        tax_amount=tax,
        total_amount=total,
    )


def _choice(value, allowed: tuple[str, ...], key: str) -> str:
    if value not in allowed:
        raise ValidationError(f"{key} must be one of: {', '.join(allowed)}")
    return value


def create_invoice(
    *,
    items,
    user_id: int,
    customer_name: str | None = None,
    customer_phone: str | None = None,
    discount_percent=None,
    discount_amount=None,
    payment_method: str = "cash",
    payment_status: str = "paid",
    invoice_type: str = "retail",
    notes: str | None = None,
    now: datetime | None = None,
    ip_address: str | None = None,
) -> Invoice:
    """
    Check out a cart as one atomic invoice.

    items: [{"medicine_id": int, "quantity": int}, ...]. Prices and batches
    are chosen server-side (FEFO); client-sent prices are ignored.

    Raises ValidationError, NotFoundError, ForeignKeyViolationError,
    InsufficientStockError, or ConcurrencyError (after retries ran out).
    Nothing is persisted when any of them is raised.
    """
    cart = parse_cart(items)
    pct = require_percent(discount_percent, "discount_percent") if discount_percent is not None else ZERO
    override = require_amount(discount_amount, "discount_amount") if discount_amount is not None else None
    payment_method = _choice(payment_method, PAYMENT_METHODS, "payment_method")
    payment_status = _choice(payment_status, PAYMENT_STATUSES, "payment_status")
    invoice_type = _choice(invoice_type, INVOICE_TYPES, "invoice_type")
    customer_name = (customer_name or "").strip() or None
    customer_phone = (customer_phone or "").strip() or None

    if not db.session.query(User.id).filter_by(id=user_id).first():
        raise ForeignKeyViolationError("User does not exist", details={"user_id": user_id})

    def _op() -> Invoice:
        begin_write_transaction()
        sold_at = as_utc(now) if now else utcnow()

        # Allocation reads live rows under lock; never reuse a previous attempt's result.
        allocations = []
        for line in cart:
            allocation = allocation_service.allocate(line.medicine_id, line.quantity, as_of=sold_at, lock=True)
            allocation_service.apply_allocation(allocation)
            allocations.append(allocation)

        slices = [(a.medicine_id, s) for a in allocations for s in a.slices]
        totals = compute_totals(
            [line_amounts(s.unit_price, s.quantity, s.gst_percent) for _, s in slices],
            discount_percent=pct,
            discount_amount=override,
        )

        invoice = Invoice(
            invoice_number=sequence_service.next_invoice_number(sold_at),
            invoice_type=invoice_type,
            customer_name=customer_name,
            customer_phone=customer_phone,
            subtotal=totals.subtotal,
            discount_amount=totals.discount_amount,
            discount_percent=totals.discount_percent,
            tax_amount=totals.tax_amount,
            total_amount=totals.total_amount,
            payment_method=payment_method,
            payment_status=payment_status,
            notes=notes,
            user_id=user_id,
            created_at=sold_at,
        )
        db.session.add(invoice)
        db.session.flush()

        for (medicine_id, s), amounts in zip(slices, totals.lines):
            db.session.add(
                InvoiceItem(
                    invoice_id=invoice.id,
                    medicine_id=medicine_id,
                    batch_id=s.batch_id,
                    quantity=s.quantity,
                    unit_price=amounts.unit_price,
                    discount_percent=totals.discount_percent,
                    gst_percent=amounts.gst_percent,
                    tax_amount=amounts.tax_amount,
                    total_price=amounts.total_price,
                    created_at=sold_at,
                )
            )

        audit_service.append_audit_log(
            action=audit_service.ACTION_CREATE_INVOICE,
            entity_type="invoice",
            entity_id=invoice.id,
            user_id=user_id,
            details={
                "invoice_number": invoice.invoice_number,
                "total": str(totals.total_amount),
                "items": len(slices),
            },
            ip_address=ip_address,
        )

        db.session.commit()
        return invoice

    invoice = run_with_retry(_op)
    current_app.logger.info("Invoice %s created: total %s", invoice.invoice_number, invoice.total_amount)
    return invoice


def preview_invoice(items, *, discount_percent=None, discount_amount=None, now: datetime | None = None) -> dict:
    """
    Price a cart without reserving stock or a number.

    Same FEFO plan and totals a checkout would produce against current data.
    """
    cart = parse_cart(items)
    pct = require_percent(discount_percent, "discount_percent") if discount_percent is not None else ZERO
    override = require_amount(discount_amount, "discount_amount") if discount_amount is not None else None
    as_of = as_utc(now) if now else utcnow()

    allocations = []
    pending: dict[int, int] = {}
    for line in cart:
        # Same medicine on two lines: the second line asks for the combined amount.
        pending[line.medicine_id] = pending.get(line.medicine_id, 0) + line.quantity
        combined = allocation_service.allocate(line.medicine_id, pending[line.medicine_id], as_of=as_of)
        allocations.append(_tail(combined, line.quantity))

    amounts = [line_amounts(s.unit_price, s.quantity, s.gst_percent) for a in allocations for s in a.slices]
    totals = compute_totals(amounts, discount_percent=pct, discount_amount=override)
    return {
        "allocations": [a.to_dict() for a in allocations],
        "subtotal": str(totals.subtotal),
        "discount_percent": str(totals.discount_percent),
        "discount_amount": str(totals.discount_amount),
        "tax_amount": str(totals.tax_amount),
        "total_amount": str(totals.total_amount),
    }


def _tail(allocation: allocation_service.Allocation, quantity: int) -> allocation_service.Allocation:
    """The last `quantity` units of a FEFO plan."""
    skip = allocation.allocated - quantity
    slices = []
    for s in allocation.slices:
        if skip >= s.quantity:
            skip -= s.quantity
            continue
        take = s.quantity - skip
        skip = 0
        slices.append(allocation_service.AllocationSlice(
            batch_id=s.batch_id,
            batch_number=s.batch_number,
            expiry_date=s.expiry_date,
            quantity=take,
            unit_price=s.unit_price,
            gst_percent=s.gst_percent,
        ))
    return allocation_service.Allocation(
        medicine_id=allocation.medicine_id,
        requested=quantity,
        slices=tuple(slices),
    )


def get_invoice(invoice_id: int) -> Invoice:
    invoice = db.session.query(Invoice).filter_by(id=invoice_id).first()
    if not invoice:
        raise NotFoundError("Invoice not found")
    return invoice


def get_invoice_by_number(invoice_number: str) -> Invoice:
    invoice = db.session.query(Invoice).filter_by(invoice_number=invoice_number).first()
    if not invoice:
        raise NotFoundError("Invoice not found")
    return invoice


def list_invoices(
    *,
    start: date | None = None,
    end: date | None = None,
    limit: int = 200,
) -> list[Invoice]:
    """Newest first. start/end are inclusive local calendar dates."""
    tz_name = current_app.config.get("BUSINESS_TIMEZONE", "UTC")
    q = db.session.query(Invoice)
    if start is not None:
        q = q.filter(Invoice.created_at >= day_bounds(start, tz_name)[0])
    if end is not None:
        q = q.filter(Invoice.created_at < day_bounds(end, tz_name)[1])
    return q.order_by(Invoice.created_at.desc(), Invoice.id.desc()).limit(limit).all()


def next_invoice_number_preview(now: datetime | None = None) -> str:
    return sequence_service.peek_next_invoice_number(now or utcnow())
