# Overview: Read-only projections over the ledger (stock alerts, sales summaries, customers).

"""
Reporting & Analytics Service

Everything here is a pure read: no writes, no locks, safe to run next to any
checkout. Each query has a total order (ties broken by id) so repeated calls
over unchanged data return identical lists.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta

from flask import current_app
from sqlalchemy import func, or_

from ..errors import ValidationError
from ..extensions import db
from ..models import Batch, Invoice, InvoiceItem, Medicine, Supplier
from ..money import D, ZERO, as_str, money2
from ..time_utils import as_utc, business_date, day_bounds, to_utc_z, utcnow

MAX_REPORT_DAYS = 366

SEARCH_TYPES = ("all", "medicine", "invoice", "supplier")
GLOBAL_SEARCH_LIMIT = 10
NOTIFICATION_LIMIT = 5


def _tz() -> str:
    return current_app.config.get("BUSINESS_TIMEZONE", "UTC")


def get_low_stock_medicines() -> list[dict]:
    """
    Active medicines whose stock summed over all their batches is at or
    below their reorder level. Most urgent (lowest stock) first.
    """
    total_stock = func.coalesce(func.sum(Batch.quantity), 0)
    rows = (
        db.session.query(Medicine, total_stock.label("total_stock"))
        .outerjoin(Batch, Batch.medicine_id == Medicine.id)
        .filter(Medicine.is_active.is_(True))
        .group_by(Medicine.id)
        .having(total_stock <= Medicine.reorder_level)
        .order_by(total_stock.asc(), Medicine.name.asc(), Medicine.id.asc())
        .all()
    )
    return [
        {**medicine.to_dict(), "total_stock": int(stock or 0)}
        for medicine, stock in rows
    ]


def get_expiring_batches(days: int | None = None, *, as_of: datetime | None = None) -> list[dict]:
    """
    Batches with stock that expire within the horizon: now < expiry <= now + days.
    Already expired batches are excluded. Soonest first.
    """
    if days is None:
        days = current_app.config.get("EXPIRY_ALERT_DAYS", 30)
    if isinstance(days, bool) or not isinstance(days, int) or days <= 0:
        raise ValidationError("days must be a positive integer")

    now = as_utc(as_of) if as_of else utcnow()
    horizon = now + timedelta(days=days)
    rows = (
        db.session.query(Batch, Medicine.name, Medicine.brand)
        .join(Medicine, Medicine.id == Batch.medicine_id)
        .filter(
            Batch.quantity > 0,
            Batch.expiry_date > now,
            Batch.expiry_date <= horizon,
        )
        .order_by(Batch.expiry_date.asc(), Batch.id.asc())
        .all()
    )
    return [
        {**batch.to_dict(), "medicine_name": name, "brand": brand}
        for batch, name, brand in rows
    ]


def _sales_between(start: datetime, end: datetime) -> dict:
    row = (
        db.session.query(
            func.count(Invoice.id),
            func.coalesce(func.sum(Invoice.total_amount), 0),
            func.coalesce(func.sum(Invoice.discount_amount), 0),
            func.coalesce(func.sum(Invoice.tax_amount), 0),
        )
        .filter(Invoice.created_at >= start, Invoice.created_at < end)
        .one()
    )
    bills, revenue, discount, tax = int(row[0] or 0), money2(D(row[1])), money2(D(row[2])), money2(D(row[3]))
    return {
        "total_bills": bills,
        "total_revenue": str(revenue),
        "total_discount": str(discount),
        "total_tax": str(tax),
        "avg_bill_value": str(money2(revenue / bills) if bills else ZERO),
    }


def get_daily_sales(day: date | None = None) -> dict:
    """Bill count, revenue, discount, tax and average bill for one local calendar day."""
    day = day or business_date(utcnow(), _tz())
    start, end = day_bounds(day, _tz())
    return {"date": day.isoformat(), **_sales_between(start, end)}


def get_top_medicines(start: datetime, end: datetime, limit: int = 5) -> list[dict]:
    revenue = func.sum(InvoiceItem.total_price)
    rows = (
        db.session.query(
            Medicine.id,
            Medicine.name,
            func.sum(InvoiceItem.quantity),
            revenue,
        )
        .join(InvoiceItem, InvoiceItem.medicine_id == Medicine.id)
        .join(Invoice, Invoice.id == InvoiceItem.invoice_id)
        .filter(Invoice.created_at >= start, Invoice.created_at < end)
        .group_by(Medicine.id, Medicine.name)
        .order_by(revenue.desc(), Medicine.id.asc())
        .limit(limit)
        .all()
    )
    return [
        {"medicine_id": mid, "name": name, "quantity": int(qty or 0), "revenue": as_str(D(rev))}
        for mid, name, qty, rev in rows
    ]


def get_sales_report(start: date, end: date) -> dict:
    """Per-day summaries for [start, end] plus the top sellers by revenue."""
    if end < start:
        raise ValidationError("end must not be before start")
    if (end - start).days + 1 > MAX_REPORT_DAYS:
        raise ValidationError(f"Report range cannot exceed {MAX_REPORT_DAYS} days")

    days = []
    day = start
    while day <= end:
        days.append(get_daily_sales(day))
        day += timedelta(days=1)

    range_start = day_bounds(start, _tz())[0]
    range_end = day_bounds(end, _tz())[1]
    return {
        "start": start.isoformat(),
        "end": end.isoformat(),
        "summary": _sales_between(range_start, range_end),
        "days": days,
        "top_medicines": get_top_medicines(range_start, range_end),
    }


def _revenue_since(since: datetime) -> str:
    total = (
        db.session.query(func.coalesce(func.sum(Invoice.total_amount), 0))
        .filter(Invoice.created_at >= since)
        .scalar()
    )
    return as_str(D(total))


def get_dashboard_stats() -> dict:
    now = utcnow()
    low_stock = get_low_stock_medicines()
    expiring = get_expiring_batches(as_of=now)
    return {
        "today_sales": get_daily_sales(business_date(now, _tz())),
        "weekly_sales": _revenue_since(now - timedelta(days=7)),
        "monthly_sales": _revenue_since(now - timedelta(days=30)),
        "low_stock_count": len(low_stock),
        "low_stock_items": low_stock[:5],
        "expiring_count": len(expiring),
        "expiring_items": expiring[:5],
        "total_medicines": db.session.query(func.count(Medicine.id)).filter(Medicine.is_active.is_(True)).scalar(),
        "total_suppliers": db.session.query(func.count(Supplier.id)).filter(Supplier.is_active.is_(True)).scalar(),
    }


def list_customers() -> list[dict]:
    """
    Customers derived from invoice history.

    IDENTITY: best-effort. Two invoices belong to the same customer only when
    customer_name and customer_phone match exactly as typed. There is no
    customer table and no stable customer id; customer_key is just the pair.
    """
    total = func.sum(Invoice.total_amount)
    rows = (
        db.session.query(
            Invoice.customer_name,
            Invoice.customer_phone,
            func.count(Invoice.id),
            total,
            func.max(Invoice.created_at),
        )
        .filter(Invoice.customer_name.isnot(None), Invoice.customer_name != "")
        .group_by(Invoice.customer_name, Invoice.customer_phone)
        .order_by(total.desc(), Invoice.customer_name.asc(), Invoice.customer_phone.asc())
        .all()
    )
    return [
        {
            "customer_key": f"{name}|{phone or ''}",
            "name": name,
            "phone": phone,
            "visits": int(visits),
            "total_spent": as_str(D(spent)),
            "last_visit": to_utc_z(last) if isinstance(last, datetime) else last,
        }
        for name, phone, visits, spent, last in rows
    ]


def global_search(query: str, search_type: str = "all", limit: int = GLOBAL_SEARCH_LIMIT) -> list[dict]:
    """
    One search box over medicines, invoices and suppliers.

    Each hit is {id, type, title, subtitle, metadata}. Results come grouped
    by type in that order, at most `limit` per type. A blank query matches
    nothing.
    """
    search_type = (search_type or "all").strip().lower()
    if search_type not in SEARCH_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(SEARCH_TYPES)}")

    term = (query or "").strip()
    if not term:
        return []
    pattern = f"%{term}%"
    results: list[dict] = []

    if search_type in ("all", "medicine"):
        medicines = (
            db.session.query(Medicine)
            .filter(
                or_(
                    Medicine.name.ilike(pattern),
                    Medicine.generic_name.ilike(pattern),
                    Medicine.brand.ilike(pattern),
                    Medicine.barcode == term,
                )
            )
            .order_by(Medicine.name.asc(), Medicine.id.asc())
            .limit(limit)
            .all()
        )
        results.extend(
            {
                "id": m.id,
                "type": "medicine",
                "title": m.name,
                "subtitle": m.brand or m.generic_name,
                "metadata": " ".join(p for p in (m.strength, m.form) if p),
            }
            for m in medicines
        )

    if search_type in ("all", "invoice"):
        invoices = (
            db.session.query(Invoice)
            .filter(
                or_(
                    Invoice.invoice_number.ilike(pattern),
                    Invoice.customer_name.ilike(pattern),
                )
            )
            .order_by(Invoice.created_at.desc(), Invoice.id.desc())
            .limit(limit)
            .all()
        )
        results.extend(
            {
                "id": i.id,
                "type": "invoice",
                "title": i.invoice_number,
                "subtitle": i.customer_name or "Walk-in",
                "metadata": as_str(i.total_amount),
            }
            for i in invoices
        )

    if search_type in ("all", "supplier"):
        suppliers = (
            db.session.query(Supplier)
            .filter(
                or_(
                    Supplier.name.ilike(pattern),
                    Supplier.email.ilike(pattern),
                    Supplier.phone.ilike(pattern),
                )
            )
            .order_by(Supplier.name.asc(), Supplier.id.asc())
            .limit(limit)
            .all()
        )
        results.extend(
            {
                "id": s.id,
                "type": "supplier",
                "title": s.name,
                "subtitle": s.phone or s.email,
                "metadata": s.contact_person or "",
            }
            for s in suppliers
        )

    return results


def get_notifications(*, as_of: datetime | None = None, limit: int = NOTIFICATION_LIMIT) -> list[dict]:
    """
    Alert feed derived on every call from the expiring and low-stock views.

    Nothing is stored: ids name the batch or medicine the alert is about, so
    the same condition keeps the same id between calls. Expiry alerts first.
    """
    now = as_utc(as_of) if as_of else utcnow()
    created_at = to_utc_z(now)
    notifications = []

    for row in get_expiring_batches(as_of=now)[:limit]:
        notifications.append({
            "id": f"expiry-{row['id']}",
            "type": "expiry",
            "title": "Expiry Alert",
            "body": f"{row['medicine_name']} batch {row['batch_number']} expires on {row['expiry_date'][:10]}",
            "batch_id": row["id"],
            "medicine_id": row["medicine_id"],
            "created_at": created_at,
        })

    for row in get_low_stock_medicines()[:limit]:
        notifications.append({
            "id": f"low-stock-{row['id']}",
            "type": "low_stock",
            "title": "Low Stock Alert",
            "body": f"{row['name']} is running low ({row['total_stock']} units)",
            "medicine_id": row["id"],
            "created_at": created_at,
        })

    return notifications
