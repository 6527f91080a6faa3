"""
Invoice transaction tests.

Verifies:
- Checkout decrements batches by FEFO and writes invoice, items and audit together
- total = subtotal - discount + tax, with GST per line
- Any failing line leaves stock, numbering and audit untouched
- Invoice numbers are INV + YYYYMMDD + 4-digit daily sequence
"""

from decimal import Decimal

import pytest

from conftest import utc
from pharmapos.errors import (
    ForeignKeyViolationError,
    InsufficientStockError,
    ValidationError,
)
from pharmapos.extensions import db
from pharmapos.models import AuditLog, Batch, Invoice, InvoiceItem
from pharmapos.services import invoice_service
from pharmapos.services.invoice_service import compute_totals, line_amounts


SALE_DAY = utc(2024, 12, 1, 10, 30)


@pytest.fixture
def medicine(make_medicine):
    return make_medicine()


# =============================================================================
# PURE TOTALS
# =============================================================================


class TestTotals:

    def test_gst_is_computed_per_line(self):
        lines = [
            line_amounts(Decimal("50.00"), 2, Decimal("5.00")),
            line_amounts(Decimal("25.00"), 2, Decimal("18.00")),
        ]
        totals = compute_totals(lines, discount_percent=Decimal("10"))

        assert totals.subtotal == Decimal("150.00")
        assert totals.tax_amount == Decimal("14.00")
        assert totals.discount_amount == Decimal("15.00")
        assert totals.total_amount == Decimal("149.00")
        assert totals.total_amount == totals.subtotal - totals.discount_amount + totals.tax_amount

    def test_line_total_includes_tax(self):
        line = line_amounts(Decimal("10.00"), 3, Decimal("12.00"))
        assert line.line_subtotal == Decimal("30.00")
        assert line.tax_amount == Decimal("3.60")
        assert line.total_price == Decimal("33.60")

    def test_half_up_rounding_to_cents(self):
        line = line_amounts(Decimal("0.25"), 1, Decimal("18.00"))
        assert line.tax_amount == Decimal("0.05")

    def test_explicit_discount_overrides_percent(self):
        lines = [line_amounts(Decimal("50.00"), 3, Decimal("0"))]
        totals = compute_totals(lines, discount_percent=Decimal("50"), discount_amount=Decimal("20.00"))

        assert totals.discount_amount == Decimal("20.00")
        assert totals.discount_percent == Decimal("13.33")
        assert totals.total_amount == Decimal("130.00")

    def test_discount_cannot_exceed_subtotal(self):
        lines = [line_amounts(Decimal("10.00"), 1, Decimal("0"))]
        with pytest.raises(ValidationError):
            compute_totals(lines, discount_amount=Decimal("10.01"))

    def test_line_total_beyond_column_range_is_rejected(self):
        lines = [line_amounts(Decimal("99999999.99"), 1000, Decimal("12.00"))]
        with pytest.raises(ValidationError):
            compute_totals(lines)


# =============================================================================
# CHECKOUT
# =============================================================================


class TestCreateInvoice:

    def test_fefo_checkout_decrements_batches(self, owner, medicine, make_batch):
        batch_a = make_batch(medicine.id, "A", utc(2025, 1, 10), 5)
        batch_b = make_batch(medicine.id, "B", utc(2025, 3, 1), 20)

        invoice = invoice_service.create_invoice(
            items=[{"medicine_id": medicine.id, "quantity": 8}],
            user_id=owner.id,
            now=SALE_DAY,
        )

        assert db.session.get(Batch, batch_a.id).quantity == 0
        assert db.session.get(Batch, batch_b.id).quantity == 17

        items = invoice.items
        assert [(i.batch_id, i.quantity) for i in items] == [(batch_a.id, 5), (batch_b.id, 3)]
        assert invoice.subtotal == Decimal("80.00")
        assert invoice.tax_amount == Decimal("9.60")
        assert invoice.total_amount == Decimal("89.60")

    def test_totals_invariant_holds_on_stored_invoice(self, owner, make_medicine, make_batch):
        med_a = make_medicine("Amoxicillin 250mg")
        med_b = make_medicine("Cetirizine 10mg")
        make_batch(med_a.id, "AM1", utc(2025, 6, 1), 10, selling_price="50.00", gst_percent="5.00")
        make_batch(med_b.id, "CT1", utc(2025, 6, 1), 10, selling_price="25.00", gst_percent="18.00")

        invoice = invoice_service.create_invoice(
            items=[
                {"medicine_id": med_a.id, "quantity": 2},
                {"medicine_id": med_b.id, "quantity": 2},
            ],
            user_id=owner.id,
            discount_percent="10",
            now=SALE_DAY,
        )
        invoice = invoice_service.get_invoice(invoice.id)

        assert invoice.total_amount == invoice.subtotal - invoice.discount_amount + invoice.tax_amount
        assert invoice.total_amount == Decimal("149.00")
        assert sum(i.tax_amount for i in invoice.items) == invoice.tax_amount
        for item in invoice.items:
            assert item.discount_percent == Decimal("10.00")

    def test_failed_line_rolls_back_everything(self, owner, make_medicine, make_batch):
        in_stock = make_medicine("Paracetamol")
        short = make_medicine("Ibuprofen")
        plenty = make_batch(in_stock.id, "P1", utc(2025, 6, 1), 10)
        make_batch(short.id, "I1", utc(2025, 6, 1), 1)

        with pytest.raises(InsufficientStockError):
            invoice_service.create_invoice(
                items=[
                    {"medicine_id": in_stock.id, "quantity": 4},
                    {"medicine_id": short.id, "quantity": 2},
                ],
                user_id=owner.id,
                now=SALE_DAY,
            )

        assert db.session.get(Batch, plenty.id).quantity == 10
        assert db.session.query(Invoice).count() == 0
        assert db.session.query(InvoiceItem).count() == 0
        assert db.session.query(AuditLog).filter_by(action="CREATE_INVOICE").count() == 0
        assert invoice_service.next_invoice_number_preview(SALE_DAY) == "INV202412010001"

    def test_invoice_numbers_are_sequential_per_day(self, owner, medicine, make_batch):
        make_batch(medicine.id, "A", utc(2025, 6, 1), 50)
        cart = [{"medicine_id": medicine.id, "quantity": 1}]

        first = invoice_service.create_invoice(items=cart, user_id=owner.id, now=SALE_DAY)
        second = invoice_service.create_invoice(items=cart, user_id=owner.id, now=SALE_DAY)
        next_day = invoice_service.create_invoice(items=cart, user_id=owner.id, now=utc(2024, 12, 2, 9))

        assert first.invoice_number == "INV202412010001"
        assert second.invoice_number == "INV202412010002"
        assert next_day.invoice_number == "INV202412020001"
        assert invoice_service.next_invoice_number_preview(SALE_DAY) == "INV202412010003"

    def test_checkout_appends_audit_entry(self, owner, medicine, make_batch):
        make_batch(medicine.id, "A", utc(2025, 6, 1), 5)

        invoice = invoice_service.create_invoice(
            items=[{"medicine_id": medicine.id, "quantity": 2}],
            user_id=owner.id,
            now=SALE_DAY,
        )

        entry = db.session.query(AuditLog).filter_by(action="CREATE_INVOICE").one()
        assert entry.entity_id == invoice.id
        assert entry.user_id == owner.id
        assert entry.details["invoice_number"] == invoice.invoice_number

    def test_same_medicine_on_two_lines(self, owner, medicine, make_batch):
        batch = make_batch(medicine.id, "A", utc(2025, 6, 1), 5)
        cart = [
            {"medicine_id": medicine.id, "quantity": 3},
            {"medicine_id": medicine.id, "quantity": 2},
        ]

        invoice_service.create_invoice(items=cart, user_id=owner.id, now=SALE_DAY)
        assert db.session.get(Batch, batch.id).quantity == 0

    def test_expired_stock_is_not_sold(self, owner, medicine, make_batch):
        expired = make_batch(medicine.id, "OLD", utc(2024, 11, 30), 10)

        with pytest.raises(InsufficientStockError):
            invoice_service.create_invoice(
                items=[{"medicine_id": medicine.id, "quantity": 1}],
                user_id=owner.id,
                now=SALE_DAY,
            )
        assert db.session.get(Batch, expired.id).quantity == 10

    def test_unknown_user_is_rejected(self, app, medicine, make_batch):
        make_batch(medicine.id, "A", utc(2025, 6, 1), 5)
        with pytest.raises(ForeignKeyViolationError):
            invoice_service.create_invoice(
                items=[{"medicine_id": medicine.id, "quantity": 1}],
                user_id=4242,
                now=SALE_DAY,
            )

    @pytest.mark.parametrize(
        "items",
        [[], None, [{"medicine_id": 1}], [{"quantity": 1}], ["x"]],
    )
    def test_malformed_cart(self, owner, items):
        with pytest.raises(ValidationError):
            invoice_service.create_invoice(items=items, user_id=owner.id, now=SALE_DAY)

    @pytest.mark.parametrize(
        "line",
        [
            {"medicine_id": 10**20, "quantity": 1},
            {"medicine_id": 1, "quantity": 10**20},
            {"medicine_id": "99999999999", "quantity": 1},
        ],
    )
    def test_out_of_range_integers_are_validation_errors(self, owner, line):
        with pytest.raises(ValidationError):
            invoice_service.create_invoice(items=[line], user_id=owner.id, now=SALE_DAY)
        assert db.session.query(Invoice).count() == 0

    def test_oversized_invoice_rolls_back(self, owner, medicine, make_batch):
        batch = make_batch(
            medicine.id, "BIG", utc(2025, 6, 1), 200,
            selling_price="99999999.99", mrp="99999999.99",
        )
        with pytest.raises(ValidationError):
            invoice_service.create_invoice(
                items=[{"medicine_id": medicine.id, "quantity": 200}],
                user_id=owner.id,
                now=SALE_DAY,
            )
        assert db.session.get(Batch, batch.id).quantity == 200
        assert db.session.query(Invoice).count() == 0
        assert invoice_service.next_invoice_number_preview(SALE_DAY).endswith("0001")

    def test_bad_payment_method(self, owner, medicine, make_batch):
        make_batch(medicine.id, "A", utc(2025, 6, 1), 5)
        with pytest.raises(ValidationError):
            invoice_service.create_invoice(
                items=[{"medicine_id": medicine.id, "quantity": 1}],
                user_id=owner.id,
                payment_method="cheque",
                now=SALE_DAY,
            )


class TestPreview:

    def test_preview_matches_checkout_without_reserving(self, owner, medicine, make_batch):
        batch_a = make_batch(medicine.id, "A", utc(2025, 1, 10), 5)
        make_batch(medicine.id, "B", utc(2025, 3, 1), 20)
        cart = [{"medicine_id": medicine.id, "quantity": 8}]

        preview = invoice_service.preview_invoice(cart, now=SALE_DAY)

        assert preview["total_amount"] == "89.60"
        assert [s["quantity"] for s in preview["allocations"][0]["slices"]] == [5, 3]
        assert db.session.get(Batch, batch_a.id).quantity == 5
        assert invoice_service.next_invoice_number_preview(SALE_DAY) == "INV202412010001"

    def test_preview_splits_repeated_medicine(self, medicine, make_batch):
        batch_a = make_batch(medicine.id, "A", utc(2025, 1, 10), 3)
        batch_b = make_batch(medicine.id, "B", utc(2025, 3, 1), 10)
        cart = [
            {"medicine_id": medicine.id, "quantity": 2},
            {"medicine_id": medicine.id, "quantity": 2},
        ]

        preview = invoice_service.preview_invoice(cart, now=SALE_DAY)

        first, second = preview["allocations"]
        assert [(s["batch_id"], s["quantity"]) for s in first["slices"]] == [(batch_a.id, 2)]
        assert [(s["batch_id"], s["quantity"]) for s in second["slices"]] == [(batch_a.id, 1), (batch_b.id, 1)]
