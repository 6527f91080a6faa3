"""
Catalogue and batch receiving tests.
"""

from decimal import Decimal

import pytest

from conftest import utc
from pharmapos.errors import ConflictError, ForeignKeyViolationError, ValidationError
from pharmapos.extensions import db
from pharmapos.models import AuditLog
from pharmapos.services import batch_service, catalog_service


class TestMedicines:

    def test_create_applies_defaults(self, app):
        medicine = catalog_service.create_medicine({"name": "  Dolo 650  "})
        assert medicine.name == "Dolo 650"
        assert medicine.reorder_level == 10
        assert medicine.pack_size == 1
        assert medicine.is_active is True

    def test_unknown_field_is_rejected(self, app):
        with pytest.raises(ValidationError):
            catalog_service.create_medicine({"name": "X", "price": "10"})

    def test_duplicate_barcode(self, make_medicine):
        make_medicine("A", barcode="8901234567890")
        with pytest.raises(ConflictError):
            make_medicine("B", barcode="8901234567890")

    def test_blank_barcode_is_stored_as_null(self, make_medicine):
        first = make_medicine("A", barcode="")
        second = make_medicine("B", barcode="  ")
        assert first.barcode is None and second.barcode is None

    def test_unknown_category(self, app):
        with pytest.raises(ForeignKeyViolationError):
            catalog_service.create_medicine({"name": "X", "category_id": 42})

    def test_search_matches_name_generic_brand_and_barcode(self, make_medicine):
        crocin = make_medicine("Crocin", generic_name="Paracetamol", brand="GSK", barcode="111")
        make_medicine("Zyrtec", generic_name="Cetirizine", brand="UCB")

        assert [m.id for m in catalog_service.search_medicines("parac")] == [crocin.id]
        assert [m.id for m in catalog_service.search_medicines("gsk")] == [crocin.id]
        assert [m.id for m in catalog_service.search_medicines("111")] == [crocin.id]
        assert catalog_service.search_medicines("   ") == []

    def test_deactivate_hides_from_default_listing(self, make_medicine):
        keep = make_medicine("Keep")
        drop = make_medicine("Drop")
        catalog_service.deactivate_medicine(drop.id)

        assert [m.id for m in catalog_service.list_medicines()] == [keep.id]
        assert len(catalog_service.list_medicines(include_inactive=True)) == 2


class TestCategories:

    def test_category_in_use_cannot_be_deleted(self, make_medicine):
        category = catalog_service.create_category({"name": "Analgesics"})
        make_medicine(category_id=category.id)

        with pytest.raises(ConflictError):
            catalog_service.delete_category(category.id)

    def test_duplicate_name(self, app):
        catalog_service.create_category({"name": "Antibiotics"})
        with pytest.raises(ConflictError):
            catalog_service.create_category({"name": "Antibiotics"})


class TestBatches:

    def test_receive_sets_initial_quantity_and_audits(self, make_medicine, make_batch):
        medicine = make_medicine()
        batch = make_batch(medicine.id, "LOT-9", utc(2026, 5, 1), 40, selling_price="12.345")

        assert batch.initial_quantity == 40
        assert batch.selling_price == Decimal("12.35")
        entry = db.session.query(AuditLog).filter_by(action="RECEIVE_BATCH").one()
        assert entry.entity_id == batch.id

    def test_expiry_must_follow_manufacture(self, make_medicine, make_batch):
        medicine = make_medicine()
        with pytest.raises(ValidationError):
            make_batch(medicine.id, "BAD", utc(2025, 1, 1), 5, manufacturing_date="2025-06-01")

    def test_selling_price_capped_by_mrp(self, make_medicine, make_batch):
        medicine = make_medicine()
        with pytest.raises(ValidationError):
            make_batch(medicine.id, "BAD", utc(2026, 1, 1), 5, selling_price="120.00")

    @pytest.mark.parametrize("quantity", [-1, "1.5", None])
    def test_quantity_validation(self, make_medicine, make_batch, quantity):
        medicine = make_medicine()
        with pytest.raises(ValidationError):
            make_batch(medicine.id, "BAD", utc(2026, 1, 1), quantity)

    def test_unknown_medicine(self, make_batch):
        with pytest.raises(ForeignKeyViolationError):
            make_batch(555, "X", utc(2026, 1, 1), 1)

    def test_quantity_is_not_editable(self, make_medicine, make_batch):
        medicine = make_medicine()
        batch = make_batch(medicine.id, "LOT", utc(2026, 1, 1), 5)

        with pytest.raises(ValidationError):
            batch_service.update_batch(batch.id, {"quantity": 50})

        updated = batch_service.update_batch(batch.id, {"selling_price": "9.50"})
        assert updated.selling_price == Decimal("9.50")
        assert updated.quantity == 5

    def test_available_quantity_ignores_expired_and_empty(self, make_medicine, make_batch):
        medicine = make_medicine()
        make_batch(medicine.id, "OLD", utc(2024, 1, 1), 7)
        make_batch(medicine.id, "NEW", utc(2026, 1, 1), 9)
        make_batch(medicine.id, "ZERO", utc(2026, 2, 1), 0)

        assert batch_service.get_available_quantity(medicine.id, as_of=utc(2025, 1, 1)) == 9
