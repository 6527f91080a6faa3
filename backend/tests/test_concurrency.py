"""
Concurrent checkout tests against a file-backed SQLite database.

An in-memory database is a single shared connection, so racing threads
need a real file to contend on.
"""

import os
import tempfile
import threading
import unittest
from datetime import datetime, timezone

from pharmapos import create_app
from pharmapos.errors import ConcurrencyError, InsufficientStockError
from pharmapos.extensions import db
from pharmapos.models import Batch, Invoice
from pharmapos.services import auth_service, batch_service, catalog_service, invoice_service


SOLD_AT = datetime(2024, 12, 1, 10, 0, tzinfo=timezone.utc)


class ConcurrentCheckoutTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"timeout": 30}},
            "BCRYPT_ROUNDS": 4,
            "BUSINESS_TIMEZONE": "UTC",
            "TX_RETRY_ATTEMPTS": 5,
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()
            user = auth_service.create_user("owner", "Password123", "Store Owner")
            self.user_id = user.id
            medicine = catalog_service.create_medicine({"name": "Amoxicillin 250mg"})
            self.medicine_id = medicine.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _receive(self, quantity, batch_number="AMX-01"):
        with self.app.app_context():
            batch = batch_service.create_batch({
                "medicine_id": self.medicine_id,
                "batch_number": batch_number,
                "expiry_date": "2099-01-01T00:00:00Z",
                "purchase_price": "3.00",
                "mrp": "8.00",
                "selling_price": "6.00",
                "gst_percent": "5",
                "quantity": quantity,
            })
            return batch.id

    def _race(self, buyers, quantity=1):
        """Run `buyers` checkouts at once; returns (invoice_numbers, errors)."""
        barrier = threading.Barrier(buyers)
        lock = threading.Lock()
        numbers, errors = [], []

        def worker():
            with self.app.app_context():
                try:
                    barrier.wait()
                    invoice = invoice_service.create_invoice(
                        items=[{"medicine_id": self.medicine_id, "quantity": quantity}],
                        user_id=self.user_id,
                        now=SOLD_AT,
                    )
                    with lock:
                        numbers.append(invoice.invoice_number)
                except (InsufficientStockError, ConcurrencyError) as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker) for _ in range(buyers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return numbers, errors

    def test_last_unit_sold_once(self):
        for buyers in (2, 5):
            with self.subTest(buyers=buyers):
                batch_id = self._receive(1, batch_number=f"AMX-LAST-{buyers}")
                numbers, errors = self._race(buyers)

                self.assertEqual(len(numbers), 1)
                self.assertEqual(len(errors), buyers - 1)
                with self.app.app_context():
                    self.assertEqual(db.session.get(Batch, batch_id).quantity, 0)

    def test_invoice_numbers_are_distinct_and_gapless(self):
        self._receive(100)
        buyers = 6
        numbers, errors = self._race(buyers, quantity=2)

        self.assertEqual(errors, [])
        self.assertEqual(
            sorted(numbers),
            [f"INV20241201{n:04d}" for n in range(1, buyers + 1)],
        )
        with self.app.app_context():
            self.assertEqual(db.session.query(Invoice).count(), buyers)
            self.assertEqual(batch_service.get_available_quantity(self.medicine_id), 100 - 2 * buyers)


if __name__ == "__main__":
    unittest.main()
