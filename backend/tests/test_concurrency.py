"""
Concurrency tests for sale recording.

Runs against a file-backed SQLite database so each thread gets its own
connection and the write lock is real.
"""
import os
import tempfile
import threading
import unittest

from sqlalchemy.orm.exc import StaleDataError

from tienda import create_app
from tienda.extensions import db
from tienda.models import Category, Product, Sale, SaleItem, User
from tienda.services import sales_service
from tienda.services.concurrency import run_with_retry
from tienda.services.sales_service import InsufficientStockError


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            user = User(
                username="concurrent_user",
                email="concurrent@example.com",
                password_hash="dummy",
                is_active=True,
            )
            category = Category(name="Concurrency")
            db.session.add_all([user, category])
            db.session.commit()
            self.user_id = user.id

            scarce = Product(category_id=category.id, code="SCARCE-1", name="Scarce", price_cents=1000, stock=5)
            plenty = Product(category_id=category.id, code="PLENTY-1", name="Plenty", price_cents=250, stock=100)
            db.session.add_all([scarce, plenty])
            db.session.commit()
            self.scarce_id = scarce.id
            self.plenty_id = plenty.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run_sales(self, product_id, threads_count):
        results = []
        lock = threading.Lock()

        def worker():
            with self.app.app_context():
                try:
                    sale = sales_service.record_sale(
                        user_id=self.user_id,
                        items=[(product_id, 1)],
                        payment_method="cash",
                    )
                    with lock:
                        results.append(sale.invoice_number)
                except Exception as exc:
                    with lock:
                        results.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker) for _ in range(threads_count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results

    def test_invoice_numbers_are_distinct(self):
        results = self._run_sales(self.plenty_id, 8)

        invoices = [r for r in results if isinstance(r, str)]
        self.assertEqual(len(invoices), 8, results)
        self.assertEqual(sorted(invoices), [f"INV-{n:06d}" for n in range(1, 9)])

        with self.app.app_context():
            self.assertEqual(db.session.get(Product, self.plenty_id).stock, 92)

    def test_concurrent_sales_never_oversell(self):
        results = self._run_sales(self.scarce_id, 10)

        sold = [r for r in results if isinstance(r, str)]
        rejected = [r for r in results if isinstance(r, InsufficientStockError)]
        self.assertEqual(len(sold), 5, results)
        self.assertEqual(len(rejected), 5, results)
        self.assertEqual(len(set(sold)), 5)

        with self.app.app_context():
            self.assertEqual(db.session.get(Product, self.scarce_id).stock, 0)
            self.assertEqual(db.session.query(Sale).count(), 5)
            self.assertEqual(db.session.query(SaleItem).count(), 5)


class RunWithRetryTests(unittest.TestCase):
    def setUp(self):
        self.app = create_app({"TESTING": True, "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:"})
        self.ctx = self.app.app_context()
        self.ctx.push()

    def tearDown(self):
        db.session.remove()
        self.ctx.pop()

    def test_version_conflict_is_retried(self):
        calls = []

        def op():
            calls.append(1)
            if len(calls) < 3:
                raise StaleDataError("product version moved")
            return "saved"

        self.assertEqual(run_with_retry(op, backoff_base=0), "saved")
        self.assertEqual(len(calls), 3)

    def test_gives_up_after_last_attempt(self):
        calls = []

        def op():
            calls.append(1)
            raise StaleDataError("product version moved")

        with self.assertRaises(StaleDataError):
            run_with_retry(op, attempts=2, backoff_base=0)
        self.assertEqual(len(calls), 2)

    def test_other_errors_are_not_retried(self):
        calls = []

        def op():
            calls.append(1)
            raise ValueError("bad quantity")

        with self.assertRaises(ValueError):
            run_with_retry(op, backoff_base=0)
        self.assertEqual(len(calls), 1)


if __name__ == "__main__":
    unittest.main()
