"""
Concurrency tests on a file-backed SQLite database.

Each worker thread runs in its own app context (and so its own session and
connection), the way concurrent requests would.
"""
import os
import tempfile
import threading
import unittest

from depot import create_app
from depot.extensions import db
from depot.errors import DepotError, OverpaymentError
from depot.models import Client, Driver, Order, Payment, Product
from depot.models.partners import DRIVER_AVAILABLE
from depot.services import catalog_service, delivery_service, order_service, payment_service, stock_service
from depot.services.stock_service import MOVEMENT_OUT


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"timeout": 30}},
            "RETRY_ATTEMPTS": 10,
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            client = Client(name="Concurrent Hotel", address="1 Parallel St")
            db.session.add(client)
            db.session.commit()
            self.client_id = client.id

            product = catalog_service.create_product(
                patch={"reference": "CONCUR-1", "name": "Concurrent Product", "unit_price_cents": 1000},
                initial_stock=10,
                actor_id="seed",
            )
            self.product_id = product.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run_workers(self, targets):
        results = []
        errors = []
        lock = threading.Lock()

        def run(target):
            with self.app.app_context():
                try:
                    value = target()
                    with lock:
                        results.append(value)
                except DepotError as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=run, args=(t,)) for t in targets]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results, errors

    def test_concurrent_out_movements_do_not_lose_updates(self):
        def out(quantity):
            return lambda: stock_service.apply_movement(
                product_id=self.product_id,
                movement_type=MOVEMENT_OUT,
                quantity=quantity,
            ).id

        results, errors = self._run_workers([out(5), out(3)])

        self.assertEqual(errors, [])
        self.assertEqual(len(results), 2)
        with self.app.app_context():
            self.assertEqual(db.session.get(Product, self.product_id).current_stock, 2)
            self.assertEqual(stock_service.ledger_balance(self.product_id), 2)
            self.assertEqual(stock_service.audit_stock_ledger(), [])

    def test_concurrent_oversell_leaves_stock_non_negative(self):
        def out():
            return stock_service.apply_movement(
                product_id=self.product_id,
                movement_type=MOVEMENT_OUT,
                quantity=4,
            ).id

        results, errors = self._run_workers([out] * 4)

        self.assertEqual(len(results), 2)
        self.assertEqual(len(errors), 2)
        with self.app.app_context():
            self.assertEqual(db.session.get(Product, self.product_id).current_stock, 2)
            self.assertEqual(stock_service.audit_stock_ledger(), [])

    def test_concurrent_orders_get_unique_numbers(self):
        def create():
            return order_service.create_order(
                self.client_id,
                [{"product_id": self.product_id, "quantity": 1}],
            ).order_number

        results, errors = self._run_workers([create] * 6)

        self.assertEqual(errors, [])
        self.assertEqual(len(results), 6)
        self.assertEqual(len(set(results)), 6)
        with self.app.app_context():
            self.assertEqual(db.session.query(Order).count(), 6)
            self.assertEqual(db.session.get(Product, self.product_id).current_stock, 4)

    def test_concurrent_payments_cannot_overpay(self):
        with self.app.app_context():
            order = order_service.create_order(
                self.client_id,
                [{"product_id": self.product_id, "quantity": 2}],
            )
            order_id = order.id

        def pay():
            return payment_service.record_payment(order_id, 1500, "CASH").id

        results, errors = self._run_workers([pay, pay])

        self.assertEqual(len(results), 1)
        self.assertEqual(len(errors), 1)
        self.assertIsInstance(errors[0], OverpaymentError)
        with self.app.app_context():
            order = db.session.get(Order, order_id)
            self.assertEqual(order.paid_cents, 1500)
            self.assertEqual(order.remaining_cents, 500)
            self.assertEqual(order.payment_status, "PARTIAL")
            self.assertEqual(db.session.query(Payment).filter_by(order_id=order_id).count(), 1)


    def test_simultaneous_confirmations_free_the_driver(self):
        with self.app.app_context():
            driver = Driver(name="Parallel Paul")
            db.session.add(driver)
            db.session.commit()
            driver_id = driver.id

            order_ids = []
            for _ in range(2):
                order = order_service.create_order(
                    self.client_id,
                    [{"product_id": self.product_id, "quantity": 1}],
                )
                delivery_service.assign_driver(order.id, driver_id)
                order_ids.append(order.id)

        def confirm(order_id):
            return lambda: delivery_service.confirm_delivery(order_id).id

        results, errors = self._run_workers([confirm(i) for i in order_ids])

        self.assertEqual(errors, [])
        self.assertEqual(len(results), 2)
        with self.app.app_context():
            self.assertEqual(db.session.get(Driver, driver_id).status, DRIVER_AVAILABLE)
            statuses = {db.session.get(Order, i).delivery_status for i in order_ids}
            self.assertEqual(statuses, {"DELIVERED"})


if __name__ == "__main__":
    unittest.main()
