# Overview: Threaded concurrency tests against a temp-file SQLite database.

"""
Concurrency safeguards.

Each test runs its workers in separate threads, each with its own app
context (and so its own session), against a file-backed SQLite database.
"""

import os
import tempfile
import threading
from decimal import Decimal

import pytest

from commerce_ledger import create_app
from commerce_ledger.errors import InsufficientStock, InsufficientTokens, PendingRequestExists
from commerce_ledger.extensions import db
from commerce_ledger.models import OrderUnlock, StockMovement, TokenTransaction
from commerce_ledger.services import app_config_service
from commerce_ledger.services import concurrency
from commerce_ledger.services import products_service
from commerce_ledger.services import purchase_request_service
from commerce_ledger.services import stock_service
from commerce_ledger.services import token_service


@pytest.fixture
def file_app():
    tmpdir = tempfile.TemporaryDirectory()
    db_path = os.path.join(tmpdir.name, "concurrency.db")
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{db_path}",
        'LEDGER_RETRY_BACKOFF': 0.01,
    })
    with app.app_context():
        db.create_all()
        app_config_service.clear_cache()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()
    app_config_service.clear_cache()
    tmpdir.cleanup()


def run_workers(app, targets):
    """Run each callable in its own thread and app context; collect results or exceptions."""
    results = []
    lock = threading.Lock()

    def worker(func):
        with app.app_context():
            try:
                outcome = func()
            except Exception as exc:
                outcome = exc
            finally:
                db.session.remove()
            with lock:
                results.append(outcome)

    threads = [threading.Thread(target=worker, args=(t,)) for t in targets]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


class TestStockConcurrency:

    def test_concurrent_sales_never_oversell(self, file_app):
        with file_app.app_context():
            product = products_service.create_product({"name": "Hot item", "base_price": 100})
            product_id = product.id
            stock_service.append_stock_movement(product_id, "PURCHASE", 10, unit_cost=40)

        results = run_workers(
            file_app,
            [lambda: stock_service.append_stock_movement(product_id, "SALE", 3) for _ in range(6)],
        )

        sold = [r for r in results if isinstance(r, dict)]
        refused = [r for r in results if isinstance(r, InsufficientStock)]
        assert len(sold) == 3
        assert len(refused) == 3

        with file_app.app_context():
            state = stock_service.get_stock_state(product_id)
            assert state["quantity"] == 1
            assert state["unit_cost"] == Decimal("40")
            assert stock_service.replay_stock_state(product_id)["consistent"] is True

    def test_concurrent_order_hook_books_once(self, file_app):
        with file_app.app_context():
            product = products_service.create_product({"name": "Widget", "base_price": 100})
            product_id = product.id
            stock_service.append_stock_movement(product_id, "PURCHASE", 10, unit_cost=5)

        run_workers(
            file_app,
            [lambda: stock_service.record_order_sale(product_id, 2, "ORD-42") for _ in range(5)],
        )

        with file_app.app_context():
            sales = db.session.query(StockMovement).filter_by(product_id=product_id, type="SALE").count()
            assert sales == 1
            assert stock_service.get_stock_state(product_id)["quantity"] == 8


class TestTokenConcurrency:

    def test_concurrent_unlocks_of_one_order_charge_once(self, file_app):
        with file_app.app_context():
            token_service.admin_adjust_tokens("u1", 100, "seed")

        run_workers(
            file_app,
            [lambda: token_service.unlock_order("u1", "order-1", cost=10) for _ in range(8)],
        )

        with file_app.app_context():
            assert token_service.get_token_balance("u1") == 90
            assert db.session.query(OrderUnlock).count() == 1

    def test_concurrent_unlocks_cannot_double_spend(self, file_app):
        with file_app.app_context():
            token_service.admin_adjust_tokens("u1", 25, "seed")

        results = run_workers(
            file_app,
            [lambda i=i: token_service.unlock_order("u1", f"order-{i}", cost=10) for i in range(5)],
        )

        unlocked = [r for r in results if isinstance(r, dict)]
        refused = [r for r in results if isinstance(r, InsufficientTokens)]
        assert len(unlocked) == 2
        assert len(refused) == 3

        with file_app.app_context():
            assert token_service.get_token_balance("u1") == 5
            total = sum(tx.amount for tx in db.session.query(TokenTransaction).filter_by(user_id="u1"))
            assert total == 5

    def test_concurrent_submissions_leave_one_pending(self, file_app):
        results = run_workers(
            file_app,
            [lambda: purchase_request_service.submit_purchase_request("u1", "small", "proof") for _ in range(5)],
        )

        created = [r for r in results if isinstance(r, int)]
        refused = [r for r in results if isinstance(r, PendingRequestExists)]
        assert len(created) == 1
        assert len(refused) == 4

    def test_concurrent_reviews_credit_once(self, file_app):
        with file_app.app_context():
            request_id = purchase_request_service.submit_purchase_request("u1", "small", "proof")

        run_workers(
            file_app,
            [lambda: purchase_request_service.review_purchase_request(request_id, "approve") for _ in range(4)],
        )

        with file_app.app_context():
            assert token_service.get_token_balance("u1") == 100


class TestKeyedLocks:

    def test_lock_pool_stays_bounded(self):
        locks = {id(concurrency._lock_for("stock", n)) for n in range(5000)}
        assert len(locks) <= concurrency.LOCK_STRIPES
        assert concurrency._lock_for("tokens", "u1") is concurrency._lock_for("tokens", "u1")

    def test_serialized_is_reentrant(self):
        with concurrency.serialized("stock", 1):
            with concurrency.serialized("stock", 1):
                pass
