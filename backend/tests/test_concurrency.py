"""
Concurrency Tests

Writes to one product run one at a time: concurrent restocks never lose an
update and a pending request can only be decided once.

The threaded tests use a file-backed SQLite database so each worker thread
gets its own connection; the shared in-memory database of the other tests
hands every thread the same connection.
"""

import threading
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from bizdesk import create_app
from bizdesk.errors import InvalidStateError, ValidationError
from bizdesk.extensions import db
from bizdesk.models import Product
from bizdesk.scope import Scope
from bizdesk.services import approval_service, catalog_service, ledger_service
from bizdesk.services.concurrency import run_with_retry


CLERK = Scope(account_id="acme", actor="clerk")
MANAGER = Scope(account_id="acme", actor="manager")
OTHER_MANAGER = Scope(account_id="acme", actor="owner")


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.db'}",
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'REQUIRE_SECOND_PARTY_APPROVAL': True,
    })
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def seeded_product_id(file_app):
    """10 boxes, ratio 20, cost/box 50, price/box 70."""
    with file_app.app_context():
        product = catalog_service.create_product(
            CLERK,
            name="Frozen Tilapia",
            box_to_kg_ratio=20,
            cost_per_box=50,
            price_per_box=70,
            quantity_box=10,
        )
        product_id = product.id
        db.session.remove()
    return product_id


def run_threads(app, calls):
    """Run each zero-argument call in its own thread and app context; collect results in call order."""
    results = [None] * len(calls)

    def worker(index, call):
        with app.app_context():
            try:
                results[index] = call()
            except Exception as exc:
                results[index] = exc
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker, args=(i, call)) for i, call in enumerate(calls)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


def load_product(app, product_id):
    with app.app_context():
        product = db.session.get(Product, product_id)
        quantities = (product.quantity_box, product.quantity_kg, product.price_per_box)
        db.session.remove()
    return quantities


class TestConcurrentLedgerWrites:

    def test_concurrent_restocks_lose_no_update(self, file_app, seeded_product_id):
        restocks = 8
        calls = [
            lambda: ledger_service.record_restock(CLERK, seeded_product_id, 1, 0).id
            for _ in range(restocks)
        ]

        results = run_threads(file_app, calls)

        errors = [r for r in results if isinstance(r, Exception)]
        assert errors == []
        assert len(set(results)) == restocks

        boxes, kg, _ = load_product(file_app, seeded_product_id)
        assert boxes == Decimal("18")
        assert kg == Decimal("200")

        with file_app.app_context():
            movements = ledger_service.list_movements(CLERK, product_id=seeded_product_id)
            assert len(movements) == restocks
            db.session.remove()

    def test_concurrent_edit_approvals_apply_once(self, file_app, seeded_product_id):
        with file_app.app_context():
            [movement] = ledger_service.request_edit(
                CLERK, seeded_product_id, {"price_per_box": 80}, "supplier raise",
            )
            movement_id = movement.id
            db.session.remove()

        results = run_threads(file_app, [
            lambda: approval_service.approve_edit(MANAGER, movement_id, seeded_product_id).id,
            lambda: approval_service.approve_edit(OTHER_MANAGER, movement_id, seeded_product_id).id,
        ])

        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, Exception)]
        assert successes == [movement_id]
        assert len(failures) == 1
        assert isinstance(failures[0], InvalidStateError)

        _, _, price = load_product(file_app, seeded_product_id)
        assert price == Decimal("80")

    def test_concurrent_damage_approvals_deduct_once(self, file_app, seeded_product_id):
        with file_app.app_context():
            damage = ledger_service.record_damage(CLERK, seeded_product_id, 2, 40, "thawed")
            damage_id = damage.id
            db.session.remove()

        results = run_threads(file_app, [
            lambda: approval_service.approve_damage(MANAGER, damage_id).id,
            lambda: approval_service.approve_damage(OTHER_MANAGER, damage_id).id,
        ])

        assert sum(1 for r in results if isinstance(r, InvalidStateError)) == 1
        boxes, kg, _ = load_product(file_app, seeded_product_id)
        assert boxes == Decimal("8")
        assert kg == Decimal("160")


class TestRunWithRetry:

    def test_stale_data_is_retried(self, app, db_session):
        attempts = []

        def op():
            attempts.append(1)
            if len(attempts) == 1:
                raise StaleDataError("version changed underneath us")
            return "done"

        assert run_with_retry(op, backoff_base=0) == "done"
        assert len(attempts) == 2

    def test_lock_errors_give_up_after_last_attempt(self, app, db_session):
        attempts = []

        def op():
            attempts.append(1)
            raise OperationalError("UPDATE products", {}, Exception("database is locked"))

        with pytest.raises(OperationalError):
            run_with_retry(op, attempts=3, backoff_base=0)
        assert len(attempts) == 3

    def test_domain_errors_are_not_retried(self, app, db_session):
        attempts = []

        def op():
            attempts.append(1)
            raise ValidationError("boxes must be >= 0")

        with pytest.raises(ValidationError):
            run_with_retry(op, backoff_base=0)
        assert len(attempts) == 1
