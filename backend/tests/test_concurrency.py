"""
Concurrency tests against a file-backed SQLite database.

Verifies:
- Two sales racing for the last units: exactly one wins
- Many concurrent sales never oversell and never share a sale number
- A refresh token redeemed twice at once rotates exactly once
- Two full refunds racing on one sale: exactly one wins
"""

import threading

import pytest

from retailcore import create_app
from retailcore.errors import ConflictError, InsufficientStockError, UnauthorizedError
from retailcore.extensions import db
from retailcore.models import Sale
from retailcore.principal import Principal
from retailcore.services import auth_service, branch_service, inventory_service, products_service, sales_service

from conftest import PASSWORD, TEST_CONFIG


@pytest.fixture(scope='function')
def file_app(tmp_path):
    config = dict(TEST_CONFIG)
    config['SQLALCHEMY_DATABASE_URI'] = f"sqlite:///{tmp_path / 'concurrency.sqlite3'}"
    app = create_app(config)

    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture(scope='function')
def seeded(file_app):
    """Branch with 10 units of one product, a cashier and a store manager."""
    with file_app.app_context():
        branch = branch_service.create_branch("Race Branch", "RACE1")
        product = products_service.create_product("RACE-1", "Race Product", 1000)
        inventory_service.receive_stock(product.id, branch.id, 10)
        cashier = auth_service.create_user("race.cashier@retail.test", PASSWORD, "Racer", "cashier", branch_id=branch.id)
        manager = auth_service.create_user("race.manager@retail.test", PASSWORD, "Boss", "store manager", branch_id=branch.id)
        return {
            "branch_id": branch.id,
            "product_id": product.id,
            "cashier": Principal.from_user(cashier),
            "manager": Principal.from_user(manager),
            "cashier_id": cashier.id,
        }


def run_concurrently(app, workers):
    """Start every worker behind a barrier; collect return values or exceptions."""
    results = []
    lock = threading.Lock()
    barrier = threading.Barrier(len(workers))

    def wrap(worker):
        with app.app_context():
            try:
                barrier.wait()
                outcome = worker()
            except Exception as exc:
                outcome = exc
            finally:
                db.session.remove()
            with lock:
                results.append(outcome)

    threads = [threading.Thread(target=wrap, args=(worker,)) for worker in workers]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


def current_stock(app, data):
    with app.app_context():
        return inventory_service.get_stock(data["product_id"], data["branch_id"]).quantity


class TestConcurrentSales:

    def test_two_sales_for_last_units(self, file_app, seeded):
        def buy_six():
            return sales_service.create_sale(
                seeded["cashier"],
                seeded["branch_id"],
                [{"product_id": seeded["product_id"], "quantity": 6}],
            ).id

        results = run_concurrently(file_app, [buy_six, buy_six])

        successes = [r for r in results if isinstance(r, int)]
        failures = [r for r in results if isinstance(r, InsufficientStockError)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert current_stock(file_app, seeded) == 4

    def test_many_sales_never_oversell(self, file_app, seeded):
        def buy_three():
            sale = sales_service.create_sale(
                seeded["cashier"],
                seeded["branch_id"],
                [{"product_id": seeded["product_id"], "quantity": 3}],
            )
            return sale.sale_number

        results = run_concurrently(file_app, [buy_three] * 6)

        numbers = [r for r in results if isinstance(r, str)]
        unexpected = [r for r in results if isinstance(r, Exception) and not isinstance(r, InsufficientStockError)]
        assert not unexpected
        assert len(numbers) == len(set(numbers))
        assert len(numbers) * 3 <= 10

        remaining = current_stock(file_app, seeded)
        assert remaining >= 0
        assert remaining == 10 - len(numbers) * 3


class TestConcurrentRefresh:

    def test_refresh_token_rotates_once(self, file_app, seeded):
        with file_app.app_context():
            user = auth_service.get_user(seeded["cashier_id"])
            pair = auth_service.issue_tokens(user)

        def redeem():
            return auth_service.refresh(pair.refresh_token)

        results = run_concurrently(file_app, [redeem, redeem])

        rotated = [r for r in results if not isinstance(r, Exception)]
        rejected = [r for r in results if isinstance(r, UnauthorizedError)]
        assert len(rotated) == 1
        assert len(rejected) == 1


class TestConcurrentRefunds:

    def test_full_refund_applied_once(self, file_app, seeded):
        with file_app.app_context():
            sale = sales_service.create_sale(
                seeded["cashier"],
                seeded["branch_id"],
                [{"product_id": seeded["product_id"], "quantity": 4}],
            )
            sale_id = sale.id

        def refund_all():
            return sales_service.refund_sale(seeded["manager"], sale_id, "returned").status

        results = run_concurrently(file_app, [refund_all, refund_all])

        assert results.count(Sale.STATUS_REFUNDED) == 1
        assert len([r for r in results if isinstance(r, ConflictError)]) == 1
        assert current_stock(file_app, seeded) == 10
