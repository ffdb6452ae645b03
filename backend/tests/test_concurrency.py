"""
Concurrency tests against a file-backed SQLite database.

Verifies:
- two approvals racing for the same money: exactly one succeeds, the ledger
  never goes negative
- two approvals racing on the same transaction: one approval, one deduction

Each worker thread pushes its own app context, so it gets its own session and
connection.
"""

import threading

import pytest

from pettycash import create_app
from pettycash.errors import PettyCashError
from pettycash.extensions import db
from pettycash.models import Balance, Category, Transaction, User
from pettycash.models.expenses import ACCOUNT_PHYSICAL
from pettycash.services import ledger_service, transaction_service

from conftest import make_config


@pytest.fixture(scope='function')
def file_app(tmp_path, password_hash):
    app = create_app(make_config(
        tmp_path,
        SQLALCHEMY_DATABASE_URI=f"sqlite:///{tmp_path / 'race.db'}",
        SQLALCHEMY_ENGINE_OPTIONS={"connect_args": {"check_same_thread": False, "timeout": 15}},
    ))
    with app.app_context():
        db.create_all()
        admin = User(name="Admin", email="admin@race.test", role="admin", password_hash=password_hash)
        employee = User(name="Emp", email="emp@race.test", role="employee", password_hash=password_hash)
        category = Category(name="Office Supplies", code="SUPPLY", budget_limit_cents=0)
        db.session.add_all([admin, employee, category])
        db.session.commit()
        ledger_service.add_funds(ACCOUNT_PHYSICAL, 100000, admin.id)
        db.session.commit()
        app.config["_ids"] = {"admin": admin.id, "employee": employee.id, "category": category.id}
        db.session.remove()

    yield app

    with app.app_context():
        db.drop_all()
        db.engine.dispose()


def _expense(app, amount):
    with app.app_context():
        ids = app.config["_ids"]
        employee = db.session.get(User, ids["employee"])
        txn = transaction_service.create_transaction(
            employee, {"category_id": ids["category"], "amount": amount, "description": "race"}
        )
        txn_id = txn.id
        db.session.remove()
    return txn_id


def _approve_concurrently(app, txn_ids):
    barrier = threading.Barrier(len(txn_ids))
    outcomes = []
    lock = threading.Lock()

    def worker(txn_id):
        with app.app_context():
            try:
                actor = db.session.get(User, app.config["_ids"]["admin"])
                barrier.wait()
                transaction_service.approve_transaction(actor, txn_id)
                result = "approved"
            except PettyCashError as e:
                result = e.code
            finally:
                db.session.remove()
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=worker, args=(txn_id,)) for txn_id in txn_ids]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return outcomes


class TestConcurrentApproval:

    def test_only_one_of_two_overlapping_approvals_succeeds(self, file_app):
        first = _expense(file_app, "600.00")
        second = _expense(file_app, "600.00")

        outcomes = _approve_concurrently(file_app, [first, second])

        assert sorted(outcomes) == ["INSUFFICIENT_FUNDS", "approved"]
        with file_app.app_context():
            balance = db.session.query(Balance).filter_by(account_type=ACCOUNT_PHYSICAL).one()
            assert balance.current_balance_cents == 40000
            assert balance.total_spent_cents == 60000
            statuses = sorted(db.session.get(Transaction, i).status for i in (first, second))
            assert statuses == ["approved", "pending"]

    def test_same_transaction_approved_once(self, file_app):
        txn_id = _expense(file_app, "250.00")

        outcomes = _approve_concurrently(file_app, [txn_id, txn_id])

        assert sorted(outcomes) == ["INVALID_TRANSITION", "approved"]
        with file_app.app_context():
            balance = db.session.query(Balance).filter_by(account_type=ACCOUNT_PHYSICAL).one()
            assert balance.current_balance_cents == 75000
