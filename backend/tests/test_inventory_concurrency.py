"""
Concurrent stock removal against a file-backed SQLite database.

Two threads race to take 6 units out of 10. Exactly one may win; the loser
must see InvalidStateError and leave no movement behind.
"""

import threading
from decimal import Decimal

import pytest

from backoffice import create_app
from backoffice.errors import InvalidStateError
from backoffice.extensions import db
from backoffice.models import Category, Inventory, InventoryMovement, Product, User
from backoffice.services import inventory_service
from backoffice.time_utils import utcnow


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.db'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {
            'connect_args': {'timeout': 30, 'check_same_thread': False},
        },
        'LOG_LEVEL': 'WARNING',
    })
    with app.app_context():
        db.create_all()

        category = Category(name="Race", is_active=True)
        db.session.add(category)
        db.session.flush()
        product = Product(code="RACE-01", name="Contended", price=Decimal("5.00"),
                          category_id=category.id, is_active=True)
        user = User(name="Racer", email="racer@test.local", password_hash="x", role="MANAGER", is_active=True)
        db.session.add_all([product, user])
        db.session.flush()
        db.session.add(Inventory(product_id=product.id, quantity=10, min_stock=5,
                                 reserved_quantity=0, last_update=utcnow()))
        db.session.commit()
        ids = {"product_id": product.id, "user_id": user.id}

    yield app, ids

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def test_two_removals_cannot_both_succeed(file_app):
    app, ids = file_app
    barrier = threading.Barrier(2)
    outcomes = []
    lock = threading.Lock()

    def worker():
        with app.app_context():
            barrier.wait()
            try:
                inventory_service.remove_stock(ids["product_id"], 6, "Concurrent sale", ids["user_id"])
                result = "ok"
            except InvalidStateError:
                result = "insufficient"
            finally:
                db.session.remove()
            with lock:
                outcomes.append(result)

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert sorted(outcomes) == ["insufficient", "ok"]

    with app.app_context():
        inv = db.session.query(Inventory).filter_by(product_id=ids["product_id"]).one()
        assert inv.quantity == 4
        movements = db.session.query(InventoryMovement).filter_by(product_id=ids["product_id"]).all()
        assert [(m.type, m.quantity) for m in movements] == [("OUT", 6)]
