"""
Shared fixtures.

Every test runs against a fresh in-memory SQLite database created by the
testing configuration; the concurrency tests build their own file-backed app.
"""
import threading
from itertools import count

import pytest

from app import create_app
from app.extensions import db as _db
from app.models import Customer, Supplier, Product, StockMovement
from app.services.inventory_service import StockLedger

_sku = count(1)


@pytest.fixture
def app():
    app = create_app('testing')
    ctx = app.app_context()
    ctx.push()
    _db.create_all()
    yield app
    _db.session.remove()
    _db.drop_all()
    ctx.pop()


@pytest.fixture
def file_app(tmp_path):
    """File-backed SQLite app so that several threads can share one database."""
    app = create_app('testing', config_overrides={
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'nexus.db'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'check_same_thread': False, 'timeout': 15}},
    })
    with app.app_context():
        _db.create_all()
    yield app
    with app.app_context():
        _db.drop_all()
        _db.engine.dispose()


def _run_concurrently(app, *calls):
    """
    Run each callable in its own thread and application context, released together.
    Returns (results, errors) in call order; None marks the missing side.
    """
    barrier = threading.Barrier(len(calls))
    results = [None] * len(calls)
    errors = [None] * len(calls)

    def worker(idx, call):
        with app.app_context():
            barrier.wait()
            try:
                results[idx] = call()
            except Exception as e:
                errors[idx] = e

    threads = [threading.Thread(target=worker, args=(i, c)) for i, c in enumerate(calls)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results, errors


@pytest.fixture
def run_concurrently():
    return _run_concurrently


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_customer(db):
    def _make(first_name='Ada', last_name='Lovelace', code=None):
        customer = Customer(customer_code=code or f'CUST-T{next(_sku):05d}',
                            first_name=first_name, last_name=last_name)
        db.session.add(customer)
        db.session.commit()
        return customer
    return _make


@pytest.fixture
def make_supplier(db):
    def _make(name='Acme Components'):
        supplier = Supplier(name=name)
        db.session.add(supplier)
        db.session.commit()
        return supplier
    return _make


@pytest.fixture
def make_product(db):
    """Product with an optional opening balance posted through the ledger."""
    def _make(name='Widget', price=100.0, stock=0):
        product = Product(sku=f'SKU-T{next(_sku):05d}', name=name, price=price, cost=price / 2,
                          stock_quantity=0)
        db.session.add(product)
        db.session.commit()
        if stock:
            StockLedger.apply_movement(product.id, 'in', stock, StockMovement.REF_OPENING)
        return product
    return _make


@pytest.fixture
def customer(make_customer):
    return make_customer()


@pytest.fixture
def supplier(make_supplier):
    return make_supplier()


@pytest.fixture
def product(make_product):
    return make_product(stock=20)
